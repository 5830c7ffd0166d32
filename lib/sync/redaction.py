"""PII Redaction - derive transmission-safe versions of memory files

Each source `name.md` produces:
- `name.safe.md`: full content with `[PII:TYPE]...[/PII:TYPE]` replaced by `[REDACTED:TYPE]`
- `name.quick.md`: condensed copy of the safe content keeping only essential sections

The source file itself is never modified and never meant to leave the device.
"""

import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .output import HookLogger


PII_MARKER_PATTERN = re.compile(r'\[PII:(\w+)\](.*?)\[/PII:\1\]', re.DOTALL)
PII_OPEN_PATTERN = re.compile(r'\[PII:(\w+)\]')
REDACTED_PATTERN = re.compile(r'\[REDACTED:\w+\]')
HEADER_PATTERN = re.compile(r'^(#{1,3})\s+(.+)$')

QUICK_SECTIONS = frozenset([
    '# PAI Global Memory',
    '## User Profile',
    '## Collaboration Patterns',
    '## Active Projects',
    '## Recent Context',
])

SAFE_SUFFIX = '.safe.md'
QUICK_SUFFIX = '.quick.md'

GITIGNORE_START = '# MEMSYNC:CLOUD-SAFE:START'
GITIGNORE_END = '# MEMSYNC:CLOUD-SAFE:END'


class RedactionError(Exception):
    """Sanitized output could not be produced."""
    pass


@dataclass
class RedactionReport:
    """Outcome of processing one memory file."""
    source: Path
    safe_path: Path
    quick_path: Path
    redactions: int
    reduction_percent: int
    malformed_markers: int = 0


def redact_pii(content: str) -> str:
    """Replace every well-formed PII span with its type token.

    [PII:EMAIL]user@example.com[/PII:EMAIL] -> [REDACTED:EMAIL]
    """
    return PII_MARKER_PATTERN.sub(lambda m: f"[REDACTED:{m.group(1)}]", content)


def count_malformed_markers(redacted: str) -> int:
    """Opening markers left behind after redaction have no matching close tag."""
    return len(PII_OPEN_PATTERN.findall(redacted))


def count_redactions(content: str) -> int:
    return len(REDACTED_PATTERN.findall(content))


def _reduction(original_lines: int, kept_lines: int) -> int:
    if original_lines == 0:
        return 0
    return round((1 - kept_lines / original_lines) * 100)


def generate_quick_version(content: str, now: Optional[datetime] = None) -> str:
    """Keep only the allow-listed sections of already-redacted content.

    A heading at or above the level of the section being included closes it.
    """
    lines = content.split('\n')
    quick_lines: List[str] = []
    in_included = False
    header_level = 0

    for line in lines:
        header = HEADER_PATTERN.match(line)
        if header:
            level = len(header.group(1))
            full_header = f"{'#' * level} {header.group(2)}"
            if full_header in QUICK_SECTIONS:
                in_included = True
                header_level = level
                quick_lines.append(line)
                continue
            if level <= header_level:
                in_included = False

        if in_included:
            # collapse runs of blank lines
            if line.strip() or (quick_lines and quick_lines[-1].strip()):
                quick_lines.append(line)

    generated = (now or datetime.now(timezone.utc)).isoformat()
    reduction = _reduction(len(lines), len(quick_lines) + 5)
    quick_lines.extend([
        '',
        '---',
        '',
        f"**Quick version generated**: {generated}",
        f"**Token reduction**: ~{reduction}%",
    ])
    return '\n'.join(quick_lines)


def is_derived(path: Path) -> bool:
    return path.name.endswith(SAFE_SUFFIX) or path.name.endswith(QUICK_SUFFIX)


def derived_paths(source: Path) -> tuple:
    stem = source.name[:-len('.md')]
    return source.with_name(stem + SAFE_SUFFIX), source.with_name(stem + QUICK_SUFFIX)


class RedactionEngine:
    """Generates safe and quick derivatives for every memory file under a root."""

    def __init__(self, root: Path, logger: Optional[HookLogger] = None):
        self.root = Path(root)
        self.log = logger or HookLogger('Redaction')

    def find_memory_files(self) -> List[Path]:
        """Source markdown files, excluding derived files and `.git`."""
        files = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d != '.git')
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if name.endswith('.md') and not is_derived(path):
                    files.append(path)
        return files

    def process_file(self, path: Path) -> RedactionReport:
        """Write `.safe.md` and `.quick.md` next to a memory file.

        Raises:
            RedactionError: If the source cannot be read or a derivative cannot be written
        """
        path = Path(path)
        safe_path, quick_path = derived_paths(path)

        try:
            content = path.read_text(encoding='utf-8')
            safe_content = redact_pii(content)
            safe_path.write_text(safe_content, encoding='utf-8')
            quick_content = generate_quick_version(safe_content)
            quick_path.write_text(quick_content, encoding='utf-8')
        except (OSError, UnicodeError) as e:
            raise RedactionError(f"Failed to redact {path}: {e}") from e

        malformed = count_malformed_markers(safe_content)
        if malformed:
            self.log.warn(f"{path.name}: {malformed} unterminated PII marker(s) left as-is")

        report = RedactionReport(
            source=path,
            safe_path=safe_path,
            quick_path=quick_path,
            redactions=count_redactions(safe_content) - count_redactions(content),
            reduction_percent=_reduction(
                len(content.split('\n')), len(quick_content.split('\n'))
            ),
            malformed_markers=malformed
        )
        self.log.info(
            f"{path.name} -> {safe_path.name}, {quick_path.name} "
            f"({report.redactions} redaction(s), {report.reduction_percent}% smaller)"
        )
        return report

    def process_tree(self) -> List[RedactionReport]:
        """Redact every memory file. Any failure aborts the whole run."""
        if not self.root.exists():
            raise RedactionError(f"Memory directory not found: {self.root}")
        return [self.process_file(path) for path in self.find_memory_files()]

    def ensure_cloud_safe_ignore(self) -> bool:
        """Keep raw memory files out of commits, allowing only derived artifacts.

        Returns True if `.gitignore` was changed.
        """
        ignore_path = self.root / '.gitignore'
        block = '\n'.join([
            GITIGNORE_START,
            '*.md',
            f'!*{SAFE_SUFFIX}',
            f'!*{QUICK_SUFFIX}',
            '!sync/conflicts/resolution-log.md',
            GITIGNORE_END,
        ])

        try:
            current = ignore_path.read_text(encoding='utf-8') if ignore_path.exists() else ''
            if GITIGNORE_START in current and GITIGNORE_END in current:
                start = current.index(GITIGNORE_START)
                end = current.index(GITIGNORE_END) + len(GITIGNORE_END)
                updated = current[:start] + block + current[end:]
            else:
                updated = current.rstrip('\n') + ('\n\n' if current.strip() else '') + block + '\n'

            if updated == current:
                return False
            ignore_path.write_text(updated, encoding='utf-8')
        except OSError as e:
            raise RedactionError(f"Failed to update {ignore_path}: {e}") from e
        return True
