"""PII Detection - pattern scan gating what may leave the device

Marker-based redaction is the primary control. This module is the
backstop: it scans derived `.safe.md` / `.quick.md` artifacts for common
secret and PII shapes and blocks transmission when any are found outside
an already-marked type.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern, Tuple, Union

from .output import HookLogger
from .redaction import SAFE_SUFFIX, QUICK_SUFFIX


PII_PATTERNS: Dict[str, Tuple[Pattern, str]] = {
    'EMAIL': (re.compile(r'[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}', re.IGNORECASE), "Email address"),
    # Separators are required so dates, times and plain counters do not match.
    'PHONE': (
        re.compile(
            r'(?<![\w+-])(?:\+\d{1,3}(?:[\s.-]?\(?\d{1,4}\)?){2,4}'
            r'|\(?\d{3}\)?[\s.-]\d{3}[\s.-]\d{4})(?![\w-])'
        ),
        "Phone number"
    ),
    'API_KEY': (re.compile(r'sk-[a-zA-Z0-9]{20,}'), "OpenAI API key"),
    'AWS_KEY': (re.compile(r'AKIA[0-9A-Z]{16}'), "AWS access key"),
    'JWT': (re.compile(r'eyJ[a-zA-Z0-9_-]{5,}\.eyJ[a-zA-Z0-9_-]{5,}\.[a-zA-Z0-9_-]{5,}'), "JWT token"),
    'GITHUB_TOKEN': (re.compile(r'ghp_[a-zA-Z0-9]{36}'), "GitHub personal access token"),
    'CREDIT_CARD': (re.compile(r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b'), "Credit card number"),
    'SSN': (re.compile(r'\b\d{3}-\d{2}-\d{4}\b'), "Social security number"),
}

# Marker types that also cover a pattern type.
TYPE_ALIASES: Dict[str, Tuple[str, ...]] = {
    'API_KEY': ('API_KEY', 'API', 'APIKEY'),
    'AWS_KEY': ('AWS_KEY', 'AWSKEY', 'AWS', 'API'),
    'GITHUB_TOKEN': ('GITHUB_TOKEN', 'GITHUBTOKEN', 'GITHUB', 'TOKEN', 'API'),
    'JWT': ('JWT', 'TOKEN'),
    'CREDIT_CARD': ('CREDIT_CARD', 'CREDITCARD', 'CARD'),
}

SKIP_EXTENSIONS = re.compile(r'\.(jpg|jpeg|png|gif|pdf|zip|tar|gz|exe|dll|so|dylib)$', re.IGNORECASE)


@dataclass
class Finding:
    """One pattern type matched in a text."""
    pii_type: str
    description: str
    count: int
    line: int = 0


@dataclass
class FileReport:
    """Unhandled findings for one scanned file."""
    file: str
    findings: List[Finding] = field(default_factory=list)


@dataclass
class Allowed:
    files_checked: int = 0
    blocked: bool = field(default=False, init=False)


@dataclass
class Blocked:
    reports: List[FileReport]
    files_checked: int = 0
    blocked: bool = field(default=True, init=False)

    @property
    def files(self) -> List[str]:
        return [r.file for r in self.reports]


GateResult = Union[Allowed, Blocked]


def is_marked(content: str, pii_type: str) -> bool:
    """True if the file already carries a marker of this type anywhere."""
    for alias in TYPE_ALIASES.get(pii_type, (pii_type,)):
        if f"[PII:{alias}]" in content or f"[REDACTED:{alias}]" in content:
            return True
    return False


class PatternDetector:
    """Regex detector over the fixed PII pattern set."""

    def __init__(self, patterns: Optional[Dict[str, Tuple[Pattern, str]]] = None):
        self.patterns = patterns if patterns is not None else PII_PATTERNS

    def scan(self, text: str) -> List[Finding]:
        """Report every pattern type present in text, not yet filtered by markers."""
        findings = []
        for pii_type, (pattern, description) in self.patterns.items():
            matches = list(pattern.finditer(text))
            if matches:
                line = text.count('\n', 0, matches[0].start()) + 1
                findings.append(Finding(pii_type, description, len(matches), line))
        return findings


class PreTransmissionGate:
    """Blocks a push when derived artifacts still contain unmarked PII.

    Any object exposing `scan(text) -> List[Finding]` can be used as a detector.
    """

    def __init__(
        self,
        root: Path,
        detectors: Optional[Iterable] = None,
        logger: Optional[HookLogger] = None
    ):
        self.root = Path(root)
        self.detectors = list(detectors) if detectors is not None else [PatternDetector()]
        self.log = logger or HookLogger('PrePush')

    def files_to_check(self) -> List[Path]:
        """Derived artifacts only; raw originals never leave the device."""
        files = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if d != '.git')
            for name in sorted(filenames):
                if name.endswith(SAFE_SUFFIX) or name.endswith(QUICK_SUFFIX):
                    files.append(Path(dirpath) / name)
        return files

    def check_content(self, content: str) -> List[Finding]:
        """Findings whose type is not already marked elsewhere in the content."""
        unhandled = []
        for detector in self.detectors:
            for finding in detector.scan(content):
                if not is_marked(content, finding.pii_type):
                    unhandled.append(finding)
        return unhandled

    def check_file(self, path: Path) -> List[Finding]:
        """Scan one file. Unreadable files are skipped (fail open)."""
        if SKIP_EXTENSIONS.search(path.name):
            return []
        try:
            content = path.read_text(encoding='utf-8')
        except (OSError, UnicodeError) as e:
            self.log.warn(f"Could not scan {path}: {e} - skipping")
            return []
        return self.check_content(content)

    def check(self) -> GateResult:
        files = self.files_to_check()
        reports = []
        for path in files:
            findings = self.check_file(path)
            if findings:
                reports.append(FileReport(str(path.relative_to(self.root)), findings))

        if reports:
            return Blocked(reports=reports, files_checked=len(files))
        return Allowed(files_checked=len(files))


def format_report(result: Blocked) -> str:
    """Actionable message listing every blocked file and finding."""
    lines = [
        "SECURITY: Unredacted PII found in the following files:",
        "",
    ]
    for report in result.reports:
        lines.append(f"  {report.file}")
        for finding in report.findings:
            plural = 's' if finding.count > 1 else ''
            lines.append(
                f"     - {finding.description} [{finding.pii_type}] "
                f"({finding.count} occurrence{plural}, first on line {finding.line})"
            )
        lines.append("")

    lines.extend([
        "ACTION REQUIRED:",
        "   1. Review the files listed above",
        "   2. Wrap sensitive data with PII markers in the source file:",
        "      [PII:EMAIL]user@example.com[/PII:EMAIL]",
        "      [PII:API_KEY]sk-proj-abc123[/PII:API_KEY]",
        "   3. Close the session again to regenerate .safe.md / .quick.md files",
        "   4. Push will then succeed",
    ])
    return '\n'.join(lines)
