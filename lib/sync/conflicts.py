"""Conflict Resolution - timestamp-based resolution of merge conflicts

Per conflicted file:

    Detected -> critical file?  -> NeedsManualResolution
             -> otherwise       -> AutoResolve -> Resolved | Failed

AutoResolve keeps the side whose body carries the later timestamp,
archives the losing version for recovery and appends an entry to the
resolution log. The remote side only wins when strictly newer.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional, Tuple

from .constants import SyncPaths
from .output import HookLogger


# Files whose automatic merge could silently corrupt sync behaviour.
CRITICAL_PATHS = [
    '.config.json',
    '.sync-config.json',
    'sync/device-registry.json',
]

CONFLICT_HUNK = re.compile(
    r'^<<<<<<<[^\n]*\n(.*?)(?:^\|{7}[^\n]*\n.*?)?^=======[^\n]*\n(.*?)^>>>>>>>[^\n]*(?:\n|\Z)',
    re.DOTALL | re.MULTILINE
)

TIMESTAMP_PATTERNS = [
    re.compile(r'\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}'),
    re.compile(r'\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}'),
]
LAST_UPDATED_PATTERN = re.compile(r'"last_updated":\s*"([^"]+)"')

DEVICE_FIELD_PATTERN = re.compile(r'"device_name":\s*"([^"]+)"')
DEVICE_MARKDOWN_PATTERN = re.compile(r'\*\*Device\*\*:\s*(\S+)')

LOCAL = "local"
REMOTE = "remote"


class ResolutionStatus(Enum):
    RESOLVED = "resolved"
    NEEDS_MANUAL_RESOLUTION = "needs_manual_resolution"
    FAILED = "failed"


@dataclass
class ConflictMarkers:
    """The two candidate versions of a conflicted file."""
    local: str
    remote: str
    hunks: int = 1


@dataclass
class ConflictRecord:
    """Audit entry for one automatic resolution."""
    file: str
    winner: str
    reason: str
    local_device: str
    remote_device: str
    local_ts: Optional[datetime] = None
    remote_ts: Optional[datetime] = None
    archived_to: Optional[str] = None
    resolved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ResolutionResult:
    file: str
    status: ResolutionStatus
    message: str = ""
    record: Optional[ConflictRecord] = None


@dataclass
class ResolutionSummary:
    results: List[ResolutionResult] = field(default_factory=list)

    def _with_status(self, status: ResolutionStatus) -> List[str]:
        return [r.file for r in self.results if r.status == status]

    @property
    def resolved(self) -> List[str]:
        return self._with_status(ResolutionStatus.RESOLVED)

    @property
    def manual(self) -> List[str]:
        return self._with_status(ResolutionStatus.NEEDS_MANUAL_RESOLUTION)

    @property
    def failed(self) -> List[str]:
        return self._with_status(ResolutionStatus.FAILED)


def check_critical(rel_path: str) -> Optional[str]:
    """Reason string if the path must be resolved by hand, else None."""
    path = PurePosixPath(rel_path.replace('\\', '/'))
    for critical in CRITICAL_PATHS:
        if str(path) == critical or str(path).endswith('/' + critical):
            return f"{critical} is a critical file - requires manual resolution"
    return None


def extract_conflict(content: str) -> Optional[ConflictMarkers]:
    """Split conflict hunks into the local (`<<<<<<<`) and remote (`>>>>>>>`) sides."""
    hunks = list(CONFLICT_HUNK.finditer(content))
    if not hunks:
        return None
    return ConflictMarkers(
        local=''.join(m.group(1) for m in hunks),
        remote=''.join(m.group(2) for m in hunks),
        hunks=len(hunks)
    )


def apply_side(content: str, side: str) -> str:
    """Replace every conflict hunk with one side, keeping surrounding text."""
    group = 1 if side == LOCAL else 2
    return CONFLICT_HUNK.sub(lambda m: m.group(group), content)


def _normalize(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _parse(value: str) -> Optional[datetime]:
    value = value.strip()
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    value = re.sub(r'^(\d{4}-\d{2}-\d{2})\s+', r'\1T', value)
    try:
        return _normalize(datetime.fromisoformat(value))
    except ValueError:
        return None


def extract_timestamp(content: str) -> Optional[datetime]:
    """First timestamp found, by pattern preference.

    ISO-8601 literal, then space-separated date-time, then a JSON
    `"last_updated"` field. The first match of a pattern wins even when
    several candidates are present.
    """
    for pattern in TIMESTAMP_PATTERNS:
        match = pattern.search(content)
        if match:
            return _parse(match.group(0))

    match = LAST_UPDATED_PATTERN.search(content)
    if match:
        return _parse(match.group(1))
    return None


def extract_device(content: str) -> str:
    match = DEVICE_FIELD_PATTERN.search(content) or DEVICE_MARKDOWN_PATTERN.search(content)
    return match.group(1) if match else 'unknown'


def _minutes(delta_seconds: float) -> int:
    return round(delta_seconds / 60)


def resolve_by_timestamp(
    local_ts: Optional[datetime],
    remote_ts: Optional[datetime]
) -> Tuple[str, str]:
    """Pick the winning side and explain why."""
    if local_ts is None and remote_ts is None:
        return LOCAL, "No timestamps found - defaulting to local"
    if local_ts is None:
        return REMOTE, "Only remote has timestamp"
    if remote_ts is None:
        return LOCAL, "Only local has timestamp"

    if remote_ts > local_ts:
        diff = _minutes((remote_ts - local_ts).total_seconds())
        return REMOTE, f"Remote is newer by {diff} minute(s)"
    if remote_ts == local_ts:
        return LOCAL, "Timestamps are equal - defaulting to local"
    diff = _minutes((local_ts - remote_ts).total_seconds())
    return LOCAL, f"Local is newer by {diff} minute(s)"


def _fs_safe(value: str) -> str:
    return re.sub(r'[^\w.-]', '_', value) or 'unknown'


class ConflictResolver:
    """Resolves conflicted files in the memory working copy.

    `store` needs `conflicted_files()` and `stage(paths)`.
    """

    def __init__(
        self,
        paths: SyncPaths,
        store,
        logger: Optional[HookLogger] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.paths = paths
        self.store = store
        self.log = logger or HookLogger('Conflicts')
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve_file(self, rel_path: str) -> ResolutionResult:
        """Resolve one conflicted file."""
        critical = check_critical(rel_path)
        if critical:
            self.log.warn(f"{rel_path}: {critical}")
            self.log.warn(f"   Edit {self.paths.root / rel_path}, remove <<<<<<< ======= >>>>>>> markers")
            self.log.warn(f"   Then: git add {rel_path}")
            return ResolutionResult(rel_path, ResolutionStatus.NEEDS_MANUAL_RESOLUTION, critical)

        file_path = self.paths.root / rel_path
        try:
            content = file_path.read_text(encoding='utf-8')
        except (OSError, UnicodeError) as e:
            self.log.error(f"Failed to read {rel_path}: {e}")
            return ResolutionResult(rel_path, ResolutionStatus.FAILED, str(e))

        markers = extract_conflict(content)
        if markers is None:
            self.log.warn(f"{rel_path}: no conflict markers found")
            return ResolutionResult(rel_path, ResolutionStatus.FAILED, "No conflict markers found")

        local_ts = extract_timestamp(markers.local)
        remote_ts = extract_timestamp(markers.remote)
        winner, reason = resolve_by_timestamp(local_ts, remote_ts)
        loser = REMOTE if winner == LOCAL else LOCAL

        record = ConflictRecord(
            file=rel_path,
            winner=winner,
            reason=reason,
            local_device=extract_device(markers.local),
            remote_device=extract_device(markers.remote),
            local_ts=local_ts,
            remote_ts=remote_ts,
            resolved_at=self.clock()
        )

        try:
            archived = self.archive_loser(
                rel_path,
                apply_side(content, loser),
                record.remote_device if loser == REMOTE else record.local_device,
                remote_ts if loser == REMOTE else local_ts
            )
            record.archived_to = str(archived.relative_to(self.paths.root))
            file_path.write_text(apply_side(content, winner), encoding='utf-8')
            self.store.stage([rel_path])
            self.log_resolution(record)
        except Exception as e:
            self.log.error(f"Failed to resolve {rel_path}: {e}")
            return ResolutionResult(rel_path, ResolutionStatus.FAILED, str(e), record)

        self.log.info(f"Resolved {rel_path}: {winner} wins ({reason})")
        return ResolutionResult(rel_path, ResolutionStatus.RESOLVED, reason, record)

    def resolve_all(self, files: Optional[List[str]] = None) -> ResolutionSummary:
        """Resolve each conflicted file independently."""
        if files is None:
            files = self.store.conflicted_files()

        summary = ResolutionSummary()
        for rel_path in files:
            summary.results.append(self.resolve_file(rel_path))

        if summary.manual:
            self.log.warn(f"Manual resolution required for: {', '.join(summary.manual)}")
        return summary

    def archive_loser(
        self,
        rel_path: str,
        content: str,
        device: str,
        timestamp: Optional[datetime]
    ) -> Path:
        """Persist the losing version under the conflict archive."""
        self.paths.conflicts_dir.mkdir(parents=True, exist_ok=True)
        ts = (timestamp or _normalize(self.clock())).isoformat()
        ts_str = re.sub(r'[:.]', '-', ts)
        name = f"{PurePosixPath(rel_path).name}.{_fs_safe(device)}.{ts_str}.archived"
        archive_path = self.paths.conflicts_dir / name
        archive_path.write_text(content, encoding='utf-8')
        self.log.info(f"Archived {rel_path} to {archive_path.relative_to(self.paths.root)}")
        return archive_path

    def log_resolution(self, record: ConflictRecord) -> None:
        """Append a resolution entry. The log is never rewritten."""
        log_file = self.paths.resolution_log
        log_file.parent.mkdir(parents=True, exist_ok=True)

        def fmt(ts: Optional[datetime]) -> str:
            return ts.isoformat() if ts else 'Not found'

        loser = REMOTE if record.winner == LOCAL else LOCAL
        entry = f"""
## Conflict Resolution - {record.resolved_at.isoformat()}

**File**: {record.file}
**Winner**: {record.winner}
**Reason**: {record.reason}

**Local Version**:
- Device: {record.local_device}
- Timestamp: {fmt(record.local_ts)}

**Remote Version**:
- Device: {record.remote_device}
- Timestamp: {fmt(record.remote_ts)}

**Action**: Kept {record.winner} version, archived {loser} version to {record.archived_to}

---
"""
        is_new = not log_file.exists()
        with open(log_file, 'a', encoding='utf-8') as f:
            if is_new:
                f.write("# Conflict Resolution Log\n")
            f.write(entry)
