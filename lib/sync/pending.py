"""Pending Push Queue - durable retry queue for failed pushes"""

import json
import os
import tempfile
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .constants import Defaults
from .output import HookLogger


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PendingPush:
    """A commit that failed to reach the remote."""
    commit_id: str
    timestamp: str = field(default_factory=_now)
    retry_count: int = 0
    last_retry: Optional[str] = None
    error: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self.retry_count >= Defaults.MAX_PUSH_RETRIES

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'PendingPush':
        data = dict(data)
        if 'commit_id' not in data and 'commit_hash' in data:
            data['commit_id'] = data.pop('commit_hash')
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class DrainReport:
    pushed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    needs_manual: List[str] = field(default_factory=list)


def write_json_atomic(path: Path, data) -> None:
    """Replace a JSON file in one step."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
            f.write('\n')
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class PendingPushQueue:
    """Queue of failed pushes persisted as a JSON array.

    Every mutation rewrites the whole file. Entries are retried once per
    `drain()` call, oldest first, and are never auto-expired: once an
    entry reaches the retry cap it stays until resolved by hand.
    """

    def __init__(
        self,
        path: Path,
        logger: Optional[HookLogger] = None,
        max_retries: int = Defaults.MAX_PUSH_RETRIES
    ):
        self.path = Path(path)
        self.log = logger or HookLogger('PendingPush')
        self.max_retries = max_retries

    def load(self) -> List[PendingPush]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return [PendingPush.from_dict(item) for item in data]
        except (OSError, ValueError, TypeError, AttributeError) as e:
            self.log.log_error("data_integrity", "load_pending_pushes", str(e))
            self.log.error(f"Pending push queue unreadable ({self.path}) - ignoring it")
            return []

    def save(self, entries: List[PendingPush]) -> None:
        write_json_atomic(self.path, [entry.to_dict() for entry in entries])

    def enqueue(self, commit_id: str, error: Optional[str] = None) -> PendingPush:
        """Append a failed push with retry_count 0."""
        entries = self.load()
        entry = PendingPush(commit_id=commit_id, error=error)
        entries.append(entry)
        self.save(entries)
        self.log.warn(f"Push queued for retry (commit: {commit_id[:7]})")
        return entry

    def remove(self, commit_id: str) -> bool:
        """Drop an entry after manual resolution."""
        entries = self.load()
        remaining = [e for e in entries if e.commit_id != commit_id]
        if len(remaining) == len(entries):
            return False
        self.save(remaining)
        return True

    def drain(self, push: Callable[[], object]) -> DrainReport:
        """Retry each eligible entry once.

        Args:
            push: Callable performing one push attempt; returns an object with
                `success` and `error` attributes, or raises on failure

        Returns:
            DrainReport listing pushed, failed and exhausted commit ids
        """
        report = DrainReport()
        entries = self.load()
        if not entries:
            return report

        self.log.info(f"Found {len(entries)} pending push(es) - retrying...")
        still_pending: List[PendingPush] = []

        for entry in entries:
            if entry.retry_count >= self.max_retries:
                self.log.warn(
                    f"Max retries exceeded for {entry.commit_id[:7]} - manual intervention required"
                )
                report.needs_manual.append(entry.commit_id)
                still_pending.append(entry)
                continue

            try:
                result = push()
                success = bool(getattr(result, 'success', False))
                error = getattr(result, 'error', None)
            except Exception as e:
                success = False
                error = str(e)

            if success:
                self.log.info(f"Pending push succeeded: {entry.commit_id[:7]}")
                report.pushed.append(entry.commit_id)
                continue

            entry.retry_count += 1
            entry.last_retry = _now()
            entry.error = error or "Unknown error"
            still_pending.append(entry)
            report.failed.append(entry.commit_id)
            self.log.warn(f"Retry {entry.retry_count}/{self.max_retries} failed for {entry.commit_id[:7]}")

        self.save(still_pending)
        return report
