"""Constants and on-disk layout for memory sync."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_ROOT = Path.home() / ".claude-memory-cloud"
DEFAULT_LOGS_DIR = Path.home() / ".claude-memory" / "providers" / "claude" / "logs" / "daily"
ROOT_ENV_VAR = "MEMSYNC_ROOT"


@dataclass(frozen=True)
class SyncPaths:
    """Locations of every persisted sync artifact under one memory root."""
    root: Path

    @classmethod
    def from_env(cls, root: Optional[str] = None) -> 'SyncPaths':
        return cls(Path(root or os.environ.get(ROOT_ENV_VAR) or DEFAULT_ROOT).expanduser())

    @property
    def config_file(self) -> Path:
        return self.root / ".config.json"

    @property
    def sync_dir(self) -> Path:
        return self.root / "sync"

    @property
    def pending_pushes_file(self) -> Path:
        return self.sync_dir / "pending-pushes.json"

    @property
    def device_registry_file(self) -> Path:
        return self.sync_dir / "device-registry.json"

    @property
    def conflicts_dir(self) -> Path:
        return self.sync_dir / "conflicts"

    @property
    def resolution_log(self) -> Path:
        return self.conflicts_dir / "resolution-log.md"

    @property
    def gitignore(self) -> Path:
        return self.root / ".gitignore"


class Defaults:
    """Default configuration values."""
    MAX_PUSH_RETRIES = 3
    PULL_TIMEOUT = 10
    PUSH_TIMEOUT = 30
    LOCAL_TIMEOUT = 5
    REDIS_LOG_LENGTH = 100
    STALE_AFTER_DAYS = 30


class ExitCode:
    """Exit statuses understood by the hook host."""
    OK = 0
    FAILED = 1
    BLOCKED = 2
