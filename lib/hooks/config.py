"""Sync Configuration - Schema and loading"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

from lib.sync.constants import DEFAULT_LOGS_DIR, Defaults
from lib.sync.output import HookLogger


class HookTrigger(Enum):
    SESSION_START = "session-start"
    SESSION_END = "session-end"
    PRE_PUSH = "pre-push"


CONFLICT_STRATEGIES = {"latest-timestamp"}


class ConfigError(Exception):
    """Configuration file present but invalid."""
    pass


@dataclass(frozen=True)
class SyncConfig:
    """Sync settings, loaded once per hook invocation."""
    sync_enabled: bool = False
    cloud_endpoint: str = ""
    device_name: str = ""
    on_start: bool = True
    on_end: bool = True
    conflict_strategy: str = "latest-timestamp"
    redact_pii: bool = True
    auto_redact_types: FrozenSet[str] = field(default_factory=frozenset)
    auto_commit: bool = True
    cloud_safe_only: bool = True
    pull_timeout: int = Defaults.PULL_TIMEOUT
    push_timeout: int = Defaults.PUSH_TIMEOUT
    local_timeout: int = Defaults.LOCAL_TIMEOUT
    logs_dir: Optional[Path] = DEFAULT_LOGS_DIR
    activity_redis_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncConfig':
        """Build from the nested `.config.json` layout (flat keys also accepted).

        Raises:
            ConfigError: If a value has the wrong shape
        """
        if not isinstance(data, dict):
            raise ConfigError("config must be a JSON object")

        sync = section_of(data, 'sync')
        privacy = section_of(data, 'privacy')
        timeouts = section_of(data, 'timeouts')

        def pick(section: Dict, key: str, flat_key: str, default):
            if key in section:
                return section[key]
            return data.get(flat_key, default)

        def flag(section: Dict, key: str, flat_key: str, default: bool) -> bool:
            value = pick(section, key, flat_key, default)
            if not isinstance(value, bool):
                raise ConfigError(f"{key} must be true or false, got {value!r}")
            return value

        strategy = pick(sync, 'conflict_resolution', 'conflict_strategy', 'latest-timestamp')
        if strategy not in CONFLICT_STRATEGIES:
            raise ConfigError(f"Unsupported conflict strategy: {strategy}")

        auto_redact = pick(privacy, 'auto_redact', 'auto_redact_types', [])
        if not isinstance(auto_redact, (list, tuple, set, frozenset)):
            raise ConfigError("auto_redact must be a list")

        logs_dir = data.get('logs_dir')

        try:
            return cls(
                sync_enabled=flag({}, 'sync_enabled', 'sync_enabled', False),
                cloud_endpoint=str(data.get('cloud_repo', data.get('cloud_endpoint', '')) or ''),
                device_name=str(data.get('device_name') or ''),
                on_start=flag(sync, 'on_session_start', 'on_start', True),
                on_end=flag(sync, 'on_session_end', 'on_end', True),
                conflict_strategy=strategy,
                redact_pii=flag(privacy, 'redact_pii', 'redact_pii', True),
                auto_redact_types=frozenset(str(t) for t in auto_redact),
                auto_commit=flag(sync, 'auto_commit', 'auto_commit', True),
                cloud_safe_only=flag(privacy, 'cloud_safe_only', 'cloud_safe_only', True),
                pull_timeout=int(timeouts.get('pull', Defaults.PULL_TIMEOUT)),
                push_timeout=int(timeouts.get('push', Defaults.PUSH_TIMEOUT)),
                local_timeout=int(timeouts.get('local', Defaults.LOCAL_TIMEOUT)),
                logs_dir=Path(logs_dir).expanduser() if logs_dir else DEFAULT_LOGS_DIR,
                activity_redis_url=data.get('activity_redis_url')
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(str(e)) from e

    @property
    def keeps_raw_local(self) -> bool:
        """Raw memory files stay out of commits whenever redaction or cloud-safe mode is on."""
        return self.redact_pii or self.cloud_safe_only


def section_of(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Nested config section, empty when absent."""
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' must be an object")
    return section


def load_sync_config(path: Path, logger: Optional[HookLogger] = None) -> Optional[SyncConfig]:
    """Load sync config. Absent or unparseable files disable sync (returns None)."""
    log = logger or HookLogger('Config')
    path = Path(path)

    if not path.exists():
        log.warn("No config found - sync disabled")
        return None

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return SyncConfig.from_dict(data)
    except (OSError, ValueError, TypeError, AttributeError, ConfigError) as e:
        log.log_error("data_integrity", "load_config", str(e))
        log.error(f"Failed to load config: {e}")
        return None


def create_default_config(device_name: str, cloud_repo: str = "") -> Dict:
    """Create default .config.json content."""
    return {
        "version": "1.0",
        "sync_enabled": True,
        "cloud_repo": cloud_repo,
        "device_name": device_name,
        "sync": {
            "on_session_start": True,
            "on_session_end": True,
            "auto_commit": True,
            "conflict_resolution": "latest-timestamp"
        },
        "privacy": {
            "redact_pii": True,
            "auto_redact": ["email", "phone", "address", "api_key"],
            "cloud_safe_only": True
        },
        "timeouts": {
            "pull": Defaults.PULL_TIMEOUT,
            "push": Defaults.PUSH_TIMEOUT,
            "local": Defaults.LOCAL_TIMEOUT
        }
    }
