"""Device Registry - track devices sharing the memory repository"""

import json
import platform
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .output import HookLogger
from .pending import write_json_atomic


class DeviceType(Enum):
    LAPTOP = "laptop"
    DESKTOP = "desktop"
    VM = "vm"
    MOBILE = "mobile"


class DeviceStatus(Enum):
    ACTIVE = "active"
    STALE = "stale"
    INACTIVE = "inactive"


DEVICE_NAME_PATTERN = re.compile(r'^[a-z0-9-]+$')
MAX_DEVICE_NAME_LENGTH = 50


class RegistryError(Exception):
    """Invalid registration request."""
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: Optional[datetime]) -> datetime:
    if ts is None:
        return _now()
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _parse(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def detect_os() -> str:
    system = platform.system()
    return {'Windows': 'windows', 'Darwin': 'macos', 'Linux': 'linux'}.get(system, 'unknown')


def validate_device_name(name: str) -> Optional[str]:
    """Error message for an invalid name, or None."""
    if not name or not name.strip():
        return "Device name cannot be empty"
    if not DEVICE_NAME_PATTERN.match(name):
        return "Device name must be lowercase letters, numbers, and hyphens only"
    if len(name) > MAX_DEVICE_NAME_LENGTH:
        return f"Device name must be {MAX_DEVICE_NAME_LENGTH} characters or less"
    return None


@dataclass
class DeviceRecord:
    """A registered device."""
    name: str
    type: str = DeviceType.DESKTOP.value
    os: str = "unknown"
    first_seen: str = field(default_factory=lambda: _now().isoformat())
    last_seen: str = field(default_factory=lambda: _now().isoformat())
    providers: List[str] = field(default_factory=list)
    status: str = DeviceStatus.ACTIVE.value

    def to_dict(self) -> Dict:
        """On-disk form; the name is the registry key."""
        return {
            'type': self.type,
            'os': self.os,
            'first_seen': self.first_seen,
            'last_seen': self.last_seen,
            'providers': sorted(set(self.providers)),
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, name: str, data: Dict) -> 'DeviceRecord':
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and k != 'name'}
        return cls(name=name, **fields)


class DeviceRegistry:
    """Persisted map of devices keyed by name.

    Registration itself is an interactive flow elsewhere; the hooks only
    refresh `last_seen` for devices already present.
    """

    VERSION = "1.0"

    def __init__(self, path: Path, logger: Optional[HookLogger] = None):
        self.path = Path(path)
        self.log = logger or HookLogger('Registry')
        self.devices: Dict[str, DeviceRecord] = {}
        self.last_updated: Optional[str] = None

    @property
    def total_devices(self) -> int:
        return len(self.devices)

    def load(self) -> bool:
        """Read the registry file. Returns False if absent or malformed."""
        self.devices = {}
        self.last_updated = None
        if not self.path.exists():
            return False
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self.devices = {
                name: DeviceRecord.from_dict(name, info)
                for name, info in data.get('devices', {}).items()
            }
            self.last_updated = data.get('last_updated')
        except (OSError, ValueError, TypeError, AttributeError) as e:
            self.devices = {}
            self.log.log_error("data_integrity", "load_registry", str(e))
            self.log.error(f"Device registry unreadable ({self.path}) - treating as absent")
            return False
        return True

    def save(self) -> None:
        write_json_atomic(self.path, self.to_dict())

    def to_dict(self) -> Dict:
        return {
            'version': self.VERSION,
            'devices': {name: record.to_dict() for name, record in sorted(self.devices.items())},
            'total_devices': self.total_devices,
            'last_updated': self.last_updated or _now().isoformat(),
        }

    def get(self, name: str) -> Optional[DeviceRecord]:
        return self.devices.get(name)

    def _stamp(self, now: datetime) -> None:
        newest = max(
            (_parse(d.last_seen) for d in self.devices.values() if _parse(d.last_seen)),
            default=now
        )
        self.last_updated = max(now, newest).isoformat()

    def touch(self, name: str, now: Optional[datetime] = None) -> bool:
        """Set last_seen for a known device. Unknown devices stay unregistered."""
        now = _aware(now)
        if not self.load():
            self.log.warn("Device registry not found - skipping update")
            return False

        record = self.devices.get(name)
        if record is None:
            self.log.warn(f"Device {name} not in registry - skipping update")
            return False

        record.last_seen = now.isoformat()
        if record.status == DeviceStatus.STALE.value:
            record.status = DeviceStatus.ACTIVE.value
        self._stamp(now)
        self.save()
        self.log.info(f"Updated last_seen for device: {name}")
        return True

    def register(
        self,
        name: str,
        device_type: str = DeviceType.DESKTOP.value,
        os_name: Optional[str] = None,
        providers: Optional[List[str]] = None,
        now: Optional[datetime] = None
    ) -> DeviceRecord:
        """Create or overwrite a device entry, keeping its first_seen.

        Raises:
            RegistryError: If the name or type is invalid
        """
        error = validate_device_name(name)
        if error:
            raise RegistryError(error)
        if device_type not in {t.value for t in DeviceType}:
            raise RegistryError(f"Unknown device type: {device_type}")

        now = _aware(now)
        self.load()
        existing = self.devices.get(name)
        record = DeviceRecord(
            name=name,
            type=device_type,
            os=os_name or detect_os(),
            first_seen=existing.first_seen if existing else now.isoformat(),
            last_seen=now.isoformat(),
            providers=providers or ['claude'],
            status=DeviceStatus.ACTIVE.value
        )
        self.devices[name] = record
        self._stamp(now)
        self.save()
        return record

    def set_status(self, name: str, status: str, now: Optional[datetime] = None) -> bool:
        if status not in {s.value for s in DeviceStatus}:
            raise RegistryError(f"Unknown device status: {status}")
        self.load()
        record = self.devices.get(name)
        if record is None:
            return False
        record.status = status
        self._stamp(_aware(now))
        self.save()
        return True

    def mark_stale(self, now: Optional[datetime] = None, stale_after: timedelta = timedelta(days=30)) -> List[str]:
        """Demote active devices not seen within `stale_after`."""
        now = _aware(now)
        if not self.load():
            return []

        demoted = []
        for name, record in self.devices.items():
            last_seen = _parse(record.last_seen)
            if record.status == DeviceStatus.ACTIVE.value and last_seen and now - last_seen > stale_after:
                record.status = DeviceStatus.STALE.value
                demoted.append(name)

        if demoted:
            self._stamp(now)
            self.save()
        return demoted
