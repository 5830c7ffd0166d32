"""Shared pytest fixtures for memory sync tests."""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from lib.hooks.config import SyncConfig
from lib.sync.constants import SyncPaths
from lib.sync.output import HookLogger
from lib.sync.store import PullOutcome, PullResult, PushOutcome, PushResult, StoreStatus

try:
    import fakeredis
    FAKEREDIS_AVAILABLE = True
except ImportError:
    FAKEREDIS_AVAILABLE = False
    fakeredis = None


FIXED_NOW = datetime(2026, 1, 10, 14, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_redis():
    """Create a fake Redis client for testing."""
    if not FAKEREDIS_AVAILABLE:
        pytest.skip("fakeredis not installed")
    return fakeredis.FakeStrictRedis(decode_responses=True)


@pytest.fixture
def device_name():
    return "laptop-01"


@pytest.fixture
def memory_root(tmp_path):
    """Empty memory repository root with a sync directory."""
    root = tmp_path / "memory"
    (root / "sync").mkdir(parents=True)
    return root


@pytest.fixture
def paths(memory_root):
    return SyncPaths(memory_root)


@pytest.fixture
def quiet_logger():
    return HookLogger("Test", device="laptop-01", quiet=True)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def sync_config(tmp_path, device_name):
    """Enabled config with daily logs redirected into tmp_path."""
    return SyncConfig(
        sync_enabled=True,
        device_name=device_name,
        logs_dir=tmp_path / "logs",
    )


@pytest.fixture
def config_dict(device_name):
    """Nested `.config.json` content."""
    return {
        "version": "1.0",
        "sync_enabled": True,
        "cloud_repo": "git@example.com:me/memory.git",
        "device_name": device_name,
        "sync": {
            "on_session_start": True,
            "on_session_end": True,
            "auto_commit": True,
            "conflict_resolution": "latest-timestamp",
        },
        "privacy": {
            "redact_pii": True,
            "auto_redact": ["email", "phone"],
            "cloud_safe_only": False,
        },
    }


@pytest.fixture
def write_config(paths):
    """Write a dict as the root's `.config.json`."""
    def _write(data):
        paths.config_file.write_text(json.dumps(data), encoding="utf-8")
        return paths.config_file
    return _write


@pytest.fixture
def mock_store():
    """Store double that pulls, pushes and commits successfully."""
    store = MagicMock()
    store.pull.return_value = PullResult(PullOutcome.SUCCESS)
    store.push.return_value = PushResult(PushOutcome.SUCCESS)
    store.status.return_value = StoreStatus.DIRTY
    store.commit.return_value = "abc1234def5678"
    store.conflicted_files.return_value = []
    return store


@pytest.fixture
def registry_file(paths, device_name):
    """Registry containing the test device."""
    data = {
        "version": "1.0",
        "devices": {
            device_name: {
                "type": "laptop",
                "os": "linux",
                "first_seen": "2026-01-01T09:00:00+00:00",
                "last_seen": "2026-01-05T09:00:00+00:00",
                "providers": ["claude"],
                "status": "active",
            }
        },
        "total_devices": 1,
        "last_updated": "2026-01-05T09:00:00+00:00",
    }
    paths.device_registry_file.write_text(json.dumps(data), encoding="utf-8")
    return paths.device_registry_file


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "requires_redis: marks tests that require Redis connection"
    )
    config.addinivalue_line(
        "markers", "requires_git: marks tests that shell out to a real git binary"
    )
    config.addinivalue_line(
        "markers", "e2e: marks end-to-end tests"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "e2e" in str(item.fspath):
            item.add_marker(pytest.mark.e2e)
            item.add_marker(pytest.mark.requires_git)
