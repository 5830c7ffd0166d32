"""Tests for sync configuration loading."""

import json
from pathlib import Path

import pytest

from lib.hooks.config import (
    ConfigError,
    SyncConfig,
    create_default_config,
    load_sync_config,
)
from lib.sync.constants import DEFAULT_LOGS_DIR, Defaults


class TestSyncConfigFromDict:
    """Tests for SyncConfig.from_dict."""

    def test_nested_layout(self, config_dict):
        config = SyncConfig.from_dict(config_dict)
        assert config.sync_enabled is True
        assert config.device_name == "laptop-01"
        assert config.cloud_endpoint == "git@example.com:me/memory.git"
        assert config.on_start is True
        assert config.on_end is True
        assert config.redact_pii is True
        assert config.auto_redact_types == frozenset({"email", "phone"})
        assert config.cloud_safe_only is False

    def test_flat_layout(self):
        config = SyncConfig.from_dict({
            "sync_enabled": True,
            "device_name": "desktop-02",
            "on_start": False,
            "redact_pii": False,
        })
        assert config.on_start is False
        assert config.on_end is True
        assert config.redact_pii is False

    def test_defaults(self):
        config = SyncConfig.from_dict({})
        assert config.sync_enabled is False
        assert config.auto_commit is True
        assert config.conflict_strategy == "latest-timestamp"
        assert config.pull_timeout == Defaults.PULL_TIMEOUT
        assert config.push_timeout == Defaults.PUSH_TIMEOUT
        assert config.logs_dir == DEFAULT_LOGS_DIR
        assert config.activity_redis_url is None

    def test_timeouts_and_logs_dir(self, tmp_path):
        config = SyncConfig.from_dict({
            "timeouts": {"pull": 3, "push": 7, "local": 2},
            "logs_dir": str(tmp_path),
        })
        assert (config.pull_timeout, config.push_timeout, config.local_timeout) == (3, 7, 2)
        assert config.logs_dir == Path(tmp_path)

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ConfigError):
            SyncConfig.from_dict({"sync": {"conflict_resolution": "manual"}})

    def test_auto_redact_must_be_list(self):
        with pytest.raises(ConfigError):
            SyncConfig.from_dict({"privacy": {"auto_redact": "email"}})

    def test_bad_timeout_rejected(self):
        with pytest.raises(ConfigError):
            SyncConfig.from_dict({"timeouts": {"pull": "soon"}})

    def test_non_object_rejected(self):
        with pytest.raises(ConfigError):
            SyncConfig.from_dict(["not", "a", "dict"])

    @pytest.mark.parametrize("data", [
        {"sync": 5},
        {"privacy": "on"},
        {"timeouts": [5]},
    ])
    def test_section_must_be_object(self, data):
        with pytest.raises(ConfigError):
            SyncConfig.from_dict(data)

    @pytest.mark.parametrize("data", [
        {"sync_enabled": "false"},
        {"sync": {"auto_commit": 0}},
        {"privacy": {"redact_pii": "yes"}},
    ])
    def test_flags_must_be_booleans(self, data):
        with pytest.raises(ConfigError):
            SyncConfig.from_dict(data)

    def test_raw_files_kept_local_by_default(self):
        config = SyncConfig.from_dict({"sync_enabled": True})
        assert config.cloud_safe_only is True
        assert config.keeps_raw_local is True

    def test_redaction_alone_keeps_raw_local(self, config_dict):
        config = SyncConfig.from_dict(config_dict)
        assert config.cloud_safe_only is False
        assert config.keeps_raw_local is True


class TestLoadSyncConfig:

    def test_missing_file_disables_sync(self, tmp_path, quiet_logger):
        assert load_sync_config(tmp_path / ".config.json", quiet_logger) is None

    def test_invalid_json_disables_sync(self, tmp_path, quiet_logger, capsys):
        path = tmp_path / ".config.json"
        path.write_text("{broken", encoding="utf-8")

        assert load_sync_config(path, quiet_logger) is None

        err = capsys.readouterr().err
        record = json.loads(err.splitlines()[0])
        assert record["error_type"] == "data_integrity"
        assert record["action"] == "load_config"

    @pytest.mark.parametrize("data", [
        {"sync_enabled": True, "timeouts": [5]},
        {"sync": 5},
        {"sync": {"conflict_resolution": ["latest-timestamp"]}},
    ])
    def test_wrong_shape_disables_sync(self, write_config, quiet_logger, data):
        path = write_config(data)
        assert load_sync_config(path, quiet_logger) is None

    def test_loads_file(self, write_config, config_dict, quiet_logger):
        path = write_config(config_dict)
        config = load_sync_config(path, quiet_logger)
        assert config.device_name == "laptop-01"


class TestCreateDefaultConfig:

    def test_round_trips_through_loader(self):
        data = create_default_config("laptop-01", "git@example.com:me/memory.git")
        config = SyncConfig.from_dict(data)
        assert config.sync_enabled is True
        assert config.device_name == "laptop-01"
        assert config.cloud_safe_only is True
        assert "api_key" in config.auto_redact_types
