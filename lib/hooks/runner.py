"""Hook Runner - Execute sync hooks at the session boundary"""

import json
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

import redis

from lib.sync.constants import Defaults, ExitCode, SyncPaths
from lib.sync.orchestrator import SyncOrchestrator
from lib.sync.output import HookLogger

from .builtin.pre_push import run_gate
from .config import HookTrigger, SyncConfig, load_sync_config


@dataclass
class HookResult:
    """Result of hook execution."""
    hook_name: str
    success: bool
    exit_code: int
    duration_ms: int
    message: str = ""
    skipped: bool = False
    skip_reason: Optional[str] = None


class HookRunner:
    """Runs one sync hook per invocation.

    Every trigger returns exit code 0 whatever happens inside, except
    pre-push, which may return 2 to block the push.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        redis_client: Optional[Any] = None,
        quiet: bool = False
    ):
        self.paths = SyncPaths.from_env(root)
        self.redis = redis_client
        self.quiet = quiet
        self._config: Optional[SyncConfig] = None
        self._config_loaded = False

    @property
    def config(self) -> Optional[SyncConfig]:
        """Lazy-load sync configuration."""
        if not self._config_loaded:
            self._config_loaded = True
            self._config = load_sync_config(self.paths.config_file, self.logger('Config'))
        return self._config

    def reload_config(self) -> None:
        """Force reload of sync configuration."""
        self._config = None
        self._config_loaded = False

    @property
    def device(self) -> str:
        return (self.config.device_name if self.config else '') or 'unknown'

    def logger(self, component: str) -> HookLogger:
        device = self._config.device_name if self._config else None
        return HookLogger(component, device=device, quiet=self.quiet)

    def read_event(self, stream: TextIO) -> Dict[str, Any]:
        """Parse the JSON event the host writes to stdin."""
        try:
            raw = stream.read()
        except (OSError, ValueError):
            return {}
        if not raw or not raw.strip():
            return {}
        try:
            event = json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger('Hook').warn(f"Invalid event JSON ({e}) - continuing with empty event")
            return {}
        return event if isinstance(event, dict) else {}

    def orchestrator(self) -> SyncOrchestrator:
        return SyncOrchestrator(self.config, self.paths, logger=self.logger('Sync'))

    def run(self, trigger: HookTrigger, event: Optional[Dict[str, Any]] = None) -> HookResult:
        """Run a trigger and convert the outcome into a hook result."""
        event = event or {}
        start_time = time.time()
        exit_code = ExitCode.OK
        message = ""
        skip_reason = None

        try:
            if trigger == HookTrigger.SESSION_START:
                report = self.orchestrator().on_session_start()
                skip_reason = None if report.ran else "Sync disabled or not installed"
                message = report.error or ("offline" if report.offline else "ok" if report.ran else "skipped")
            elif trigger == HookTrigger.SESSION_END:
                report = self.orchestrator().on_session_end(event)
                skip_reason = None if report.ran else "Sync disabled or not installed"
                message = report.error or report.aborted or (
                    "queued" if report.queued else "pushed" if report.pushed else
                    "blocked" if report.blocked else "ok" if report.ran else "skipped"
                )
            elif trigger == HookTrigger.PRE_PUSH:
                exit_code = run_gate(self.paths, self.config, self.logger('PrePush'))
                message = "blocked" if exit_code == ExitCode.BLOCKED else "allowed"
        except Exception as e:
            # pre-push fails open as well
            exit_code = ExitCode.OK
            message = str(e)
            self.logger('Hook').log_error(type(e).__name__, trigger.value, message)

        result = HookResult(
            hook_name=trigger.value,
            success=exit_code == ExitCode.OK,
            exit_code=exit_code,
            duration_ms=int((time.time() - start_time) * 1000),
            message=message,
            skipped=skip_reason is not None,
            skip_reason=skip_reason
        )
        self._log_result(result)
        return result

    def session_start(self, event: Optional[Dict[str, Any]] = None) -> HookResult:
        return self.run(HookTrigger.SESSION_START, event)

    def session_end(self, event: Optional[Dict[str, Any]] = None) -> HookResult:
        return self.run(HookTrigger.SESSION_END, event)

    def pre_push(self, event: Optional[Dict[str, Any]] = None) -> HookResult:
        return self.run(HookTrigger.PRE_PUSH, event)

    def _activity_client(self) -> Optional[Any]:
        if self.redis is not None:
            return self.redis
        url = (self.config.activity_redis_url if self.config else None) or os.environ.get('REDIS_URL')
        if not url:
            return None
        try:
            self.redis = redis.from_url(url, decode_responses=True, socket_timeout=2)
        except (redis.RedisError, ValueError) as e:
            self.logger('Hook').warn(f"Activity log unavailable: {e}")
            return None
        return self.redis

    def _log_result(self, result: HookResult) -> None:
        """Mirror hook result to Redis if available."""
        try:
            client = self._activity_client()
            device = self.device
        except Exception as e:
            self.logger('Hook').warn(f"Activity log unavailable: {e}")
            return
        if client is None:
            return

        log_entry = {
            'device': device,
            'hook_name': result.hook_name,
            'success': result.success,
            'exit_code': result.exit_code,
            'duration_ms': result.duration_ms,
            'message': result.message,
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
        key = f"memsync:hooks:log:{device}"

        try:
            client.rpush(key, json.dumps(log_entry))
            client.ltrim(key, -Defaults.REDIS_LOG_LENGTH, -1)
        except redis.RedisError as e:
            self.logger('Hook').warn(f"Could not write activity log: {e}")
