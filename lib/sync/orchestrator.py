"""Sync Orchestrator - session-start and session-end sync transactions

    SESSION START                         SESSION END
    ─────────────                         ───────────
    pull ─┬─ ok                           redact PII ── error? ─> abort (no commit)
          ├─ conflicts ─> resolver        status ── clean? ─> done
          └─ offline   ─> continue        stage + commit
    drain pending pushes                  gate + push ── failed? ─> enqueue
    touch device registry                 append daily log

Neither transaction ever raises: the surrounding session must not be
blocked by sync. Every outcome is reported back and logged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .conflicts import ConflictResolver, ResolutionSummary
from .constants import SyncPaths
from .daily_log import DailyLog
from .detection import Blocked, PreTransmissionGate, format_report
from .output import HookLogger
from .pending import DrainReport, PendingPushQueue
from .redaction import RedactionEngine, RedactionError, RedactionReport
from .registry import DeviceRegistry
from .store import (
    GitStore, PullOutcome, PullResult, PushOutcome, PushResult, StoreError, StoreStatus
)


@dataclass
class SessionStartReport:
    ran: bool = False
    offline: bool = False
    pull: Optional[PullResult] = None
    conflicts: Optional[ResolutionSummary] = None
    drain: Optional[DrainReport] = None
    device_updated: bool = False
    error: Optional[str] = None


@dataclass
class SessionEndReport:
    ran: bool = False
    redactions: List[RedactionReport] = field(default_factory=list)
    aborted: Optional[str] = None
    commit_id: Optional[str] = None
    pushed: bool = False
    queued: bool = False
    blocked: Optional[Blocked] = None
    daily_log: Optional[Path] = None
    error: Optional[str] = None


class SyncOrchestrator:
    """Coordinates the sync components for one hook invocation.

    The configuration is loaded once by the caller and passed in; every
    collaborator can be injected, otherwise it is built from `paths`.
    """

    def __init__(
        self,
        config,
        paths: SyncPaths,
        store=None,
        logger: Optional[HookLogger] = None,
        clock: Optional[Callable[[], datetime]] = None,
        queue: Optional[PendingPushQueue] = None,
        registry: Optional[DeviceRegistry] = None,
        resolver: Optional[ConflictResolver] = None,
        redaction: Optional[RedactionEngine] = None,
        gate: Optional[PreTransmissionGate] = None,
        daily_log: Optional[DailyLog] = None
    ):
        self.config = config
        self.paths = paths
        self.log = logger or HookLogger('Sync', device=getattr(config, 'device_name', None))
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        if store is None and config is not None:
            store = GitStore(
                paths.root,
                pull_timeout=config.pull_timeout,
                push_timeout=config.push_timeout,
                local_timeout=config.local_timeout
            )
        self.store = store
        self.queue = queue or PendingPushQueue(paths.pending_pushes_file, self.log.child('PendingPush'))
        self.registry = registry or DeviceRegistry(paths.device_registry_file, self.log.child('Registry'))
        self.resolver = resolver or ConflictResolver(paths, store, self.log.child('Conflicts'), self.clock)
        self.redaction = redaction or RedactionEngine(paths.root, self.log.child('Redaction'))
        self.gate = gate or PreTransmissionGate(paths.root, logger=self.log.child('PrePush'))
        logs_dir = getattr(config, 'logs_dir', None)
        self.daily_log = daily_log or (DailyLog(logs_dir) if logs_dir else None)
        self.last_blocked: Optional[Blocked] = None

    def _enabled(self, flag: str, log: HookLogger) -> bool:
        if self.config is None or not self.config.sync_enabled:
            log.info("Sync disabled in config")
            return False
        if not getattr(self.config, flag):
            log.info(f"{log.component} sync disabled in config")
            return False
        if not self.paths.root.exists():
            log.error(f"Memory directory not found ({self.paths.root}) - run installation first")
            return False
        return True

    # === Session start ===

    def on_session_start(self) -> SessionStartReport:
        """Pull, resolve conflicts, retry pending pushes, refresh device.

        Each step is isolated: a failure is recorded and the next step still runs.
        """
        log = self.log.child('SessionStart')
        report = SessionStartReport()

        if not self._step(report, log, "session_start", lambda: self._enabled('on_start', log), False):
            return report
        report.ran = True
        log.info("Starting cloud sync...")

        report.pull = self._step(report, log, "pull", lambda: self._pull(log))
        report.offline = report.pull is not None and report.pull.outcome == PullOutcome.NETWORK_ERROR
        if report.pull is not None and report.pull.outcome == PullOutcome.CONFLICT:
            report.conflicts = self._step(report, log, "resolve_conflicts", self.resolver.resolve_all)

        report.drain = self._step(report, log, "drain_pending", lambda: self.queue.drain(self.push))

        if self.config.device_name:
            report.device_updated = self._step(
                report, log, "update_registry",
                lambda: self.registry.touch(self.config.device_name, self.clock()),
                False
            )

        log.info("SessionStart complete")
        return report

    def _step(self, report, log: HookLogger, action: str, fn: Callable[[], Any], default=None):
        """Run one transaction step; record and log its failure instead of raising."""
        try:
            return fn()
        except Exception as e:
            if report.error is None:
                report.error = str(e)
            log.log_error(type(e).__name__, action, str(e))
            log.error(f"Hook error during {action}: {e}")
            return default

    def _pull(self, log: HookLogger) -> PullResult:
        try:
            result = self.store.pull()
        except StoreError as e:
            result = PullResult(PullOutcome.NETWORK_ERROR, str(e), "unknown")

        if result.outcome == PullOutcome.SUCCESS:
            log.info("Cloud pull complete")
        elif result.outcome == PullOutcome.CONFLICT:
            log.warn("Merge conflicts detected - resolving")
        else:
            log.warn(f"Pull failed ({result.error_kind or 'unknown'}) - continuing in offline mode")
        return result

    # === Session end ===

    def on_session_end(self, event: Optional[Dict[str, Any]] = None) -> SessionEndReport:
        """Redact, commit, push (or queue), then log the session."""
        log = self.log.child('SessionEnd')
        report = SessionEndReport()
        event = event or {}

        try:
            if not self._enabled('on_end', log):
                return report
            report.ran = True
            log.info("Starting cloud sync...")

            if self.store.status() == StoreStatus.CONFLICTED:
                report.aborted = "Unresolved merge conflicts"
                log.warn("Unresolved merge conflicts - resolve them manually, then sync again")
                return report

            try:
                if self.config.redact_pii:
                    report.redactions = self.redaction.process_tree()
                # raw originals never enter a commit
                if self.config.keeps_raw_local and self.redaction.ensure_cloud_safe_ignore():
                    self.store.untrack_all()
            except (RedactionError, StoreError) as e:
                report.aborted = f"PII redaction failed: {e}"
                log.log_error(type(e).__name__, "redact", str(e))
                log.error("PII redaction failed - skipping commit and push for safety")
                return report

            status = self.store.status()
            if status == StoreStatus.CLEAN:
                log.info("No changes to commit")
                return report
            if not self.config.auto_commit:
                log.info("auto_commit disabled - leaving changes uncommitted")
                return report

            report.commit_id = self._commit(log)
            if report.commit_id:
                self._push_or_queue(report, log)

            self._append_daily_log(report, event, log)
            log.info("SessionEnd complete")
        except Exception as e:
            report.error = str(e)
            log.log_error(type(e).__name__, "session_end", str(e))
            log.error(f"Hook error: {e}")

        return report

    def commit_message(self) -> str:
        timestamp = self.clock().strftime('%Y-%m-%d_%H:%M:%S')
        return (
            f"Auto-sync: SessionEnd on {self.config.device_name or 'unknown-device'}\n\n"
            f"Session closed at {timestamp}\n"
            f"Changes synced automatically via session hook"
        )

    def _commit(self, log: HookLogger) -> Optional[str]:
        try:
            self.store.stage()
            commit_id = self.store.commit(self.commit_message())
        except StoreError as e:
            log.log_error(type(e).__name__, "commit", str(e))
            log.error(f"Failed to create commit: {e}")
            return None
        log.info(f"Commit created: {commit_id[:7]}")
        return commit_id

    def push(self) -> PushResult:
        """Gate derived artifacts, then push. Blocked pushes never reach the store."""
        if self.config.redact_pii:
            try:
                result = self.gate.check()
            except Exception as e:
                log = self.log.child('PrePush')
                log.log_error(type(e).__name__, "pre_push_scan", str(e))
                log.error(f"Scanner error - allowing push: {e}")
                result = None
            if isinstance(result, Blocked):
                self.last_blocked = result
                self.log.child('PrePush').error("PII DETECTED - PUSH BLOCKED\n" + format_report(result))
                return PushResult(PushOutcome.REJECTED, "Blocked by PII gate", "blocked")
        try:
            return self.store.push()
        except StoreError as e:
            return PushResult(PushOutcome.NETWORK_ERROR, str(e), "unknown")

    def _push_or_queue(self, report: SessionEndReport, log: HookLogger) -> None:
        result = self.push()
        if result.success:
            report.pushed = True
            log.info("Cloud push complete")
            return

        if result.error_kind == "blocked":
            report.blocked = self.last_blocked
            log.error("Push blocked - commit kept locally until PII is marked")
            return

        log.warn(f"Push failed: {result.error}")
        try:
            self.queue.enqueue(report.commit_id, result.error or "Unknown error")
            report.queued = True
        except OSError as e:
            log.log_error(type(e).__name__, "enqueue", str(e))
            log.error(f"Failed to queue pending push: {e}")

    def _append_daily_log(self, report: SessionEndReport, event: Dict[str, Any], log: HookLogger) -> None:
        if self.daily_log is None:
            return
        try:
            report.daily_log = self.daily_log.append(
                self.config.device_name or 'unknown-device',
                event,
                self.clock().astimezone()
            )
            log.info(f"Daily log updated: {report.daily_log}")
        except Exception as e:
            log.warn(f"Failed to generate daily log: {e}")
