"""Hook output - prefixed stderr lines and structured error records.

Hook hosts read standard output for their own protocol, so every
diagnostic produced by the sync core is written to standard error.
"""

import json
import sys
from datetime import datetime, timezone
from typing import Optional


LEVEL_MARKERS = {
    'info': '',
    'warn': 'WARN ',
    'error': 'ERROR ',
}


class HookLogger:
    """Writes `[Component] message` lines to stderr."""

    def __init__(self, component: str, device: Optional[str] = None, quiet: bool = False):
        self.component = component
        self.device = device
        self.quiet = quiet

    def child(self, component: str) -> 'HookLogger':
        return HookLogger(component, device=self.device, quiet=self.quiet)

    def _emit(self, level: str, message: str) -> None:
        if self.quiet and level == 'info':
            return
        print(f"[{self.component}] {LEVEL_MARKERS[level]}{message}", file=sys.stderr)

    def info(self, message: str) -> None:
        self._emit('info', message)

    def warn(self, message: str) -> None:
        self._emit('warn', message)

    def error(self, message: str) -> None:
        self._emit('error', message)

    def log_error(self, error_type: str, action: str, message: str) -> None:
        """Structured error logging."""
        log_entry = {
            "level": "error",
            "component": self.component,
            "error_type": error_type,
            "action": action,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "device": self.device,
        }
        print(json.dumps(log_entry), file=sys.stderr)
