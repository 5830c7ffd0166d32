"""Daily activity log - one markdown file per day of sessions."""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class DailyLog:

    def __init__(self, logs_dir: Path):
        self.logs_dir = Path(logs_dir)

    def path_for(self, now: datetime) -> Path:
        return self.logs_dir / f"{now.strftime('%Y.%m.%d')}.md"

    def append(self, device: str, event: Dict[str, Any], now: Optional[datetime] = None) -> Path:
        """Append a session entry and return the log file path."""
        now = now or datetime.now().astimezone()
        tools = event.get('tools_used') or []
        entry = f"""
## Session {now.strftime('%H:%M:%S')} (Auto-logged by SessionEnd hook)

**Device**: {device}
**Duration**: {event.get('session_duration_minutes') or 'Unknown'} minutes
**Context**: {event.get('session_context') or 'General work session'}

### Activities
- Session captured automatically via sync hook
- Changes synced to cloud repository

### Metrics
- Events captured: {event.get('events_count') or 0}
- Tools used: {', '.join(str(t) for t in tools) if tools else 'Unknown'}

---
"""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.path_for(now)
        with open(log_file, 'a', encoding='utf-8') as f:
            f.write(entry)
        return log_file
