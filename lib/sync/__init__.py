"""Memory Sync

Keeps personal memory files consistent across devices using a git
repository as transport.

Sync Architecture:

    ┌─────────────────────────────────────────────────────────────┐
    │                     SYNC ORCHESTRATOR                        │
    ├─────────────────────────────────────────────────────────────┤
    │                                                              │
    │  SESSION START                                               │
    │  ├── pull from cloud (offline mode on network failure)      │
    │  ├── conflict resolver (latest timestamp, critical escalate)│
    │  ├── pending push queue drain (max 3 retries per commit)    │
    │  └── device registry last_seen refresh                      │
    │                                                              │
    │  SESSION END                                                 │
    │  ├── PII redaction (.safe.md / .quick.md derivatives)       │
    │  ├── commit all changes                                     │
    │  ├── pre-transmission gate + push                           │
    │  └── pending push queue on failure                          │
    │                                                              │
    └─────────────────────────────────────────────────────────────┘

Usage:
    from lib.hooks.config import load_sync_config
    from lib.sync import SyncOrchestrator, SyncPaths

    paths = SyncPaths.from_env()
    orchestrator = SyncOrchestrator(load_sync_config(paths.config_file), paths)

    orchestrator.on_session_start()
    orchestrator.on_session_end({"session_duration_minutes": 42})
"""

from .constants import SyncPaths, Defaults, ExitCode
from .conflicts import ConflictResolver, ConflictRecord, ResolutionStatus
from .detection import Allowed, Blocked, Finding, PatternDetector, PreTransmissionGate
from .orchestrator import SyncOrchestrator, SessionStartReport, SessionEndReport
from .pending import PendingPush, PendingPushQueue
from .redaction import RedactionEngine, RedactionError, redact_pii, generate_quick_version
from .registry import DeviceRecord, DeviceRegistry, RegistryError
from .store import GitStore, PullOutcome, PushOutcome, StoreStatus, StoreError

__all__ = [
    'SyncPaths',
    'Defaults',
    'ExitCode',
    'ConflictResolver',
    'ConflictRecord',
    'ResolutionStatus',
    'Allowed',
    'Blocked',
    'Finding',
    'PatternDetector',
    'PreTransmissionGate',
    'SyncOrchestrator',
    'SessionStartReport',
    'SessionEndReport',
    'PendingPush',
    'PendingPushQueue',
    'RedactionEngine',
    'RedactionError',
    'redact_pii',
    'generate_quick_version',
    'DeviceRecord',
    'DeviceRegistry',
    'RegistryError',
    'GitStore',
    'PullOutcome',
    'PushOutcome',
    'StoreStatus',
    'StoreError',
]

__version__ = '0.1.0'
