"""Memory Sync Hooks

Session hooks for the host CLI: session-start, session-end and pre-push.
"""

from .runner import HookRunner, HookResult
from .config import HookTrigger, SyncConfig, load_sync_config, create_default_config

__all__ = [
    'HookRunner',
    'HookResult',
    'HookTrigger',
    'SyncConfig',
    'load_sync_config',
    'create_default_config'
]
