"""
Runtime Configuration

Config resources, their watcher, and the process-wide settings they drive.
"""

from .variables import ConfigKind, ConfigVar, apply_vars
from .store import ConfigResource, ConfigStore, RedisConfigStore
from .watcher import ConfigWatcher, Handler

__all__ = [
    "ConfigKind",
    "ConfigVar",
    "apply_vars",
    "ConfigResource",
    "ConfigStore",
    "RedisConfigStore",
    "ConfigWatcher",
    "Handler",
]
