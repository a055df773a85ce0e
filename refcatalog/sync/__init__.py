"""
Replica sync: local store and the full-replace sync manager.
"""

from .replica_store import LocalReplicaStore
from .sync_manager import SyncManager, SyncStatus

__all__ = ["LocalReplicaStore", "SyncManager", "SyncStatus"]
