"""
WordCard Replication

Modules:
- merge: Last-writer-wins merge of remote snapshots
- backup: Manual backup export and import
- transport: Shared-file transports (cloud folder, LAN directory)
- sources: Change sources and fan-in
- service: Per-transport replica sync service
"""

from __future__ import annotations

from wordcard.sync.backup import BackupService, ImportMode, ImportResult
from wordcard.sync.merge import MergeEngine, MergePlan, MergeResult
from wordcard.sync.service import ReplicaState, SyncService, SyncStatus, SyncStatusReport
from wordcard.sync.sources import (
    ChangeSignal,
    ChangeSource,
    FileEventChangeSource,
    NotificationChangeSource,
    PollingChangeSource,
    SignalKind,
    fan_in,
)
from wordcard.sync.transport import (
    CloudDriveTransport,
    FileStat,
    LanDirectoryTransport,
    SharedFileTransport,
)

__all__ = [
    # merge
    "MergeEngine",
    "MergePlan",
    "MergeResult",
    # backup
    "BackupService",
    "ImportMode",
    "ImportResult",
    # transport
    "CloudDriveTransport",
    "FileStat",
    "LanDirectoryTransport",
    "SharedFileTransport",
    # sources
    "ChangeSignal",
    "ChangeSource",
    "FileEventChangeSource",
    "NotificationChangeSource",
    "PollingChangeSource",
    "SignalKind",
    "fan_in",
    # service
    "ReplicaState",
    "SyncService",
    "SyncStatus",
    "SyncStatusReport",
]
