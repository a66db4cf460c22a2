# =============================================================================
# oms_core/offline/__init__.py
# Durable Offline Write Queue
# =============================================================================
"""
Offline Write Queue Module

Field crews keep recording load readings, asset inspections and outages when
the network drops. Every save is persisted on the device first and replayed
against the remote store once connectivity returns.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                     OFFLINE WRITE QUEUE                          │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 OfflineSyncService                        │  │
│   │         (Single API - pages use this only)                │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                  │                  │             │
│              ▼                  ▼                  ▼             │
│   ┌──────────────────┐ ┌────────────────┐ ┌─────────────────┐  │
│   │ConnectivityMonitor│ │  WriteQueue    │ │NotificationChannel│ │
│   │ (Online/Offline) │ │ (Pending/Failed)│ │ (List views)    │  │
│   └──────────────────┘ └────────────────┘ └─────────────────┘  │
│              │                  │                                │
│              ▼                  ▼                                │
│   ┌──────────────────┐  ┌──────────────┐                        │
│   │   SyncDriver     │─►│  LocalStore  │                        │
│   │ (Drain on online)│  │   (SQLite)   │                        │
│   └──────────────────┘  └──────────────┘                        │
│              │                                                   │
│              ▼                                                   │
│   ┌──────────────────┐                                          │
│   │   RemoteStore    │                                          │
│   │   (Supabase)     │                                          │
│   └──────────────────┘                                          │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from oms_core.offline import OfflineSyncService

service = OfflineSyncService.from_settings(load_settings()).open()
service.save("load-monitoring", "create", {"feeder": "F12", "load_amps": 310})

print(service.is_online)      # True/False
print(service.pending_count)  # Number of queued intents
"""

from oms_core.offline.connectivity import (
    ConnectionState,
    ConnectionStatus,
    ConnectivityEvent,
    ConnectivityMonitor,
    ReachabilityProbe,
)

from oms_core.offline.local_store import (
    FAILED_STORE,
    ID_LINK_STORE,
    PENDING_STORE,
    LocalStore,
    cache_store_name,
)

from oms_core.offline.intents import (
    IntentOperation,
    PendingIntent,
    SyncEvent,
    SyncStatus,
    generate_local_id,
    is_local_id,
)

from oms_core.offline.notifications import NotificationChannel

from oms_core.offline.write_queue import WriteQueue

from oms_core.offline.remote_store import (
    RemoteStore,
    SupabaseRemoteStore,
    classify_api_error,
)

from oms_core.offline.sync_driver import (
    DrainReport,
    DriverState,
    SyncDriver,
)

from oms_core.offline.offline_service import (
    OfflineSyncService,
    SaveResult,
    open_sync_service,
)

__all__ = [
    # Connectivity
    "ConnectionState",
    "ConnectionStatus",
    "ConnectivityEvent",
    "ConnectivityMonitor",
    "ReachabilityProbe",
    # Local Store
    "LocalStore",
    "PENDING_STORE",
    "FAILED_STORE",
    "ID_LINK_STORE",
    "cache_store_name",
    # Intents
    "IntentOperation",
    "PendingIntent",
    "SyncEvent",
    "SyncStatus",
    "generate_local_id",
    "is_local_id",
    # Queue / Notifications
    "NotificationChannel",
    "WriteQueue",
    # Remote Store
    "RemoteStore",
    "SupabaseRemoteStore",
    "classify_api_error",
    # Sync Driver
    "DrainReport",
    "DriverState",
    "SyncDriver",
    # Service (Main API)
    "OfflineSyncService",
    "SaveResult",
    "open_sync_service",
]
