"""Graph snapshot persistence."""

from backend.app.persistence.snapshots import (
    GraphSnapshotStoreProtocol,
    JSONGraphSnapshotStore,
    SnapshotStoreError,
)

__all__ = ["GraphSnapshotStoreProtocol", "JSONGraphSnapshotStore", "SnapshotStoreError"]
