"""
Snapshot store package.

The store is the only shared state of a mirrored collection. It is mutated
by the sync engine alone and read through its live stream.
"""

from .snapshot_store import LiveStream, SnapshotStore, Subscription

__all__ = [
    "LiveStream",
    "SnapshotStore",
    "Subscription",
]
