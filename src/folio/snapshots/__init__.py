"""Portfolio value snapshots."""

from folio.snapshots.scheduler import SnapshotScheduler

__all__ = ["SnapshotScheduler"]
