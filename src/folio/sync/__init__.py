"""Client-side sync/hydration against the server-of-record."""

from folio.sync.client import SyncClient
from folio.sync.engine import SyncEngine

__all__ = ["SyncClient", "SyncEngine"]
