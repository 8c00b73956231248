"""Record store persistence layer.

Provides the SQLite database manager and the typed record store shared by
the client-local and server-of-record deployments.
"""

from folio.store.database import Database
from folio.store.store import RecordStore

__all__ = ["Database", "RecordStore"]
