"""Server-of-record HTTP surface."""

from folio.server.app import create_app

__all__ = ["create_app"]
