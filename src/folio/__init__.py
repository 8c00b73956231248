"""Crypto portfolio tracker: server-of-record, client sync and background tasks."""
