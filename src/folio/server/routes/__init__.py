"""Server-of-record HTTP routes."""
