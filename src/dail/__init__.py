"""Database abstraction and SQL intelligence layer for a multi-database client."""

__version__ = "0.4.0"
