"""Bulk search and replace for MySQL databases, aware of PHP serialized data."""

__version__ = "0.1.0"
