"""Serialized GitHub issue investigation queue."""

__version__ = "0.1.0"
