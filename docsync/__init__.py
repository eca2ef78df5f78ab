"""Versioned local documents with durable GitHub synchronization."""

__version__ = "0.1.0"
