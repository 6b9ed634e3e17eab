"""Listing lifecycle and local/remote synchronisation engine."""

__version__ = "0.1.0"
