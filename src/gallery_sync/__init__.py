"""Sync a directory tree of photos and videos into a browsable gallery."""

__version__ = "0.1.0"
