"""Structured logging helpers."""

from .log import StructuredFormatter, log_sync_event, log_timing, setup_logging

__all__ = ["StructuredFormatter", "log_sync_event", "log_timing", "setup_logging"]
