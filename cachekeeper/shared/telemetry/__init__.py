"""Telemetry helpers."""

from cachekeeper.shared.telemetry.logging import setup_logging

__all__ = ["setup_logging"]
