"""Utility helpers."""

from synchub.utils.clock import Clock, ensure_utc, utc_now

__all__ = ["Clock", "ensure_utc", "utc_now"]
