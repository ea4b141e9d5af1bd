"""Sync Hub multi-store access control and invitation backend."""

__version__ = "0.4.0"
