"""Keeps a local feed tree in sync with a Google-Reader-style aggregator."""

__version__ = "0.1.0"
