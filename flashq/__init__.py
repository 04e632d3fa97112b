"""Append-only record queue with topics, consumer groups and in-memory or file storage."""

__version__ = "0.1.0"