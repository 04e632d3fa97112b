"""Exceptions raised by the queue and its storage backends."""

from __future__ import annotations

from typing import Optional


class FlashQError(Exception):
    """Base class of every error the queue reports."""

    def is_not_found(self) -> bool:
        """True when the error means that something asked for does not exist."""
        return False


class TopicNotFoundError(FlashQError, LookupError):
    """The named topic has never received a record."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(f"Topic '{topic}' not found")

    def is_not_found(self) -> bool:
        return True


class ConsumerGroupNotFoundError(FlashQError, LookupError):
    """No consumer group with the given identifier exists."""

    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"Consumer group '{group_id}' not found")

    def is_not_found(self) -> bool:
        return True


class ConsumerGroupAlreadyExistsError(FlashQError):
    """A consumer group with the given identifier already exists."""

    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"Consumer group '{group_id}' already exists")


class InvalidOffsetError(FlashQError, ValueError):
    """An offset lies beyond the end of a topic."""

    def __init__(self, offset: int, topic: str, max_offset: int) -> None:
        self.offset = offset
        self.topic = topic
        self.max_offset = max_offset
        super().__init__(
            f"Invalid offset {offset} for topic '{topic}', max offset is {max_offset}"
        )

    def is_not_found(self) -> bool:
        return True


class StorageError(FlashQError):
    """A storage backend failed to read or write its data."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DataCorruptionError(StorageError):
    """Stored data could not be interpreted."""

    def __init__(self, context: str, details: str) -> None:
        self.context = context
        self.details = details
        super().__init__(f"Data corruption in {context}: {details}")


class DirectoryLockedError(StorageError):
    """The storage directory is held by another running instance."""

    def __init__(self, context: str, pid: Optional[int] = None) -> None:
        self.context = context
        self.pid = pid
        if pid is None:
            message = context
        else:
            message = f"{context} (PID: {pid})"
        super().__init__(message)