"""Interfaces that every topic log and consumer group storage implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from flashq.record import Record, RecordWithOffset


class TopicLog(ABC):
    """An append-only sequence of records addressed by offset."""

    @abstractmethod
    def append(self, record: Record) -> int:
        """Append a record and return the offset it was given."""

    @abstractmethod
    def get_records_from_offset(
        self, offset: int, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        """Return up to ``count`` records starting at ``offset`` (all when ``count`` is None)."""

    @abstractmethod
    def __len__(self) -> int:
        """Number of records held."""

    def is_empty(self) -> bool:
        """True when the log holds no records."""
        return len(self) == 0

    @abstractmethod
    def next_offset(self) -> int:
        """The offset the next appended record will receive."""


class ConsumerGroup(ABC):
    """Committed read positions of one consumer group, per topic."""

    @abstractmethod
    def get_offset(self, topic: str) -> int:
        """The committed offset for ``topic``, or 0 if none was committed."""

    @abstractmethod
    def set_offset(self, topic: str, offset: int) -> None:
        """Commit ``offset`` for ``topic``."""

    @abstractmethod
    def group_id(self) -> str:
        """The identifier of this group."""

    @abstractmethod
    def get_all_offsets(self) -> dict[str, int]:
        """A copy of every committed offset, keyed by topic."""