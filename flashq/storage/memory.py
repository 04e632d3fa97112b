"""Topic logs and consumer groups held entirely in memory."""

from __future__ import annotations

from typing import Optional

from flashq.record import Record, RecordWithOffset
from flashq.storage.base import ConsumerGroup, TopicLog


class InMemoryTopicLog(TopicLog):
    """A topic log kept in a Python list."""

    def __init__(self) -> None:
        self._records: list[RecordWithOffset] = []
        self._next_offset = 0

    def append(self, record: Record) -> int:
        offset = self._next_offset
        self._records.append(RecordWithOffset.from_record(record, offset))
        self._next_offset += 1
        return offset

    def get_records_from_offset(
        self, offset: int, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        if count is not None and count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        end = None if count is None else offset + count
        return list(self._records[offset:end])

    def __len__(self) -> int:
        return len(self._records)

    def is_empty(self) -> bool:
        return not self._records

    def next_offset(self) -> int:
        return self._next_offset


class InMemoryConsumerGroup(ConsumerGroup):
    """Committed offsets of one consumer group, kept in a dict."""

    def __init__(self, group_id: str) -> None:
        self._group_id = group_id
        self._topic_offsets: dict[str, int] = {}

    def get_offset(self, topic: str) -> int:
        return self._topic_offsets.get(topic, 0)

    def set_offset(self, topic: str, offset: int) -> None:
        self._topic_offsets[topic] = offset

    def group_id(self) -> str:
        return self._group_id

    def get_all_offsets(self) -> dict[str, int]:
        return dict(self._topic_offsets)