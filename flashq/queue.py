"""The queue: topics of records and consumer groups that track read positions."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, Optional

from flashq.errors import (
    ConsumerGroupAlreadyExistsError,
    ConsumerGroupNotFoundError,
    FlashQError,
    InvalidOffsetError,
    TopicNotFoundError,
)
from flashq.record import Record, RecordWithOffset
from flashq.storage.backend import (
    FileStorageBackend,
    MemoryStorageBackend,
    StorageBackend,
)
from flashq.storage.base import ConsumerGroup, TopicLog

log = logging.getLogger(__name__)


class FlashQ:
    """A thread-safe message queue over a pluggable storage backend."""

    def __init__(self, storage_backend: Optional[StorageBackend] = None) -> None:
        self._storage_backend = (
            storage_backend if storage_backend is not None else MemoryStorageBackend()
        )
        self._lock = threading.RLock()
        self._topics: dict[str, TopicLog] = {}
        self._consumer_groups: dict[str, ConsumerGroup] = {}

        try:
            self._recover_existing_topics()
        except OSError as exc:
            log.warning("Failed to recover existing topics: %s", exc)
        try:
            self._recover_existing_consumer_groups()
        except OSError as exc:
            log.warning("Failed to recover existing consumer groups: %s", exc)

    @property
    def storage_backend(self) -> StorageBackend:
        return self._storage_backend

    # -- topics -------------------------------------------------------------

    def _topic_log_for_write(self, topic: str) -> TopicLog:
        topic_log = self._topics.get(topic)
        if topic_log is None:
            topic_log = self._storage_backend.create(topic)
            self._topics[topic] = topic_log
        return topic_log

    def post_record(self, topic: str, record: Record) -> int:
        """Append a record to ``topic`` (creating it) and return its offset."""
        with self._lock:
            return self._topic_log_for_write(topic).append(record)

    def post_records(self, topic: str, records: Iterable[Record]) -> list[int]:
        """Append records to ``topic`` in order and return their offsets."""
        with self._lock:
            topic_log = self._topic_log_for_write(topic)
            return [topic_log.append(record) for record in records]

    def poll_records(
        self, topic: str, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        """Return up to ``count`` records of ``topic`` from the beginning."""
        return self.poll_records_from_offset(topic, 0, count)

    def poll_records_from_offset(
        self, topic: str, offset: int, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        """Return up to ``count`` records of ``topic`` starting at ``offset``."""
        with self._lock:
            topic_log = self._topics.get(topic)
            if topic_log is None:
                raise TopicNotFoundError(topic)
            return topic_log.get_records_from_offset(offset, count)

    def get_high_water_mark(self, topic: str) -> int:
        """The next offset of ``topic``, or 0 for an unknown topic."""
        with self._lock:
            topic_log = self._topics.get(topic)
            return 0 if topic_log is None else topic_log.next_offset()

    # -- consumer groups ----------------------------------------------------

    def create_consumer_group(self, group_id: str) -> None:
        """Create a consumer group; raise if one with this id exists."""
        with self._lock:
            if group_id in self._consumer_groups:
                raise ConsumerGroupAlreadyExistsError(group_id)
            try:
                group = self._storage_backend.create_consumer_group(group_id)
            except (OSError, FlashQError) as exc:
                raise ConsumerGroupAlreadyExistsError(
                    f"Failed to create consumer group: {exc}"
                ) from exc
            self._consumer_groups[group_id] = group

    def _group(self, group_id: str) -> ConsumerGroup:
        group = self._consumer_groups.get(group_id)
        if group is None:
            raise ConsumerGroupNotFoundError(group_id)
        return group

    def get_consumer_group_offset(self, group_id: str, topic: str) -> int:
        """The offset committed by ``group_id`` for ``topic``."""
        with self._lock:
            return self._group(group_id).get_offset(topic)

    def update_consumer_group_offset(self, group_id: str, topic: str, offset: int) -> None:
        """Commit ``offset`` for ``topic``; it may not exceed the topic's next offset."""
        with self._lock:
            topic_log = self._topics.get(topic)
            if topic_log is None:
                raise TopicNotFoundError(topic)
            next_offset = topic_log.next_offset()
            if offset > next_offset:
                raise InvalidOffsetError(offset, topic, next_offset)
            self._group(group_id).set_offset(topic, offset)

    def delete_consumer_group(self, group_id: str) -> None:
        """Forget a consumer group."""
        with self._lock:
            if self._consumer_groups.pop(group_id, None) is None:
                raise ConsumerGroupNotFoundError(group_id)

    def poll_records_for_consumer_group(
        self, group_id: str, topic: str, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        """Return records from the group's committed offset without advancing it."""
        with self._lock:
            current_offset = self.get_consumer_group_offset(group_id, topic)
            records = self.poll_records_from_offset(topic, current_offset, count)
            if current_offset == 0:
                # Record that the group has accessed this topic.
                self.update_consumer_group_offset(group_id, topic, 0)
            return records

    def poll_records_for_consumer_group_from_offset(
        self, group_id: str, topic: str, offset: int, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        """Return records from an explicit offset for an existing group."""
        with self._lock:
            self.get_consumer_group_offset(group_id, topic)
            return self.poll_records_from_offset(topic, offset, count)

    # -- recovery -----------------------------------------------------------

    def _file_data_dir(self) -> Optional[Path]:
        if isinstance(self._storage_backend, FileStorageBackend):
            return self._storage_backend.data_dir
        return None

    def _recover_existing_topics(self) -> None:
        data_dir = self._file_data_dir()
        if data_dir is None or not data_dir.exists():
            return
        for path in sorted(data_dir.iterdir()):
            if path.suffix != ".log" or not path.stem:
                continue
            try:
                topic_log = self._storage_backend.create(path.stem)
            except (OSError, FlashQError) as exc:
                log.warning("Failed to recover topic %s: %s", path.stem, exc)
                continue
            with self._lock:
                self._topics[path.stem] = topic_log

    def _recover_existing_consumer_groups(self) -> None:
        data_dir = self._file_data_dir()
        if data_dir is None:
            return
        groups_dir = data_dir / "consumer_groups"
        if not groups_dir.exists():
            return
        for path in sorted(groups_dir.iterdir()):
            if path.suffix != ".json" or not path.stem:
                continue
            try:
                group = self._storage_backend.create_consumer_group(path.stem)
            except (OSError, FlashQError) as exc:
                log.warning("Failed to recover consumer group %s: %s", path.stem, exc)
                continue
            with self._lock:
                self._consumer_groups[path.stem] = group