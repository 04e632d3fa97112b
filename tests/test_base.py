from typing import Optional

import pytest

from flashq.record import Record, RecordWithOffset
from flashq.storage.base import ConsumerGroup, TopicLog
from flashq.storage.memory import InMemoryConsumerGroup


class _ListLog(TopicLog):
    def __init__(self):
        self._records = []

    def append(self, record):
        offset = len(self._records)
        self._records.append(RecordWithOffset.from_record(record, offset))
        return offset

    def get_records_from_offset(self, offset, count: Optional[int] = None):
        selected = self._records[offset:]
        return selected if count is None else selected[:count]

    def __len__(self):
        return len(self._records)

    def next_offset(self):
        return len(self._records)


def test_topic_log_is_abstract():
    with pytest.raises(TypeError):
        TopicLog()


def test_consumer_group_is_abstract():
    with pytest.raises(TypeError):
        ConsumerGroup()


def test_partial_topic_log_cannot_be_instantiated():
    class Partial(TopicLog):
        def append(self, record):
            return 0

    with pytest.raises(TypeError, match="get_records_from_offset"):
        Partial()

    complete = _ListLog()
    assert complete.is_empty() is True
    record = Record(None, "x")
    assert complete.append(record) == 0
    fetched = complete.get_records_from_offset(0, None)
    assert fetched[0].record == Record(None, "x")
    assert fetched[0].offset == 0
    assert complete.is_empty() is False


def test_is_empty_follows_len():
    log = _ListLog()
    assert log.is_empty() is True
    log.append(Record(None, "test"))
    assert log.is_empty() is False
    assert len(log) == log.next_offset()


def test_topic_log_interface_through_base_type():
    log: TopicLog = _ListLog()
    first = log.append(Record("key1", "value1"))
    second = log.append(Record("key2", "value2"))
    assert second == first + 1
    records = log.get_records_from_offset(0, None)
    assert [r.record.value for r in records] == ["value1", "value2"]
    assert [r.offset for r in records] == [first, second]


def test_consumer_group_interface_through_base_type():
    group: ConsumerGroup = InMemoryConsumerGroup("test-group")
    assert isinstance(group, ConsumerGroup)
    assert group.group_id() == "test-group"
    assert group.get_offset("any-topic") == 0
    group.set_offset("topic1", 5)
    assert group.get_offset("topic1") == 5
    snapshot = group.get_all_offsets()
    snapshot["topic1"] = 99
    assert group.get_offset("topic1") == 5
    assert group.get_all_offsets() == {"topic1": 5}