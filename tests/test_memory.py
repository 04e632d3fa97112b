import pytest

from flashq.record import Record
from flashq.storage.memory import InMemoryConsumerGroup, InMemoryTopicLog


def _log_with(*values):
    log = InMemoryTopicLog()
    for value in values:
        log.append(Record(None, value, None))
    return log


def test_topic_log_creation():
    log = InMemoryTopicLog()
    assert len(log) == 0
    assert log.next_offset() == 0
    assert log.is_empty()


def test_topic_log_append_single_record():
    log = InMemoryTopicLog()
    offset = log.append(Record(None, "first record", None))
    assert offset == 0
    assert len(log) == 1
    assert log.next_offset() == 1
    assert not log.is_empty()


def test_topic_log_append_multiple_records():
    log = InMemoryTopicLog()
    offsets = [log.append(Record(None, f"record {i}", None)) for i in (1, 2, 3)]
    assert offsets == [0, 1, 2]
    assert len(log) == 3
    assert log.next_offset() == 3


def test_topic_log_get_records_from_beginning():
    log = _log_with("first", "second", "third")
    records = log.get_records_from_offset(0, None)
    assert [r.record.value for r in records] == ["first", "second", "third"]


def test_topic_log_get_records_from_middle_offset():
    log = _log_with("first", "second", "third")
    records = log.get_records_from_offset(1, None)
    assert [r.record.value for r in records] == ["second", "third"]


def test_topic_log_get_records_with_count_limit():
    log = _log_with("first", "second", "third")
    records = log.get_records_from_offset(0, 2)
    assert [r.record.value for r in records] == ["first", "second"]


def test_topic_log_get_records_beyond_log():
    log = _log_with("only record")
    assert log.get_records_from_offset(5, None) == []


def test_topic_log_record_offsets_match():
    log = InMemoryTopicLog()
    offset1 = log.append(Record(None, "msg1", None))
    offset2 = log.append(Record(None, "msg2", None))
    records = log.get_records_from_offset(0, None)
    assert records[0].offset == offset1
    assert records[1].offset == offset2


def test_count_larger_than_remaining():
    log = _log_with("a", "b", "c")
    records = log.get_records_from_offset(2, 10)
    assert [r.offset for r in records] == [2]


def test_count_defaults_to_all():
    log = _log_with("a", "b")
    assert len(log.get_records_from_offset(0)) == 2


def test_records_keep_key_and_headers():
    log = InMemoryTopicLog()
    headers = {"source": "test", "priority": "high"}
    log.append(Record("user123", "record with headers", headers))
    [stored] = log.get_records_from_offset(0, None)
    assert stored.record.key == "user123"
    assert stored.record.value == "record with headers"
    assert stored.record.headers == headers
    assert "T" in stored.timestamp


def test_negative_offset_rejected():
    log = _log_with("a")
    with pytest.raises(ValueError):
        log.get_records_from_offset(-1, None)


def test_consumer_group_creation():
    group = InMemoryConsumerGroup("test-group")
    assert group.group_id() == "test-group"
    assert group.get_offset("any-topic") == 0


def test_consumer_group_set_and_get_offset():
    group = InMemoryConsumerGroup("test-group")
    group.set_offset("topic1", 5)
    group.set_offset("topic2", 10)
    assert group.get_offset("topic1") == 5
    assert group.get_offset("topic2") == 10
    assert group.get_offset("nonexistent") == 0


def test_consumer_group_update_offset():
    group = InMemoryConsumerGroup("test-group")
    group.set_offset("topic", 3)
    assert group.get_offset("topic") == 3
    group.set_offset("topic", 8)
    assert group.get_offset("topic") == 8


def test_consumer_group_multiple_topics():
    group = InMemoryConsumerGroup("multi-topic-group")
    group.set_offset("news", 15)
    group.set_offset("alerts", 7)
    group.set_offset("logs", 42)
    assert group.get_offset("news") == 15
    assert group.get_offset("alerts") == 7
    assert group.get_offset("logs") == 42
    assert group.get_offset("unknown") == 0


def test_get_all_offsets_returns_copy():
    group = InMemoryConsumerGroup("g")
    group.set_offset("news", 2)
    offsets = group.get_all_offsets()
    assert offsets == {"news": 2}
    offsets["news"] = 99
    assert group.get_offset("news") == 2