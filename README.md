# flashq

An embeddable, append-only record queue for use inside a Python process.
Records are appended to named topics and read back by offset. Consumer groups
keep a committed offset per topic. Storage is either in memory or on disk,
where it uses a write-ahead log and recovers after a crash.

## Installation

```
pip install .
```

## Quick start

```python
from flashq.queue import FlashQ
from flashq.record import Record

queue = FlashQ()  # in-memory storage

queue.post_record("news", Record(key=None, value="first", headers=None))
queue.post_record("news", Record(key="user123", value="second", headers={"source": "web"}))
queue.post_records("news", [Record(key=None, value="third"), Record(key=None, value="fourth")])

for item in queue.poll_records("news", None):
    print(item.offset, item.record.value, item.timestamp)

recent = queue.poll_records_from_offset("news", 2, 10)
print(queue.get_high_water_mark("news"))  # 4
```

Each topic numbers its offsets from 0 and adds one per record.
`poll_records` and `poll_records_from_offset` return a list of
`RecordWithOffset`. Each one holds the `record`, its `offset` and an RFC 3339
UTC `timestamp`. A `count` of `None` returns every record. Polling a topic
that has never been written to raises `TopicNotFoundError`.
`get_high_water_mark` returns 0 for such a topic.

`Record.to_dict` and `Record.from_dict` convert a record to and from its JSON
form. `RecordWithOffset.to_dict` and `RecordWithOffset.from_dict` do the same
for the flattened form, which holds the record's fields plus `offset` and
`timestamp`. `from_dict` raises `ValueError` on malformed input.

## Consumer groups

```python
queue.create_consumer_group("readers")

batch = queue.poll_records_for_consumer_group("readers", "news", 10)
# Polling never moves the committed offset; commit it explicitly.
queue.update_consumer_group_offset("readers", "news", len(batch))

print(queue.get_consumer_group_offset("readers", "news"))

# Read from an explicit position without touching the committed offset.
queue.poll_records_for_consumer_group_from_offset("readers", "news", 1, 5)

queue.delete_consumer_group("readers")
```

A group's offset for a topic it has not committed is 0.

The queue raises these errors:

- Committing an offset beyond the topic's high-water mark raises `InvalidOffsetError`.
- Committing an offset for an unknown topic raises `TopicNotFoundError`.
- Using an unknown group raises `ConsumerGroupNotFoundError`.
- Creating a group that already exists raises `ConsumerGroupAlreadyExistsError`.

All of them derive from `FlashQError` in `flashq.errors`. Its `is_not_found()`
method is true for the topic-not-found, group-not-found and invalid-offset
errors.

`FlashQ` is safe to share between threads. A single lock guards every
operation.

## File storage

```python
from flashq.queue import FlashQ
from flashq.record import Record
from flashq.storage.backend import FileStorageBackend
from flashq.storage.file import SyncMode

with FileStorageBackend(SyncMode.NONE, "./data") as backend:
    queue = FlashQ(backend)
    queue.post_record("events", Record(key=None, value="hello", headers=None))
```

`FileStorageBackend(sync_mode, data_dir, wal_commit_threshold)` defaults to
`SyncMode.NONE`, `"./data"` and `1000`.

### Files on disk

Each topic is kept in `<topic>.log`, with a `<topic>.wal` write-ahead log
beside it. Every entry in these files has three parts in this order:

1. a little-endian 32-bit payload length,
2. a little-endian 64-bit offset,
3. the record as JSON.

New records go to the WAL. When `wal_commit_threshold` records have
accumulated, the WAL is copied into the main log, both files are forced to
disk, and the WAL is emptied. A WAL that is still non-empty when the log is
opened again is committed at that time.

Consumer group offsets are kept as pretty-printed JSON in
`consumer_groups/<group>.json`. The file is rewritten on every commit.

### Sync modes

- `SyncMode.IMMEDIATE` forces every WAL write and every consumer-group write to disk.
- `SyncMode.NONE` and `SyncMode.PERIODIC` leave this to the operating system. A WAL commit still forces both files to disk.

### Directory lock

Only one process at a time may use a data directory. A `.flashq.lock` file
guards it, and the file records the holder's PID. If the recorded process is
still running, opening the directory raises `DirectoryLockedError`. A stale
lock left by a process that is no longer running is taken over.

`close()` (or leaving the `with` block) does the following:

- syncs and closes the topic logs that the backend created,
- removes the lock file,
- releases the lock.

### Recovery

A `FlashQ` opened on an existing directory recovers every `*.log` topic and
every consumer group in `consumer_groups/`. Any partly written or unreadable
record at the end of a log is cut off. `StorageError` and its subclass
`DataCorruptionError` report failures to read or write stored data.

`MemoryStorageBackend` is the default when no backend is given. Nothing it
holds survives the process.

## What this package does not do

flashq is a library only. It has no network server or HTTP API, no
command-line client and no interactive demo. Other processes can reach a
queue only through code that you write on top of `FlashQ`.

## Running the tests

```
pip install ".[test]"
pytest
```