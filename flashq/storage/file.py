"""Topic logs and consumer groups persisted to files on disk.

A topic is stored as ``<topic>.log`` plus a write-ahead log ``<topic>.wal``.
Each entry in both files is a 12-byte header (little-endian ``u32`` payload
length followed by little-endian ``u64`` offset) and a JSON-encoded record.
Consumer groups are stored as pretty-printed JSON under ``consumer_groups/``.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import struct
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from flashq.errors import DataCorruptionError, StorageError
from flashq.record import Record, RecordWithOffset
from flashq.storage.base import ConsumerGroup, TopicLog

log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_HEADER = struct.Struct("<IQ")
RECORD_HEADER_SIZE = _HEADER.size
_STREAMING_READER_BUFFER_SIZE = 64 * 1024
_DEFAULT_DATA_DIR = "./data"
_DEFAULT_WAL_COMMIT_THRESHOLD = 1000


class SyncMode(Enum):
    """When written data is forced to stable storage."""

    NONE = "none"
    IMMEDIATE = "immediate"
    PERIODIC = "periodic"


def _encode_record(record: Record) -> bytes:
    return json.dumps(record.to_dict(), separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def _decode_record(payload: bytes) -> Record:
    return Record.from_dict(json.loads(payload.decode("utf-8")))


def _frame(payload: bytes, offset: int) -> bytes:
    return _HEADER.pack(len(payload), offset) + payload


def _fsync(handle: BinaryIO) -> None:
    handle.flush()
    os.fsync(handle.fileno())


def _sync_if_needed(handle: BinaryIO, sync_mode: SyncMode) -> None:
    handle.flush()
    if sync_mode is SyncMode.IMMEDIATE:
        os.fsync(handle.fileno())


def _read_bytes(path: Path, name: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return b""
    except OSError as exc:
        raise StorageError(f"Failed to read {name} file: {exc}") from exc


def _iter_frames(buffer: bytes) -> Iterator[tuple[int, int, bytes]]:
    """Yield ``(position, offset, payload)`` for each framed record in ``buffer``."""
    cursor = 0
    while cursor + RECORD_HEADER_SIZE <= len(buffer):
        length, offset = _HEADER.unpack_from(buffer, cursor)
        start = cursor + RECORD_HEADER_SIZE
        if start + length > len(buffer):
            raise DataCorruptionError(
                "file read", f"Partial record detected at cursor {start}"
            )
        yield cursor, offset, buffer[start : start + length]
        cursor = start + length


class FileTopicLog(TopicLog):
    """A topic log written through a write-ahead log into an append-only file."""

    def __init__(
        self,
        topic: str,
        sync_mode: SyncMode = SyncMode.NONE,
        data_dir: PathLike = _DEFAULT_DATA_DIR,
        wal_commit_threshold: int = _DEFAULT_WAL_COMMIT_THRESHOLD,
    ) -> None:
        directory = Path(data_dir)
        directory.mkdir(parents=True, exist_ok=True)

        self._file_path = directory / f"{topic}.log"
        self._wal_path = directory / f"{topic}.wal"
        self._sync_mode = sync_mode
        self._wal_commit_threshold = wal_commit_threshold
        self._next_offset = 0
        self._record_count = 0
        self._wal_record_count = 0

        self._file: BinaryIO = open(self._file_path, "ab")
        self._wal_file: BinaryIO = open(self._wal_path, "ab")
        try:
            self._recover()
        except BaseException:
            self._file.close()
            self._wal_file.close()
            raise

    @property
    def file_path(self) -> Path:
        """Path of the main log file."""
        return self._file_path

    @property
    def wal_path(self) -> Path:
        """Path of the write-ahead log file."""
        return self._wal_path

    def sync(self) -> None:
        """Force the WAL and the main file to stable storage."""
        try:
            _fsync(self._wal_file)
        except OSError as exc:
            raise StorageError(f"Failed to sync WAL file: {exc}") from exc
        try:
            _fsync(self._file)
        except OSError as exc:
            raise StorageError(f"Failed to sync main file: {exc}") from exc

    def close(self) -> None:
        """Sync and close the underlying files; pending WAL entries stay on disk."""
        if self._file.closed and self._wal_file.closed:
            return
        try:
            self.sync()
        except StorageError as exc:
            log.warning("Failed to sync topic log on close: %s", exc)
        finally:
            self._wal_file.close()
            self._file.close()

    # -- recovery -----------------------------------------------------------

    def _recover(self) -> None:
        self._recover_wal()
        if not self._file_path.exists():
            return

        next_offset = 0
        record_count = 0
        truncate_at: Optional[int] = None
        with open(self._file_path, "rb", buffering=_STREAMING_READER_BUFFER_SIZE) as reader:
            position = 0
            while True:
                header = reader.read(RECORD_HEADER_SIZE)
                if not header:
                    break
                if len(header) < RECORD_HEADER_SIZE:
                    truncate_at = position
                    break
                length, offset = _HEADER.unpack(header)
                payload = reader.read(length)
                if len(payload) < length or not self._is_valid_payload(payload):
                    truncate_at = position
                    break
                next_offset = max(next_offset, offset + 1)
                record_count += 1
                position += RECORD_HEADER_SIZE + length

        if truncate_at is not None:
            self._truncate_main(truncate_at)
        self._next_offset = next_offset
        self._record_count = record_count

    def _recover_wal(self) -> None:
        if self._wal_path.exists() and self._wal_path.stat().st_size > 0:
            self._wal_record_count = 1
            try:
                self._commit_wal_to_main()
            except StorageError as exc:
                raise OSError("WAL recovery failed") from exc

    @staticmethod
    def _is_valid_payload(payload: bytes) -> bool:
        try:
            _decode_record(payload)
        except ValueError:
            return False
        return True

    def _truncate_main(self, position: int) -> None:
        self._file.close()
        os.truncate(self._file_path, position)
        self._file = open(self._file_path, "ab")

    # -- write-ahead logging ------------------------------------------------

    def _write_atomically(self, frame: bytes) -> None:
        try:
            self._wal_file.write(frame)
        except OSError as exc:
            raise StorageError(f"Failed to write record to WAL: {exc}") from exc
        try:
            _sync_if_needed(self._wal_file, self._sync_mode)
        except OSError as exc:
            raise StorageError(f"Failed to sync WAL file: {exc}") from exc

        self._wal_record_count += 1
        if self._wal_record_count >= self._wal_commit_threshold:
            self._commit_wal_to_main()

    def _commit_wal_to_main(self) -> None:
        if self._wal_record_count == 0:
            return
        try:
            _fsync(self._wal_file)
        except OSError as exc:
            raise StorageError(f"Failed to sync WAL before commit: {exc}") from exc
        try:
            self._file.flush()
            original_size = os.fstat(self._file.fileno()).st_size
        except OSError as exc:
            raise StorageError(f"Failed to get main file size: {exc}") from exc

        try:
            self._append_wal_to_main()
        except StorageError:
            try:
                self._rollback_main(original_size)
            except StorageError as rollback_exc:
                log.warning("Failed to rollback main file: %s", rollback_exc)
            raise
        self._clear_wal()

    def _append_wal_to_main(self) -> None:
        try:
            source = open(self._wal_path, "rb")
        except OSError as exc:
            raise StorageError(f"Failed to open WAL for reading: {exc}") from exc
        with source:
            try:
                shutil.copyfileobj(source, self._file)
            except OSError as exc:
                raise StorageError(f"Failed to copy WAL to main file: {exc}") from exc
        try:
            _fsync(self._file)
        except OSError as exc:
            raise StorageError(f"Failed to sync main file after WAL append: {exc}") from exc

    def _rollback_main(self, original_size: int) -> None:
        try:
            self._file.close()
            os.truncate(self._file_path, original_size)
            self._file = open(self._file_path, "ab")
            _fsync(self._file)
        except OSError as exc:
            raise StorageError(f"Failed to truncate main file: {exc}") from exc

    def _clear_wal(self) -> None:
        try:
            self._wal_file.close()
            with open(self._wal_path, "wb"):
                pass
        except OSError as exc:
            raise StorageError(f"Failed to truncate WAL file: {exc}") from exc
        try:
            self._wal_file = open(self._wal_path, "ab")
        except OSError as exc:
            raise StorageError(f"Failed to reopen WAL file: {exc}") from exc
        self._wal_record_count = 0

    # -- reading ------------------------------------------------------------

    @staticmethod
    def _extract_matching(
        buffer: bytes, start_offset: int, count: Optional[int]
    ) -> list[RecordWithOffset]:
        records: list[RecordWithOffset] = []
        if count == 0:
            return records
        for _, offset, payload in _iter_frames(buffer):
            if offset < start_offset:
                continue
            try:
                record = _decode_record(payload)
            except ValueError as exc:
                raise StorageError(
                    f"Serialization error in record parsing at offset {offset}: {exc}"
                ) from exc
            records.append(RecordWithOffset.from_record(record, offset))
            if count is not None and len(records) >= count:
                break
        return records

    # -- TopicLog -----------------------------------------------------------

    def append(self, record: Record) -> int:
        offset = self._next_offset
        self._write_atomically(_frame(_encode_record(record), offset))
        self._next_offset += 1
        self._record_count += 1
        return offset

    def get_records_from_offset(
        self, offset: int, count: Optional[int] = None
    ) -> list[RecordWithOffset]:
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        if count is not None and count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        self._wal_file.flush()
        wal_buffer = _read_bytes(self._wal_path, "WAL")
        if offset >= self._next_offset - self._wal_record_count:
            return self._extract_matching(wal_buffer, offset, count)

        self._file.flush()
        buffer = _read_bytes(self._file_path, "main log") + wal_buffer
        return self._extract_matching(buffer, offset, count)

    def __len__(self) -> int:
        return self._record_count

    def is_empty(self) -> bool:
        return self._record_count == 0

    def next_offset(self) -> int:
        return self._next_offset


def _parse_group_file(contents: str) -> dict[str, int]:
    data = json.loads(contents)
    if not isinstance(data, dict) or not isinstance(data.get("group_id"), str):
        raise ValueError("expected an object with a string `group_id`")
    offsets = data.get("topic_offsets")
    if not isinstance(offsets, dict):
        raise ValueError("field `topic_offsets` must be an object")
    for topic, offset in offsets.items():
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValueError(f"offset for topic `{topic}` must be a non-negative integer")
    return dict(offsets)


class FileConsumerGroup(ConsumerGroup):
    """Committed offsets of one consumer group, saved as a JSON file."""

    def __init__(
        self,
        group_id: str,
        sync_mode: SyncMode = SyncMode.NONE,
        data_dir: PathLike = _DEFAULT_DATA_DIR,
    ) -> None:
        groups_dir = Path(data_dir) / "consumer_groups"
        groups_dir.mkdir(parents=True, exist_ok=True)
        self._file_path = groups_dir / f"{group_id}.json"
        self._group_id = group_id
        self._sync_mode = sync_mode
        self._topic_offsets = self._load_existing_offsets()
        self._persist()

    @property
    def file_path(self) -> Path:
        """Path of the JSON file holding this group's offsets."""
        return self._file_path

    def _load_existing_offsets(self) -> dict[str, int]:
        if not self._file_path.exists():
            return {}
        contents = self._file_path.read_text(encoding="utf-8")
        if not contents.strip():
            return {}
        try:
            return _parse_group_file(contents)
        except ValueError as exc:
            log.warning("Failed to parse consumer group file %s: %s", self._file_path, exc)
            return {}

    def _persist(self) -> None:
        data = {"group_id": self._group_id, "topic_offsets": self._topic_offsets}
        payload = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
        with open(self._file_path, "wb") as handle:
            handle.write(payload)
            _sync_if_needed(handle, self._sync_mode)

    def get_offset(self, topic: str) -> int:
        return self._topic_offsets.get(topic, 0)

    def set_offset(self, topic: str, offset: int) -> None:
        self._topic_offsets[topic] = offset
        try:
            self._persist()
        except OSError as exc:
            log.warning("Failed to persist consumer group state: %s", exc)

    def group_id(self) -> str:
        return self._group_id

    def get_all_offsets(self) -> dict[str, int]:
        return dict(self._topic_offsets)