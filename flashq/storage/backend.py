"""Storage backends that create topic logs and consumer groups."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Optional

import portalocker
import psutil

from flashq.errors import DirectoryLockedError, StorageError
from flashq.storage.base import ConsumerGroup, TopicLog
from flashq.storage.file import (
    FileConsumerGroup,
    FileTopicLog,
    PathLike,
    SyncMode,
)
from flashq.storage.memory import InMemoryConsumerGroup, InMemoryTopicLog

log = logging.getLogger(__name__)

LOCK_FILE_NAME = ".flashq.lock"
_LOCKED_CONTEXT = "Storage directory is already in use by another FlashQ instance"


class StorageBackend(ABC):
    """Factory for the topic logs and consumer groups of one queue."""

    @abstractmethod
    def create(self, topic: str) -> TopicLog:
        """Create (or open) the log of ``topic``."""

    @abstractmethod
    def create_consumer_group(self, group_id: str) -> ConsumerGroup:
        """Create (or open) the consumer group ``group_id``."""

    def close(self) -> None:
        """Release every resource held by the backend."""

    def __enter__(self) -> "StorageBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class MemoryStorageBackend(StorageBackend):
    """Keeps everything in memory; nothing survives the process."""

    def create(self, topic: str) -> TopicLog:
        return InMemoryTopicLog()

    def create_consumer_group(self, group_id: str) -> ConsumerGroup:
        return InMemoryConsumerGroup(group_id)


class FileStorageBackend(StorageBackend):
    """Persists topics and consumer groups under a locked data directory."""

    def __init__(
        self,
        sync_mode: SyncMode = SyncMode.NONE,
        data_dir: PathLike = "./data",
        wal_commit_threshold: int = 1000,
    ) -> None:
        self._sync_mode = sync_mode
        self._data_dir = Path(data_dir)
        self._wal_commit_threshold = wal_commit_threshold
        self._topic_logs: list[FileTopicLog] = []
        self._lock_file: Optional[BinaryIO] = _acquire_directory_lock(self._data_dir)

    @property
    def sync_mode(self) -> SyncMode:
        return self._sync_mode

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def wal_commit_threshold(self) -> int:
        return self._wal_commit_threshold

    @property
    def lock_path(self) -> Path:
        return self._data_dir / LOCK_FILE_NAME

    def create(self, topic: str) -> TopicLog:
        topic_log = FileTopicLog(
            topic, self._sync_mode, self._data_dir, self._wal_commit_threshold
        )
        self._topic_logs.append(topic_log)
        return topic_log

    def create_consumer_group(self, group_id: str) -> ConsumerGroup:
        return FileConsumerGroup(group_id, self._sync_mode, self._data_dir)

    def close(self) -> None:
        """Close the topic logs it created, remove the lock file and release the lock."""
        for topic_log in self._topic_logs:
            topic_log.close()
        self._topic_logs.clear()

        if self._lock_file is None:
            return
        lock_path = self.lock_path
        if lock_path.exists():
            try:
                lock_path.unlink()
            except OSError as exc:
                log.warning("Failed to remove lock file %s: %s", lock_path, exc)
        try:
            portalocker.unlock(self._lock_file)
        except (portalocker.LockException, OSError):
            pass
        self._lock_file.close()
        self._lock_file = None


def _ensure_data_directory_exists(data_dir: Path) -> None:
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"Failed to create data directory: {exc}") from exc


def _open_lock_file(lock_path: Path) -> BinaryIO:
    existed = lock_path.exists()
    try:
        fd = os.open(lock_path, os.O_WRONLY | os.O_CREAT, 0o644)
    except OSError as exc:
        what = "open existing" if existed else "create"
        raise StorageError(f"Failed to {what} lock file: {exc}") from exc
    return os.fdopen(fd, "wb")


def _try_lock(handle: BinaryIO) -> bool:
    try:
        portalocker.lock(
            handle, portalocker.LockFlags.EXCLUSIVE | portalocker.LockFlags.NON_BLOCKING
        )
    except (portalocker.LockException, OSError):
        return False
    return True


def _write_lock_metadata(handle: BinaryIO) -> None:
    timestamp = datetime.now(timezone.utc).isoformat()
    info = f"PID: {os.getpid()}\nTimestamp: {timestamp}\n"
    try:
        handle.seek(0)
        handle.truncate(0)
        handle.write(info.encode("utf-8"))
        handle.flush()
    except OSError as exc:
        raise StorageError(f"Failed to write lock metadata: {exc}") from exc


def _extract_pid_from_lock_file(lock_path: Path) -> Optional[int]:
    try:
        content = lock_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    line = next((ln for ln in content.splitlines() if ln.startswith("PID:")), None)
    if line is None:
        return None
    parts = line.split()
    if len(parts) < 2 or not parts[1].isdigit():
        return None
    pid = int(parts[1])
    return pid if pid < 2**32 else None


def _is_process_alive(pid: int) -> bool:
    try:
        return psutil.pid_exists(pid)
    except (OSError, ValueError):
        return False


def _acquire_directory_lock(data_dir: Path) -> BinaryIO:
    _ensure_data_directory_exists(data_dir)
    lock_path = data_dir / LOCK_FILE_NAME
    while True:
        handle = _open_lock_file(lock_path)
        if _try_lock(handle):
            try:
                _write_lock_metadata(handle)
            except StorageError:
                handle.close()
                raise
            return handle

        handle.close()
        pid = _extract_pid_from_lock_file(lock_path)
        if pid is not None and _is_process_alive(pid):
            raise DirectoryLockedError(_LOCKED_CONTEXT, pid)
        try:
            lock_path.unlink()
        except OSError:
            raise DirectoryLockedError(_LOCKED_CONTEXT, None) from None