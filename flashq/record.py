"""Records stored in topics and their offset-stamped form."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional


def _utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a JSON object, got {type(data).__name__}")
    return data


def _optional_str(data: Mapping[str, Any], name: str) -> Optional[str]:
    value = data.get(name)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"field `{name}` must be a string or null")
    return value


def _optional_headers(data: Mapping[str, Any]) -> Optional[dict[str, str]]:
    headers = data.get("headers")
    if headers is None:
        return None
    if not isinstance(headers, Mapping):
        raise ValueError("field `headers` must be an object or null")
    for name, value in headers.items():
        if not isinstance(name, str) or not isinstance(value, str):
            raise ValueError("header names and values must be strings")
    return dict(headers)


@dataclass
class Record:
    """A message posted to a topic: an optional key, a value and optional headers."""

    key: Optional[str]
    value: str
    headers: Optional[dict[str, str]] = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form of the record."""
        return {
            "key": self.key,
            "value": self.value,
            "headers": dict(self.headers) if self.headers is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from its JSON form; unknown fields are ignored."""
        data = _require_mapping(data, "record")
        if "value" not in data:
            raise ValueError("missing field `value`")
        value = data["value"]
        if not isinstance(value, str):
            raise ValueError("field `value` must be a string")
        return cls(
            key=_optional_str(data, "key"),
            value=value,
            headers=_optional_headers(data),
        )


@dataclass
class RecordWithOffset:
    """A record together with its position in a topic and the time it was stamped."""

    record: Record
    offset: int
    timestamp: str

    @classmethod
    def from_record(cls, record: Record, offset: int) -> "RecordWithOffset":
        """Stamp a record with an offset and the current UTC time."""
        return cls(record=record, offset=offset, timestamp=_utc_now_rfc3339())

    def to_dict(self) -> dict[str, Any]:
        """Return the flattened JSON-ready form: record fields, offset and timestamp."""
        data = self.record.to_dict()
        data["offset"] = self.offset
        data["timestamp"] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RecordWithOffset":
        """Build an offset-stamped record from its flattened JSON form."""
        data = _require_mapping(data, "record with offset")
        record = Record.from_dict(data)
        if "offset" not in data:
            raise ValueError("missing field `offset`")
        offset = data["offset"]
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValueError("field `offset` must be a non-negative integer")
        if "timestamp" not in data:
            raise ValueError("missing field `timestamp`")
        timestamp = data["timestamp"]
        if not isinstance(timestamp, str):
            raise ValueError("field `timestamp` must be a string")
        return cls(record=record, offset=offset, timestamp=timestamp)