"""Append-only event log — the audit trail of every committed ledger action.

Every successful mutation of the entitlement ledger or the contributor
registry appends one event. Events are immutable once written. Rejected
or rolled-back operations never reach the log.

The log can be persisted as JSONL (one canonical JSON object per line)
and is integrity-checked when loaded back: each record's hash is
recomputed and duplicate event ids are refused.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence


class EventKind(str, enum.Enum):
    """What happened."""
    EPOCH_CREATED = "epoch_created"
    EPOCH_CANCELLED = "epoch_cancelled"
    CLAIMED = "claimed"
    EMERGENCY_WITHDRAW = "emergency_withdraw"
    ROOT_UPDATED = "root_updated"
    CONTRIBUTOR_REGISTERED = "contributor_registered"


def _digest(body: dict[str, Any]) -> str:
    encoded = json.dumps(body, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return "sha256:" + hashlib.sha256(encoded).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event.

    Payload values must be JSON-serializable; digests are stored as hex
    strings and amounts as decimal strings so uint256 values survive
    any JSON reader.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @classmethod
    def create(
        cls,
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> "EventRecord":
        stamp = (timestamp_utc or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "timestamp_utc": stamp,
            "actor_id": actor_id,
            "payload": payload,
        }
        return cls(event_id, event_kind, stamp, actor_id, payload, _digest(body))

    def body(self) -> dict[str, Any]:
        """The hashed fields, in their serialized form."""
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(
            {**self.body(), "event_hash": self.event_hash},
            sort_keys=True,
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, line: str) -> "EventRecord":
        """Parse one stored line. Raises ValueError if its hash does not match."""
        data = json.loads(line)
        record = cls(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )
        expected = _digest(record.body())
        if record.event_hash != expected:
            raise ValueError(
                f"Integrity check failed for {record.event_id}: "
                f"stored {record.event_hash}, computed {expected}"
            )
        return record


class EventLog:
    """Append-only event log with optional file persistence.

    Usage:
        log = EventLog(storage_path=Path("data/events.jsonl"))
        log.record(EventKind.CLAIMED, actor_id="0xabc...", payload={...})
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path is not None and storage_path.exists():
            for line_num, event in self._read(storage_path):
                if event.event_id in self._ids:
                    raise ValueError(f"Duplicate event ID {event.event_id} on line {line_num}")
                self._keep(event)

    def append(self, event: EventRecord) -> None:
        """Append an event. A repeated event_id raises ValueError."""
        self._commit([event])

    def record(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create and append an event with the next sequential id."""
        return self.record_all([(kind, actor_id, payload)], timestamp_utc)[0]

    def record_all(
        self,
        entries: Sequence[tuple[EventKind, str, dict[str, Any]]],
        timestamp_utc: Optional[datetime] = None,
    ) -> list[EventRecord]:
        """Create and append several events as one write.

        Either every event is persisted and kept, or none is.
        """
        events = [
            EventRecord.create(
                f"evt_{self.count + offset:08d}", kind, actor_id, payload, timestamp_utc,
            )
            for offset, (kind, actor_id, payload) in enumerate(entries, 1)
        ]
        self._commit(events)
        return events

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _commit(self, events: Sequence[EventRecord]) -> None:
        ids = [e.event_id for e in events]
        for event_id in ids:
            if event_id in self._ids or ids.count(event_id) > 1:
                raise ValueError(f"Duplicate event ID: {event_id}")
        if not events:
            return
        if self._storage_path is not None:
            lines = "".join(e.to_json() + "\n" for e in events)
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(lines)
        for event in events:
            self._keep(event)

    def _keep(self, event: EventRecord) -> None:
        self._events.append(event)
        self._ids.add(event.event_id)

    @staticmethod
    def _read(path: Path) -> Iterator[tuple[int, EventRecord]]:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                if line.strip():
                    yield line_num, EventRecord.from_json(line)
