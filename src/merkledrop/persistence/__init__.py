"""Persistence — append-only audit log of ledger and registry events."""

from merkledrop.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
