"""Persistence layer — audit event log."""

from peerreview.persistence.event_log import (
    EventKind,
    EventLog,
    EventRecord,
    ReviewHistoryEntry,
)

__all__ = ["EventKind", "EventLog", "EventRecord", "ReviewHistoryEntry"]
