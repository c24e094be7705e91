"""Audit log of recorded review assignments.

The service appends one record for every change it makes to who reviews
whom: assignments and contributors being set up, reviewers and
metareviewers being assigned, and reviews being completed. Each event
kind declares the payload fields it must carry, so a record that could
not be replayed is refused at creation time.

Records are sealed with a SHA-256 digest over their canonical JSON. When
the log is backed by a JSONL file, every line is re-sealed on load and a
mismatch or a repeated event ID stops the load.

review_history() replays the log into the review mappings of one
assignment, in the order they were created.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class EventKind(str, enum.Enum):
    ASSIGNMENT_CREATED = "assignment_created"
    PARTICIPANT_ADDED = "participant_added"
    TEAM_CREATED = "team_created"
    TOPIC_SIGNED_UP = "topic_signed_up"
    SUBMISSION_RECORDED = "submission_recorded"
    REVIEWER_ASSIGNED = "reviewer_assigned"
    METAREVIEWER_ASSIGNED = "metareviewer_assigned"
    RESPONSE_SUBMITTED = "response_submitted"

    @property
    def required_fields(self) -> tuple[str, ...]:
        return _REQUIRED_FIELDS[self]


_REQUIRED_FIELDS: dict[EventKind, tuple[str, ...]] = {
    EventKind.ASSIGNMENT_CREATED: ("assignment_id",),
    EventKind.PARTICIPANT_ADDED: ("assignment_id", "participant_id"),
    EventKind.TEAM_CREATED: ("assignment_id", "team_id", "members"),
    EventKind.TOPIC_SIGNED_UP: ("assignment_id", "topic_id"),
    EventKind.SUBMISSION_RECORDED: ("assignment_id",),
    EventKind.REVIEWER_ASSIGNED: (
        "assignment_id", "map_id", "reviewer_id", "reviewee_id",
    ),
    EventKind.METAREVIEWER_ASSIGNED: (
        "assignment_id", "map_id", "metareviewer_id", "review_map_id",
    ),
    EventKind.RESPONSE_SUBMITTED: ("assignment_id", "map_id"),
}


def _seal(fields: dict[str, Any]) -> str:
    body = json.dumps(fields, sort_keys=True, ensure_ascii=False)
    return "sha256:" + hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    """One sealed audit entry."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Build and seal a record.

        Raises ValueError if the payload lacks a field its kind requires.
        """
        missing = [f for f in event_kind.required_fields if f not in payload]
        if missing:
            raise ValueError(
                f"{event_kind.value} event {event_id} is missing {', '.join(missing)}"
            )
        stamp = (timestamp_utc or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
        unsealed = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "timestamp_utc": stamp,
            "actor_id": actor_id,
            "payload": payload,
        }
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=stamp,
            actor_id=actor_id,
            payload=payload,
            event_hash=_seal(unsealed),
        )

    @property
    def assignment_id(self) -> str:
        return self.payload["assignment_id"]

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }

    @staticmethod
    def from_json(data: dict[str, Any]) -> EventRecord:
        """Rebuild a stored record, refusing it if its seal does not match."""
        unsealed = {k: v for k, v in data.items() if k != "event_hash"}
        if _seal(unsealed) != data["event_hash"]:
            raise ValueError(f"Event {data['event_id']} does not match its seal")
        return EventRecord(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )


@dataclass
class ReviewHistoryEntry:
    """A review mapping as reconstructed from the log."""
    map_id: int
    reviewer_id: str
    reviewee_id: str
    responded: bool = False
    metareviewer_ids: list[str] = field(default_factory=list)


class EventLog:
    """Append-only audit log, in memory and optionally mirrored to JSONL.

    A record reaches the file before it becomes visible in memory, so a
    failed write leaves no trace the caller has to undo.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._records: list[EventRecord] = []
        self._seen: set[str] = set()
        self._storage_path = storage_path
        if storage_path is not None and storage_path.exists():
            self._load(storage_path)

    def append(self, event: EventRecord) -> None:
        """Raises ValueError if the event ID was already used."""
        if event.event_id in self._seen:
            raise ValueError(f"Event ID already recorded: {event.event_id}")
        if self._storage_path is not None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_json(), sort_keys=True, ensure_ascii=False))
                f.write("\n")
        self._records.append(event)
        self._seen.add(event.event_id)

    def events(
        self,
        kind: Optional[EventKind] = None,
        assignment_id: Optional[str] = None,
    ) -> list[EventRecord]:
        return [
            e for e in self._records
            if (kind is None or e.event_kind == kind)
            and (assignment_id is None or e.assignment_id == assignment_id)
        ]

    @property
    def count(self) -> int:
        return len(self._records)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._records[-1] if self._records else None

    def review_history(self, assignment_id: str) -> list[ReviewHistoryEntry]:
        """Review mappings of an assignment, replayed in creation order."""
        entries: dict[int, ReviewHistoryEntry] = {}
        for e in self.events(assignment_id=assignment_id):
            p = e.payload
            if e.event_kind == EventKind.REVIEWER_ASSIGNED:
                entries[p["map_id"]] = ReviewHistoryEntry(
                    map_id=p["map_id"],
                    reviewer_id=p["reviewer_id"],
                    reviewee_id=p["reviewee_id"],
                )
            elif e.event_kind == EventKind.RESPONSE_SUBMITTED and p["map_id"] in entries:
                entries[p["map_id"]].responded = True
            elif (
                e.event_kind == EventKind.METAREVIEWER_ASSIGNED
                and p["review_map_id"] in entries
            ):
                entries[p["review_map_id"]].metareviewer_ids.append(p["metareviewer_id"])
        return [entries[k] for k in sorted(entries)]

    def _load(self, path: Path) -> None:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    event = EventRecord.from_json(json.loads(line))
                except ValueError as e:
                    raise ValueError(f"{path}:{line_num}: {e}") from e
                if event.event_id in self._seen:
                    raise ValueError(
                        f"{path}:{line_num}: event {event.event_id} appears twice"
                    )
                self._records.append(event)
                self._seen.add(event.event_id)
