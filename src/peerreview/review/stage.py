"""Stage oracle — resolves the current lifecycle stage of an assignment
or of one of its topics.

The matching pipelines only consume stages; they never decide whether
reviewing is currently allowed. Two oracles are provided:

- DeadlineStageOracle derives the stage from the assignment's due dates.
  For staggered-deadline assignments every topic has its own deadlines,
  and an assignment-level question without a topic is "unknown".
- StaticStageOracle answers from a fixed table, for callers that track
  stages elsewhere.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from peerreview.models.assignment import Assignment, DueDate, Stage
from peerreview.policy.resolver import PolicyResolver


class StageOracle(Protocol):
    def stage_of(self, assignment: Assignment, topic_id: Optional[str] = None) -> Stage:
        ...


class StaticStageOracle:
    """Fixed stage table keyed by topic ID, with an assignment-wide fallback."""

    def __init__(
        self,
        default: Stage = Stage.REVIEW,
        topic_stages: Optional[dict[str, Stage]] = None,
    ) -> None:
        self._default = default
        self._topic_stages = dict(topic_stages or {})

    def set_stage(self, topic_id: str, stage: Stage) -> None:
        self._topic_stages[topic_id] = stage

    def stage_of(self, assignment: Assignment, topic_id: Optional[str] = None) -> Stage:
        if topic_id is None:
            return self._default
        return self._topic_stages.get(topic_id, self._default)


class DeadlineStageOracle:
    """Resolves stages and action rights from due dates.

    The current stage is the deadline type of the nearest due date that
    has not passed yet. Once every due date has passed, or if there are
    none, the assignment (or topic) is complete.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _due_dates(
        self,
        assignment: Assignment,
        topic_id: Optional[str],
    ) -> list[DueDate]:
        if assignment.staggered_deadline:
            if topic_id is None:
                dates = [d for d in assignment.due_dates if d.topic_id is not None]
            else:
                dates = [d for d in assignment.due_dates if d.topic_id == topic_id]
        else:
            dates = [d for d in assignment.due_dates if d.topic_id is None]
        return sorted(dates, key=lambda d: d.due_at)

    def next_due_date(
        self,
        assignment: Assignment,
        topic_id: Optional[str] = None,
    ) -> Optional[DueDate]:
        """The earliest due date still in the future, or None."""
        now = self._now()
        for d in self._due_dates(assignment, topic_id):
            if d.due_at > now:
                return d
        return None

    def stage_of(self, assignment: Assignment, topic_id: Optional[str] = None) -> Stage:
        if assignment.staggered_deadline and topic_id is None:
            return Stage.UNKNOWN
        due = self.next_due_date(assignment, topic_id)
        if due is None:
            return Stage.COMPLETE
        return due.deadline_type

    def stage_deadline(
        self,
        assignment: Assignment,
        topic_id: Optional[str] = None,
    ) -> Optional[datetime]:
        """When the current stage ends; None if complete or unknown."""
        if assignment.staggered_deadline and topic_id is None:
            return None
        due = self.next_due_date(assignment, topic_id)
        return due.due_at if due is not None else None

    def review_rounds(self, assignment: Assignment) -> int:
        """Number of review and rereview deadlines on the assignment."""
        round_stages = self._resolver.review_round_stages()
        return sum(
            1 for d in assignment.due_dates
            if d.topic_id is None and d.deadline_type in round_stages
        )

    # ------------------------------------------------------------------
    # Action rights
    # ------------------------------------------------------------------

    def _allowed(
        self,
        assignment: Assignment,
        action: str,
        topic_id: Optional[str],
    ) -> bool:
        due = self.next_due_date(assignment, topic_id)
        if due is None:
            return False
        return due.allows(action)

    def submission_allowed(self, assignment: Assignment, topic_id: Optional[str] = None) -> bool:
        return self._allowed(assignment, "submission", topic_id)

    def review_allowed(self, assignment: Assignment, topic_id: Optional[str] = None) -> bool:
        """Reviewing is also open whenever metareviewing is."""
        return (
            self._allowed(assignment, "review", topic_id)
            or self.metareview_allowed(assignment)
        )

    def metareview_allowed(self, assignment: Assignment, topic_id: Optional[str] = None) -> bool:
        return self._allowed(assignment, "metareview", topic_id)

    def signup_allowed(self, assignment: Assignment, topic_id: Optional[str] = None) -> bool:
        return self._allowed(assignment, "signup", topic_id)

    def drop_allowed(self, assignment: Assignment, topic_id: Optional[str] = None) -> bool:
        return self._allowed(assignment, "drop", topic_id)
