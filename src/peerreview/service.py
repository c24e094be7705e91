"""Review assignment service — unified facade over the assignment engine.

This is the primary interface for programmatic access. It orchestrates:
- Assignment setup (assignments, participants, teams, sign-ups,
  submissions)
- Dynamic reviewer assignment (select a contributor, record the mapping)
- Dynamic metareviewer assignment (select a review, record the mapping)
- Review responses
- Audit trail (event log)

The selectors only choose; this service is the one place that records.
Choosing and recording run as a single critical section per assignment,
so two reviewers asking at the same time can never be handed the same
pair, and the counters a selection relied on cannot change before the
mapping is stored. Different assignments never wait on each other.

All operations produce typed results. Audit events are never silently
dropped: if the event log rejects an event, the change it describes is
rolled back and the operation fails.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from peerreview.models.assignment import (
    Assignment,
    DueDate,
    MetareviewMapping,
    Participant,
    Response,
    ReviewMapping,
    ReviewStrategy,
    Team,
    Topic,
)
from peerreview.persistence.event_log import (
    EventKind,
    EventLog,
    EventRecord,
    ReviewHistoryEntry,
)
from peerreview.policy.resolver import PolicyResolver
from peerreview.review.mappings import MappingStore
from peerreview.review.metareview import MetareviewerSelector
from peerreview.review.registry import ContributorRegistry
from peerreview.review.results import AssignmentResult
from peerreview.review.selector import ReviewerSelector
from peerreview.review.stage import DeadlineStageOracle, StageOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def _failure(result: AssignmentResult) -> ServiceResult:
    return ServiceResult(
        success=False,
        errors=[result.message],
        data={"reason": result.reason.value, "category": result.category.value},
    )


class ReviewAssignmentService:
    """Unified review-assignment facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = ReviewAssignmentService(resolver, event_log=EventLog())

        service.create_assignment("A1", "Essay 1")
        service.add_participant("A1", "p1", user_id="alice")
        service.record_submission("A1", "p1")

        result = service.assign_reviewer_dynamically("A1", "p2")
        result = service.submit_response(result.data["map_id"], "Looks good")
        result = service.assign_metareviewer_dynamically("A1", "p3")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        registry: Optional[ContributorRegistry] = None,
        store: Optional[MappingStore] = None,
        oracle: Optional[StageOracle] = None,
        event_log: Optional[EventLog] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._resolver = resolver
        self._registry = registry if registry is not None else ContributorRegistry()
        self._store = store if store is not None else MappingStore()
        self._oracle = oracle if oracle is not None else DeadlineStageOracle(resolver)
        self._event_log = event_log

        self._reviewer_selector = ReviewerSelector(resolver, self._oracle, rng=rng)
        self._metareviewer_selector = MetareviewerSelector()

        # One lock per assignment; the guard protects the lock table itself
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        # Event IDs and log appends are shared across assignments
        self._audit_lock = threading.Lock()
        self._event_counter = event_log.count if event_log is not None else 0

    # ------------------------------------------------------------------
    # Assignment setup
    # ------------------------------------------------------------------

    def create_assignment(
        self,
        assignment_id: str,
        name: str,
        team_assignment: bool = False,
        topics: Optional[list[Topic]] = None,
        review_topic_threshold: Optional[int] = None,
        review_strategy: Optional[ReviewStrategy] = None,
        staggered_deadline: bool = False,
        due_dates: Optional[list[DueDate]] = None,
    ) -> ServiceResult:
        """Create an assignment; unset options come from policy defaults."""
        if self._registry.get_assignment(assignment_id) is not None:
            return ServiceResult(
                success=False,
                errors=[f"Assignment already exists: {assignment_id}"],
            )

        defaults = self._resolver.assignment_defaults()
        assignment = Assignment(
            assignment_id=assignment_id,
            name=name,
            team_assignment=team_assignment,
            topics=list(topics or []),
            review_topic_threshold=(
                defaults.review_topic_threshold
                if review_topic_threshold is None else review_topic_threshold
            ),
            review_strategy=review_strategy or defaults.review_strategy,
            staggered_deadline=staggered_deadline,
            due_dates=list(due_dates or []),
        )
        try:
            self._registry.register_assignment(assignment)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        aid = assignment.assignment_id
        err = self._record_event(
            EventKind.ASSIGNMENT_CREATED, "system",
            {"assignment_id": aid, "team_assignment": team_assignment},
        )
        if err:
            self._registry.remove_assignment(aid)
            return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True, data={"assignment_id": aid})

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        return self._registry.get_assignment(assignment_id)

    def add_participant(
        self,
        assignment_id: str,
        participant_id: str,
        user_id: str,
        handle: str = "",
    ) -> ServiceResult:
        """Add a user to an assignment as a participant."""
        assignment = self._registry.get_assignment(assignment_id)
        if assignment is None:
            return ServiceResult(
                success=False, errors=[f"Assignment not found: {assignment_id}"],
            )
        aid = assignment.assignment_id
        participant = Participant(
            participant_id=participant_id.strip(),
            user_id=user_id,
            assignment_id=aid,
            handle=handle or user_id,
        )
        with self._lock_for(aid):
            try:
                self._registry.add_participant(participant)
            except (ValueError, KeyError) as e:
                return ServiceResult(success=False, errors=[_message(e)])

            err = self._record_event(
                EventKind.PARTICIPANT_ADDED, user_id,
                {"assignment_id": aid,
                 "participant_id": participant.participant_id},
            )
            if err:
                self._registry.remove_contributor(participant.participant_id)
                return ServiceResult(success=False, errors=[err])
        return ServiceResult(
            success=True, data={"participant_id": participant.participant_id},
        )

    def create_team(
        self,
        assignment_id: str,
        team_id: str,
        member_user_ids: set[str] | frozenset[str],
        name: str = "",
    ) -> ServiceResult:
        """Create a team of users for an assignment."""
        assignment = self._registry.get_assignment(assignment_id)
        if assignment is None:
            return ServiceResult(
                success=False, errors=[f"Assignment not found: {assignment_id}"],
            )
        aid = assignment.assignment_id
        team = Team(
            team_id=team_id.strip(),
            assignment_id=aid,
            member_user_ids=frozenset(member_user_ids),
            name=name or team_id,
        )
        with self._lock_for(aid):
            try:
                self._registry.add_team(team)
            except (ValueError, KeyError) as e:
                return ServiceResult(success=False, errors=[_message(e)])

            err = self._record_event(
                EventKind.TEAM_CREATED, "system",
                {"assignment_id": aid, "team_id": team.team_id,
                 "members": sorted(team.member_user_ids)},
            )
            if err:
                self._registry.remove_contributor(team.team_id)
                return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True, data={"team_id": team.team_id})

    def sign_up(
        self,
        assignment_id: str,
        contributor_id: str,
        topic_id: str,
    ) -> ServiceResult:
        """Sign a contributor up for a topic, replacing any earlier choice."""
        aid = assignment_id.strip()
        with self._lock_for(aid):
            err = self._check_contributor(aid, contributor_id)
            if err:
                return ServiceResult(success=False, errors=[err])
            previous = self._registry.signed_up_topic(contributor_id)
            try:
                self._registry.sign_up(contributor_id, topic_id)
            except ValueError as e:
                return ServiceResult(success=False, errors=[str(e)])

            err = self._record_event(
                EventKind.TOPIC_SIGNED_UP, contributor_id,
                {"assignment_id": aid, "topic_id": topic_id},
            )
            if err:
                if previous is None:
                    self._registry.drop_topic(contributor_id)
                else:
                    self._registry.sign_up(contributor_id, previous.topic_id)
                return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True, data={"topic_id": topic_id})

    def record_submission(self, assignment_id: str, contributor_id: str) -> ServiceResult:
        """Mark that a contributor has submitted work."""
        aid = assignment_id.strip()
        with self._lock_for(aid):
            err = self._check_contributor(aid, contributor_id)
            if err:
                return ServiceResult(success=False, errors=[err])
            already = self._registry.has_submissions(contributor_id)
            self._registry.record_submission(contributor_id)

            err = self._record_event(
                EventKind.SUBMISSION_RECORDED, contributor_id,
                {"assignment_id": aid},
            )
            if err:
                if not already:
                    self._registry.withdraw_submission(contributor_id)
                return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True)

    # ------------------------------------------------------------------
    # Dynamic reviewer assignment
    # ------------------------------------------------------------------

    def candidate_topics(self, assignment_id: str) -> ServiceResult:
        """List the topics currently open for review.

        data["topics"] is None for an assignment without topics.
        """
        assignment = self._registry.get_assignment(assignment_id)
        if assignment is None:
            return ServiceResult(
                success=False, errors=[f"Assignment not found: {assignment_id}"],
            )
        with self._lock_for(assignment.assignment_id):
            snapshot = self._registry.snapshot(assignment.assignment_id, self._store)
            topics = self._reviewer_selector.candidate_topics_to_review(snapshot)
        return ServiceResult(
            success=True,
            data={"topics": None if topics is None else sorted(t.topic_id for t in topics)},
        )

    def assign_reviewer_dynamically(
        self,
        assignment_id: str,
        reviewer_id: str,
        topic_id: Optional[str] = None,
        seed: str | int | None = None,
    ) -> ServiceResult:
        """Choose a contributor for the reviewer and record the mapping."""
        assignment = self._registry.get_assignment(assignment_id)
        if assignment is None:
            return ServiceResult(
                success=False, errors=[f"Assignment not found: {assignment_id}"],
            )
        if not assignment.uses_dynamic_assignment:
            return ServiceResult(
                success=False,
                errors=["Reviewers for this assignment are selected by the instructor"],
            )
        reviewer = self._registry.participant(reviewer_id)
        if reviewer is None or reviewer.assignment_id != assignment.assignment_id:
            return ServiceResult(
                success=False,
                errors=[f"Reviewer is not a participant of {assignment_id}: {reviewer_id}"],
            )

        topic: Optional[Topic] = None
        if topic_id is not None:
            topic = assignment.topic(topic_id)
            if topic is None and assignment.has_topics:
                return ServiceResult(
                    success=False, errors=[f"Topic not found: {topic_id}"],
                )
            if topic is None:
                # Let the selector report that topics do not apply here
                topic = Topic(topic_id=topic_id)

        with self._lock_for(assignment.assignment_id):
            snapshot = self._registry.snapshot(assignment.assignment_id, self._store)
            result = self._reviewer_selector.contributor_to_review(
                snapshot, reviewer, topic, seed=seed,
            )
            if not result.success:
                return _failure(result)

            contributor = result.target
            try:
                mapping = self._store.add_review_mapping(
                    assignment.assignment_id, reviewer.participant_id,
                    contributor.contributor_id,
                )
            except ValueError as e:
                return ServiceResult(success=False, errors=[str(e)])

            err = self._record_event(
                EventKind.REVIEWER_ASSIGNED, reviewer.user_id,
                {"assignment_id": assignment.assignment_id,
                 "map_id": mapping.map_id,
                 "reviewer_id": reviewer.participant_id,
                 "reviewee_id": contributor.contributor_id},
            )
            if err:
                self._store.remove_review_mapping(mapping.map_id)
                return ServiceResult(success=False, errors=[err])

        logger.info(
            "Assigned reviewer %s to %s %s (map %d)",
            reviewer.participant_id, contributor.kind.value,
            contributor.contributor_id, mapping.map_id,
        )
        return ServiceResult(
            success=True,
            data={
                "map_id": mapping.map_id,
                "reviewee_id": contributor.contributor_id,
                "reviewee_kind": contributor.kind.value,
            },
        )

    def submit_response(
        self,
        map_id: int,
        content: str,
        submitted_utc: Optional[datetime] = None,
    ) -> ServiceResult:
        """Attach a completed review to a review mapping."""
        mapping = self._store.review_mapping(map_id)
        if mapping is None:
            return ServiceResult(
                success=False, errors=[f"Review mapping not found: {map_id}"],
            )
        response = Response(
            content=content,
            submitted_utc=submitted_utc or datetime.now(timezone.utc),
        )
        with self._lock_for(mapping.assignment_id):
            previous = self._store.review_mapping(map_id)
            self._store.attach_response(map_id, response)
            err = self._record_event(
                EventKind.RESPONSE_SUBMITTED, mapping.reviewer_id,
                {"assignment_id": mapping.assignment_id, "map_id": map_id},
            )
            if err:
                self._store.attach_response(map_id, previous.response)
                return ServiceResult(success=False, errors=[err])
        return ServiceResult(success=True, data={"map_id": map_id})

    # ------------------------------------------------------------------
    # Dynamic metareviewer assignment
    # ------------------------------------------------------------------

    def assign_metareviewer_dynamically(
        self,
        assignment_id: str,
        metareviewer_id: str,
    ) -> ServiceResult:
        """Choose a completed review for the metareviewer and record the mapping."""
        assignment = self._registry.get_assignment(assignment_id)
        if assignment is None:
            return ServiceResult(
                success=False, errors=[f"Assignment not found: {assignment_id}"],
            )
        if not assignment.uses_dynamic_assignment:
            return ServiceResult(
                success=False,
                errors=["Metareviewers for this assignment are selected by the instructor"],
            )
        metareviewer = self._registry.participant(metareviewer_id)
        if metareviewer is None or metareviewer.assignment_id != assignment.assignment_id:
            return ServiceResult(
                success=False,
                errors=[
                    f"Metareviewer is not a participant of {assignment_id}: "
                    f"{metareviewer_id}"
                ],
            )

        with self._lock_for(assignment.assignment_id):
            snapshot = self._registry.snapshot(assignment.assignment_id, self._store)
            result = self._metareviewer_selector.response_map_to_metareview(
                snapshot, metareviewer,
            )
            if not result.success:
                return _failure(result)

            review = result.target
            try:
                mapping = self._store.add_metareview_mapping(
                    metareviewer.participant_id, review.map_id,
                )
            except (ValueError, KeyError) as e:
                return ServiceResult(success=False, errors=[_message(e)])

            err = self._record_event(
                EventKind.METAREVIEWER_ASSIGNED, metareviewer.user_id,
                {"assignment_id": assignment.assignment_id,
                 "map_id": mapping.map_id,
                 "metareviewer_id": metareviewer.participant_id,
                 "review_map_id": review.map_id},
            )
            if err:
                self._store.remove_metareview_mapping(mapping.map_id)
                return ServiceResult(success=False, errors=[err])

        logger.info(
            "Assigned metareviewer %s to review %d (map %d)",
            metareviewer.participant_id, review.map_id, mapping.map_id,
        )
        return ServiceResult(
            success=True,
            data={"map_id": mapping.map_id, "review_map_id": review.map_id},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_review_mapping(self, map_id: int) -> Optional[ReviewMapping]:
        return self._store.review_mapping(map_id)

    def review_mappings(self, assignment_id: str) -> list[ReviewMapping]:
        return self._store.review_mappings(assignment_id.strip())

    def metareview_mappings(self, assignment_id: str) -> list[MetareviewMapping]:
        return self._store.metareview_mappings(assignment_id.strip())

    def review_history(self, assignment_id: str) -> list[ReviewHistoryEntry]:
        """Review mappings of an assignment as recorded in the audit log."""
        if self._event_log is None:
            return []
        return self._event_log.review_history(assignment_id.strip())

    def review_number(self, map_id: int) -> Optional[int]:
        """1-based position of a review among its reviewer's reviews.

        Lets a reviewer be told which of their reviews has new content
        without linking to the submission itself.
        """
        mapping = self._store.review_mapping(map_id)
        if mapping is None:
            return None
        number = 1
        for m in self._store.review_mappings_by_reviewer(mapping.reviewer_id):
            if m.reviewee_id == mapping.reviewee_id:
                break
            number += 1
        return number

    def status(self) -> dict[str, Any]:
        return {
            "assignments": self._registry.assignment_count,
            "participants": self._registry.participant_count,
            "teams": self._registry.team_count,
            "review_mappings": self._store.review_count,
            "metareview_mappings": self._store.metareview_count,
            "events": self._event_log.count if self._event_log is not None else 0,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, assignment_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(assignment_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[assignment_id] = lock
            return lock

    def _check_contributor(self, assignment_id: str, contributor_id: str) -> Optional[str]:
        try:
            owner = self._registry.assignment_of(contributor_id)
        except KeyError as e:
            return _message(e)
        if owner.assignment_id != assignment_id:
            return f"Contributor {contributor_id} does not belong to {assignment_id}"
        return None

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        if self._event_log is None:
            return None
        with self._audit_lock:
            try:
                event = EventRecord.create(
                    event_id=self._next_event_id(),
                    event_kind=kind,
                    actor_id=actor_id,
                    payload=payload,
                )
                self._event_log.append(event)
            except (ValueError, OSError) as e:
                return f"Event log failure: {e}"
        return None


def _message(error: Exception) -> str:
    """KeyError wraps its message in quotes; unwrap it."""
    if isinstance(error, KeyError) and error.args:
        return str(error.args[0])
    return str(error)
