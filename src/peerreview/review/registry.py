"""Contributor registry — assignments, participants, teams and sign-ups.

The registry is the source of truth for who can be reviewed. It exposes,
per assignment, either its teams or its participants uniformly as
Contributors, and tracks for each contributor:
- Whether it has submitted work.
- Which topic (if any) it signed up for.

Matching never reads the registry directly. Each matching call takes a
MatchingSnapshot at its start, and every fairness counter is derived
from that snapshot, so the counters stay consistent for the whole call
even if the backing mapping store changes underneath.

Invariants enforced:
- A user participates in an assignment at most once.
- A user belongs to at most one team per assignment.
- A contributor signs up for at most one topic, which must belong to
  its assignment.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from peerreview.models.assignment import (
    Assignment,
    Contributor,
    MetareviewMapping,
    Participant,
    ReviewMapping,
    Team,
    Topic,
)
from peerreview.review.mappings import MappingStore

logger = logging.getLogger(__name__)


class MatchingSnapshot:
    """Immutable view of one assignment's contributors and mappings.

    All counters are pure functions of the captured mappings.
    """

    def __init__(
        self,
        assignment: Assignment,
        contributors: list[Contributor],
        signups: dict[str, Topic],
        participants: dict[str, Participant],
        review_mappings: list[ReviewMapping],
        metareview_mappings: list[MetareviewMapping],
    ) -> None:
        self.assignment = assignment
        self.contributors: tuple[Contributor, ...] = tuple(contributors)
        self.review_mappings: tuple[ReviewMapping, ...] = tuple(
            sorted(review_mappings, key=lambda m: m.map_id)
        )
        self.metareview_mappings: tuple[MetareviewMapping, ...] = tuple(
            sorted(metareview_mappings, key=lambda mm: mm.map_id)
        )
        self._signups = dict(signups)
        self._participants = dict(participants)
        self._by_id = {c.contributor_id: c for c in self.contributors}

        # Indexes, built once
        self._reviews_of: dict[str, list[ReviewMapping]] = {}
        self._reviews_by: dict[str, list[ReviewMapping]] = {}
        for m in self.review_mappings:
            self._reviews_of.setdefault(m.reviewee_id, []).append(m)
            self._reviews_by.setdefault(m.reviewer_id, []).append(m)
        self._metareviews_of: dict[int, list[MetareviewMapping]] = {}
        for mm in self.metareview_mappings:
            self._metareviews_of.setdefault(mm.review_map_id, []).append(mm)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def contributor(self, contributor_id: str) -> Optional[Contributor]:
        return self._by_id.get(contributor_id)

    def participant(self, participant_id: str) -> Optional[Participant]:
        return self._participants.get(participant_id)

    def signed_up_topic(self, contributor_id: str) -> Optional[Topic]:
        return self._signups.get(contributor_id)

    # ------------------------------------------------------------------
    # Review counters (per reviewee contributor)
    # ------------------------------------------------------------------

    def received_review_count(self, contributor_id: str) -> int:
        """Number of review mappings targeting the contributor."""
        return len(self._reviews_of.get(contributor_id, []))

    def response_count(self, contributor_id: str) -> int:
        """Number of completed reviews the contributor has received."""
        return sum(
            1 for m in self._reviews_of.get(contributor_id, []) if m.has_response
        )

    def latest_review_token(self, contributor_id: str) -> Optional[int]:
        """Creation token of the most recent review mapping on the contributor."""
        mappings = self._reviews_of.get(contributor_id)
        return mappings[-1].map_id if mappings else None

    def reviewed_by(self, contributor_id: str, reviewer_id: str) -> bool:
        return any(
            m.reviewer_id == reviewer_id
            for m in self._reviews_of.get(contributor_id, [])
        )

    # ------------------------------------------------------------------
    # Metareview counters (per review mapping / per reviewer)
    # ------------------------------------------------------------------

    def metareview_count(self, review_map_id: int) -> int:
        return len(self._metareviews_of.get(review_map_id, []))

    def latest_metareview_token(self, review_map_id: int) -> Optional[int]:
        mappings = self._metareviews_of.get(review_map_id)
        return mappings[-1].map_id if mappings else None

    def metareviewed_by(self, review_map_id: int, metareviewer_id: str) -> bool:
        return any(
            mm.metareviewer_id == metareviewer_id
            for mm in self._metareviews_of.get(review_map_id, [])
        )

    def reviewer_metareview_total(self, reviewer_id: str) -> int:
        """Metareviews received across all of a reviewer's review mappings."""
        return sum(
            self.metareview_count(m.map_id)
            for m in self._reviews_by.get(reviewer_id, [])
        )


class ContributorRegistry:
    """Registry of assignments and everyone who contributes to them.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._assignments: dict[str, Assignment] = {}
        self._participants: dict[str, Participant] = {}
        self._teams: dict[str, Team] = {}
        self._submitted: set[str] = set()
        self._signups: dict[str, str] = {}   # contributor_id -> topic_id

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def register_assignment(self, assignment: Assignment) -> None:
        """Register a new assignment or replace an existing one.

        Raises ValueError if:
        - assignment_id is blank/empty
        - review_topic_threshold is negative
        - two topics share an ID
        """
        canonical_id = assignment.assignment_id.strip()
        if not canonical_id:
            raise ValueError("Cannot register assignment with blank ID")
        if assignment.review_topic_threshold < 0:
            raise ValueError(
                "Review topic threshold must be >= 0, "
                f"got {assignment.review_topic_threshold}"
            )
        topic_ids = [t.topic_id for t in assignment.topics]
        if len(topic_ids) != len(set(topic_ids)):
            raise ValueError(f"Duplicate topic IDs in assignment {canonical_id}")
        assignment.assignment_id = canonical_id
        self._assignments[canonical_id] = assignment

    def get_assignment(self, assignment_id: str) -> Optional[Assignment]:
        return self._assignments.get(assignment_id.strip())

    def remove_assignment(self, assignment_id: str) -> None:
        """Remove an assignment that has no participants or teams.

        Raises ValueError if anyone is still registered on it.
        """
        canonical_id = assignment_id.strip()
        if self.participants_of(canonical_id) or self.teams_of(canonical_id):
            raise ValueError(
                f"Assignment {canonical_id} still has participants or teams"
            )
        self._assignments.pop(canonical_id, None)

    def _require_assignment(self, assignment_id: str) -> Assignment:
        assignment = self.get_assignment(assignment_id)
        if assignment is None:
            raise KeyError(f"Assignment not found: {assignment_id}")
        return assignment

    # ------------------------------------------------------------------
    # Participants and teams
    # ------------------------------------------------------------------

    def add_participant(self, participant: Participant) -> Participant:
        """Add a user to an assignment.

        Raises ValueError if the ID is blank, the participant ID is taken,
        or the user is already a participant of the assignment.
        """
        assignment = self._require_assignment(participant.assignment_id)
        participant = dataclasses.replace(
            participant, assignment_id=assignment.assignment_id,
        )
        if not participant.participant_id.strip():
            raise ValueError("Cannot add participant with blank ID")
        if (
            participant.participant_id in self._participants
            or participant.participant_id in self._teams
        ):
            raise ValueError(
                f"Participant ID already in use: {participant.participant_id}"
            )
        for p in self._participants.values():
            if (
                p.assignment_id == participant.assignment_id
                and p.user_id == participant.user_id
            ):
                raise ValueError(
                    f"The user {participant.user_id} is already a participant"
                )
        self._participants[participant.participant_id] = participant
        return participant

    def add_team(self, team: Team) -> Team:
        """Add a team to an assignment.

        Raises ValueError if the ID is blank or taken, the team has no
        members, or a member already belongs to another team.
        """
        assignment = self._require_assignment(team.assignment_id)
        team = dataclasses.replace(team, assignment_id=assignment.assignment_id)
        if not team.team_id.strip():
            raise ValueError("Cannot add team with blank ID")
        if team.team_id in self._teams or team.team_id in self._participants:
            raise ValueError(f"Team ID already in use: {team.team_id}")
        if not team.member_user_ids:
            raise ValueError(f"Team {team.team_id} has no members")
        for other in self._teams.values():
            if other.assignment_id != team.assignment_id:
                continue
            overlap = other.member_user_ids & team.member_user_ids
            if overlap:
                raise ValueError(
                    f"Users {sorted(overlap)} already belong to team {other.team_id}"
                )
        self._teams[team.team_id] = team
        return team

    def remove_contributor(self, contributor_id: str) -> None:
        """Remove a participant or team with its sign-up and submission."""
        self._participants.pop(contributor_id, None)
        self._teams.pop(contributor_id, None)
        self._submitted.discard(contributor_id)
        self._signups.pop(contributor_id, None)

    def participant(self, participant_id: str) -> Optional[Participant]:
        return self._participants.get(participant_id)

    def participants_of(self, assignment_id: str) -> list[Participant]:
        canonical_id = assignment_id.strip()
        return [
            p for p in self._participants.values()
            if p.assignment_id == canonical_id
        ]

    def teams_of(self, assignment_id: str) -> list[Team]:
        canonical_id = assignment_id.strip()
        return [t for t in self._teams.values() if t.assignment_id == canonical_id]

    def assignment_of(self, contributor_id: str) -> Assignment:
        owner = self._participants.get(contributor_id) or self._teams.get(contributor_id)
        if owner is None:
            raise KeyError(f"Contributor not found: {contributor_id}")
        return self._require_assignment(owner.assignment_id)

    # ------------------------------------------------------------------
    # Sign-ups and submissions
    # ------------------------------------------------------------------

    def sign_up(self, contributor_id: str, topic_id: str) -> Topic:
        """Sign a contributor up for one of its assignment's topics.

        A later sign-up replaces the earlier one.
        """
        assignment = self.assignment_of(contributor_id)
        topic = assignment.topic(topic_id)
        if topic is None:
            raise ValueError(
                f"Topic {topic_id} does not belong to assignment "
                f"{assignment.assignment_id}"
            )
        self._signups[contributor_id] = topic.topic_id
        return topic

    def drop_topic(self, contributor_id: str) -> None:
        self._signups.pop(contributor_id, None)

    def record_submission(self, contributor_id: str) -> None:
        self.assignment_of(contributor_id)
        self._submitted.add(contributor_id)

    def withdraw_submission(self, contributor_id: str) -> None:
        self._submitted.discard(contributor_id)

    def has_submissions(self, contributor_id: str) -> bool:
        return contributor_id in self._submitted

    def signed_up_topic(self, contributor_id: str) -> Optional[Topic]:
        """Return the topic the contributor signed up for, if any."""
        topic_id = self._signups.get(contributor_id)
        if topic_id is None:
            return None
        return self.assignment_of(contributor_id).topic(topic_id)

    # ------------------------------------------------------------------
    # Contributors
    # ------------------------------------------------------------------

    def contributors_of(self, assignment_id: str) -> list[Contributor]:
        """Teams for a team assignment, otherwise participants."""
        assignment = self._require_assignment(assignment_id)
        if assignment.team_assignment:
            return [
                Contributor.from_team(t, self.has_submissions(t.team_id))
                for t in self.teams_of(assignment.assignment_id)
            ]
        return [
            Contributor.from_participant(p, self.has_submissions(p.participant_id))
            for p in self.participants_of(assignment.assignment_id)
        ]

    def snapshot(self, assignment_id: str, store: MappingStore) -> MatchingSnapshot:
        """Capture everything one matching call needs, at once."""
        assignment = self._require_assignment(assignment_id)
        contributors = self.contributors_of(assignment.assignment_id)
        signups: dict[str, Topic] = {}
        for c in contributors:
            topic = self.signed_up_topic(c.contributor_id)
            if topic is not None:
                signups[c.contributor_id] = topic
        participants = {
            p.participant_id: p for p in self.participants_of(assignment.assignment_id)
        }
        snapshot = MatchingSnapshot(
            assignment=assignment,
            contributors=contributors,
            signups=signups,
            participants=participants,
            review_mappings=store.review_mappings(assignment.assignment_id),
            metareview_mappings=store.metareview_mappings(assignment.assignment_id),
        )
        logger.debug(
            "Snapshot of %s: %d contributors, %d reviews, %d metareviews",
            assignment.assignment_id, len(snapshot.contributors),
            len(snapshot.review_mappings), len(snapshot.metareview_mappings),
        )
        return snapshot

    @property
    def assignment_count(self) -> int:
        return len(self._assignments)

    @property
    def participant_count(self) -> int:
        return len(self._participants)

    @property
    def team_count(self) -> int:
        return len(self._teams)
