"""Assignment, contributor, and review-mapping data models.

An assignment owns its participants and (for team assignments) its
teams. Whichever of the two can be reviewed is exposed uniformly as a
Contributor: a single kind-tagged record, never a subclass.

Review and metareview mappings carry a creation-order token (map_id)
that strictly increases in creation order. The matching pipelines use
it for round-robin tie-breaks, so the token must never be reused.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ReviewStrategy(str, enum.Enum):
    """How reviewers are paired with submissions."""
    INSTRUCTOR_SELECTED = "instructor_selected"
    STUDENT_SELECTED = "student_selected"
    AUTO_SELECTED = "auto_selected"


class Stage(str, enum.Enum):
    """Lifecycle stage of an assignment or of one of its topics."""
    SUBMISSION = "submission"
    REVIEW = "review"
    REREVIEW = "rereview"
    METAREVIEW = "metareview"
    COMPLETE = "complete"
    UNKNOWN = "unknown"


class DeadlineRight(str, enum.Enum):
    """Whether an action is permitted up to a due date."""
    NO = "no"
    LATE = "late"
    OK = "ok"


class ContributorKind(str, enum.Enum):
    """The two kinds of work owner that can be reviewed."""
    PARTICIPANT = "participant"
    TEAM = "team"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Topic:
    """A sign-up topic. Stage is resolved externally by topic_id."""
    topic_id: str
    name: str = ""


@dataclass(frozen=True)
class DueDate:
    """A single deadline of an assignment (or of a topic when staggered).

    rights maps an action name ("submission", "review", "metareview",
    "signup", "drop") to what is permitted until due_at.
    """
    due_at: datetime
    deadline_type: Stage
    topic_id: Optional[str] = None
    rights: dict[str, DeadlineRight] = field(default_factory=dict)

    def allows(self, action: str) -> bool:
        return self.rights.get(action, DeadlineRight.NO) in (
            DeadlineRight.OK, DeadlineRight.LATE,
        )


@dataclass
class Assignment:
    """Configuration root for one piece of reviewed coursework.

    Treated as immutable for the duration of a matching call.
    """
    assignment_id: str
    name: str
    team_assignment: bool = False
    topics: list[Topic] = field(default_factory=list)
    review_topic_threshold: int = 0
    review_strategy: ReviewStrategy = ReviewStrategy.AUTO_SELECTED
    staggered_deadline: bool = False
    due_dates: list[DueDate] = field(default_factory=list)

    @property
    def has_topics(self) -> bool:
        return len(self.topics) > 0

    @property
    def uses_dynamic_assignment(self) -> bool:
        """Dynamic assignment applies unless the instructor pairs reviewers."""
        return self.review_strategy in (
            ReviewStrategy.AUTO_SELECTED,
            ReviewStrategy.STUDENT_SELECTED,
        )

    def topic(self, topic_id: str) -> Optional[Topic]:
        for t in self.topics:
            if t.topic_id == topic_id:
                return t
        return None


@dataclass(frozen=True)
class Participant:
    """A user taking part in an assignment.

    Reviewers and metareviewers are always participants, even when the
    reviewed work belongs to a team.
    """
    participant_id: str
    user_id: str
    assignment_id: str
    handle: str = ""


@dataclass(frozen=True)
class Team:
    """A group of users submitting one piece of work together."""
    team_id: str
    assignment_id: str
    member_user_ids: frozenset[str]
    name: str = ""


@dataclass(frozen=True)
class Contributor:
    """A participant or team whose submission can be reviewed."""
    kind: ContributorKind
    contributor_id: str
    member_user_ids: frozenset[str]
    has_submissions: bool = False

    def includes(self, user_id: str) -> bool:
        """True if the user owns (or co-owns) this contribution."""
        return user_id in self.member_user_ids

    @staticmethod
    def from_participant(
        participant: Participant,
        has_submissions: bool = False,
    ) -> Contributor:
        return Contributor(
            kind=ContributorKind.PARTICIPANT,
            contributor_id=participant.participant_id,
            member_user_ids=frozenset({participant.user_id}),
            has_submissions=has_submissions,
        )

    @staticmethod
    def from_team(team: Team, has_submissions: bool = False) -> Contributor:
        return Contributor(
            kind=ContributorKind.TEAM,
            contributor_id=team.team_id,
            member_user_ids=frozenset(team.member_user_ids),
            has_submissions=has_submissions,
        )


@dataclass(frozen=True)
class Response:
    """The content submitted for a review."""
    content: str
    submitted_utc: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewMapping:
    """One reviewer assigned to one reviewee contributor."""
    map_id: int
    assignment_id: str
    reviewer_id: str   # participant_id of the reviewer
    reviewee_id: str   # contributor_id of the reviewed work
    response: Optional[Response] = None

    @property
    def has_response(self) -> bool:
        return self.response is not None


@dataclass(frozen=True)
class MetareviewMapping:
    """One metareviewer assigned to one completed review mapping."""
    map_id: int
    metareviewer_id: str   # participant_id of the metareviewer
    review_map_id: int
