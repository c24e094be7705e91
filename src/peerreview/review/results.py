"""Typed outcomes of the assignment pipelines.

Every filtering stage that can empty the candidate set has its own
FailureReason, so the caller can tell "relax the topic" apart from
"nothing left to review". Reasons group into four categories:

- CONFIGURATION_ERROR: topic supplied or omitted against the assignment.
- STALE_CANDIDATE: the chosen topic stopped being eligible.
- NO_ELIGIBLE_TARGET: nothing exists to review or metareview.
- EXHAUSTED_BY_REVIEWER: targets exist but this reviewer has done them all.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FailureCategory(str, enum.Enum):
    CONFIGURATION_ERROR = "configuration_error"
    STALE_CANDIDATE = "stale_candidate"
    NO_ELIGIBLE_TARGET = "no_eligible_target"
    EXHAUSTED_BY_REVIEWER = "exhausted_by_reviewer"


class FailureReason(str, enum.Enum):
    NO_TOPIC_SELECTED = "no_topic_selected"
    TOPIC_NOT_APPLICABLE = "topic_not_applicable"
    TOPIC_OVERLOADED = "topic_overloaded"
    NO_SUBMISSIONS_TO_REVIEW = "no_submissions_to_review"
    ALREADY_REVIEWED_ALL = "already_reviewed_all"
    NO_REVIEWS_YET = "no_reviews_yet"
    NO_MORE_REVIEWS_TO_METAREVIEW = "no_more_reviews_to_metareview"
    ALREADY_METAREVIEWED_ALL = "already_metareviewed_all"

    @property
    def category(self) -> FailureCategory:
        return _CATEGORIES[self]


_CATEGORIES: dict[FailureReason, FailureCategory] = {
    FailureReason.NO_TOPIC_SELECTED: FailureCategory.CONFIGURATION_ERROR,
    FailureReason.TOPIC_NOT_APPLICABLE: FailureCategory.CONFIGURATION_ERROR,
    FailureReason.TOPIC_OVERLOADED: FailureCategory.STALE_CANDIDATE,
    FailureReason.NO_SUBMISSIONS_TO_REVIEW: FailureCategory.NO_ELIGIBLE_TARGET,
    FailureReason.NO_REVIEWS_YET: FailureCategory.NO_ELIGIBLE_TARGET,
    FailureReason.NO_MORE_REVIEWS_TO_METAREVIEW: FailureCategory.NO_ELIGIBLE_TARGET,
    FailureReason.ALREADY_REVIEWED_ALL: FailureCategory.EXHAUSTED_BY_REVIEWER,
    FailureReason.ALREADY_METAREVIEWED_ALL: FailureCategory.EXHAUSTED_BY_REVIEWER,
}


@dataclass(frozen=True)
class AssignmentResult(Generic[T]):
    """Result of one matching call: a target, or why there is none."""
    target: Optional[T] = None
    reason: Optional[FailureReason] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.reason is None

    @property
    def category(self) -> Optional[FailureCategory]:
        return self.reason.category if self.reason is not None else None

    @classmethod
    def ok(cls, target: T) -> AssignmentResult[T]:
        return cls(target=target)

    @classmethod
    def fail(cls, reason: FailureReason, message: str) -> AssignmentResult[T]:
        return cls(reason=reason, message=message)
