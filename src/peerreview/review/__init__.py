"""Review module — contributor registry and assignment selectors."""

from peerreview.review.mappings import MappingStore
from peerreview.review.metareview import MetareviewerSelector
from peerreview.review.registry import ContributorRegistry, MatchingSnapshot
from peerreview.review.results import (
    AssignmentResult,
    FailureCategory,
    FailureReason,
)
from peerreview.review.selector import ReviewerSelector
from peerreview.review.stage import (
    DeadlineStageOracle,
    StageOracle,
    StaticStageOracle,
)
from peerreview.review.topics import TopicCandidateSelector

__all__ = [
    "AssignmentResult",
    "ContributorRegistry",
    "DeadlineStageOracle",
    "FailureCategory",
    "FailureReason",
    "MappingStore",
    "MatchingSnapshot",
    "MetareviewerSelector",
    "ReviewerSelector",
    "StageOracle",
    "StaticStageOracle",
    "TopicCandidateSelector",
]
