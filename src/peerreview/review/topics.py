"""Topic candidate selector — which topics are still worth reviewing.

A topic is offered for review if one of its submissions is among the
least-reviewed so far (within the assignment's review_topic_threshold)
and the topic is in a reviewable stage.
"""

from __future__ import annotations

import logging
from typing import Optional

from peerreview.models.assignment import Topic
from peerreview.policy.resolver import PolicyResolver
from peerreview.review.registry import MatchingSnapshot
from peerreview.review.stage import StageOracle

logger = logging.getLogger(__name__)


class TopicCandidateSelector:
    """Narrows an assignment's topics to those eligible for review.

    Read-only: repeated calls on the same snapshot give the same set.
    """

    def __init__(self, resolver: PolicyResolver, oracle: StageOracle) -> None:
        self._resolver = resolver
        self._oracle = oracle

    def candidate_topics_to_review(
        self,
        snapshot: MatchingSnapshot,
    ) -> Optional[set[Topic]]:
        """Return the reviewable topics, or None for a topic-less assignment."""
        assignment = snapshot.assignment
        if not assignment.has_topics:
            return None

        closed_stages = self._resolver.non_reviewable_stages()

        # Contributors with a topic and something submitted
        candidates = [
            c for c in snapshot.contributors
            if snapshot.signed_up_topic(c.contributor_id) is not None
            and c.has_submissions
        ]

        # Topics past their deadline, or still collecting submissions
        candidates = [
            c for c in candidates
            if self._oracle.stage_of(
                assignment, snapshot.signed_up_topic(c.contributor_id).topic_id,
            ) not in closed_stages
        ]

        min_reviews = min(
            (snapshot.received_review_count(c.contributor_id) for c in candidates),
            default=0,
        )
        limit = min_reviews + assignment.review_topic_threshold
        candidates = [
            c for c in candidates
            if snapshot.received_review_count(c.contributor_id) <= limit
        ]

        topics = {snapshot.signed_up_topic(c.contributor_id) for c in candidates}
        logger.debug(
            "Candidate topics for %s: %s (min reviews %d, limit %d)",
            assignment.assignment_id, sorted(t.topic_id for t in topics),
            min_reviews, limit,
        )
        return topics
