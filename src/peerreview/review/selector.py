"""Reviewer selector — picks the contributor a reviewer should review next.

Given a matching snapshot, a reviewer and (for topic assignments) a
topic, selects exactly one contributor so that:
- The reviewer never reviews their own work (or their team's).
- The reviewer never reviews the same contributor twice.
- Contributors with the fewest completed reviews are served first.
- Among those, contributors whose last review was assigned longest ago
  are ordered first (round-robin effect).

The final pick is uniformly random over the whole least-reviewed set.
The round-robin ordering only fixes the iteration order of that set;
reviews are not submitted in the order they are assigned, so a strict
round-robin pick would not balance completed reviews any better.

The randomness source is pluggable: pass a random.Random to the
constructor, or a seed per call for reproducible selection.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from peerreview.models.assignment import Contributor, Participant, Topic
from peerreview.policy.resolver import PolicyResolver
from peerreview.review.registry import MatchingSnapshot
from peerreview.review.results import AssignmentResult, FailureReason
from peerreview.review.stage import StageOracle
from peerreview.review.topics import TopicCandidateSelector

logger = logging.getLogger(__name__)


def _topic_id(topic: Optional[Topic]) -> Optional[str]:
    return topic.topic_id if topic is not None else None


class ReviewerSelector:
    """Selects the next contributor for a reviewer.

    Usage:
        selector = ReviewerSelector(resolver, oracle)
        snapshot = registry.snapshot(assignment_id, store)
        result = selector.contributor_to_review(snapshot, reviewer, topic)
        if result.success:
            store.add_review_mapping(
                assignment_id, reviewer.participant_id,
                result.target.contributor_id,
            )
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        oracle: StageOracle,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._resolver = resolver
        self._topics = TopicCandidateSelector(resolver, oracle)
        self._rng = rng

    def candidate_topics_to_review(
        self,
        snapshot: MatchingSnapshot,
    ) -> Optional[set[Topic]]:
        return self._topics.candidate_topics_to_review(snapshot)

    def eligible_contributors(
        self,
        snapshot: MatchingSnapshot,
        reviewer: Participant,
        topic: Optional[Topic] = None,
    ) -> AssignmentResult[list[Contributor]]:
        """Return the least-reviewed contributors, in round-robin order.

        Every contributor in the returned list is an equally valid pick.
        """
        assignment = snapshot.assignment
        if assignment.has_topics and topic is None:
            return AssignmentResult.fail(
                FailureReason.NO_TOPIC_SELECTED, "Please select a topic",
            )
        if not assignment.has_topics and topic is not None:
            return AssignmentResult.fail(
                FailureReason.TOPIC_NOT_APPLICABLE,
                "This assignment does not have topics",
            )

        # The topic may have filled up since it was offered
        if topic is not None:
            candidate_topics = self._topics.candidate_topics_to_review(snapshot) or set()
            if topic.topic_id not in {t.topic_id for t in candidate_topics}:
                return AssignmentResult.fail(
                    FailureReason.TOPIC_OVERLOADED,
                    "This topic has too many reviews; please select another one.",
                )

        work = "topic" if topic is not None else "assignment"
        wanted_topic = _topic_id(topic)

        # Same topic (both None without topics), not the reviewer's own, submitted
        candidates = [
            c for c in snapshot.contributors
            if _topic_id(snapshot.signed_up_topic(c.contributor_id)) == wanted_topic
            and not c.includes(reviewer.user_id)
            and c.has_submissions
        ]
        if not candidates:
            return AssignmentResult.fail(
                FailureReason.NO_SUBMISSIONS_TO_REVIEW,
                f"There are no more submissions to review on this {work}.",
            )

        # Each contributor can be reviewed only once by a reviewer
        candidates = [
            c for c in candidates
            if not snapshot.reviewed_by(c.contributor_id, reviewer.participant_id)
        ]
        if not candidates:
            return AssignmentResult.fail(
                FailureReason.ALREADY_REVIEWED_ALL,
                f"You have already reviewed all submissions for this {work}.",
            )

        # Keep the contributors with the fewest completed reviews
        min_responses = min(snapshot.response_count(c.contributor_id) for c in candidates)
        candidates = [
            c for c in candidates
            if snapshot.response_count(c.contributor_id) <= min_responses
        ]

        # Longest-waiting first; tokens exist since every candidate has a response
        if min_responses > 0:
            candidates.sort(
                key=lambda c: snapshot.latest_review_token(c.contributor_id)
            )

        logger.debug(
            "Eligible for reviewer %s on %s: %s (min responses %d)",
            reviewer.participant_id, assignment.assignment_id,
            [c.contributor_id for c in candidates], min_responses,
        )
        return AssignmentResult.ok(candidates)

    def contributor_to_review(
        self,
        snapshot: MatchingSnapshot,
        reviewer: Participant,
        topic: Optional[Topic] = None,
        seed: str | int | None = None,
    ) -> AssignmentResult[Contributor]:
        """Select one contributor for the reviewer to review.

        Args:
            snapshot: Contributors and mappings of the assignment.
            reviewer: The participant asking for something to review.
            topic: Required for topic assignments, forbidden otherwise.
            seed: Randomness seed for deterministic selection. If None,
                  uses the injected generator or system entropy.

        Returns:
            AssignmentResult with the chosen contributor, or the reason
            no contributor could be chosen.
        """
        eligible = self.eligible_contributors(snapshot, reviewer, topic)
        if not eligible.success:
            logger.debug(
                "No contributor for reviewer %s: %s",
                reviewer.participant_id, eligible.reason.value,
            )
            return AssignmentResult.fail(eligible.reason, eligible.message)

        rng = self._rng_for(seed)
        chosen = rng.choice(eligible.target)
        return AssignmentResult.ok(chosen)

    def _rng_for(self, seed: str | int | None) -> random.Random:
        if seed is not None:
            rng = random.Random()
            rng.seed(seed)
            return rng
        if self._rng is None:
            self._rng = random.Random()
        return self._rng
