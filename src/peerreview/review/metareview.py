"""Metareviewer selector — picks the completed review a metareviewer
should metareview next.

Selection narrows the assignment's review mappings in stages:
1. Only reviews with a submitted response.
2. Not the metareviewer's own review, nor a review of their own work.
3. Not a review they already metareviewed.
4. Only reviews with the fewest metareviews so far.
5. Only reviews written by the reviewers whose reviews have received
   the fewest metareviews in total.
6. Longest-waiting first, by the token of the latest metareview.

The first remaining review is returned. There is no randomness: with
an unchanged mapping set, the same metareviewer always gets the same
review.
"""

from __future__ import annotations

import logging

from peerreview.models.assignment import Participant, ReviewMapping
from peerreview.review.registry import MatchingSnapshot
from peerreview.review.results import AssignmentResult, FailureReason

logger = logging.getLogger(__name__)


class MetareviewerSelector:
    """Selects the next review mapping for a metareviewer."""

    def response_map_to_metareview(
        self,
        snapshot: MatchingSnapshot,
        metareviewer: Participant,
    ) -> AssignmentResult[ReviewMapping]:
        mappings = [m for m in snapshot.review_mappings if m.has_response]
        if not mappings:
            return AssignmentResult.fail(
                FailureReason.NO_REVIEWS_YET,
                "There are no reviews to metareview at this time for this assignment.",
            )

        mappings = [
            m for m in mappings
            if not self._is_involved(snapshot, m, metareviewer)
        ]
        if not mappings:
            return AssignmentResult.fail(
                FailureReason.NO_MORE_REVIEWS_TO_METAREVIEW,
                "There are no more reviews to metareview for this assignment.",
            )

        mappings = [
            m for m in mappings
            if not snapshot.metareviewed_by(m.map_id, metareviewer.participant_id)
        ]
        if not mappings:
            return AssignmentResult.fail(
                FailureReason.ALREADY_METAREVIEWED_ALL,
                "You have already metareviewed all reviews for this assignment.",
            )

        # Least-metareviewed reviews
        min_metareviews = min(snapshot.metareview_count(m.map_id) for m in mappings)
        mappings = [
            m for m in mappings
            if snapshot.metareview_count(m.map_id) <= min_metareviews
        ]

        # Least-metareviewed reviewers
        totals = {
            reviewer_id: snapshot.reviewer_metareview_total(reviewer_id)
            for reviewer_id in {m.reviewer_id for m in mappings}
        }
        min_total = min(totals.values())
        mappings = [m for m in mappings if totals[m.reviewer_id] <= min_total]

        min_metareviews = min(snapshot.metareview_count(m.map_id) for m in mappings)
        if min_metareviews > 0:
            mappings.sort(key=lambda m: snapshot.latest_metareview_token(m.map_id))

        chosen = mappings[0]
        logger.debug(
            "Metareviewer %s gets review %d (of %d candidates)",
            metareviewer.participant_id, chosen.map_id, len(mappings),
        )
        return AssignmentResult.ok(chosen)

    @staticmethod
    def _is_involved(
        snapshot: MatchingSnapshot,
        mapping: ReviewMapping,
        metareviewer: Participant,
    ) -> bool:
        """True if the metareviewer wrote the review or owns the reviewed work."""
        if mapping.reviewer_id == metareviewer.participant_id:
            return True
        reviewer = snapshot.participant(mapping.reviewer_id)
        if reviewer is not None and reviewer.user_id == metareviewer.user_id:
            return True
        reviewee = snapshot.contributor(mapping.reviewee_id)
        return reviewee is not None and reviewee.includes(metareviewer.user_id)
