"""Mapping store — review and metareview mappings for all assignments.

The store is the only place mappings are created. It hands out
creation-order tokens from a single counter shared by both mapping
kinds, so a later mapping always carries a larger map_id.

Invariants enforced on insert:
- A (reviewer, reviewee) pair is mapped at most once per assignment.
- A metareviewer is mapped to a given review mapping at most once.

The matching pipelines only read from the store, through a snapshot.
Thread-safety: this class is not thread-safe. The assignment service
serialises writes per assignment.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from peerreview.models.assignment import (
    MetareviewMapping,
    Response,
    ReviewMapping,
)


class MappingStore:
    """In-memory store of review and metareview mappings."""

    def __init__(self, start_token: int = 0) -> None:
        self._last_token = start_token
        self._reviews: dict[int, ReviewMapping] = {}
        self._metareviews: dict[int, MetareviewMapping] = {}

    def _next_token(self) -> int:
        self._last_token += 1
        return self._last_token

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_review_mapping(
        self,
        assignment_id: str,
        reviewer_id: str,
        reviewee_id: str,
    ) -> ReviewMapping:
        """Record a new review mapping.

        Raises ValueError if the reviewer already reviews this reviewee.
        """
        for m in self._reviews.values():
            if (
                m.assignment_id == assignment_id
                and m.reviewer_id == reviewer_id
                and m.reviewee_id == reviewee_id
            ):
                raise ValueError(
                    f"Reviewer {reviewer_id} is already mapped to {reviewee_id}"
                )
        mapping = ReviewMapping(
            map_id=self._next_token(),
            assignment_id=assignment_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
        )
        self._reviews[mapping.map_id] = mapping
        return mapping

    def add_metareview_mapping(
        self,
        metareviewer_id: str,
        review_map_id: int,
    ) -> MetareviewMapping:
        """Record a new metareview mapping.

        Raises KeyError if the review mapping does not exist and
        ValueError if the metareviewer is already mapped to it.
        """
        if review_map_id not in self._reviews:
            raise KeyError(f"Review mapping not found: {review_map_id}")
        for mm in self._metareviews.values():
            if (
                mm.review_map_id == review_map_id
                and mm.metareviewer_id == metareviewer_id
            ):
                raise ValueError(
                    f"Metareviewer {metareviewer_id} is already mapped to "
                    f"review {review_map_id}"
                )
        mapping = MetareviewMapping(
            map_id=self._next_token(),
            metareviewer_id=metareviewer_id,
            review_map_id=review_map_id,
        )
        self._metareviews[mapping.map_id] = mapping
        return mapping

    def attach_response(
        self,
        map_id: int,
        response: Optional[Response],
    ) -> ReviewMapping:
        """Attach, replace, or (with None) clear the response on a review mapping."""
        mapping = self._reviews.get(map_id)
        if mapping is None:
            raise KeyError(f"Review mapping not found: {map_id}")
        updated = replace(mapping, response=response)
        self._reviews[map_id] = updated
        return updated

    def remove_review_mapping(self, map_id: int) -> None:
        """Drop a review mapping and any metareview mappings on it."""
        self._reviews.pop(map_id, None)
        for mm_id in [
            k for k, mm in self._metareviews.items() if mm.review_map_id == map_id
        ]:
            del self._metareviews[mm_id]

    def remove_metareview_mapping(self, map_id: int) -> None:
        self._metareviews.pop(map_id, None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def review_mapping(self, map_id: int) -> Optional[ReviewMapping]:
        return self._reviews.get(map_id)

    def review_mappings(self, assignment_id: str) -> list[ReviewMapping]:
        """Review mappings of an assignment in creation order."""
        return sorted(
            (m for m in self._reviews.values() if m.assignment_id == assignment_id),
            key=lambda m: m.map_id,
        )

    def review_mappings_by_reviewer(self, reviewer_id: str) -> list[ReviewMapping]:
        return sorted(
            (m for m in self._reviews.values() if m.reviewer_id == reviewer_id),
            key=lambda m: m.map_id,
        )

    def metareview_mappings(self, assignment_id: str) -> list[MetareviewMapping]:
        """Metareview mappings targeting reviews of an assignment, in creation order."""
        review_ids = {
            m.map_id for m in self._reviews.values()
            if m.assignment_id == assignment_id
        }
        return sorted(
            (mm for mm in self._metareviews.values()
             if mm.review_map_id in review_ids),
            key=lambda mm: mm.map_id,
        )

    @property
    def last_token(self) -> int:
        return self._last_token

    @property
    def review_count(self) -> int:
        return len(self._reviews)

    @property
    def metareview_count(self) -> int:
        return len(self._metareviews)
