"""Tests for the metareviewer selector — proves metareview assignment invariants."""

from peerreview.models.assignment import (
    Assignment,
    Participant,
    Response,
    Team,
)
from peerreview.review.mappings import MappingStore
from peerreview.review.metareview import MetareviewerSelector
from peerreview.review.registry import ContributorRegistry
from peerreview.review.results import FailureCategory, FailureReason


def _registry(pids: list[str], team_assignment: bool = False) -> ContributorRegistry:
    registry = ContributorRegistry()
    registry.register_assignment(
        Assignment(assignment_id="A1", name="Essay", team_assignment=team_assignment)
    )
    for pid in pids:
        registry.add_participant(
            Participant(participant_id=pid, user_id=f"user_{pid}", assignment_id="A1")
        )
        if not team_assignment:
            registry.record_submission(pid)
    return registry


def _review(store: MappingStore, reviewer: str, reviewee: str, responded: bool = True) -> int:
    mapping = store.add_review_mapping("A1", reviewer, reviewee)
    if responded:
        store.attach_response(mapping.map_id, Response(content="review"))
    return mapping.map_id


def _select(registry: ContributorRegistry, store: MappingStore, metareviewer: str):
    return MetareviewerSelector().response_map_to_metareview(
        registry.snapshot("A1", store), registry.participant(metareviewer),
    )


class TestEmptyStages:
    def test_no_reviews_yet(self) -> None:
        registry = _registry(["p1", "p2", "m"])
        store = MappingStore()
        _review(store, "p1", "p2", responded=False)

        result = _select(registry, store, "m")
        assert result.reason == FailureReason.NO_REVIEWS_YET
        assert result.category == FailureCategory.NO_ELIGIBLE_TARGET

    def test_no_mappings_at_all(self) -> None:
        registry = _registry(["p1", "m"])
        result = _select(registry, MappingStore(), "m")
        assert result.reason == FailureReason.NO_REVIEWS_YET

    def test_unanswered_review_skipped(self) -> None:
        registry = _registry(["p1", "p2", "p3", "m"])
        store = MappingStore()
        _review(store, "p1", "p2", responded=False)
        answered = _review(store, "p2", "p3")

        result = _select(registry, store, "m")
        assert result.success
        assert result.target.map_id == answered

    def test_own_review_excluded(self) -> None:
        registry = _registry(["p1", "m"])
        store = MappingStore()
        _review(store, "m", "p1")

        result = _select(registry, store, "m")
        assert result.reason == FailureReason.NO_MORE_REVIEWS_TO_METAREVIEW
        assert result.category == FailureCategory.NO_ELIGIBLE_TARGET

    def test_review_of_own_work_excluded(self) -> None:
        registry = _registry(["p1", "m"])
        store = MappingStore()
        _review(store, "p1", "m")

        result = _select(registry, store, "m")
        assert result.reason == FailureReason.NO_MORE_REVIEWS_TO_METAREVIEW

    def test_already_metareviewed_all(self) -> None:
        registry = _registry(["p1", "p2", "m"])
        store = MappingStore()
        map_id = _review(store, "p1", "p2")
        store.add_metareview_mapping("m", map_id)

        result = _select(registry, store, "m")
        assert result.reason == FailureReason.ALREADY_METAREVIEWED_ALL
        assert result.category == FailureCategory.EXHAUSTED_BY_REVIEWER


class TestBalancing:
    def test_prefers_least_metareviewed_review(self) -> None:
        registry = _registry(["p1", "p2", "p3", "m", "n"])
        store = MappingStore()
        first = _review(store, "p1", "p2")
        second = _review(store, "p2", "p3")
        store.add_metareview_mapping("n", first)

        result = _select(registry, store, "m")
        assert result.target.map_id == second

    def test_prefers_least_metareviewed_reviewer(self) -> None:
        registry = _registry(["p1", "p2", "p3", "x", "y", "m", "n"])
        store = MappingStore()
        by_x_fresh = _review(store, "x", "p1")
        by_x_seen = _review(store, "x", "p2")
        by_y = _review(store, "y", "p3")
        store.add_metareview_mapping("n", by_x_seen)

        result = _select(registry, store, "m")
        assert result.target.map_id == by_y
        assert result.target.map_id != by_x_fresh

    def test_round_robin_by_latest_metareview(self) -> None:
        registry = _registry(["p1", "p2", "x", "y", "m", "n1", "n2"])
        store = MappingStore()
        a = _review(store, "x", "p1")
        b = _review(store, "y", "p2")
        store.add_metareview_mapping("n1", b)
        store.add_metareview_mapping("n2", a)

        result = _select(registry, store, "m")
        assert result.target.map_id == b

    def test_creation_order_without_metareviews(self) -> None:
        registry = _registry(["p1", "p2", "x", "y", "m"])
        store = MappingStore()
        a = _review(store, "x", "p1")
        _review(store, "y", "p2")

        assert _select(registry, store, "m").target.map_id == a


class TestDeterminism:
    def test_same_inputs_same_review(self) -> None:
        registry = _registry(["p1", "p2", "p3", "p4", "m", "n"])
        store = MappingStore()
        _review(store, "p1", "p2")
        seen = _review(store, "p2", "p3")
        _review(store, "p3", "p4")
        store.add_metareview_mapping("n", seen)

        first = _select(registry, store, "m")
        second = _select(registry, store, "m")
        assert first.target == second.target


class TestTeamAssignment:
    def test_member_of_reviewed_team_excluded(self) -> None:
        registry = _registry(["p1", "p2", "m"], team_assignment=True)
        registry.add_team(Team("t1", "A1", frozenset({"user_p1", "user_m"})))
        registry.add_team(Team("t2", "A1", frozenset({"user_p2"})))
        registry.record_submission("t1")
        registry.record_submission("t2")
        store = MappingStore()
        _review(store, "p2", "t1")
        other = _review(store, "p1", "t2")

        result = _select(registry, store, "m")
        assert result.target.map_id == other
