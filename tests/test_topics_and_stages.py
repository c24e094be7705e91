"""Tests for topic candidate selection and stage resolution."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from peerreview.models.assignment import (
    Assignment,
    DeadlineRight,
    DueDate,
    Participant,
    Stage,
    Topic,
)
from peerreview.policy.resolver import PolicyResolver
from peerreview.review.mappings import MappingStore
from peerreview.review.registry import ContributorRegistry
from peerreview.review.stage import DeadlineStageOracle, StaticStageOracle
from peerreview.review.topics import TopicCandidateSelector


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _topic_registry(threshold: int = 0) -> ContributorRegistry:
    """Five participants; p1..p4 submitted, p1/p2 on T1, p3 on T2, p4 on T3."""
    registry = ContributorRegistry()
    registry.register_assignment(Assignment(
        assignment_id="A1",
        name="Wiki",
        topics=[Topic("T1"), Topic("T2"), Topic("T3"), Topic("T4")],
        review_topic_threshold=threshold,
    ))
    for pid in ("p1", "p2", "p3", "p4", "p5"):
        registry.add_participant(
            Participant(participant_id=pid, user_id=f"user_{pid}", assignment_id="A1")
        )
    for pid, topic in (("p1", "T1"), ("p2", "T1"), ("p3", "T2"), ("p4", "T3"), ("p5", "T4")):
        registry.sign_up(pid, topic)
    for pid in ("p1", "p2", "p3", "p4"):
        registry.record_submission(pid)
    return registry


def _ids(topics) -> set[str]:
    return {t.topic_id for t in topics}


# =====================================================================
# Topic Candidate Selector
# =====================================================================


class TestCandidateTopics:
    def test_none_without_topics(self, resolver: PolicyResolver) -> None:
        registry = ContributorRegistry()
        registry.register_assignment(Assignment(assignment_id="A1", name="Essay"))
        selector = TopicCandidateSelector(resolver, StaticStageOracle())
        assert selector.candidate_topics_to_review(
            registry.snapshot("A1", MappingStore())
        ) is None

    def test_topics_without_submissions_excluded(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry()
        selector = TopicCandidateSelector(resolver, StaticStageOracle())
        topics = selector.candidate_topics_to_review(registry.snapshot("A1", MappingStore()))
        assert _ids(topics) == {"T1", "T2", "T3"}

    def test_closed_stages_excluded(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry()
        oracle = StaticStageOracle(
            default=Stage.REVIEW,
            topic_stages={"T2": Stage.COMPLETE, "T3": Stage.SUBMISSION},
        )
        selector = TopicCandidateSelector(resolver, oracle)
        topics = selector.candidate_topics_to_review(registry.snapshot("A1", MappingStore()))
        assert _ids(topics) == {"T1"}

    def test_metareview_stage_still_reviewable(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry()
        oracle = StaticStageOracle(default=Stage.METAREVIEW)
        selector = TopicCandidateSelector(resolver, oracle)
        topics = selector.candidate_topics_to_review(registry.snapshot("A1", MappingStore()))
        assert _ids(topics) == {"T1", "T2", "T3"}

    def test_overreviewed_topics_excluded(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry()
        store = MappingStore()
        store.add_review_mapping("A1", "p5", "p3")
        store.add_review_mapping("A1", "p5", "p4")
        store.add_review_mapping("A1", "p5", "p2")
        selector = TopicCandidateSelector(resolver, StaticStageOracle())
        # p1 is still unreviewed, so only its topic qualifies
        assert _ids(selector.candidate_topics_to_review(registry.snapshot("A1", store))) == {"T1"}

    def test_threshold_adds_slack(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry(threshold=1)
        store = MappingStore()
        store.add_review_mapping("A1", "p5", "p3")
        store.add_review_mapping("A1", "p1", "p4")
        store.add_review_mapping("A1", "p5", "p4")
        selector = TopicCandidateSelector(resolver, StaticStageOracle())
        topics = selector.candidate_topics_to_review(registry.snapshot("A1", store))
        assert _ids(topics) == {"T1", "T2"}

    def test_all_closed_gives_empty_set(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry()
        selector = TopicCandidateSelector(resolver, StaticStageOracle(default=Stage.COMPLETE))
        assert selector.candidate_topics_to_review(
            registry.snapshot("A1", MappingStore())
        ) == set()

    def test_repeatable(self, resolver: PolicyResolver) -> None:
        registry = _topic_registry()
        store = MappingStore()
        store.add_review_mapping("A1", "p5", "p3")
        selector = TopicCandidateSelector(resolver, StaticStageOracle())
        snapshot = registry.snapshot("A1", store)
        assert selector.candidate_topics_to_review(snapshot) == \
            selector.candidate_topics_to_review(snapshot)


# =====================================================================
# Deadline Stage Oracle
# =====================================================================


def _due(days: int, stage: Stage, topic_id: str | None = None, **rights: DeadlineRight) -> DueDate:
    return DueDate(
        due_at=NOW + timedelta(days=days),
        deadline_type=stage,
        topic_id=topic_id,
        rights=dict(rights),
    )


class TestDeadlineStageOracle:
    def _oracle(self, resolver: PolicyResolver) -> DeadlineStageOracle:
        return DeadlineStageOracle(resolver, now=lambda: NOW)

    def test_current_stage_is_next_deadline(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x",
            due_dates=[
                _due(-5, Stage.SUBMISSION),
                _due(3, Stage.REVIEW),
                _due(10, Stage.METAREVIEW),
            ],
        )
        oracle = self._oracle(resolver)
        assert oracle.stage_of(assignment) == Stage.REVIEW
        assert oracle.stage_deadline(assignment) == NOW + timedelta(days=3)

    def test_complete_after_last_deadline(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x",
            due_dates=[_due(-5, Stage.SUBMISSION), _due(-1, Stage.REVIEW)],
        )
        oracle = self._oracle(resolver)
        assert oracle.stage_of(assignment) == Stage.COMPLETE
        assert oracle.stage_deadline(assignment) is None

    def test_complete_without_deadlines(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(assignment_id="A1", name="x")
        assert self._oracle(resolver).stage_of(assignment) == Stage.COMPLETE

    def test_staggered_uses_topic_deadlines(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x", staggered_deadline=True,
            topics=[Topic("T1"), Topic("T2")],
            due_dates=[
                _due(2, Stage.SUBMISSION, "T1"),
                _due(-2, Stage.SUBMISSION, "T2"),
                _due(4, Stage.REVIEW, "T2"),
            ],
        )
        oracle = self._oracle(resolver)
        assert oracle.stage_of(assignment, "T1") == Stage.SUBMISSION
        assert oracle.stage_of(assignment, "T2") == Stage.REVIEW
        assert oracle.stage_of(assignment) == Stage.UNKNOWN

    def test_review_rounds(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x",
            due_dates=[
                _due(1, Stage.SUBMISSION),
                _due(2, Stage.REVIEW),
                _due(3, Stage.SUBMISSION),
                _due(4, Stage.REREVIEW),
                _due(5, Stage.METAREVIEW),
            ],
        )
        assert self._oracle(resolver).review_rounds(assignment) == 2

    def test_rights_follow_next_deadline(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x",
            due_dates=[
                _due(-1, Stage.SUBMISSION, submission=DeadlineRight.OK),
                _due(2, Stage.REVIEW, review=DeadlineRight.LATE,
                     submission=DeadlineRight.NO),
            ],
        )
        oracle = self._oracle(resolver)
        assert oracle.review_allowed(assignment)
        assert not oracle.submission_allowed(assignment)
        assert not oracle.metareview_allowed(assignment)

    def test_review_allowed_during_metareview(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x",
            due_dates=[_due(2, Stage.METAREVIEW, metareview=DeadlineRight.OK)],
        )
        assert self._oracle(resolver).review_allowed(assignment)

    def test_nothing_allowed_when_complete(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x",
            due_dates=[_due(-2, Stage.REVIEW, review=DeadlineRight.OK)],
        )
        oracle = self._oracle(resolver)
        assert not oracle.review_allowed(assignment)
        assert not oracle.signup_allowed(assignment)
        assert not oracle.drop_allowed(assignment)

    def test_drives_topic_selection(self, resolver: PolicyResolver) -> None:
        assignment = Assignment(
            assignment_id="A1", name="x", staggered_deadline=True,
            topics=[Topic("T1"), Topic("T2")],
            due_dates=[_due(3, Stage.SUBMISSION, "T1"), _due(3, Stage.REVIEW, "T2")],
        )
        registry = ContributorRegistry()
        registry.register_assignment(assignment)
        for pid, topic in (("p1", "T1"), ("p2", "T2")):
            registry.add_participant(
                Participant(participant_id=pid, user_id=pid, assignment_id="A1")
            )
            registry.sign_up(pid, topic)
            registry.record_submission(pid)

        selector = TopicCandidateSelector(resolver, self._oracle(resolver))
        topics = selector.candidate_topics_to_review(registry.snapshot("A1", MappingStore()))
        assert _ids(topics) == {"T2"}
