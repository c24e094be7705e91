"""Tests for policy loading — proves configuration fails loud."""

import json

import pytest
from pathlib import Path

from peerreview.models.assignment import ReviewStrategy, Stage
from peerreview.policy.resolver import POLICY_FILENAME, PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _write_policy(tmp_path: Path, policy: dict) -> Path:
    (tmp_path / POLICY_FILENAME).write_text(json.dumps(policy), encoding="utf-8")
    return tmp_path


class TestShippedPolicy:
    def test_version(self, resolver: PolicyResolver) -> None:
        assert resolver.version == "1.0.0"

    def test_assignment_defaults(self, resolver: PolicyResolver) -> None:
        defaults = resolver.assignment_defaults()
        assert defaults.review_strategy == ReviewStrategy.AUTO_SELECTED
        assert defaults.review_topic_threshold == 0

    def test_stage_sets(self, resolver: PolicyResolver) -> None:
        assert resolver.non_reviewable_stages() == frozenset(
            {Stage.COMPLETE, Stage.SUBMISSION}
        )
        assert resolver.review_round_stages() == frozenset(
            {Stage.REVIEW, Stage.REREVIEW}
        )


class TestFailLoud:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            PolicyResolver.from_config_dir(tmp_path)

    def test_missing_version(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="missing version"):
            PolicyResolver.from_config_dir(_write_policy(tmp_path, {}))

    def test_negative_threshold(self, tmp_path: Path) -> None:
        resolver = PolicyResolver.from_config_dir(_write_policy(tmp_path, {
            "version": "1.0.0",
            "assignment_defaults": {
                "review_strategy": "auto_selected",
                "review_topic_threshold": -1,
            },
        }))
        with pytest.raises(ValueError, match="threshold"):
            resolver.assignment_defaults()

    def test_unknown_strategy(self, tmp_path: Path) -> None:
        resolver = PolicyResolver.from_config_dir(_write_policy(tmp_path, {
            "version": "1.0.0",
            "assignment_defaults": {
                "review_strategy": "lottery",
                "review_topic_threshold": 0,
            },
        }))
        with pytest.raises(ValueError):
            resolver.assignment_defaults()

    def test_unknown_stage_name(self, tmp_path: Path) -> None:
        resolver = PolicyResolver.from_config_dir(_write_policy(tmp_path, {
            "version": "1.0.0",
            "topic_selection": {"non_reviewable_stages": ["finished"]},
        }))
        with pytest.raises(ValueError):
            resolver.non_reviewable_stages()
