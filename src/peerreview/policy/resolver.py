"""Policy resolver — loads review_policy.json and exposes every runtime
assignment decision as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from peerreview.models.assignment import ReviewStrategy, Stage


POLICY_FILENAME = "review_policy.json"


@dataclass(frozen=True)
class AssignmentDefaults:
    """Resolved defaults applied when an assignment is created."""
    review_strategy: ReviewStrategy
    review_topic_threshold: int


class PolicyResolver:
    """Loads and resolves review-assignment policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        defaults = resolver.assignment_defaults()
        closed = resolver.non_reviewable_stages()
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate_version()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / POLICY_FILENAME))

    def _validate_version(self) -> None:
        if "version" not in self._policy:
            raise ValueError(f"{POLICY_FILENAME} missing version")

    @property
    def version(self) -> str:
        return self._policy["version"]

    # ------------------------------------------------------------------
    # Assignment defaults
    # ------------------------------------------------------------------

    def assignment_defaults(self) -> AssignmentDefaults:
        """Return the defaults for newly created assignments."""
        d = self._policy["assignment_defaults"]
        threshold = d["review_topic_threshold"]
        if threshold < 0:
            raise ValueError(
                f"review_topic_threshold must be >= 0, got {threshold}"
            )
        return AssignmentDefaults(
            review_strategy=ReviewStrategy(d["review_strategy"]),
            review_topic_threshold=threshold,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def non_reviewable_stages(self) -> frozenset[Stage]:
        """Stages in which a topic's submissions are not offered for review."""
        raw = self._policy["topic_selection"]["non_reviewable_stages"]
        return frozenset(Stage(s) for s in raw)

    def review_round_stages(self) -> frozenset[Stage]:
        """Deadline types that each count as one review round."""
        raw = self._policy["stages"]["review_round_stages"]
        return frozenset(Stage(s) for s in raw)


def _load_json(path: Path) -> dict[str, Any]:
    """Load a JSON file or raise with clear path."""
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
