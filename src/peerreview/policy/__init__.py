"""Policy module — review-assignment configuration."""

from peerreview.policy.resolver import AssignmentDefaults, PolicyResolver

__all__ = ["AssignmentDefaults", "PolicyResolver"]
