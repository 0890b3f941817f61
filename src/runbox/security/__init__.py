"""Security module for runbox."""

from runbox.security.policy import (
    DEFAULT_BLOCKED_SUBSTRINGS,
    CommandPolicy,
    PathPolicy,
    PolicyGuard,
)

__all__ = ["DEFAULT_BLOCKED_SUBSTRINGS", "CommandPolicy", "PathPolicy", "PolicyGuard"]
