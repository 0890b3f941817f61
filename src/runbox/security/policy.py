"""
Path containment and command denylist policy.

This is the authorization gate every tool call passes through. Both checks
are application-level heuristics: containment is decided on canonical path
strings, and commands are screened by case-insensitive substring match. An
obfuscated command can slip past the denylist; this layer is not a substitute
for kernel isolation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from runbox.errors import InputError, PolicyViolation

logger = logging.getLogger(__name__)

# Substrings that reject a command when found anywhere in it (case-insensitive).
DEFAULT_BLOCKED_SUBSTRINGS: tuple[str, ...] = (
    "sudo",
    "rm -rf",
    "shutdown",
    "reboot",
    "mkfs",
    "dd if=",
    ":(){ :|:& };:",
)


@dataclass(frozen=True)
class CommandPolicy:
    """
    Ordered denylist of command substrings.

    Matching lower-cases both sides and looks for a plain substring, so
    ``"SUDO ls"`` is rejected by the ``sudo`` entry. It is not a shell parser.
    """

    blocked_substrings: tuple[str, ...] = DEFAULT_BLOCKED_SUBSTRINGS

    @classmethod
    def standard(cls) -> CommandPolicy:
        """Create the default denylist policy (recommended)."""
        return cls()

    @classmethod
    def permissive(cls) -> CommandPolicy:
        """
        Create a policy with an empty denylist.

        Use only in trusted environments for debugging.
        """
        return cls(blocked_substrings=())

    def with_blocked(self, *entries: str) -> CommandPolicy:
        """Return a copy of this policy with extra denylist entries appended."""
        return CommandPolicy(blocked_substrings=self.blocked_substrings + tuple(entries))

    def match(self, command: str) -> str | None:
        """Return the first denylist entry found in ``command``, or None."""
        lowered = command.lower()
        for blocked in self.blocked_substrings:
            if blocked.lower() in lowered:
                return blocked
        return None

    def check(self, command: str) -> str:
        """
        Validate a command against the denylist.

        Returns:
            The command, unchanged.

        Raises:
            InputError: ``empty_command`` if the command is empty.
            PolicyViolation: ``blocked_command`` naming the matched entry.
        """
        if not command or not command.strip():
            raise InputError("Command cannot be empty.", code="empty_command")

        blocked = self.match(command)
        if blocked is not None:
            raise PolicyViolation(
                f"Command contains blocked operation: {blocked}",
                code="blocked_command",
                target=command,
            )
        return command


@dataclass(frozen=True)
class PathPolicy:
    """Canonicalizes paths and checks they stay inside a workspace root."""

    @staticmethod
    def canonical_root(root: Path | str) -> Path:
        """
        Resolve the workspace root.

        Raises:
            InputError: ``invalid_workspace_root`` if the root is missing,
                not a directory, or cannot be resolved.
        """
        root_path = Path(root)
        try:
            if not root_path.exists():
                raise InputError(
                    f"Workspace root does not exist: {root_path}", code="invalid_workspace_root"
                )
            if not root_path.is_dir():
                raise InputError(
                    f"Workspace root is not a directory: {root_path}",
                    code="invalid_workspace_root",
                )
            return root_path.resolve()
        except (OSError, RuntimeError, ValueError) as e:
            raise InputError(
                f"Unable to resolve workspace root: {root_path}", code="invalid_workspace_root"
            ) from e

    @staticmethod
    def is_within(root: Path, candidate: Path) -> bool:
        """Segment-wise prefix test, so ``/work`` does not contain ``/workshop``."""
        root_parts = root.parts
        return candidate.parts[: len(root_parts)] == root_parts

    def resolve(self, root: Path | str, target: Path | str) -> Path:
        """
        Return the canonical absolute form of ``target`` inside ``root``.

        Relative targets are taken relative to the canonical root. The target
        itself need not exist, so a file about to be created is a legal target.

        Raises:
            InputError: ``invalid_workspace_root`` or ``invalid_path``.
            PolicyViolation: ``path_outside_workspace``.
        """
        canonical_root = self.canonical_root(root)

        try:
            candidate = Path(target)
            if not candidate.is_absolute():
                candidate = canonical_root / candidate
            resolved = candidate.resolve()
        except (OSError, RuntimeError, ValueError) as e:
            raise InputError(f"Unable to resolve target path: {target}", code="invalid_path") from e

        if not self.is_within(canonical_root, resolved):
            raise PolicyViolation(
                f"Path escapes workspace root: {resolved}",
                code="path_outside_workspace",
                target=str(target),
            )
        return resolved


@dataclass
class PolicyGuard:
    """
    Single authorization gate composed of a path policy and a command policy.

    Every tool operation validates its paths and commands here before it
    touches the filesystem or the process table.
    """

    command_policy: CommandPolicy = field(default_factory=CommandPolicy.standard)
    path_policy: PathPolicy = field(default_factory=PathPolicy)
    logger: logging.Logger = field(default=logger, repr=False)

    def validate_path_in_workspace(self, root: Path | str, target: Path | str) -> Path:
        """Validate that ``target`` resolves inside ``root`` and return it canonical."""
        try:
            return self.path_policy.resolve(root, target)
        except PolicyViolation as e:
            self.logger.warning("Rejected path %s: %s", target, e.message)
            raise

    def validate_command(self, command: str) -> str:
        """Validate ``command`` against the denylist and return it unchanged."""
        try:
            return self.command_policy.check(command)
        except PolicyViolation as e:
            self.logger.warning("Rejected command %r: %s", command, e.message)
            raise
