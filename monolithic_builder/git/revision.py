"""Revision resolution against a cloned working tree.

A revision string is ambiguous: it may name a commit, a branch or a tag.
Interpretations are tried in a fixed order and the first one whose
checkout succeeds wins:

1. commit id, when the string is 7-40 hexadecimal characters
2. branch head
3. tag

An empty string resolves to the current HEAD of the clone without any
checkout by name.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from monolithic_builder.errors import ParseError, ResolutionError
from monolithic_builder.types import RevisionKind

if TYPE_CHECKING:
    from monolithic_builder.process import ProcessInvoker

logger = logging.getLogger(__name__)

GIT = "git"

# Abbreviated to full SHA-1 object id lengths
MIN_COMMIT_LENGTH = 7
MAX_COMMIT_LENGTH = 40

_OBJECT_ID_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")
_COMMIT_PREFIX_RE = re.compile(
    rf"^[0-9a-fA-F]{{{MIN_COMMIT_LENGTH},{MAX_COMMIT_LENGTH}}}$"
)


@dataclass(frozen=True)
class ResolvedRevision:
    """A revision string resolved to a commit.

    Attributes:
        kind: Interpretation that matched.
        commit_sha: Full commit id checked out in the working tree.
    """

    kind: RevisionKind
    commit_sha: str


def candidate_kinds(revision: str) -> list[RevisionKind]:
    """Return the interpretations to try for ``revision``, in order."""
    if not revision:
        return [RevisionKind.DEFAULT]
    kinds: list[RevisionKind] = []
    if _COMMIT_PREFIX_RE.match(revision):
        kinds.append(RevisionKind.COMMIT)
    kinds.extend([RevisionKind.BRANCH, RevisionKind.TAG])
    return kinds


class RevisionResolver:
    """Checks out a revision in a working tree by first-match strategy.

    Args:
        invoker: Process invoker used to run git.
        worktree: Path of the cloned repository.
        depth: Fetch depth for objects missing from a shallow clone
            (0 = full history).
    """

    def __init__(self, invoker: ProcessInvoker, worktree: Path, depth: int = 1) -> None:
        self.invoker = invoker
        self.worktree = worktree
        self.depth = depth

    def _git(self, *args: str) -> list[str]:
        return ["-C", str(self.worktree), *args]

    def _fetch(self, ref: str) -> list[str]:
        depth = ["--depth", str(self.depth)] if self.depth > 0 else []
        return self._git("fetch", *depth, "origin", ref)

    def attempts(self, kind: RevisionKind, revision: str) -> list[list[list[str]]]:
        """Compose the git command sequences that check out ``revision``.

        Each inner list is one alternative; an alternative succeeds when
        all of its commands succeed.

        Args:
            kind: Interpretation to compose commands for.
            revision: The revision string.

        Returns:
            Alternatives in the order they should be tried.
        """
        if kind is RevisionKind.COMMIT:
            return [
                [self._git("checkout", "--detach", revision)],
                [
                    self._fetch(revision),
                    self._git("checkout", "--detach", "FETCH_HEAD"),
                ],
            ]
        if kind is RevisionKind.BRANCH:
            return [
                [
                    self._fetch(f"refs/heads/{revision}"),
                    self._git("checkout", "-B", revision, "FETCH_HEAD"),
                ]
            ]
        if kind is RevisionKind.TAG:
            return [
                [
                    self._fetch(f"refs/tags/{revision}"),
                    self._git("checkout", "--detach", "FETCH_HEAD"),
                ]
            ]
        return [[]]

    def _run_alternative(self, commands: list[list[str]]) -> bool:
        for args in commands:
            result = self.invoker.invoke(GIT, args)
            if not result.ok:
                logger.debug(
                    "git %s failed (%d): %s",
                    " ".join(args[2:]),
                    result.exit_status,
                    result.stderr.strip(),
                )
                return False
        return True

    def head_commit(self) -> str:
        """Return the commit id of HEAD in the working tree.

        Raises:
            ExternalToolError: If git rev-parse failed.
            ParseError: If it did not print an object id.
        """
        result = self.invoker.invoke(GIT, self._git("rev-parse", "HEAD")).check()
        commit_sha = result.stdout.strip()
        if not _OBJECT_ID_RE.match(commit_sha):
            raise ParseError(f"Unexpected git rev-parse output: {commit_sha!r}")
        return commit_sha

    def resolve(self, revision: str) -> ResolvedRevision:
        """Check out ``revision`` and report the resolved commit.

        Args:
            revision: Commit id, branch or tag name; empty for HEAD.

        Returns:
            ResolvedRevision for the first interpretation that worked.

        Raises:
            ResolutionError: If no interpretation could be checked out.
        """
        for kind in candidate_kinds(revision):
            for commands in self.attempts(kind, revision):
                if self._run_alternative(commands):
                    commit_sha = self.head_commit()
                    logger.info(
                        "Resolved revision %r as %s %s",
                        revision,
                        kind.value,
                        commit_sha,
                    )
                    return ResolvedRevision(kind=kind, commit_sha=commit_sha)
        raise ResolutionError(revision)


__all__ = [
    "GIT",
    "MAX_COMMIT_LENGTH",
    "MIN_COMMIT_LENGTH",
    "ResolvedRevision",
    "RevisionResolver",
    "candidate_kinds",
]
