"""Interpretation of ``git status`` output into a RepoState."""

import logging
import re
from typing import Optional

from .repository_info import RepoState, RepoStateKind

CLEAN_PHRASE = "nothing to commit"

BRANCH_PATTERN = re.compile(r"^On branch (?P<branch>\S+)", re.MULTILINE)
DETACHED_PATTERN = re.compile(r"^(HEAD detached (at|from) |Not currently on any branch)", re.MULTILINE)

FAST_FORWARD_PATTERN = re.compile(
    r"Your branch is behind '(?P<ref>[^']+)' by (?P<behind>\d+) commits?,\s+and can be fast-forwarded"
)
DIVERGED_PATTERN = re.compile(
    r"Your branch and '(?P<ref>[^']+)' have diverged,\s+"
    r"and have (?P<ahead>\d+) and (?P<behind>\d+) different commits? each"
)
AHEAD_PATTERN = re.compile(r"Your branch is ahead of '(?P<ref>[^']+)' by (?P<ahead>\d+) commits?")
BEHIND_PATTERN = re.compile(r"Your branch is behind '(?P<ref>[^']+)' by (?P<behind>\d+) commits?")


class StatusInterpreter:
    """
    Classifies a working copy from the text ``git status`` prints.

    Exactly one kind is chosen, in priority order: bare, unversioned,
    ignored, clean fast-forwardable, diverged, ahead, behind, dirty and
    finally up to date. Text that matches no tracking pattern falls through
    to dirty or up to date; parsing never raises.
    """

    def __init__(self):
        self.logger = logging.getLogger('reposync.git_sync.status')

    def parse(
        self,
        raw_status: Optional[str],
        is_bridged_vcs: bool = False,
        *,
        is_bare: bool = False,
        ignored: bool = False
    ) -> RepoState:
        """
        Build a RepoState from raw status text.

        Args:
            raw_status: Output of ``git status``, or None if the query failed
            is_bridged_vcs: Whether the working copy is a git-svn clone
            is_bare: Whether git reports the repository as bare
            ignored: Whether ``sync.ignore`` is set for the repository

        Returns:
            RepoState with exactly one kind
        """
        if is_bare:
            return RepoState(kind=RepoStateKind.BARE, is_bridged_vcs=is_bridged_vcs)
        if raw_status is None:
            return RepoState(kind=RepoStateKind.UNVERSIONED)
        if ignored:
            return RepoState(kind=RepoStateKind.IGNORED_BY_POLICY, is_bridged_vcs=is_bridged_vcs)

        state = RepoState(
            kind=RepoStateKind.CLEAN_UP_TO_DATE,
            branch_name=self._branch_name(raw_status),
            is_bridged_vcs=is_bridged_vcs,
            dirty=CLEAN_PHRASE not in raw_status,
        )

        fast_forward = FAST_FORWARD_PATTERN.search(raw_status)
        diverged = DIVERGED_PATTERN.search(raw_status)
        ahead = AHEAD_PATTERN.search(raw_status)
        behind = BEHIND_PATTERN.search(raw_status)

        if fast_forward and not ahead and not state.dirty and int(fast_forward.group("behind")) > 0:
            state.kind = RepoStateKind.CLEAN_FAST_FORWARDABLE
            state.tracking_ref = fast_forward.group("ref")
            state.behind_count = int(fast_forward.group("behind"))
        elif diverged:
            state.kind = RepoStateKind.DIVERGED
            state.tracking_ref = diverged.group("ref")
            state.ahead_count = int(diverged.group("ahead"))
            state.behind_count = int(diverged.group("behind"))
        elif ahead and behind:
            state.kind = RepoStateKind.DIVERGED
            state.tracking_ref = ahead.group("ref")
            state.ahead_count = int(ahead.group("ahead"))
            state.behind_count = int(behind.group("behind"))
        elif ahead:
            state.kind = RepoStateKind.AHEAD
            state.tracking_ref = ahead.group("ref")
            state.ahead_count = int(ahead.group("ahead"))
        elif behind:
            state.kind = RepoStateKind.BEHIND
            state.tracking_ref = behind.group("ref")
            state.behind_count = int(behind.group("behind"))
        elif state.dirty:
            state.kind = RepoStateKind.DIRTY_UNCOMMITTED

        self.logger.debug(f"Parsed status: {state}")
        return state

    @staticmethod
    def _branch_name(raw_status: str) -> str:
        match = BRANCH_PATTERN.search(raw_status)
        if match:
            return match.group("branch")
        if DETACHED_PATTERN.search(raw_status):
            return "detached"
        return "none"


def parse_status(raw_status: Optional[str], is_bridged_vcs: bool = False, **flags) -> RepoState:
    """Convenience wrapper around a module-level StatusInterpreter."""
    return _interpreter.parse(raw_status, is_bridged_vcs, **flags)


_interpreter = StatusInterpreter()
