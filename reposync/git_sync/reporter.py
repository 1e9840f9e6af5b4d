"""Plain-text rendering of sync outcomes."""

import sys
from typing import List, Optional, TextIO

from ..config import NORMAL, VERBOSE
from .repository_info import RepoStateKind, SyncAction, SyncOutcome

ATTENTION_KINDS = frozenset({
    RepoStateKind.AHEAD,
    RepoStateKind.BEHIND,
    RepoStateKind.DIVERGED,
    RepoStateKind.DIRTY_UNCOMMITTED,
})

KIND_LABELS = {
    RepoStateKind.UNVERSIONED: "not a git repository",
    RepoStateKind.IGNORED_BY_POLICY: "ignored",
    RepoStateKind.BARE: "bare repository",
    RepoStateKind.CLEAN_FAST_FORWARDABLE: "can be fast-forwarded",
    RepoStateKind.AHEAD: "ahead",
    RepoStateKind.BEHIND: "behind",
    RepoStateKind.DIVERGED: "diverged",
    RepoStateKind.CLEAN_UP_TO_DATE: "up to date",
    RepoStateKind.DIRTY_UNCOMMITTED: "uncommitted changes",
}


def outcome_marker(outcome: SyncOutcome) -> str:
    if not outcome.succeeded:
        return "❌"
    if outcome.action == SyncAction.SKIPPED:
        return "⏭️"
    if outcome.final_kind in ATTENTION_KINDS:
        return "⚠️"
    return "✅"


def summary_line(outcome: SyncOutcome) -> str:
    """The single line printed for an outcome."""
    name = outcome.target.display_name
    state = outcome.state

    if outcome.error_detail:
        text = outcome.error_detail
    elif outcome.action == SyncAction.CLONED:
        text = f"cloned from {outcome.target.remote_ref}"
    elif outcome.action == SyncAction.FETCH_ONLY:
        text = outcome.message or "bare repository, fetched"
    else:
        text = outcome.message or KIND_LABELS[outcome.final_kind]

    details = []
    if state is not None and state.branch_name not in ("none", ""):
        details.append(state.branch_name)
    if state is not None and state.stash_count:
        details.append(f"{state.stash_count} stashed")
    suffix = f" [{', '.join(details)}]" if details else ""

    return f"{outcome_marker(outcome)} {name}: {text}{suffix}"


class OutcomeReporter:
    """Writes one summary line per outcome, plus commit log and stats blocks."""

    def __init__(self, stream: Optional[TextIO] = None, verbosity: int = NORMAL):
        self.stream = stream or sys.stdout
        self.verbosity = verbosity
        self.reported: List[SyncOutcome] = []

    def report(self, outcome: SyncOutcome) -> None:
        self.reported.append(outcome)
        if outcome.suppressed:
            return

        self._write(summary_line(outcome))
        for line in outcome.commit_log:
            self._write(f"    {line}")
        if outcome.stats and self.verbosity >= VERBOSE:
            for line in outcome.stats.splitlines():
                self._write(f"    {line.strip()}")

    def notice(self, message: str) -> None:
        """Category-level message that is not tied to a single target."""
        self._write(f"ℹ️  {message}")

    def problem(self, message: str) -> None:
        self._write(f"❌ {message}")

    def heading(self, category: str, mode: str) -> None:
        if self.verbosity >= NORMAL:
            self._write(f"== {category} ({mode})")

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def totals(self, summary) -> None:
        """Closing line with the number of targets per action."""
        if self.verbosity < NORMAL and summary.ok:
            return
        counts = summary.counts()
        parts = [f"{count} {action.value.replace('_', ' ')}" for action, count in counts.items() if count]
        parts.extend(f"category {name} failed" for name in summary.category_errors)
        self._write(f"{len(summary.outcomes)} repositories: {', '.join(parts) or 'nothing to do'}")
