#!/usr/bin/env python3
"""
Tests for outcome rendering.
"""

import io
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from reposync.config import QUIET, VERBOSE
from reposync.git_sync.planner import RunSummary
from reposync.git_sync.reporter import OutcomeReporter, summary_line
from reposync.git_sync.repository_info import (
    RepoMode, RepoState, RepoStateKind, RepoTarget, SyncAction, SyncOutcome
)


def outcome(kind=RepoStateKind.CLEAN_UP_TO_DATE, action=SyncAction.NONE, **fields):
    target = RepoTarget(local_path=Path("/work/project.git"), mode=RepoMode.LOCAL, provenance="work",
                        remote_ref=fields.pop("remote_ref", None))
    return SyncOutcome(target=target, final_kind=kind, action=action, **fields)


class TestSummaryLine(unittest.TestCase):

    def test_up_to_date_with_branch(self):
        line = summary_line(outcome(state=RepoState(kind=RepoStateKind.CLEAN_UP_TO_DATE, branch_name="main")))
        self.assertEqual(line, "✅ project: up to date [main]")

    def test_error_detail_wins(self):
        line = summary_line(outcome(action=SyncAction.FETCH_FAILED, error_detail="fetch failed: timeout"))
        self.assertEqual(line, "❌ project: fetch failed: timeout")

    def test_attention_state_with_stash(self):
        state = RepoState(kind=RepoStateKind.AHEAD, branch_name="dev", stash_count=2)
        line = summary_line(outcome(RepoStateKind.AHEAD, message="ahead of origin/dev by 1 commit", state=state))
        self.assertEqual(line, "⚠️ project: ahead of origin/dev by 1 commit [dev, 2 stashed]")

    def test_cloned(self):
        line = summary_line(outcome(action=SyncAction.CLONED, remote_ref="box:/srv/project.git"))
        self.assertEqual(line, "✅ project: cloned from box:/srv/project.git")

    def test_skipped(self):
        line = summary_line(outcome(RepoStateKind.IGNORED_BY_POLICY, SyncAction.SKIPPED))
        self.assertEqual(line, "⏭️ project: ignored")


class TestOutcomeReporter(unittest.TestCase):

    def setUp(self):
        self.stream = io.StringIO()

    def test_commit_log_is_indented(self):
        reporter = OutcomeReporter(stream=self.stream)
        reporter.report(outcome(commit_log=["abc123 fix", "def456 feature"]))

        lines = self.stream.getvalue().splitlines()
        self.assertEqual(lines[1:], ["    abc123 fix", "    def456 feature"])

    def test_suppressed_outcome_is_recorded_but_not_printed(self):
        reporter = OutcomeReporter(stream=self.stream, verbosity=QUIET)
        reporter.report(outcome(suppressed=True))

        self.assertEqual(self.stream.getvalue(), "")
        self.assertEqual(len(reporter.reported), 1)

    def test_stats_only_when_verbose(self):
        stats = " README.md | 2 +-\n 1 file changed"
        OutcomeReporter(stream=self.stream).report(outcome(stats=stats))
        self.assertNotIn("file changed", self.stream.getvalue())

        OutcomeReporter(stream=self.stream, verbosity=VERBOSE).report(outcome(stats=stats))
        self.assertIn("    1 file changed", self.stream.getvalue())

    def test_totals(self):
        summary = RunSummary(outcomes=[
            outcome(action=SyncAction.CLONED),
            outcome(action=SyncAction.CLONED),
            outcome(action=SyncAction.FETCH_FAILED, error_detail="x"),
        ], category_errors={"broken": "no host"})

        OutcomeReporter(stream=self.stream).totals(summary)

        self.assertEqual(
            self.stream.getvalue().strip(),
            "3 repositories: 2 cloned, 1 fetch failed, category broken failed"
        )

    def test_quiet_totals_only_on_failure(self):
        OutcomeReporter(stream=self.stream, verbosity=QUIET).totals(RunSummary(outcomes=[outcome()]))
        self.assertEqual(self.stream.getvalue(), "")


if __name__ == '__main__':
    unittest.main()
