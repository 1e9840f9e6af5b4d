#!/usr/bin/env python3
"""
Tests for target enumeration across local, remote and forge categories.

Git, ssh and the forge API are replaced by mocks; only directory layout
on disk is real.
"""

import io
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, call

sys.path.insert(0, str(Path(__file__).parent))

from reposync.config import CategoryConfig, Config, RunConfig
from reposync.errors import CloneError, ConfigError, InterruptSignal
from reposync.git_sync.engine import ReconciliationEngine
from reposync.git_sync.forge import ForgeCatalog
from reposync.git_sync.planner import SyncPlanner, listing_pattern, local_name, resolve_host_and_paths
from reposync.git_sync.reporter import OutcomeReporter
from reposync.git_sync.repository_info import (
    RepoDescriptor, RepoMode, RepoStateKind, SyncAction, SyncOutcome
)
from reposync.git_sync.transport import TransportKind


def up_to_date(target, options):
    return SyncOutcome(target=target, final_kind=RepoStateKind.CLEAN_UP_TO_DATE, action=SyncAction.NONE)


class PlannerTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp()).resolve()
        self.output = io.StringIO()
        self.client = MagicMock()
        self.client.remote_list.return_value = ["origin"]
        self.client.config_get_bool.return_value = None
        self.engine = ReconciliationEngine(client_factory=lambda path: self.client)
        self.engine.reconcile = MagicMock(side_effect=up_to_date)
        self.transports = MagicMock()
        self.catalog = MagicMock()

    def tearDown(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def planner(self, *categories, dry_run=False):
        config = Config(
            run=RunConfig(dry_run=dry_run, ssh_control_dir=self.temp_dir / "sockets"),
            categories={category.name: category for category in categories},
        )
        return SyncPlanner(
            config,
            engine=self.engine,
            transports=self.transports,
            reporter=OutcomeReporter(stream=self.output),
            catalog_factory=lambda category: self.catalog,
        )

    def make_repos(self, directory, *names):
        for name in names:
            (self.temp_dir / directory / name).mkdir(parents=True)
        return self.temp_dir / directory


class TestLocalCategories(PlannerTestCase):

    def test_subdirectories_are_reconciled_in_name_order(self):
        root = self.make_repos("work", "zeta", "alpha")
        (root / "notes.txt").write_text("not a directory")
        category = CategoryConfig(name="work", into=[str(root)])

        summary = self.planner(category).run([category])

        names = [outcome.target.display_name for outcome in summary.outcomes]
        self.assertEqual(names, ["alpha", "zeta"])
        self.assertTrue(summary.ok)
        self.transports.close.assert_called_once_with()

    def test_path_claimed_twice_by_local_categories_is_skipped_silently(self):
        root = self.make_repos("shared", "project")
        first = CategoryConfig(name="first", into=[str(root)])
        second = CategoryConfig(name="second", into=[str(root)])

        summary = self.planner(first, second).run([first, second])

        self.assertEqual(len(summary.outcomes), 1)
        self.assertEqual(summary.outcomes[0].target.provenance, "first")
        self.assertEqual(self.engine.reconcile.call_count, 1)

    def test_missing_root_is_reported(self):
        category = CategoryConfig(name="gone", into=[str(self.temp_dir / "missing")])

        summary = self.planner(category).run([category])

        self.assertEqual(summary.outcomes, [])
        self.assertIn("does not exist", self.output.getvalue())


class TestForgeCategories(PlannerTestCase):

    def descriptor(self, name="tool"):
        return RepoDescriptor(
            name=name,
            owner="octo",
            ssh_url=f"git@github.com:octo/{name}.git",
            clone_url=f"https://github.com/octo/{name}.git",
        )

    def test_existing_clone_is_reconciled(self):
        into = self.make_repos("gh", "tool")
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        category = CategoryConfig(name="gh", into=[str(into)], github=["octo"])

        summary = self.planner(category).run([category])

        self.assertEqual(len(summary.outcomes), 1)
        target = self.engine.reconcile.call_args[0][0]
        self.assertEqual(target.mode, RepoMode.FORGE)
        self.assertEqual(target.local_path, into / "tool")
        self.transports.clone_via.assert_not_called()

    def test_clone_falls_back_to_direct_url(self):
        into = self.temp_dir / "gh"
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        self.transports.clone_via.side_effect = [CloneError("ssh refused"), None]
        category = CategoryConfig(name="gh", into=[str(into)], github=["octo"])

        summary = self.planner(category).run([category])

        self.assertTrue(into.is_dir())
        self.assertEqual(self.transports.clone_via.call_args_list, [
            call(TransportKind.SSH, "git@github.com:octo/tool.git", into / "tool"),
            call(TransportKind.DIRECT, "https://github.com/octo/tool.git", into / "tool"),
        ])
        outcome = summary.outcomes[0]
        self.assertEqual(outcome.action, SyncAction.CLONED)
        self.assertEqual(outcome.target.remote_ref, "https://github.com/octo/tool.git")

    def test_clone_failure_on_every_transport(self):
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        self.transports.clone_via.side_effect = CloneError("git clone failed")
        category = CategoryConfig(name="gh", into=[str(self.temp_dir / "gh")], github=["octo"])

        summary = self.planner(category).run([category])

        outcome = summary.outcomes[0]
        self.assertEqual(outcome.action, SyncAction.CLONE_FAILED)
        self.assertTrue(outcome.error_detail.startswith("clone failed"))
        self.assertFalse(summary.ok)

    def test_fresh_clone_gets_email_and_network_remotes(self):
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        self.catalog.list_network.return_value = ["origin", "upstream-org"]
        category = CategoryConfig(
            name="gh", into=[str(self.temp_dir / "gh")], github=["octo"],
            email="me@example.com", network=True,
        )

        self.planner(category).run([category])

        self.client.config_set.assert_called_once_with("user.email", "me@example.com")
        self.catalog.list_network.assert_called_once_with("octo", "tool")
        self.client.remote_add.assert_called_once_with("upstream-org", "https://github.com/upstream-org/tool.git")
        self.client.fetch_all.assert_called_once_with(prune=False)

    def test_ignored_clone_gets_no_network_remotes(self):
        into = self.make_repos("gh", "tool")
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        self.client.config_get_bool.side_effect = lambda key: key == "sync.ignore"
        self.engine.reconcile.side_effect = lambda target, options: SyncOutcome(
            target=target, final_kind=RepoStateKind.IGNORED_BY_POLICY, action=SyncAction.SKIPPED
        )
        category = CategoryConfig(name="gh", into=[str(into)], github=["octo"], network=True)

        summary = self.planner(category).run([category])

        self.catalog.list_network.assert_not_called()
        self.client.remote_add.assert_not_called()
        self.assertEqual(summary.outcomes[0].final_kind, RepoStateKind.IGNORED_BY_POLICY)

    def test_existing_clone_gets_network_remotes_before_reconcile(self):
        into = self.make_repos("gh", "tool")
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        self.catalog.list_network.return_value = ["upstream-org"]
        category = CategoryConfig(name="gh", into=[str(into)], github=["octo"], network=True)

        self.planner(category).run([category])

        self.client.remote_add.assert_called_once_with("upstream-org", "https://github.com/upstream-org/tool.git")
        self.client.fetch_all.assert_not_called()
        self.engine.reconcile.assert_called_once()

    def test_empty_account_completes_without_outcomes(self):
        session = MagicMock()
        session.get.return_value.json.return_value = []
        catalog = ForgeCatalog(session=session)
        category = CategoryConfig(name="gh", into=[str(self.temp_dir / "gh")], github=["nobody"])
        planner = self.planner(category)
        planner.catalog_factory = lambda category: catalog

        summary = planner.run([category])

        self.assertEqual(summary.outcomes, [])
        self.assertEqual(summary.category_errors, {})

    def test_second_forge_category_reports_already_synced(self):
        into = self.make_repos("gh", "tool")
        self.catalog.iter_repositories.side_effect = lambda account: iter([self.descriptor()])
        first = CategoryConfig(name="first", into=[str(into)], github=["octo"])
        second = CategoryConfig(name="second", into=[str(into)], github=["octo"])

        summary = self.planner(first, second).run([first, second])

        self.assertEqual(len(summary.outcomes), 2)
        duplicate = summary.outcomes[1]
        self.assertEqual(duplicate.action, SyncAction.SKIPPED)
        self.assertEqual(duplicate.message, "already synced by category first")
        self.assertEqual(self.engine.reconcile.call_count, 1)

    def test_dry_run_does_not_clone(self):
        into = self.temp_dir / "gh"
        self.catalog.iter_repositories.return_value = iter([self.descriptor()])
        category = CategoryConfig(name="gh", into=[str(into)], github=["octo"])

        summary = self.planner(category, dry_run=True).run([category])

        self.transports.clone_via.assert_not_called()
        self.assertFalse(into.exists())
        self.assertEqual(summary.outcomes[0].action, SyncAction.SKIPPED)
        self.assertIn("would clone", summary.outcomes[0].message)


class TestRemoteCategories(PlannerTestCase):

    def remote_shell(self, listings, ignored=()):
        def run_remote(host, command):
            if command.startswith("ls -1d "):
                return listings.get(command[len("ls -1d "):], (2, ""))
            if command.startswith("test -d"):
                return 0, ""
            if command.startswith("cd "):
                return (0, "true\n") if any(name in command for name in ignored) else (1, "")
            raise AssertionError(f"unexpected command {command}")
        return run_remote

    def test_listing_failure_moves_on_to_next_path(self):
        self.transports.run_remote.side_effect = self.remote_shell({
            "/srv/b/*": (0, "/srv/b/proj.git\n"),
        })
        into = self.temp_dir / "mirror"
        category = CategoryConfig(name="srv", into=[str(into)], host=["box"], path=["/srv/a", "/srv/b"])

        summary = self.planner(category).run([category])

        self.assertIn("cannot list box:/srv/a", self.output.getvalue())
        self.assertEqual(len(summary.outcomes), 1)
        self.transports.clone_via.assert_called_once_with(TransportKind.SSH, "box:/srv/b/proj.git", into / "proj")
        self.assertEqual(summary.outcomes[0].action, SyncAction.CLONED)

    def test_remote_sync_ignore_prevents_clone(self):
        self.transports.run_remote.side_effect = self.remote_shell(
            {"/srv/*": (0, "/srv/private\n/srv/public\n")}, ignored=("private",)
        )
        category = CategoryConfig(name="srv", into=[str(self.temp_dir / "mirror")], path=["box:/srv"])

        summary = self.planner(category).run([category])

        kinds = {outcome.target.display_name: outcome.final_kind for outcome in summary.outcomes}
        self.assertEqual(kinds["private"], RepoStateKind.IGNORED_BY_POLICY)
        self.assertEqual(self.transports.clone_via.call_count, 1)

    def test_existing_local_copy_is_reconciled_not_cloned(self):
        into = self.make_repos("mirror", "proj")
        self.transports.run_remote.side_effect = self.remote_shell({"/srv/*": (0, "/srv/proj\n")})
        category = CategoryConfig(name="srv", into=[str(into)], host=["box:/srv"])

        summary = self.planner(category).run([category])

        self.assertEqual(summary.outcomes[0].target.remote_ref, "box:/srv/proj")
        self.transports.clone_via.assert_not_called()

    def test_bad_category_is_recorded_and_run_continues(self):
        broken = CategoryConfig(name="broken", into=[str(self.temp_dir / "x")], host=["one", "two"], path=["/srv"])
        local = CategoryConfig(name="local", into=[str(self.make_repos("work", "proj"))])

        summary = self.planner(broken, local).run([broken, local])

        self.assertIn("broken", summary.category_errors)
        self.assertEqual(len(summary.outcomes), 1)

    def test_unparseable_category_is_recorded_and_others_run(self):
        local = CategoryConfig(name="local", into=[str(self.make_repos("work", "proj"))])
        config = Config(
            run=RunConfig(ssh_control_dir=self.temp_dir / "sockets"),
            categories={"local": local},
            invalid_categories={"bad": "invalid boolean for sync.bad.network: 'maybe'"},
        )
        planner = SyncPlanner(
            config, engine=self.engine, transports=self.transports,
            reporter=OutcomeReporter(stream=self.output),
        )

        summary = planner.run([local])

        self.assertEqual(list(summary.category_errors), ["bad"])
        self.assertEqual(len(summary.outcomes), 1)
        self.assertFalse(summary.ok)
        self.assertIn("sync.bad.network", self.output.getvalue())

    def test_interrupt_aborts_run_and_closes_sessions(self):
        self.transports.run_remote.side_effect = InterruptSignal(2, "ssh")
        category = CategoryConfig(name="srv", into=[str(self.temp_dir / "mirror")], path=["box:/srv"])

        with self.assertRaises(InterruptSignal):
            self.planner(category).run([category])

        self.transports.close.assert_called_once_with()
        self.assertIn("interrupted", self.output.getvalue())


class TestRemoteHelpers(unittest.TestCase):

    def test_host_and_paths_from_either_key(self):
        category = CategoryConfig(name="c", host=["box:/srv/git"], path=["/home/git", "box:/opt/git"])
        self.assertEqual(resolve_host_and_paths(category), ("box", ["/srv/git", "/home/git", "/opt/git"]))

    def test_missing_path_is_config_error(self):
        with self.assertRaises(ConfigError):
            resolve_host_and_paths(CategoryConfig(name="c", host=["box"]))

    def test_listing_pattern(self):
        self.assertEqual(listing_pattern("/srv/git/"), "/srv/git/*")
        self.assertEqual(listing_pattern("/srv/*.git"), "/srv/*.git")
        self.assertEqual(listing_pattern("/srv/my repos"), "'/srv/my repos'/*")

    def test_local_name_strips_git_suffix(self):
        self.assertEqual(local_name("/srv/proj.git"), "proj")
        self.assertEqual(local_name("/srv/proj/"), "proj")


if __name__ == '__main__':
    unittest.main()
