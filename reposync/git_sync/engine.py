"""Per-repository reconciliation: fetch, classify, and fast-forward when safe."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from git import GitCommandError

from ..config import NORMAL, RunConfig
from ..errors import ErrorHandler, FetchError, InterruptSignal, NotARepository, SyncError, error_handler
from .client import GitClient, raise_if_signalled
from .performance_logger import PerformanceLogger
from .repository_info import RepoState, RepoStateKind, RepoTarget, SyncAction, SyncOutcome
from .status import StatusInterpreter

REPORT_ONLY_KINDS = frozenset({
    RepoStateKind.DIVERGED,
    RepoStateKind.AHEAD,
    RepoStateKind.BEHIND,
    RepoStateKind.CLEAN_UP_TO_DATE,
    RepoStateKind.DIRTY_UNCOMMITTED,
})


@dataclass
class SyncOptions:
    """Switches that shape a single reconciliation."""
    dry_run: bool = False
    auto_integrate: bool = True
    show_log: bool = False
    show_stash: bool = False
    run_gc: bool = False
    verbosity: int = NORMAL

    @classmethod
    def from_run_config(cls, run: RunConfig) -> "SyncOptions":
        return cls(
            dry_run=run.dry_run,
            show_log=run.show_log,
            show_stash=run.show_stash,
            run_gc=run.run_gc,
            verbosity=run.verbosity,
        )


def is_terse(state: RepoState, options: SyncOptions) -> bool:
    """Whether an outcome carries nothing worth printing in quiet mode."""
    return (
        options.verbosity < NORMAL
        and state.kind == RepoStateKind.CLEAN_UP_TO_DATE
        and not state.dirty
        and state.stash_count == 0
    )


def _plural(count: int, word: str = "commit") -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


class ReconciliationEngine:
    """
    Decides and applies the minimal safe action for one working copy.

    The flow for a target is linear: resolve the working copy, honour
    ``sync.ignore``, fetch, stop for bare repositories, read and interpret
    status, then either fast-forward (the only case allowed to touch the
    working tree) or report. Errors for a target end up in its SyncOutcome;
    only InterruptSignal and KeyboardInterrupt propagate.
    """

    def __init__(
        self,
        interpreter: Optional[StatusInterpreter] = None,
        client_factory: Callable[..., GitClient] = GitClient.open,
        perf_logger: Optional[PerformanceLogger] = None,
        handler: ErrorHandler = error_handler
    ):
        self.interpreter = interpreter or StatusInterpreter()
        self.client_factory = client_factory
        self.perf_logger = perf_logger or PerformanceLogger()
        self.error_handler = handler
        self.logger = logging.getLogger('reposync.git_sync.engine')

    def reconcile(self, target: RepoTarget, options: SyncOptions) -> SyncOutcome:
        """
        Bring one target up to date without discarding local work.

        Args:
            target: Repository to reconcile; its local path must already exist
            options: Behaviour switches for this run

        Returns:
            SyncOutcome describing the final state and the action taken
        """
        self.logger.debug(f"Reconciling {target.local_path} ({target.provenance})")
        outcome = SyncOutcome(target=target, final_kind=RepoStateKind.UNVERSIONED, action=SyncAction.NONE)

        try:
            client = self.client_factory(target.local_path)
        except NotARepository:
            outcome.action = SyncAction.SKIPPED
            outcome.message = "not a git repository"
            return outcome

        try:
            self._reconcile(client, outcome, options)
        except InterruptSignal:
            raise
        except (GitCommandError, SyncError, OSError) as e:
            description = self.error_handler.describe(e, {'repository_path': str(target.local_path)})
            self.logger.warning(f"{target.display_name}: {description.message}")
            outcome.error_detail = description.message
        return outcome

    def _reconcile(self, client: GitClient, outcome: SyncOutcome, options: SyncOptions) -> None:
        target = outcome.target

        if client.config_get_bool("sync.ignore"):
            outcome.final_kind = RepoStateKind.IGNORED_BY_POLICY
            outcome.action = SyncAction.SKIPPED
            outcome.message = "ignored (sync.ignore)"
            return

        bare = client.is_bare()
        bridged = not bare and client.is_bridged_vcs()

        if not options.dry_run:
            try:
                self._fetch(client, bridged, target)
            except FetchError as e:
                description = self.error_handler.describe(e, {'repository_path': str(target.local_path)})
                self.logger.warning(f"{target.display_name}: {description.message}")
                outcome.action = SyncAction.FETCH_FAILED
                outcome.error_detail = description.message
                if bare:
                    outcome.final_kind = RepoStateKind.BARE
                else:
                    outcome.state = self._read_state(client, bridged)
                    outcome.final_kind = outcome.state.kind
                return

        if bare:
            outcome.final_kind = RepoStateKind.BARE
            outcome.state = self.interpreter.parse(None, is_bare=True)
            outcome.action = SyncAction.NONE if options.dry_run else SyncAction.FETCH_ONLY
            return

        state = self._read_state(client, bridged)
        outcome.state = state
        outcome.final_kind = state.kind

        if state.kind == RepoStateKind.UNVERSIONED:
            outcome.action = SyncAction.SKIPPED
            outcome.message = "not a git working tree"
            return

        if options.show_stash:
            state.stash_count = len(client.stash_list())

        if state.kind == RepoStateKind.CLEAN_FAST_FORWARDABLE:
            self._fast_forward(client, state, outcome, options)
        elif state.kind in REPORT_ONLY_KINDS:
            self._collect_garbage(client, options)
            self._report_only(client, state, outcome, options)

    def _fetch(self, client: GitClient, bridged: bool, target: RepoTarget) -> None:
        with self.perf_logger.time_operation("fetch", {"repository": target.display_name}):
            if bridged:
                client.bridge_fetch()
            else:
                client.fetch_all(prune=True)
                client.fetch_tags()

    def _read_state(self, client: GitClient, bridged: bool) -> RepoState:
        if bridged:
            branch = client.symbolic_ref("HEAD")
            if branch:
                with client.temporary_upstream(branch, client.bridge_tracking_ref()):
                    raw_status = self._status_or_none(client)
                return self.interpreter.parse(raw_status, bridged)
        return self.interpreter.parse(self._status_or_none(client), bridged)

    def _status_or_none(self, client: GitClient) -> Optional[str]:
        try:
            return client.status()
        except NotARepository as e:
            self.logger.debug(f"Status unavailable: {e}")
            return None

    def _fast_forward(self, client: GitClient, state: RepoState, outcome: SyncOutcome, options: SyncOptions) -> None:
        if options.show_log:
            # commits about to be applied, read before the branch moves
            outcome.commit_log = client.commit_log(f"{state.branch_name}..{state.tracking_ref}")

        if options.dry_run or not options.auto_integrate:
            outcome.message = f"would fast-forward {_plural(state.behind_count)} from {state.tracking_ref}"
            return

        try:
            with self.perf_logger.time_operation("integrate", {"repository": outcome.target.display_name}):
                outcome.stats = client.integrate(bridged=state.is_bridged_vcs)
        except GitCommandError as e:
            raise_if_signalled(e)
            description = self.error_handler.describe(e, {'repository_path': str(outcome.target.local_path)})
            self.logger.warning(f"{outcome.target.display_name}: fast-forward failed: {description.message}")
            outcome.error_detail = description.message
            return

        outcome.action = SyncAction.FETCH_AND_INTEGRATE
        outcome.final_kind = RepoStateKind.CLEAN_UP_TO_DATE
        outcome.message = f"fast-forwarded {_plural(state.behind_count)} from {state.tracking_ref}"
        self._collect_garbage(client, options)

    def _report_only(self, client: GitClient, state: RepoState, outcome: SyncOutcome, options: SyncOptions) -> None:
        if options.show_log and state.tracking_ref:
            if state.kind == RepoStateKind.AHEAD:
                outcome.commit_log = client.commit_log(f"{state.tracking_ref}..{state.branch_name}")
            elif state.kind == RepoStateKind.BEHIND:
                outcome.commit_log = client.commit_log(f"{state.branch_name}..{state.tracking_ref}")

        if state.kind == RepoStateKind.AHEAD:
            outcome.message = f"ahead of {state.tracking_ref} by {_plural(state.ahead_count)}"
        elif state.kind == RepoStateKind.BEHIND:
            outcome.message = f"behind {state.tracking_ref} by {_plural(state.behind_count)}"
            if state.dirty:
                outcome.message += ", working tree dirty"
        elif state.kind == RepoStateKind.DIVERGED:
            outcome.message = (
                f"diverged from {state.tracking_ref} "
                f"({state.ahead_count} ahead, {state.behind_count} behind)"
            )
        elif state.kind == RepoStateKind.DIRTY_UNCOMMITTED:
            outcome.message = "uncommitted changes"
        else:
            outcome.message = "up to date"

        outcome.suppressed = is_terse(state, options)

    def _collect_garbage(self, client: GitClient, options: SyncOptions) -> None:
        if not options.run_gc or options.dry_run:
            return
        try:
            with self.perf_logger.time_operation("gc", {"repository": client.path.name}):
                client.gc()
        except GitCommandError as e:
            raise_if_signalled(e)
            self.logger.warning(f"git gc failed in {client.path}: {e}")
