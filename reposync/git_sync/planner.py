"""Enumeration of sync targets across local, remote and forge categories."""

import logging
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from git import GitCommandError

from ..config import CategoryConfig, Config
from ..errors import (
    CloneError, ConfigError, ForgeError, InterruptSignal, NotARepository, SyncError, error_handler
)
from .engine import ReconciliationEngine, SyncOptions
from .forge import ForgeCatalog, network_remote_url
from .repository_info import (
    RepoDescriptor, RepoMode, RepoStateKind, RepoTarget, SyncAction, SyncOutcome
)
from .reporter import OutcomeReporter
from .transport import SSHSessionPool, TransportKind, TransportProvider

GLOB_CHARACTERS = set("*?[")


@dataclass
class RunSummary:
    """Everything that happened during one run."""
    outcomes: List[SyncOutcome] = field(default_factory=list)
    category_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> List[SyncOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failed and not self.category_errors

    def counts(self) -> Dict[SyncAction, int]:
        counts: Dict[SyncAction, int] = {}
        for outcome in self.outcomes:
            counts[outcome.action] = counts.get(outcome.action, 0) + 1
        return counts


def resolve_host_and_paths(category: CategoryConfig) -> Tuple[str, List[str]]:
    """
    Work out the single host and the remote paths of a remote category.

    ``host`` may carry a path (``host:/srv/git``) and paths may carry the
    host (``host:/srv/git``); both forms are split.

    Raises:
        ConfigError: if no host, several hosts or no path can be resolved
    """
    hosts = []
    paths = []
    for value in category.host:
        host, sep, path = value.partition(":")
        hosts.append(host)
        if sep and path:
            paths.append(path)
    for value in category.path:
        value = str(value)
        if ":" in value:
            host, _, path = value.partition(":")
            hosts.append(host)
            paths.append(path)
        else:
            paths.append(value)

    hosts = list(dict.fromkeys(h for h in hosts if h))
    if len(hosts) != 1:
        raise ConfigError(f"category '{category.name}' needs exactly one host, found {len(hosts)}")
    if not paths:
        raise ConfigError(f"category '{category.name}' needs at least one path")
    return hosts[0], paths


def listing_pattern(path: str) -> str:
    """Shell pattern listing the entries a configured remote path stands for."""
    if GLOB_CHARACTERS & set(path):
        return path
    return f"{shlex.quote(path.rstrip('/') or '/')}/*"


def local_name(entry: str) -> str:
    name = PurePosixPath(entry.rstrip("/")).name
    if name.endswith(".git") and len(name) > len(".git"):
        name = name[:-len(".git")]
    return name


class SyncPlanner:
    """
    Walks the selected categories and hands each discovered target to the engine.

    The planner owns the state shared by the whole run: the local paths
    already processed and the shared ssh sessions. Both live from
    construction until ``close``.
    """

    def __init__(
        self,
        config: Config,
        engine: Optional[ReconciliationEngine] = None,
        transports: Optional[TransportProvider] = None,
        reporter: Optional[OutcomeReporter] = None,
        catalog_factory: Optional[Callable[[CategoryConfig], ForgeCatalog]] = None
    ):
        self.run_config = config.run
        self.options = SyncOptions.from_run_config(config.run)
        self.engine = engine or ReconciliationEngine()
        if transports is None:
            master_hosts = [host for category in config.categories.values() for host in category.sshmaster]
            transports = TransportProvider(SSHSessionPool(master_hosts, config.run.ssh_control_dir))
        self.transports = transports
        self.reporter = reporter or OutcomeReporter(verbosity=self.options.verbosity)
        self.catalog_factory = catalog_factory or self._create_catalog
        self.logger = logging.getLogger('reposync.git_sync.planner')
        self.seen: Dict[Path, str] = {}
        self.summary = RunSummary()
        self.invalid_categories = dict(config.invalid_categories)

    def run(self, categories: Iterable[CategoryConfig]) -> RunSummary:
        """Process categories in order; an interrupt aborts the whole run."""
        for name, problem in sorted(self.invalid_categories.items()):
            self.summary.category_errors[name] = problem
            self.reporter.problem(f"{name}: {problem}")

        try:
            for category in categories:
                self.sync_category(category)
        except (KeyboardInterrupt, InterruptSignal):
            self.reporter.problem("interrupted, stopping")
            raise
        finally:
            self.close()

        self.engine.perf_logger.log_performance_summary()
        return self.summary

    def close(self) -> None:
        self.transports.close()

    def sync_category(self, category: CategoryConfig) -> None:
        mode = category.mode
        self.reporter.heading(category.name, mode.value)
        handlers = {
            RepoMode.LOCAL: self._sync_local,
            RepoMode.REMOTE: self._sync_remote,
            RepoMode.FORGE: self._sync_forge,
        }
        try:
            with self.engine.perf_logger.time_operation(f"category {category.name}"):
                handlers[mode](category)
        except (ConfigError, ForgeError) as e:
            self.logger.error(f"Category {category.name} aborted: {e}")
            self.summary.category_errors[category.name] = str(e)
            self.reporter.problem(f"{category.name}: {e}")

    # Bookkeeping

    def _claim(self, target: RepoTarget, force: bool) -> bool:
        """
        Record ``target`` as processed; False if its path was already seen.

        A repeat under ``force`` is reported, otherwise it is skipped silently.
        """
        key = Path(target.local_path).resolve()
        owner = self.seen.get(key)
        if owner is None:
            self.seen[key] = target.provenance
            return True

        self.logger.debug(f"{key} already handled by category {owner}")
        if force:
            self._emit(SyncOutcome(
                target=target,
                final_kind=RepoStateKind.UNVERSIONED,
                action=SyncAction.SKIPPED,
                message=f"already synced by category {owner}",
            ))
        return False

    def _emit(self, outcome: SyncOutcome) -> None:
        self.summary.outcomes.append(outcome)
        self.reporter.report(outcome)

    def _reconcile(self, target: RepoTarget) -> None:
        self._emit(self.engine.reconcile(target, self.options))

    # Local categories

    def _sync_local(self, category: CategoryConfig) -> None:
        if not category.into:
            raise ConfigError(f"category '{category.name}' has no 'into' directory")

        for root in category.into:
            if not root.is_dir():
                self.reporter.problem(f"{category.name}: {root} does not exist")
                continue
            for entry in sorted(root.iterdir()):
                if not entry.is_dir():
                    continue
                target = RepoTarget(local_path=entry, mode=RepoMode.LOCAL, provenance=category.name)
                if self._claim(target, force=False):
                    self._reconcile(target)

    # Forge categories

    def _create_catalog(self, category: CategoryConfig) -> ForgeCatalog:
        return ForgeCatalog(
            api_url=self.run_config.github_api_url,
            login=category.login or self.run_config.github_login,
            token=category.token or self.run_config.github_token,
            organization=category.organization,
            timeout=self.run_config.http_timeout,
        )

    def _ensure_into(self, category: CategoryConfig) -> Optional[Path]:
        into = category.into.single("into", category.name)
        if into.is_dir():
            return into
        if self.options.dry_run:
            self.reporter.notice(f"{category.name}: would create {into}")
            return into
        try:
            into.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.reporter.problem(f"{category.name}: cannot create {into}: {e.strerror or e}")
            self.summary.category_errors[category.name] = f"cannot create {into}"
            return None
        self.reporter.notice(f"{category.name}: created {into}")
        return into

    def _sync_forge(self, category: CategoryConfig) -> None:
        into = self._ensure_into(category)
        if into is None:
            return

        catalog = self.catalog_factory(category)
        for account in category.github:
            for descriptor in catalog.iter_repositories(account):
                target = RepoTarget(
                    local_path=into / descriptor.name,
                    mode=RepoMode.FORGE,
                    provenance=category.name,
                    remote_ref=descriptor.ssh_url or descriptor.clone_url,
                )
                if not self._claim(target, force=True):
                    continue
                if target.local_path.exists():
                    if category.network and not self.options.dry_run:
                        self._refresh_network(catalog, descriptor, target.local_path, fetch=False)
                    self._reconcile(target)
                else:
                    self._emit(self._clone_from_forge(category, catalog, descriptor, target))

    def _clone_from_forge(
        self,
        category: CategoryConfig,
        catalog: ForgeCatalog,
        descriptor: RepoDescriptor,
        target: RepoTarget
    ) -> SyncOutcome:
        attempts = [
            (TransportKind.SSH, descriptor.ssh_url),
            (TransportKind.DIRECT, descriptor.clone_url),
        ]
        outcome = self._clone(target, [(kind, source) for kind, source in attempts if source])
        if outcome.action != SyncAction.CLONED:
            return outcome

        if category.email:
            try:
                self.engine.client_factory(target.local_path).config_set("user.email", category.email)
            except (GitCommandError, NotARepository) as e:
                self.logger.warning(f"Cannot set user.email in {target.local_path}: {e}")
        if category.network:
            self._refresh_network(catalog, descriptor, target.local_path, fetch=True)
        return outcome

    def _refresh_network(self, catalog: ForgeCatalog, descriptor: RepoDescriptor, path: Path, fetch: bool) -> None:
        """Add a remote for every related account that has none yet."""
        try:
            client = self.engine.client_factory(path)
            if client.config_get_bool("sync.ignore"):
                self.logger.debug(f"Not refreshing network remotes of ignored {path.name}")
                return
            accounts = catalog.list_network(descriptor.owner, descriptor.name)
            existing = set(client.remote_list())
            added = []
            for account in accounts:
                if account in existing:
                    continue
                client.remote_add(account, network_remote_url(descriptor, account))
                added.append(account)
            if added:
                self.logger.info(f"Added network remotes to {path.name}: {', '.join(added)}")
                if fetch:
                    client.fetch_all(prune=False)
        except InterruptSignal:
            raise
        except (SyncError, GitCommandError) as e:
            self.logger.warning(f"Cannot refresh network remotes of {descriptor.name}: {e}")

    # Remote categories

    def _sync_remote(self, category: CategoryConfig) -> None:
        host, paths = resolve_host_and_paths(category)
        into = self._ensure_into(category)
        if into is None:
            return

        for path in paths:
            pattern = listing_pattern(path)
            code, output = self.transports.run_remote(host, f"ls -1d {pattern}")
            if code != 0:
                self.reporter.problem(f"{category.name}: cannot list {host}:{path} (exit status {code})")
                continue

            for entry in output.splitlines():
                entry = entry.strip()
                if not entry:
                    continue
                target = RepoTarget(
                    local_path=into / local_name(entry),
                    mode=RepoMode.REMOTE,
                    provenance=category.name,
                    remote_ref=f"{host}:{entry}",
                )
                if not self._claim(target, force=True):
                    continue
                if target.local_path.exists():
                    self._reconcile(target)
                else:
                    self._emit(self._clone_from_host(host, entry, target))

    def _clone_from_host(self, host: str, entry: str, target: RepoTarget) -> SyncOutcome:
        quoted = shlex.quote(entry)
        code, _ = self.transports.run_remote(host, f"test -d {quoted}/.git || test -f {quoted}/HEAD")
        if code != 0:
            return SyncOutcome(
                target=target,
                final_kind=RepoStateKind.UNVERSIONED,
                action=SyncAction.SKIPPED,
                message=f"not a git repository on {host}",
            )

        code, output = self.transports.run_remote(host, f"cd {quoted} && git config --bool sync.ignore")
        if code == 0 and output.strip() == "true":
            return SyncOutcome(
                target=target,
                final_kind=RepoStateKind.IGNORED_BY_POLICY,
                action=SyncAction.SKIPPED,
                message=f"ignored on {host} (sync.ignore)",
            )

        return self._clone(target, [(TransportKind.SSH, target.remote_ref)])

    # Cloning

    def _clone(self, target: RepoTarget, attempts: Sequence[Tuple[TransportKind, str]]) -> SyncOutcome:
        """Try each (transport, source) in turn; the first success wins."""
        if not attempts:
            return SyncOutcome(
                target=target,
                final_kind=RepoStateKind.UNVERSIONED,
                action=SyncAction.CLONE_FAILED,
                error_detail="no clone URL available",
            )

        if self.options.dry_run:
            return SyncOutcome(
                target=target,
                final_kind=RepoStateKind.UNVERSIONED,
                action=SyncAction.SKIPPED,
                message=f"would clone from {attempts[0][1]}",
            )

        last_error: Optional[CloneError] = None
        for kind, source in attempts:
            try:
                with self.engine.perf_logger.time_operation("clone", {"source": source, "transport": kind.value}):
                    self.transports.clone_via(kind, source, target.local_path)
            except CloneError as e:
                self.logger.info(f"Clone of {source} via {kind.value} failed: {e}")
                last_error = e
                continue
            return SyncOutcome(
                target=replace(target, remote_ref=source),
                final_kind=RepoStateKind.CLEAN_UP_TO_DATE,
                action=SyncAction.CLONED,
            )

        description = error_handler.describe(last_error, {'repository_path': str(target.local_path)})
        return SyncOutcome(
            target=target,
            final_kind=RepoStateKind.UNVERSIONED,
            action=SyncAction.CLONE_FAILED,
            error_detail=description.message,
        )
