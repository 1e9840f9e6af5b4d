"""Thin GitPython wrapper exposing the operations the sync engine needs."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from git import Repo, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..errors import FetchError, InterruptSignal, NotARepository

DEFAULT_BRIDGE_REF = "refs/remotes/git-svn"

# git config exit codes
CONFIG_KEY_MISSING = 1
CONFIG_NOTHING_TO_UNSET = 5


def raise_if_signalled(error: GitCommandError, command: str = "git") -> None:
    """Turn a git invocation killed by a signal into InterruptSignal."""
    status = error.status
    if isinstance(status, int) and status < 0:
        raise InterruptSignal(-status, command) from error


class GitClient:
    """
    Capability wrapper around one working copy.

    Every git invocation goes through ``_git`` so that a child process killed
    by a signal surfaces as ``InterruptSignal`` instead of an ordinary
    command failure.
    """

    def __init__(self, repo: Repo):
        self.repo = repo
        self.logger = logging.getLogger('reposync.git_sync.client')

    @classmethod
    def open(cls, path: Path) -> "GitClient":
        """
        Open the working copy at ``path``.

        Raises:
            NotARepository: if ``path`` is missing or not a git repository
        """
        try:
            return cls(Repo(path))
        except NoSuchPathError as e:
            raise NotARepository(path, "no such path") from e
        except InvalidGitRepositoryError as e:
            raise NotARepository(path) from e

    @property
    def path(self) -> Path:
        return Path(self.repo.working_tree_dir or self.repo.git_dir)

    def _git(self, command: str, *args, **kwargs) -> str:
        try:
            return getattr(self.repo.git, command)(*args, **kwargs)
        except GitCommandError as e:
            raise_if_signalled(e, f"git {command.replace('_', '-')}")
            raise

    # Network operations

    def fetch_all(self, prune: bool = True) -> None:
        """Fetch every remote, pruning stale remote-tracking refs."""
        args = ["--all", "--prune"] if prune else ["--all"]
        try:
            self._git("fetch", *args)
        except GitCommandError as e:
            raise FetchError(f"git fetch failed for {self.path}") from e

    def fetch_tags(self) -> None:
        """Fetch all tags from every remote."""
        try:
            self._git("fetch", "--all", "--tags")
        except GitCommandError as e:
            raise FetchError(f"git fetch --tags failed for {self.path}") from e

    def bridge_fetch(self) -> None:
        """Fetch new revisions into a git-svn clone."""
        try:
            self._git("svn", "fetch")
        except GitCommandError as e:
            raise FetchError(f"git svn fetch failed for {self.path}") from e

    # Read-only queries

    def status(self) -> str:
        """
        Raw ``git status`` text.

        Raises:
            NotARepository: if git refuses to report status for this path
        """
        try:
            return self._git("status")
        except GitCommandError as e:
            raise NotARepository(self.path, str(e.stderr or "").strip()) from e

    def is_bare(self) -> bool:
        return self.repo.bare

    def commit_log(self, range_expr: str) -> List[str]:
        """One-line summaries of the commits in ``range_expr``, newest first."""
        try:
            output = self._git("log", "--oneline", "--no-decorate", range_expr)
        except GitCommandError as e:
            self.logger.debug(f"git log {range_expr} failed in {self.path}: {e}")
            return []
        return [line for line in output.splitlines() if line.strip()]

    def stash_list(self) -> List[str]:
        output = self._git("stash", "list")
        return [line for line in output.splitlines() if line.strip()]

    def symbolic_ref(self, name: str = "HEAD") -> Optional[str]:
        """Short branch name ``name`` points to, or None when detached."""
        try:
            return self._git("symbolic_ref", "--short", "-q", name).strip() or None
        except GitCommandError:
            return None

    def remote_list(self) -> List[str]:
        return [remote.name for remote in self.repo.remotes]

    # Configuration

    def config_get(self, key: str) -> Optional[str]:
        try:
            return self._git("config", "--get", key)
        except GitCommandError as e:
            if e.status == CONFIG_KEY_MISSING:
                return None
            raise

    def config_get_bool(self, key: str) -> Optional[bool]:
        """Read a boolean key; None when unset or not a valid boolean."""
        try:
            value = self._git("config", "--bool", "--get", key)
        except GitCommandError as e:
            if e.status != CONFIG_KEY_MISSING:
                self.logger.warning(f"Ignoring invalid boolean {key} in {self.path}")
            return None
        return value.strip() == "true"

    def config_set(self, key: str, value: str) -> None:
        self._git("config", key, value)

    def config_unset(self, key: str) -> None:
        try:
            self._git("config", "--unset", key)
        except GitCommandError as e:
            if e.status != CONFIG_NOTHING_TO_UNSET:
                raise

    # Mutating operations

    def integrate(self, bridged: bool = False) -> str:
        """
        Fast-forward the current branch to its upstream.

        Never creates a merge commit: a non fast-forward situation makes git
        fail rather than merge.

        Returns:
            Diffstat text printed by git
        """
        if bridged:
            return self._git("svn", "rebase", "--local")
        return self._git("merge", "--ff-only", "--stat", "@{upstream}")

    def gc(self) -> None:
        self._git("gc", "--quiet")

    def remote_add(self, name: str, url: str) -> None:
        self.repo.create_remote(name, url)

    # git-svn bridge

    def is_bridged_vcs(self) -> bool:
        """True for a git-svn clone of a Subversion repository."""
        if (Path(self.repo.git_dir) / "svn").is_dir():
            return True
        return self.config_get("svn-remote.svn.url") is not None

    def bridge_tracking_ref(self) -> str:
        """Synthetic remote-tracking ref that git-svn fetches into."""
        fetch_spec = self.config_get("svn-remote.svn.fetch")
        if fetch_spec and ":" in fetch_spec:
            ref = fetch_spec.strip().split(":", 1)[1]
            if ref:
                return ref
        return DEFAULT_BRIDGE_REF

    @contextmanager
    def temporary_upstream(self, branch: str, ref: str) -> Iterator[bool]:
        """
        Point ``branch`` at ``ref`` as its upstream for the duration of the block.

        Only applies when the branch has no ``merge`` upstream configured; a
        configured upstream is left untouched. Whatever was written is removed
        on exit, on every exit path.

        Yields:
            True if the upstream was rewritten
        """
        merge_key = f"branch.{branch}.merge"
        remote_key = f"branch.{branch}.remote"
        if self.config_get(merge_key) is not None:
            yield False
            return

        previous_remote = self.config_get(remote_key)
        self.logger.debug(f"Temporarily tracking {ref} from {branch} in {self.path}")
        try:
            self.config_set(remote_key, ".")
            self.config_set(merge_key, ref)
            yield True
        finally:
            self.config_unset(merge_key)
            if previous_remote is None:
                self.config_unset(remote_key)
            else:
                self.config_set(remote_key, previous_remote)
