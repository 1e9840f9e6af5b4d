"""Repository targets, derived states and sync outcomes."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class RepoMode(Enum):
    """How a target was provisioned."""
    LOCAL = "local"     # Existing repositories under a local directory
    REMOTE = "remote"   # Directory tree on a host reached over SSH
    FORGE = "forge"     # Repository list of a GitHub account


class RepoStateKind(Enum):
    """Enumeration of possible synchronization states."""
    UNVERSIONED = "unversioned"
    IGNORED_BY_POLICY = "ignored"
    BARE = "bare"
    CLEAN_FAST_FORWARDABLE = "fast_forwardable"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    CLEAN_UP_TO_DATE = "up_to_date"
    DIRTY_UNCOMMITTED = "dirty"


class SyncAction(Enum):
    """What was done to a target."""
    NONE = "none"
    FETCH_ONLY = "fetch_only"
    FETCH_AND_INTEGRATE = "fetch_and_integrate"
    CLONED = "cloned"
    CLONE_FAILED = "clone_failed"
    FETCH_FAILED = "fetch_failed"
    SKIPPED = "skipped"


FAILED_ACTIONS = frozenset({SyncAction.CLONE_FAILED, SyncAction.FETCH_FAILED})


@dataclass(frozen=True)
class RepoTarget:
    """One synchronization unit."""
    local_path: Path
    mode: RepoMode
    provenance: str
    remote_ref: Optional[str] = None

    @property
    def display_name(self) -> str:
        name = self.local_path.name
        if name.endswith(".git") and len(name) > len(".git"):
            name = name[:-len(".git")]
        return name


@dataclass
class RepoState:
    """Synchronization state of a working copy, recomputed on every run."""
    kind: RepoStateKind
    branch_name: str = "none"
    tracking_ref: Optional[str] = None
    ahead_count: int = 0
    behind_count: int = 0
    stash_count: int = 0
    is_bridged_vcs: bool = False
    dirty: bool = False


@dataclass
class RepoDescriptor:
    """A repository as listed by the forge."""
    name: str
    owner: str
    ssh_url: Optional[str] = None
    clone_url: Optional[str] = None
    fork: bool = False


@dataclass
class SyncOutcome:
    """Result of processing one target."""
    target: RepoTarget
    final_kind: RepoStateKind
    action: SyncAction
    commit_log: List[str] = field(default_factory=list)
    error_detail: Optional[str] = None
    state: Optional[RepoState] = None
    message: Optional[str] = None
    stats: Optional[str] = None
    suppressed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.action not in FAILED_ACTIONS and self.error_detail is None
