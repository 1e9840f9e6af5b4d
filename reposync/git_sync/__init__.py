"""
Repository synchronization: discovery, reconciliation and reporting.

The planner enumerates targets per category, the engine reconciles each
one through a GitClient, and the reporter prints the outcomes.
"""

from .client import GitClient
from .engine import ReconciliationEngine, SyncOptions, is_terse
from .forge import ForgeCatalog
from .planner import RunSummary, SyncPlanner
from .reporter import OutcomeReporter
from .repository_info import (
    RepoDescriptor, RepoMode, RepoState, RepoStateKind, RepoTarget, SyncAction, SyncOutcome
)
from .status import StatusInterpreter, parse_status
from .transport import SSHSessionPool, TransportKind, TransportProvider

__all__ = [
    'GitClient',
    'ReconciliationEngine',
    'SyncOptions',
    'is_terse',
    'ForgeCatalog',
    'RunSummary',
    'SyncPlanner',
    'OutcomeReporter',
    'RepoDescriptor',
    'RepoMode',
    'RepoState',
    'RepoStateKind',
    'RepoTarget',
    'SyncAction',
    'SyncOutcome',
    'StatusInterpreter',
    'parse_status',
    'SSHSessionPool',
    'TransportKind',
    'TransportProvider',
]
