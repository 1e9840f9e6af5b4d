"""Error taxonomy and error description helpers for reposync."""

import logging
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional


class ErrorCategory(Enum):
    """Categories of errors for structured error handling."""
    CONFIGURATION = "configuration"
    REPOSITORY = "repository"
    NETWORK = "network"
    TRANSPORT = "transport"
    FORGE = "forge"
    SIGNAL = "signal"
    SYSTEM = "system"


class SyncError(Exception):
    """Base class for every error raised by reposync."""
    category = ErrorCategory.SYSTEM


class ConfigError(SyncError):
    """A category or a required key is missing or invalid."""
    category = ErrorCategory.CONFIGURATION


class NotARepository(SyncError):
    """The target path is not a git working copy."""
    category = ErrorCategory.REPOSITORY

    def __init__(self, path, reason: str = ""):
        self.path = path
        super().__init__(f"not a git repository: {path}" + (f" ({reason})" if reason else ""))


class FetchError(SyncError):
    """Fetching from the upstream failed."""
    category = ErrorCategory.NETWORK


class CloneError(SyncError):
    """Cloning a repository failed."""
    category = ErrorCategory.NETWORK


class TransportUnavailable(SyncError):
    """No multiplexed SSH session is configured for a host."""
    category = ErrorCategory.TRANSPORT


class ForgeError(SyncError):
    """The forge API could not be queried."""
    category = ErrorCategory.FORGE


class InterruptSignal(SyncError):
    """A git or ssh child process was terminated by a signal."""
    category = ErrorCategory.SIGNAL

    def __init__(self, signum: int, command: str = ""):
        self.signum = signum
        self.command = command
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = f"signal {signum}"
        super().__init__(f"{command or 'child process'} terminated by {name}")


@dataclass
class ErrorDescription:
    """Short, stable description of an error for outcome reporting."""
    error_code: str
    message: str
    category: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


class ErrorHandler:
    """Maps exceptions raised while syncing to codes and one-line messages."""

    def __init__(self):
        self.logger = logging.getLogger('reposync.error_handler')

    def describe(self, error: Exception, context: Dict[str, Any] = None) -> ErrorDescription:
        """Describe an error raised while processing a single target."""
        context = context or {}
        text = _first_line(_error_text(error))
        lowered = text.lower()

        if isinstance(error, NotARepository) or "not a git repository" in lowered:
            error_code = "GIT_NOT_REPOSITORY"
            message = "not a git repository"
        elif isinstance(error, CloneError):
            error_code = "GIT_CLONE_FAILED"
            message = f"clone failed: {text}"
        elif "could not read from remote" in lowered or "unable to access" in lowered:
            error_code = "GIT_REMOTE_ERROR"
            message = f"remote unreachable: {text}"
        elif "permission denied" in lowered:
            error_code = "GIT_PERMISSION_ERROR"
            message = f"permission denied: {text}"
        elif isinstance(error, FetchError):
            error_code = "GIT_FETCH_FAILED"
            message = f"fetch failed: {text}"
        elif isinstance(error, ForgeError):
            error_code = "FORGE_ERROR"
            message = f"forge request failed: {text}"
        elif isinstance(error, ConfigError):
            error_code = "CONFIG_ERROR"
            message = text
        elif isinstance(error, OSError):
            error_code = "IO_ERROR"
            message = f"file system error: {text}"
        else:
            error_code = "GIT_GENERAL_ERROR"
            message = f"git operation failed: {text}"

        category = getattr(error, "category", ErrorCategory.SYSTEM).value
        self.logger.debug(
            f"{error_code}: {message}",
            extra={
                'operation': 'describe_error',
                'error_code': error_code,
                'repository_path': context.get('repository_path')
            }
        )
        return ErrorDescription(error_code=error_code, message=message, category=category, context=context)


def _error_text(error: Exception) -> str:
    # GitCommandError keeps the useful part of the failure in stderr
    stderr = getattr(error, "stderr", None)
    if stderr:
        text = str(stderr).strip()
        if text.startswith("stderr:"):
            text = text[len("stderr:"):].strip()
        return text.strip("'").strip()
    cause = error.__cause__
    if cause is not None and getattr(cause, "stderr", None):
        return _error_text(cause)
    return str(error).strip()


def _first_line(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line
    return text or "unknown error"


# Initialize global error handler
error_handler = ErrorHandler()
