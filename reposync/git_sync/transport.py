"""Running commands on hosts and cloning repositories, directly or over SSH."""

import hashlib
import logging
import shlex
import subprocess
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import urlsplit

from git import Repo, GitCommandError

from ..errors import CloneError, InterruptSignal, TransportUnavailable
from ..platform import get_platform_info, get_ssh_executable
from .client import raise_if_signalled


class TransportKind(Enum):
    """How a clone source is reached."""
    DIRECT = "direct"   # local paths and read-only URLs
    SSH = "ssh"         # host:path sources and writable forge URLs


def ssh_host(source: str) -> Optional[str]:
    """Host part of an ``ssh://`` URL or an scp-like ``host:path`` source."""
    if "://" in source:
        parts = urlsplit(source)
        if parts.scheme not in ("ssh", "git+ssh"):
            return None
        return parts.netloc.rsplit(":", 1)[0] if parts.port else parts.netloc
    if ":" in source and not source.startswith("/"):
        return source.split(":", 1)[0]
    return None


def _check_signal(result: subprocess.CompletedProcess, command: str) -> None:
    if result.returncode < 0:
        raise InterruptSignal(-result.returncode, command)


class SSHSessionPool:
    """
    Shared OpenSSH ControlMaster connections, at most one per host.

    Sessions are opened lazily the first time a configured host is used and
    stay up until ``close_all``. Hosts without a configured master are
    reached with a fresh connection per operation.
    """

    def __init__(
        self,
        master_hosts: Iterable[str],
        control_dir: Path,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run
    ):
        self.master_hosts: Set[str] = set(master_hosts)
        self.control_dir = control_dir
        self.runner = runner
        self.logger = logging.getLogger('reposync.git_sync.transport')
        self._sessions: Dict[str, Path] = {}
        self._unavailable: Set[str] = set()

    @property
    def open_hosts(self) -> List[str]:
        return list(self._sessions)

    def control_path(self, host: str) -> Path:
        # socket paths are length-limited, so hash the host name
        digest = hashlib.sha1(host.encode("utf-8")).hexdigest()[:12]
        return self.control_dir / f"{digest}.sock"

    def _is_master_host(self, host: str) -> bool:
        return host in self.master_hosts or host.rsplit("@", 1)[-1] in self.master_hosts

    def open(self, host: str) -> Path:
        """
        Start a master connection to ``host``.

        Raises:
            TransportUnavailable: if no master is configured or it cannot start
        """
        if not self._is_master_host(host):
            raise TransportUnavailable(f"no shared ssh session configured for {host}")
        if not get_platform_info().supports_ssh_multiplexing:
            raise TransportUnavailable("ssh connection sharing is not supported on this platform")

        self.control_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        path = self.control_path(host)
        command = [get_ssh_executable(), "-f", "-N", "-M", "-S", str(path), host]
        self.logger.debug(f"Starting shared ssh session: {' '.join(command)}")
        result = self.runner(command, capture_output=True, text=True)
        _check_signal(result, "ssh")
        if result.returncode != 0:
            raise TransportUnavailable(f"cannot start shared ssh session to {host}: {result.stderr.strip()}")

        self._sessions[host] = path
        return path

    def options_for(self, host: str) -> List[str]:
        """ssh options reusing the shared session for ``host``, opening it if needed."""
        if host in self._sessions:
            return ["-S", str(self._sessions[host])]
        if host in self._unavailable:
            return []
        try:
            path = self.open(host)
        except TransportUnavailable as e:
            self._unavailable.add(host)
            self.logger.info(f"{e}; using direct ssh connections")
            return []
        return ["-S", str(path)]

    def close_all(self) -> None:
        """Stop every master connection opened by this pool."""
        for host, path in list(self._sessions.items()):
            command = [get_ssh_executable(), "-S", str(path), "-O", "exit", host]
            try:
                result = self.runner(command, capture_output=True, text=True)
                if result.returncode != 0:
                    self.logger.debug(f"Stopping ssh session to {host} failed: {result.stderr.strip()}")
            except OSError as e:
                self.logger.warning(f"Cannot stop ssh session to {host}: {e}")
            finally:
                del self._sessions[host]


def _clone(source: str, destination: Path, env: Optional[Dict[str, str]] = None) -> None:
    logger = logging.getLogger('reposync.git_sync.transport')
    destination.parent.mkdir(parents=True, exist_ok=True)
    if destination.exists() and any(destination.iterdir()):
        raise CloneError(f"destination {destination} exists and is not empty")

    logger.info(f"Cloning {source} into {destination}")
    try:
        Repo.clone_from(source, destination, env=env)
    except GitCommandError as e:
        raise_if_signalled(e, "git clone")
        raise CloneError(f"git clone {source} failed") from e


class LocalTransport:
    """Runs commands on this machine and clones with plain git."""
    kind = TransportKind.DIRECT

    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.runner = runner

    def run_remote(self, host: Optional[str], command: str) -> Tuple[int, str]:
        result = self.runner(command, shell=True, capture_output=True, text=True)
        _check_signal(result, command)
        return result.returncode, result.stdout

    def clone(self, source: str, destination: Path) -> None:
        _clone(source, destination)


class SSHTransport:
    """Relays commands and clones through ssh, sharing sessions when configured."""
    kind = TransportKind.SSH

    def __init__(
        self,
        sessions: SSHSessionPool,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run
    ):
        self.sessions = sessions
        self.runner = runner

    def run_remote(self, host: str, command: str) -> Tuple[int, str]:
        ssh_command = [get_ssh_executable(), *self.sessions.options_for(host), host, command]
        result = self.runner(ssh_command, capture_output=True, text=True)
        _check_signal(result, "ssh")
        return result.returncode, result.stdout

    def clone(self, source: str, destination: Path) -> None:
        host = ssh_host(source)
        env = None
        if host:
            options = self.sessions.options_for(host)
            if options:
                env = {"GIT_SSH_COMMAND": " ".join(shlex.quote(part) for part in [get_ssh_executable(), *options])}
        _clone(source, destination, env=env)


class TransportProvider:
    """Run-wide access to both transports."""

    def __init__(self, sessions: SSHSessionPool, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.sessions = sessions
        self._transports = {
            TransportKind.DIRECT: LocalTransport(runner),
            TransportKind.SSH: SSHTransport(sessions, runner),
        }

    def run_remote(self, host: str, command: str) -> Tuple[int, str]:
        """Run a shell command on ``host``; returns (exit code, stdout)."""
        return self._transports[TransportKind.SSH].run_remote(host, command)

    def clone_via(self, kind: TransportKind, source: str, destination: Path) -> None:
        """
        Clone ``source`` into ``destination``.

        Raises:
            CloneError: if the clone failed
        """
        self._transports[kind].clone(source, destination)

    def close(self) -> None:
        self.sessions.close_all()
