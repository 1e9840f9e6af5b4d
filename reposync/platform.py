"""Cross-platform helpers for locating executables and normalizing paths."""

import os
import platform
import subprocess
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Union


class PlatformType(Enum):
    """Supported platform types."""
    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    UNKNOWN = "unknown"


class PlatformInfo:
    """Platform information and utilities."""

    def __init__(self):
        """Initialize platform detection."""
        self._platform_type = self._detect_platform()
        self._is_windows = self._platform_type == PlatformType.WINDOWS
        self._is_unix = self._platform_type in (PlatformType.LINUX, PlatformType.MACOS)

    def _detect_platform(self) -> PlatformType:
        """Detect the current platform."""
        system = platform.system().lower()

        if system == "windows":
            return PlatformType.WINDOWS
        elif system == "darwin":
            return PlatformType.MACOS
        elif system == "linux":
            return PlatformType.LINUX
        else:
            return PlatformType.UNKNOWN

    @property
    def is_windows(self) -> bool:
        """Check if running on Windows."""
        return self._is_windows

    @property
    def is_unix(self) -> bool:
        """Check if running on Unix-like system (Linux/macOS)."""
        return self._is_unix

    @property
    def supports_ssh_multiplexing(self) -> bool:
        """OpenSSH ControlMaster sockets are only available on Unix."""
        return self._is_unix

    def get_platform_name(self) -> str:
        """Get human-readable platform name."""
        return self._platform_type.value

    def get_system_info(self) -> Dict[str, Any]:
        """Get a summary of the running system for debug logging."""
        return {
            'platform': self.get_platform_name(),
            'release': platform.release(),
            'python_version': platform.python_version(),
            'is_windows': self.is_windows,
            'is_unix': self.is_unix,
        }


# Global platform info instance
_platform_info: Optional[PlatformInfo] = None


def get_platform_info() -> PlatformInfo:
    """Get the global platform info instance."""
    global _platform_info
    if _platform_info is None:
        _platform_info = PlatformInfo()
    return _platform_info


def normalize_path(path: Union[str, Path]) -> Path:
    """
    Normalize a path for the current platform.

    Args:
        path: Path to normalize

    Returns:
        Normalized Path object
    """
    if isinstance(path, str):
        path = Path(path)

    # Expand user home directory (~) first, then resolve to absolute path
    return path.expanduser().resolve()


def get_git_executable() -> str:
    """Get the Git executable name for the current platform."""
    if get_platform_info().is_windows:
        return "git.exe"
    return "git"


def get_ssh_executable() -> str:
    """Get the OpenSSH client executable name for the current platform."""
    if get_platform_info().is_windows:
        return "ssh.exe"
    return "ssh"


def get_default_control_dir() -> Path:
    """
    Directory holding SSH ControlMaster sockets.

    Socket paths are limited to about 100 bytes on most systems, so the
    directory lives under the short system temp dir rather than the home dir.
    """
    return Path(tempfile.gettempdir()) / f"reposync-{os.getuid() if hasattr(os, 'getuid') else 'user'}"


def validate_git_availability() -> tuple[bool, Optional[str]]:
    """
    Validate that Git is available on the current platform.

    Returns:
        Tuple of (is_available, error_message)
    """
    git_cmd = get_git_executable()

    try:
        result = subprocess.run(
            [git_cmd, "--version"],
            capture_output=True,
            text=True,
            timeout=10
        )

        if result.returncode == 0:
            return True, None
        else:
            return False, f"Git command failed: {result.stderr}"

    except FileNotFoundError:
        return False, f"Git executable '{git_cmd}' not found"
    except subprocess.TimeoutExpired:
        return False, "Git command timed out"
