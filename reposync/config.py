"""Configuration management for reposync.

Sync categories live in git config under ``sync.<category>.<key>``; run-wide
defaults use two-part ``sync.<key>`` names. Process-level settings come from
the environment, optionally seeded from a ``.env`` file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv
from git import Git, GitCommandError

from .errors import ConfigError
from .platform import get_default_control_dir, normalize_path

load_dotenv()  # Load .env file if it exists

QUIET = 0
NORMAL = 1
VERBOSE = 2

CATEGORY_KEYS = (
    "into", "host", "path", "github", "organization", "login",
    "token", "network", "email", "sshmaster",
)
RUN_WIDE_KEYS = ("verbose", "quiet", "log", "stash", "gc")

_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0", ""}


class OneOrMany(tuple):
    """A config value that may have been given once or several times."""

    @classmethod
    def of(cls, value) -> "OneOrMany":
        if value is None:
            return cls()
        if isinstance(value, (str, Path)):
            return cls((value,))
        return cls(value)

    def single(self, key: str, category: str):
        """Return the only value, raising ConfigError for zero or many."""
        if len(self) != 1:
            raise ConfigError(
                f"category '{category}' needs exactly one '{key}' value, found {len(self)}"
            )
        return self[0]


def parse_bool(value: Optional[str], key: str = "value") -> bool:
    """Interpret a git-style boolean. A key given without a value is true."""
    if value is None:
        return True
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"invalid boolean for {key}: {value!r}")


@dataclass
class CategoryConfig:
    """One configured sync category."""
    name: str
    into: OneOrMany = field(default_factory=OneOrMany)
    host: OneOrMany = field(default_factory=OneOrMany)
    path: OneOrMany = field(default_factory=OneOrMany)
    github: OneOrMany = field(default_factory=OneOrMany)
    organization: bool = False
    login: Optional[str] = None
    token: Optional[str] = None
    network: bool = False
    email: Optional[str] = None
    sshmaster: OneOrMany = field(default_factory=OneOrMany)

    def __post_init__(self):
        for key in ("into", "host", "path", "github", "sshmaster"):
            setattr(self, key, OneOrMany.of(getattr(self, key)))
        self.into = OneOrMany(normalize_path(p) for p in self.into)

    @property
    def mode(self):
        """Provisioning mode implied by the keys present."""
        from .git_sync.repository_info import RepoMode

        if self.github:
            return RepoMode.FORGE
        if self.host or any(":" in str(p) for p in self.path):
            return RepoMode.REMOTE
        return RepoMode.LOCAL

    @property
    def is_local_only(self) -> bool:
        from .git_sync.repository_info import RepoMode

        return self.mode == RepoMode.LOCAL


@dataclass
class RunConfig:
    """Run-wide settings with validation and defaults."""

    # Reporting
    verbose: bool = False
    quiet: bool = False
    show_log: bool = False
    show_stash: bool = False
    run_gc: bool = False
    dry_run: bool = False

    # Logging
    log_level: str = "WARNING"

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_login: Optional[str] = None
    github_token: Optional[str] = None
    http_timeout: float = 30.0

    # SSH multiplexing
    ssh_control_dir: Path = field(default_factory=get_default_control_dir)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if isinstance(self.ssh_control_dir, str):
            self.ssh_control_dir = Path(self.ssh_control_dir)
        self.ssh_control_dir = self.ssh_control_dir.expanduser()

        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        self.log_level = self.log_level.upper()
        if self.log_level not in valid_log_levels:
            raise ValueError(f"Invalid log level: {self.log_level}. Must be one of {valid_log_levels}")

        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")

        self.github_api_url = self.github_api_url.rstrip("/")

    @property
    def verbosity(self) -> int:
        if self.quiet:
            return QUIET
        if self.verbose:
            return VERBOSE
        return NORMAL


@dataclass
class Config:
    """Everything a run needs: run-wide settings plus the configured categories."""
    run: RunConfig
    categories: Dict[str, CategoryConfig] = field(default_factory=dict)
    invalid_categories: Dict[str, str] = field(default_factory=dict)


def read_git_config() -> List[Tuple[str, Optional[str]]]:
    """Read every ``sync.*`` entry from the user's git configuration."""
    try:
        output = Git().config("--get-regexp", r"^sync\.")
    except GitCommandError as e:
        # exit status 1 means no matching key
        if e.status == 1:
            return []
        raise ConfigError(f"cannot read git configuration: {e.stderr or e}") from e

    entries = []
    for line in output.splitlines():
        if not line.strip():
            continue
        key, sep, value = line.partition(" ")
        entries.append((key, value if sep else None))
    return entries


def build_categories(entries: Iterable[Tuple[str, Optional[str]]]) -> Tuple[Dict[str, CategoryConfig], Dict[str, bool], Dict[str, str]]:
    """
    Group raw ``sync.*`` entries into categories and run-wide defaults.

    Args:
        entries: (key, value) pairs as produced by ``git config --get-regexp``

    Returns:
        Tuple of (categories by name, run-wide boolean defaults, problems of
        categories that were dropped because a value did not parse)
    """
    logger = logging.getLogger('reposync.config')
    raw: Dict[str, Dict[str, list]] = {}
    run_wide: Dict[str, bool] = {}

    for key, value in entries:
        section, _, rest = key.partition(".")
        if section.lower() != "sync" or not rest:
            continue
        if "." not in rest:
            name = rest.lower()
            if name in RUN_WIDE_KEYS:
                run_wide[name] = parse_bool(value, key)
            elif name != "ignore":
                logger.debug(f"Ignoring unknown run-wide key {key}")
            continue

        category, _, name = rest.rpartition(".")
        name = name.lower()
        if name not in CATEGORY_KEYS:
            logger.warning(f"Unknown key '{name}' in sync category '{category}'")
            continue
        raw.setdefault(category, {}).setdefault(name, []).append(value)

    categories = {}
    invalid = {}
    for category, values in raw.items():
        kwargs = {}
        try:
            for name in ("organization", "network"):
                if name in values:
                    kwargs[name] = parse_bool(values[name][-1], f"sync.{category}.{name}")
        except ConfigError as e:
            logger.warning(f"Skipping sync category '{category}': {e}")
            invalid[category] = str(e)
            continue
        for name, items in values.items():
            if name in ("organization", "network"):
                continue
            if name in ("login", "token", "email"):
                kwargs[name] = items[-1]
            else:
                kwargs[name] = [item for item in items if item]
        categories[category] = CategoryConfig(name=category, **kwargs)

    return categories, run_wide, invalid


def load_configuration(
    reader: Optional[Callable[[], Iterable[Tuple[str, Optional[str]]]]] = None,
    **overrides
) -> Config:
    """
    Load categories from git config and run settings from the environment.

    Args:
        reader: Callable returning (key, value) pairs; defaults to git config
        **overrides: RunConfig fields given on the command line, None means unset

    Returns:
        Config for the run
    """
    categories, run_wide, invalid = build_categories((reader or read_git_config)())

    try:
        settings = dict(
            verbose=run_wide.get("verbose", False),
            quiet=run_wide.get("quiet", False),
            show_log=run_wide.get("log", False),
            show_stash=run_wide.get("stash", False),
            run_gc=run_wide.get("gc", False),
            log_level=os.getenv("REPOSYNC_LOG_LEVEL", "WARNING"),
            github_api_url=os.getenv("REPOSYNC_GITHUB_API", "https://api.github.com"),
            github_login=os.getenv("REPOSYNC_GITHUB_LOGIN"),
            github_token=os.getenv("REPOSYNC_GITHUB_TOKEN"),
            http_timeout=float(os.getenv("REPOSYNC_HTTP_TIMEOUT", "30")),
        )
        control_dir = os.getenv("REPOSYNC_SSH_CONTROL_DIR")
        if control_dir:
            settings["ssh_control_dir"] = Path(control_dir)
        settings.update({k: v for k, v in overrides.items() if v is not None})
        run = RunConfig(**settings)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Configuration error: {e}") from e

    return Config(run=run, categories=categories, invalid_categories=invalid)


def select_categories(config: Config, names: Iterable[str] = ()) -> List[CategoryConfig]:
    """
    Resolve requested category names into the order they are processed.

    Local-only categories run last so that more specific categories claim
    overlapping directories first; ties are broken by name.
    """
    if not config.categories and not config.invalid_categories:
        raise ConfigError("no sync categories configured (add sync.<category>.into to git config)")

    names = list(names)
    unknown = [name for name in names if name not in config.categories and name not in config.invalid_categories]
    if unknown:
        raise ConfigError(f"unknown sync category: {', '.join(unknown)}")

    selected = [config.categories[name] for name in dict.fromkeys(names) if name in config.categories] if names else list(config.categories.values())
    return sorted(selected, key=lambda category: (category.is_local_only, category.name))
