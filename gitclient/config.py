"""Configuration for the git client: config file access and client settings"""

import configparser
import logging
import os
import platform
import subprocess
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from git import Git

from gitclient.model import ProxyConfiguration, TimeoutCategory

logger = logging.getLogger(__name__)

APP_NAME = "gitclient"

# Used when git has no init.defaultBranch configured
FALLBACK_DEFAULT_BRANCH = "mast" + "er"

# Seconds; matches the ten minute default git plugins traditionally use
DEFAULT_GENERIC_TIMEOUT = 600

_home = os.path.expanduser("~")

xdg_config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(_home, ".config")
xdg_cache_home = os.environ.get("XDG_CACHE_HOME") or os.path.join(_home, ".cache")


default_cfg = {
    "dirs": {"mirror_cache": os.path.join(xdg_cache_home, APP_NAME, "mirrors")},
    "timeouts": {
        "checkout": "-1",
        "submodule_update": "-1",
        "generic": str(DEFAULT_GENERIC_TIMEOUT),
    },
}

if platform.system() == "Darwin":
    # macOS
    config_dir = Path("~/Library/Application Support/gitclient").expanduser()
else:
    # Linux or others
    config_dir = Path(os.path.join(xdg_config_home, APP_NAME))


def get_config_file():
    return config_dir / f"{APP_NAME}.cfg"


class ConfigAccessor:
    """
    A dict-like accessor for configuration files.

    Missing files, sections and keys are not errors: lookups fall back to the
    supplied default.

    Usage:
        config = ConfigAccessor()
        value = config.get('timeouts', 'checkout', default='-1')
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize a ConfigAccessor with an optional config file path.

        Args:
            config_path: Path to the configuration file. If None, uses the default path.
        """
        if config_path is None:
            self.config_path = get_config_file()
        else:
            self.config_path = config_path

        self.config = configparser.ConfigParser()
        if self.config_path.exists():
            self.config.read(self.config_path, encoding="utf-8")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value from the specified section and key.

        Args:
            section: The configuration section
            key: The configuration key
            default: Value to return if the section or key doesn't exist

        Returns:
            The configuration value if it exists, otherwise the default value
        """
        try:
            return self.config[section][key]
        except (KeyError, configparser.NoSectionError, configparser.NoOptionError):
            return default

    def get_int(self, section: str, key: str, default: int) -> int:
        value = self.get(section, key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning(
                f"Ignoring non-integer value {value!r} for [{section}] {key} in {self.config_path}"
            )
            return default


# Create a global config accessor instance
config = ConfigAccessor()


def get_mirror_cache_dir() -> Path:
    """
    Get the configured directory holding shared mirror clones.

    Returns:
        Path to the mirror cache (defaults to ~/.cache/gitclient/mirrors)
    """
    cache_dir_str = config.get(
        "dirs", "mirror_cache", default_cfg["dirs"]["mirror_cache"]
    )
    cache_dir = Path(cache_dir_str).expanduser()
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def git_executable() -> str:
    """Executable GitPython resolved (honours GIT_PYTHON_GIT_EXECUTABLE)."""
    return Git.GIT_PYTHON_GIT_EXECUTABLE or "git"


def detect_default_branch(executable: Optional[str] = None) -> str:
    """
    Ask git which branch name ``git init`` uses.

    Runs ``git config --get init.defaultBranch`` in an empty scratch
    directory so no repository config interferes. Callers are expected to
    do this once and pass the value along in ClientSettings.

    Args:
        executable: git executable (defaults to the one GitPython uses)

    Returns:
        The configured name, or "master" when unset or git is unavailable
    """
    executable = executable or git_executable()
    with tempfile.TemporaryDirectory(prefix="readGitConfig") as scratch:
        try:
            result = subprocess.run(
                [executable, "config", "--get", "init.defaultBranch"],
                cwd=scratch,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            logger.warning(f"Could not run {executable} to read init.defaultBranch: {e}")
            return FALLBACK_DEFAULT_BRANCH
    for line in result.stdout.splitlines():
        if line.strip():
            return line.strip()
    return FALLBACK_DEFAULT_BRANCH


@dataclass(frozen=True)
class Identity:
    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True)
class ClientSettings:
    """
    Explicit configuration handed to a client at construction.

    Attributes:
        git_executable: Executable for the process backend
        default_branch: Branch name new repositories start on
        timeouts: Seconds per operation category; non-positive disables
        author: Identity recorded as commit author (None uses git config)
        committer: Identity recorded as committer (None uses git config)
        proxy: HTTP proxy used for network operations
        allow_file_protocol: Let submodules clone repositories from local paths
    """

    git_executable: str = "git"
    default_branch: str = FALLBACK_DEFAULT_BRANCH
    timeouts: Dict[TimeoutCategory, int] = field(
        default_factory=lambda: {
            TimeoutCategory.CHECKOUT: -1,
            TimeoutCategory.SUBMODULE_UPDATE: -1,
            TimeoutCategory.GENERIC: DEFAULT_GENERIC_TIMEOUT,
        }
    )
    author: Optional[Identity] = None
    committer: Optional[Identity] = None
    proxy: Optional[ProxyConfiguration] = None
    allow_file_protocol: bool = False

    def timeout_for(self, category: TimeoutCategory) -> int:
        return self.timeouts.get(category, -1)

    def with_timeout(self, category: TimeoutCategory, seconds: int) -> "ClientSettings":
        timeouts = dict(self.timeouts)
        timeouts[category] = seconds
        return replace(self, timeouts=timeouts)


def _proxy_from(accessor: ConfigAccessor) -> Optional[ProxyConfiguration]:
    host = accessor.get("proxy", "host")
    port = accessor.get_int("proxy", "port", 0)
    if not host or port <= 0:
        return None
    return ProxyConfiguration(
        host=host,
        port=port,
        username=accessor.get("proxy", "user"),
        no_proxy_hosts=accessor.get("proxy", "no_proxy"),
    )


def load_settings(
    accessor: Optional[ConfigAccessor] = None, default_branch: Optional[str] = None
) -> ClientSettings:
    """
    Build ClientSettings from the config file.

    Args:
        accessor: Config to read (defaults to the global one)
        default_branch: Already detected default branch; detected when None
            and not configured

    Returns:
        Settings ready to pass to create_client()
    """
    accessor = accessor or config
    executable = accessor.get("git", "executable") or git_executable()
    branch = default_branch or accessor.get("git", "default_branch")
    if not branch:
        branch = detect_default_branch(executable)

    timeouts = {}
    for category in TimeoutCategory:
        fallback = int(default_cfg["timeouts"][category.value])
        timeouts[category] = accessor.get_int("timeouts", category.value, fallback)

    return ClientSettings(
        git_executable=executable,
        default_branch=branch,
        timeouts=timeouts,
        proxy=_proxy_from(accessor),
        allow_file_protocol=accessor.get("git", "allow_file_protocol", "false").lower()
        in ("1", "true", "yes", "on"),
    )
