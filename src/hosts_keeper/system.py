"""
Platform-specific helpers: default locations, privilege probe, DNS flush.
"""

import os
import platform
import subprocess
from pathlib import Path
from typing import Optional

from .exceptions import DnsFlushError


WINDOWS_HOSTS_PATH = Path(r"C:\Windows\System32\drivers\etc\hosts")
UNIX_HOSTS_PATH = Path("/etc/hosts")

CONFIG_ENV_VAR = "HOSTS_KEEPER_CONFIG"
HOME_ENV_VAR = "HOSTS_KEEPER_HOME"

FLUSH_TIMEOUT_SECONDS = 10

# Tried in order; the first command that exits 0 wins.
FLUSH_COMMANDS = {
    "windows": [["ipconfig", "/flushdns"]],
    "darwin": [
        ["dscacheutil", "-flushcache"],
        ["killall", "-HUP", "mDNSResponder"],
    ],
    "linux": [
        ["resolvectl", "flush-caches"],
        ["systemd-resolve", "--flush-caches"],
        ["nscd", "-i", "hosts"],
    ],
}


def current_system() -> str:
    return platform.system().lower()


def default_hosts_file_path() -> Path:
    """Hosts file location for the running platform."""
    if current_system() == "windows":
        return WINDOWS_HOSTS_PATH
    return UNIX_HOSTS_PATH


def app_home() -> Path:
    """Directory holding config.ini and the default history directory."""
    override = os.getenv(HOME_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".hosts_keeper"


def default_config_path() -> Path:
    override = os.getenv(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return app_home() / "config.ini"


def default_history_dir() -> Path:
    return app_home() / "history"


def is_elevated(hosts_path: Optional[Path] = None) -> bool:
    """
    Check whether the hosts file can be written by this process.

    Write access is what a commit needs, so it is probed directly rather
    than inferred from the user id. When the file does not exist yet, the
    parent directory must be writable.

    Args:
        hosts_path: File to probe (defaults to the platform hosts file)
    """
    path = Path(hosts_path) if hosts_path else default_hosts_file_path()
    if path.exists():
        return os.access(path, os.W_OK)
    return os.access(path.parent, os.W_OK)


def flush_dns_cache() -> str:
    """
    Ask the operating system to drop cached DNS answers.

    Returns:
        The command line that succeeded

    Raises:
        DnsFlushError: If no flush command is available or all of them failed
    """
    system = current_system()
    commands = FLUSH_COMMANDS.get(system)
    if not commands:
        raise DnsFlushError(
            code="unsupported_platform",
            message=f"No DNS flush command known for platform {system!r}",
            details={"platform": system},
        )

    failures = []
    succeeded = []
    for command in commands:
        try:
            subprocess.run(
                command,
                check=True,
                capture_output=True,
                timeout=FLUSH_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as e:
            failures.append({"command": " ".join(command), "error": str(e)})
            continue
        succeeded.append(" ".join(command))
        # macOS needs both commands; elsewhere one success is enough
        if system != "darwin":
            break

    if not succeeded:
        raise DnsFlushError(
            code="flush_failed",
            message="All DNS flush commands failed",
            details={"platform": system, "attempts": failures},
        )
    return "; ".join(succeeded)
