"""
detection.py - Locate agent CLIs and report their installation status.

Resolution order for an executable:
1. Explicitly configured path (CONDUCTOR_<PROVIDER>_CLI or runtime.yaml cli_path)
2. PATH lookup
3. Common per-user and system install locations

When no executable is found but the provider's credential variable is set,
the status reports method "api-key-only".
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from conductor.config.runtime_config import get_cli_path

logger = logging.getLogger(__name__)

VERSION_TIMEOUT_SECONDS = 10


@dataclass
class InstallationStatus:
    """Result of probing for a provider's backend."""
    installed: bool
    path: Optional[str] = None
    version: Optional[str] = None
    method: str = "none"  # "configured" | "cli" | "common-path" | "sdk" | "api-key-only" | "none"
    has_api_key: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def common_install_paths(executable: str) -> List[Path]:
    """Return well-known install locations for an executable on this platform."""
    home = Path.home()
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        paths = [home / "AppData" / "Roaming" / "npm" / f"{executable}.cmd"]
        if appdata:
            paths.insert(0, Path(appdata) / "npm" / f"{executable}.cmd")
        return paths
    return [
        home / f".{executable}" / "bin" / executable,
        home / ".local" / "bin" / executable,
        home / ".npm-global" / "bin" / executable,
        Path("/usr/local/bin") / executable,
        Path("/opt/homebrew/bin") / executable,
    ]


def find_executable(provider: str, executable: str) -> Optional[str]:
    """Resolve a CLI executable path, or None if it cannot be found.

    Args:
        provider: Provider identifier used for configured-path lookup.
        executable: Executable name (e.g. "codex").
    """
    configured = get_cli_path(provider)
    if configured:
        resolved = shutil.which(configured)
        if resolved:
            return resolved
        logger.warning("Configured CLI path for %s is not executable: %s", provider, configured)

    resolved = shutil.which(executable)
    if resolved:
        return resolved

    for candidate in common_install_paths(executable):
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)

    return None


def get_cli_version(path: str) -> Optional[str]:
    """Return ``<cli> --version`` output, or None on any failure."""
    try:
        result = subprocess.run(
            [path, "--version"],
            capture_output=True,
            text=True,
            timeout=VERSION_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Could not read version from %s: %s", path, e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def detect_cli_installation(
    provider: str,
    executable: str,
    env_key: Optional[str] = None,
) -> InstallationStatus:
    """Look for a CLI backend and report what was found.

    Args:
        provider: Provider identifier ("codex", "gemini", "opencode").
        executable: Executable name to look for.
        env_key: Credential environment variable name, if the backend has one.

    Returns:
        InstallationStatus describing what was found.
    """
    has_api_key = bool(env_key and os.environ.get(env_key))
    try:
        configured = get_cli_path(provider)
        path = find_executable(provider, executable)
    except OSError as e:
        logger.exception("Error detecting %s installation", provider)
        return InstallationStatus(installed=False, has_api_key=has_api_key, error=str(e))

    if path:
        method = "configured" if configured and shutil.which(configured) == path else "cli"
        if method == "cli" and shutil.which(executable) != path:
            method = "common-path"
        return InstallationStatus(
            installed=True,
            path=path,
            version=get_cli_version(path),
            method=method,
            has_api_key=has_api_key,
        )

    if has_api_key:
        return InstallationStatus(installed=False, method="api-key-only", has_api_key=True)

    return InstallationStatus(installed=False)
