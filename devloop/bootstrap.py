"""
Startup sequencing.

Before the loops start the supervisor enters the workspace, waits for the
manifest to be synced in, installs dependencies once and records the
initial fingerprint.
"""

import asyncio
import logging
import os
from pathlib import Path

from .config import Config
from .fingerprint import FingerprintStore, compute_fingerprint
from .installer import DependencyInstaller

logger = logging.getLogger(__name__)


class StartupError(Exception):
    """The supervisor cannot start."""


def enter_workspace(workspace: Path) -> Path:
    """chdir into the workspace directory."""
    logger.info(f"Changing to workspace: {workspace}")
    try:
        os.chdir(workspace)
    except OSError as e:
        raise StartupError(f"Failed to change to workspace directory {workspace}: {e}") from e
    return Path.cwd()


async def wait_for_manifest(path: Path, attempts: int = 30, delay: float = 2) -> Path:
    """Wait for the manifest to appear; a sync may still be in progress."""
    logger.info(f"Waiting for {path.name} to be available...")
    for attempt in range(1, attempts + 1):
        if path.is_file():
            logger.info(f"{path.name} found")
            return path
        logger.info(f"Waiting... ({attempt}/{attempts})")
        await asyncio.sleep(delay)

    if path.is_file():
        return path

    contents = ", ".join(sorted(p.name for p in path.parent.iterdir())) if path.parent.is_dir() else ""
    logger.error(f"Directory contents: {contents or '(empty)'}")
    raise StartupError(f"{path.name} not found after {attempts} attempts")


async def initial_install(cfg: Config, installer: DependencyInstaller, store: FingerprintStore) -> bool:
    """Install once and record the fingerprint of the installed state."""
    if await installer.install():
        # Hashed after the install, which may rewrite the lock file
        store.write(compute_fingerprint(cfg.watch_paths(), cfg.workspace))
        return True

    # Leave the store empty so the change detector retries the install
    logger.warning("Initial install failed, continuing with existing dependencies")
    store.clear()
    return False
