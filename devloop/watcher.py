"""
Dependency change detection.

Periodically fingerprints the descriptor files and compares the result with
the fingerprint recorded after the last successful install. On drift it
reinstalls dependencies, records the new fingerprint and asks the process
supervisor to restart the server.
"""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from .fingerprint import EMPTY, FingerprintStore, compute_fingerprint
from .installer import DependencyInstaller

logger = logging.getLogger(__name__)


class TickOutcome(Enum):
    UNCHANGED = "unchanged"
    SKIPPED_EMPTY = "skipped_empty"
    INSTALL_FAILED = "install_failed"
    RELOADED = "reloaded"


class ChangeDetector:
    """Watches dependency descriptor files for drift."""

    def __init__(
        self,
        paths: list[Path],
        store: FingerprintStore,
        installer: DependencyInstaller,
        request_restart: Callable[[], Awaitable],
        interval: float = 10,
        base_dir: Path = None,
    ):
        self.paths = tuple(Path(p) for p in paths)
        self.store = store
        self.installer = installer
        self.request_restart = request_restart
        self.interval = interval
        self.base_dir = base_dir

        self._running = False
        self._task = None
        self.tick_count = 0

    def fingerprint(self) -> str:
        return compute_fingerprint(self.paths, self.base_dir)

    async def start(self):
        """Start the watch loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._watch_loop())
        names = ", ".join(p.name for p in self.paths)
        logger.info(f"Change detector started, watching {names}")
        logger.info(f"Initial fingerprint: {self.fingerprint() or '(empty)'}")

    async def stop(self):
        """Stop the watch loop, abandoning an install in progress."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Change detector stopped")

    async def _watch_loop(self):
        """Main watch loop."""
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in change detector: {e}")

    async def tick(self) -> TickOutcome:
        """Run one check against the stored fingerprint."""
        self.tick_count += 1
        current = self.fingerprint()
        previous = self.store.read()

        if current == previous:
            return TickOutcome.UNCHANGED

        logger.info(f"Check: current={current or '(empty)'}, previous={previous or '(empty)'}")

        if current == EMPTY:
            logger.warning("Current fingerprint is empty, skipping install")
            return TickOutcome.SKIPPED_EMPTY

        logger.info("Dependency change detected, re-installing dependencies...")
        if not await self.installer.install():
            logger.warning("Install failed, keeping previous dependencies; will retry next tick")
            return TickOutcome.INSTALL_FAILED

        self.store.write(current)
        await self.request_restart()
        return TickOutcome.RELOADED
