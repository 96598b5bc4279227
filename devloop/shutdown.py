"""
Graceful shutdown on SIGINT/SIGTERM.

Stops the change detector, terminates the managed server without letting it
respawn, and finally sweeps any descendant processes left behind so nothing
outlives the supervisor.
"""

import asyncio
import logging
import signal

import psutil

from .process import ProcessSupervisor
from .watcher import ChangeDetector

logger = logging.getLogger(__name__)

SIGNALS = (signal.SIGINT, signal.SIGTERM)


def reap_descendants(timeout: float = 5) -> int:
    """Terminate any children of this process that are still alive."""
    try:
        children = psutil.Process().children(recursive=True)
    except psutil.NoSuchProcess:
        return 0

    alive = []
    for child in children:
        try:
            logger.debug(f"Sending SIGTERM to leftover {child.name()} (PID {child.pid})")
            child.terminate()
            alive.append(child)
        except psutil.NoSuchProcess:
            continue

    if not alive:
        return 0

    _, still_alive = psutil.wait_procs(alive, timeout=timeout)
    for child in still_alive:
        try:
            logger.warning(f"Process {child.pid} ignored SIGTERM, killing it")
            child.kill()
        except psutil.NoSuchProcess:
            pass
    logger.info(f"Cleaned up {len(alive)} leftover process(es)")
    return len(alive)


class ShutdownCoordinator:
    """
    Tears down both loops once, on the first termination signal.

    Signal handlers are installed before startup finishes. A signal that
    arrives while the supervisor is still bootstrapping cancels the guarded
    startup task instead; the loops are attached once they exist.
    """

    def __init__(self, detector: ChangeDetector = None, supervisor: ProcessSupervisor = None):
        self.detector = detector
        self.supervisor = supervisor
        self._startup: asyncio.Task | None = None
        self._triggered = False
        self._task: asyncio.Task | None = None
        self._done = asyncio.Event()

    @property
    def triggered(self) -> bool:
        return self._triggered

    def guard(self, task: asyncio.Task):
        """Cancel task if a signal arrives before the loops are attached."""
        self._startup = task

    def attach(self, detector: ChangeDetector, supervisor: ProcessSupervisor):
        """Hand over the running loops; startup is no longer cancellable."""
        self.detector = detector
        self.supervisor = supervisor
        self._startup = None

    def install(self, loop: asyncio.AbstractEventLoop = None):
        """Register signal handlers on the running event loop."""
        loop = loop or asyncio.get_running_loop()
        for sig in SIGNALS:
            loop.add_signal_handler(sig, self.trigger, sig)

    def uninstall(self, loop: asyncio.AbstractEventLoop = None):
        loop = loop or asyncio.get_running_loop()
        for sig in SIGNALS:
            loop.remove_signal_handler(sig)

    def trigger(self, sig: int = None) -> asyncio.Task:
        """Start shutting down. Repeated calls return the same task."""
        if self._triggered:
            logger.info("Shutdown already in progress")
            return self._task

        self._triggered = True
        name = signal.Signals(sig).name if sig else "request"
        logger.info(f"Shutting down ({name})...")
        if self._startup is not None and not self._startup.done():
            logger.info("Startup still in progress, abandoning it")
            self._startup.cancel()
        self._task = asyncio.get_running_loop().create_task(self.shutdown())
        return self._task

    async def shutdown(self):
        try:
            if self.detector is not None:
                try:
                    await self.detector.stop()
                except Exception as e:
                    logger.error(f"Error stopping change detector: {e}")

            if self.supervisor is not None:
                try:
                    await self.supervisor.stop()
                except Exception as e:
                    logger.error(f"Error stopping server: {e}")

            await asyncio.get_running_loop().run_in_executor(None, reap_descendants)
        finally:
            self._done.set()
            logger.info("Shutdown complete")

    async def wait(self):
        """Block until shutdown has finished."""
        await self._done.wait()
