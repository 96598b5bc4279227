"""
Process supervisor for the managed server.

Keeps exactly one server process alive. Each loop iteration spawns the
server in its own process group, waits for it to exit for whatever reason,
then starts it again after a short delay. Other components never touch the
process handle; they can only ask for the current process to be terminated.
"""

import asyncio
import logging
import os
import shlex
import signal
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import psutil

logger = logging.getLogger(__name__)


def group_members(pgid: int) -> list[psutil.Process]:
    """Live (non-zombie) processes in the given process group."""
    members = []
    for proc in psutil.process_iter():
        try:
            if os.getpgid(proc.pid) == pgid and proc.status() != psutil.STATUS_ZOMBIE:
                members.append(proc)
        except (ProcessLookupError, psutil.Error):
            continue
    return members


@dataclass
class ManagedProcess:
    """The server process spawned by one supervisor iteration."""

    process: asyncio.subprocess.Process
    generation: int
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


class ProcessSupervisor:
    """Runs the server command and restarts it whenever it exits."""

    def __init__(
        self,
        command: str,
        cwd: Path,
        env: dict[str, str] = None,
        restart_delay: float = 2,
        stop_timeout: float = 10,
    ):
        self.command = command
        self.cwd = Path(cwd)
        self.env = env
        self.restart_delay = restart_delay
        self.stop_timeout = stop_timeout

        self._current: ManagedProcess | None = None
        self._stopping = asyncio.Event()

        self.spawn_count = 0
        self.restart_count = 0
        self.last_exit_code: int | None = None

    @property
    def pid(self) -> int | None:
        """PID of the running server, if any."""
        managed = self._current
        if managed and managed.alive:
            return managed.pid
        return None

    def is_running(self) -> bool:
        return self.pid is not None

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def run(self):
        """Supervise the server until stop() is called."""
        logger.info(f"Supervising server: {self.command}")
        while not self._stopping.is_set():
            try:
                await self._run_once()
            except Exception as e:
                logger.error(f"Failed to run server: {e}")

            if self._stopping.is_set():
                break

            logger.info(f"Server exited. Restarting in {self.restart_delay} seconds...")
            if await self._sleep(self.restart_delay):
                break
            self.restart_count += 1

        logger.info("Supervisor loop stopped")

    async def _run_once(self):
        """Spawn the server and block until it exits."""
        managed = await self._spawn()
        self._current = managed
        try:
            if self._stopping.is_set():
                # stop() raced with the spawn
                await self._terminate(managed)
            returncode = await managed.process.wait()
        finally:
            self._current = None

        self.last_exit_code = returncode
        uptime = (datetime.now() - managed.started_at).total_seconds()
        label = f"Server (PID {managed.pid}, generation {managed.generation})"
        if returncode == 0:
            logger.info(f"{label} exited cleanly after {uptime:.1f}s")
        elif returncode < 0:
            logger.warning(f"{label} killed by signal {-returncode} after {uptime:.1f}s")
        else:
            logger.warning(f"{label} exited with status {returncode} after {uptime:.1f}s")

        # Children it forked share its process group and must not outlive it
        await self._reap_group(managed)

    async def _spawn(self) -> ManagedProcess:
        cmd = shlex.split(self.command)
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(self.cwd),
            env=self.env,
            start_new_session=True,  # Own process group, so the whole tree can be signalled
        )
        self.spawn_count += 1
        managed = ManagedProcess(process=process, generation=self.spawn_count)
        logger.info(f"Server started (PID: {managed.pid}, generation {managed.generation})")
        return managed

    async def _sleep(self, delay: float) -> bool:
        """Sleep for delay seconds. Returns True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return False

    async def terminate_current(self) -> bool:
        """Terminate the running server, if any. Returns True if one was running."""
        managed = self._current
        if managed is None or not managed.alive:
            logger.info("No server running, nothing to terminate")
            return False
        await self._terminate(managed)
        return True

    async def request_restart(self) -> bool:
        """Ask for a restart; the run loop brings the server back up."""
        logger.info("Restart requested, terminating server")
        return await self.terminate_current()

    async def stop(self):
        """Stop supervising and terminate the server. Safe to call twice."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        managed = self._current
        if managed is not None and managed.alive:
            await self._terminate(managed)

    async def _terminate(self, managed: ManagedProcess):
        """SIGTERM the process group, then SIGKILL after stop_timeout."""
        process = managed.process
        if process.returncode is None:
            self._signal_group(managed.pid, signal.SIGTERM)
        try:
            await asyncio.wait_for(asyncio.shield(process.wait()), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Server (PID {managed.pid}) did not stop gracefully, forcing kill")
            self._signal_group(managed.pid, signal.SIGKILL)
            await process.wait()

    async def _reap_group(self, managed: ManagedProcess):
        """Terminate whatever the exited server left running in its process group."""
        leftovers = group_members(managed.pid)
        if not leftovers:
            return

        logger.warning(
            f"Server (PID {managed.pid}) left {len(leftovers)} process(es) behind, terminating them"
        )
        self._signal_group(managed.pid, signal.SIGTERM)
        if await self._wait_group(managed.pid, self.stop_timeout):
            return

        logger.warning(f"Process group {managed.pid} did not stop gracefully, forcing kill")
        self._signal_group(managed.pid, signal.SIGKILL)
        await self._wait_group(managed.pid, self.stop_timeout)

    async def _wait_group(self, pgid: int, timeout: float) -> bool:
        """Poll until the process group is empty. Returns False on timeout."""
        deadline = asyncio.get_running_loop().time() + timeout
        while group_members(pgid):
            if asyncio.get_running_loop().time() >= deadline:
                return False
            await asyncio.sleep(0.1)
        return True

    def _signal_group(self, pgid: int, sig: int):
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            pass
