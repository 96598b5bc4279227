"""
Dependency installer.

Runs the configured install command in the workspace and reports success.
Output is captured and forwarded to the log. Failures are never fatal: the
caller keeps serving with whatever was installed before.
"""

import asyncio
import logging
import shlex
from pathlib import Path

logger = logging.getLogger(__name__)


class DependencyInstaller:
    """Materializes dependencies from the descriptor files."""

    def __init__(self, command: str, cwd: Path, timeout: float = 300):
        self.command = command
        self.cwd = Path(cwd)
        self.timeout = timeout
        self.last_returncode: int | None = None

    async def install(self) -> bool:
        """Run the install command. Returns True if it exited with status 0."""
        cmd = shlex.split(self.command)
        logger.info(f"Installing dependencies: {self.command}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(self.cwd),
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            logger.error(f"Failed to start installer: {e}")
            self.last_returncode = None
            return False

        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Installer did not finish within {self.timeout}s, killing it")
            await self._kill(process)
            self.last_returncode = process.returncode
            return False
        except asyncio.CancelledError:
            logger.warning("Install interrupted, abandoning it")
            await self._kill(process)
            raise

        for line in output.decode("utf-8", errors="replace").splitlines():
            if line.strip():
                logger.info(f"[install] {line.rstrip()}")

        self.last_returncode = process.returncode
        if process.returncode != 0:
            logger.warning(f"Installer exited with status {process.returncode}")
            return False

        logger.info("Dependencies installed")
        return True

    async def _kill(self, process: asyncio.subprocess.Process):
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
