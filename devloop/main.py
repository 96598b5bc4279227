"""
devloop entry point.

Configures logging, runs the startup sequence, then runs the change
detector and the process supervisor side by side until a termination
signal arrives.
"""

import asyncio
import logging
from logging.handlers import RotatingFileHandler

from .bootstrap import StartupError, enter_workspace, initial_install, wait_for_manifest
from .config import Config, config
from .fingerprint import FingerprintStore
from .installer import DependencyInstaller
from .process import ProcessSupervisor
from .shutdown import ShutdownCoordinator
from .watcher import ChangeDetector

logger = logging.getLogger(__name__)


def configure_logging(cfg: Config):
    """Console logging, plus a rotating log file when LOG_FILE is set."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)
    handlers = [console_handler]

    if cfg.log_file:
        file_handler = RotatingFileHandler(
            cfg.log_file,
            maxBytes=cfg.log_max_bytes,
            backupCount=cfg.log_backup_count,
        )
        file_handler.setFormatter(log_formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        handlers=handlers,
    )


async def serve(cfg: Config):
    """Bootstrap, then supervise until shutdown."""
    coordinator = ShutdownCoordinator()
    coordinator.install()
    coordinator.guard(asyncio.current_task())
    try:
        try:
            detector, supervisor = await bootstrap(cfg)
        except asyncio.CancelledError:
            if not coordinator.triggered:
                raise
            logger.info("Shutdown requested during startup")
            await coordinator.wait()
            return

        coordinator.attach(detector, supervisor)
        await detector.start()
        await supervisor.run()
        if coordinator.triggered:
            await coordinator.wait()
    finally:
        coordinator.uninstall()
        if not coordinator.triggered:
            await coordinator.shutdown()


async def bootstrap(cfg: Config) -> tuple[ChangeDetector, ProcessSupervisor]:
    """Enter the workspace, install once and build both loops."""
    workspace = enter_workspace(cfg.workspace)
    if cfg.manifest:
        await wait_for_manifest(
            workspace / cfg.manifest,
            attempts=cfg.manifest_wait_attempts,
            delay=cfg.manifest_wait_delay,
        )

    store = FingerprintStore(cfg.hash_path)
    installer = DependencyInstaller(cfg.expand(cfg.install_command), workspace, cfg.install_timeout)
    await initial_install(cfg, installer, store)

    supervisor = ProcessSupervisor(
        cfg.expand(cfg.server_command),
        workspace,
        env=cfg.server_env(),
        restart_delay=cfg.restart_delay,
        stop_timeout=cfg.stop_timeout,
    )
    detector = ChangeDetector(
        cfg.watch_paths(),
        store,
        installer,
        supervisor.request_restart,
        interval=cfg.tick_interval,
        base_dir=cfg.workspace,
    )
    return detector, supervisor


def run(cfg: Config = None) -> int:
    """Run the supervisor. Returns the process exit code."""
    cfg = cfg or config
    configure_logging(cfg)
    logger.info("Starting devloop supervisor...")

    try:
        asyncio.run(serve(cfg))
    except StartupError as e:
        logger.error(f"ERROR: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")

    logger.info("Supervisor exited")
    return 0
