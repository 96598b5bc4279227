"""
Configuration for the devloop supervisor.

Loads settings from environment variables with sensible defaults.
A .env file in the current directory is honoured via python-dotenv.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str) -> tuple[str, ...]:
    """Split a comma separated environment variable into a tuple."""
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass
class Config:
    """Supervisor configuration."""

    # Workspace
    workspace: Path = Path(os.environ.get("WORKSPACE_PATH", "/workspaces/app"))
    watch_files: tuple[str, ...] = _env_list("WATCH_FILES", "requirements.txt,requirements.lock")
    hash_file: str = os.environ.get("HASH_FILE", ".deps_hash")
    hash_path: Path = None

    # Managed server
    host: str = os.environ.get("HOST", "0.0.0.0")
    port: int = int(os.environ.get("PORT", "8080"))
    server_command: str = os.environ.get("SERVER_COMMAND", "{python} -m devloop.app")
    hot_reload: bool = os.environ.get("HOT_RELOAD", "false").lower() == "true"

    # Dependencies
    install_command: str = os.environ.get(
        "INSTALL_COMMAND", "{python} -m pip install -r requirements.txt"
    )
    install_timeout: int = int(os.environ.get("INSTALL_TIMEOUT", "300"))

    # Timing (seconds)
    tick_interval: float = float(os.environ.get("TICK_INTERVAL", "10"))
    restart_delay: float = float(os.environ.get("RESTART_DELAY", "2"))
    stop_timeout: float = float(os.environ.get("STOP_TIMEOUT", "10"))
    manifest_wait_attempts: int = int(os.environ.get("MANIFEST_WAIT_ATTEMPTS", "30"))
    manifest_wait_delay: float = float(os.environ.get("MANIFEST_WAIT_DELAY", "2"))

    # Logging
    log_level: str = os.environ.get("LOG_LEVEL", "INFO")
    log_file: str = os.environ.get("LOG_FILE", "")
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    def __post_init__(self):
        """Normalize the workspace and derive the fingerprint file path."""
        self.workspace = Path(self.workspace).expanduser().resolve()
        self.watch_files = tuple(self.watch_files)
        self.hash_path = self.workspace / self.hash_file

    @property
    def manifest(self) -> str | None:
        """The first descriptor file; startup waits for it to exist."""
        return self.watch_files[0] if self.watch_files else None

    def watch_paths(self) -> list[Path]:
        """Descriptor files resolved against the workspace, in order."""
        return [self.workspace / name for name in self.watch_files]

    def expand(self, command: str) -> str:
        """Substitute {python} and {port} placeholders in a command."""
        return command.replace("{python}", sys.executable).replace("{port}", str(self.port))

    def server_env(self) -> dict[str, str]:
        """Environment for the managed server process."""
        env = os.environ.copy()
        env["PORT"] = str(self.port)
        env["HOST"] = self.host
        return env


config = Config()
