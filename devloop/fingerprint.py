"""
Dependency fingerprinting.

A fingerprint is a SHA-256 digest over the descriptor files that define the
project's dependencies. Each readable file contributes one line in the
``sha256sum`` listing format, so both content and file identity matter.
The last fingerprint recorded after a successful install is kept in a small
file in the workspace.
"""

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# Fingerprint of a descriptor set where no file could be read.
EMPTY = ""


def file_digest(path: Path) -> str | None:
    """SHA-256 of a file's content, or None if it is missing or unreadable."""
    h = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                h.update(chunk)
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.debug(f"Treating unreadable descriptor {path} as absent: {e}")
        return None
    return h.hexdigest()


def compute_fingerprint(paths: Iterable[Path], base_dir: Path = None) -> str:
    """
    Compute the fingerprint of the given descriptor files.

    Files are visited in the given order. Missing or unreadable files are
    skipped. Returns EMPTY when none of the files could be read.
    """
    outer = hashlib.sha256()
    seen = 0
    for path in paths:
        path = Path(path)
        digest = file_digest(path)
        if digest is None:
            continue
        name = path
        if base_dir is not None:
            try:
                name = path.relative_to(base_dir)
            except ValueError:
                pass
        outer.update(f"{digest}  {name}\n".encode("utf-8"))
        seen += 1

    if not seen:
        return EMPTY
    return outer.hexdigest()


class FingerprintStore:
    """The last fingerprint recorded after an install, persisted to a file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> str:
        """Return the stored fingerprint, or EMPTY if none is recorded."""
        try:
            return self.path.read_text().strip()
        except FileNotFoundError:
            return EMPTY
        except OSError as e:
            logger.warning(f"Could not read fingerprint file {self.path}: {e}")
            return EMPTY

    def write(self, fingerprint: str):
        """Atomically replace the stored fingerprint."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w") as f:
                f.write(f"{fingerprint}\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Recorded fingerprint {fingerprint or '(empty)'} in {self.path}")

    def clear(self):
        """Forget the stored fingerprint."""
        self.path.unlink(missing_ok=True)
