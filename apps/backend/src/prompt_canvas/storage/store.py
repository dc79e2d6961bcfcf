"""Persistence ports for serialized flow data."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

try:  # pragma: no cover - platform-dependent import
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX
    fcntl = None

logger = logging.getLogger(__name__)


class PersistencePort(Protocol):
    """Loads and saves one serialized graph."""

    def load(self) -> Optional[str]: ...

    def save(self, data: str) -> None: ...


class FileFlowStore:
    """Stores a flow as `<flow_id>.json` under base_dir.

    Saves go through a sibling temp file and os.replace, so a reader sees
    either the previous flow or the new one. Every operation holds the
    store's thread lock and, on POSIX, an flock on `.<flow_id>.lock` so two
    processes sharing base_dir do not interleave.
    """

    def __init__(self, base_dir: Path, flow_id: str = "flow-data"):
        self.base_dir = Path(base_dir)
        self.flow_id = flow_id
        self.path = self.base_dir / f"{flow_id}.json"
        self.lock_path = self.base_dir / f".{flow_id}.lock"
        self._mutex = threading.Lock()

    def load(self) -> Optional[str]:
        """Return the saved data, or None if nothing has been saved."""
        with self._exclusive():
            try:
                return self.path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None

    def save(self, data: str) -> None:
        with self._exclusive():
            self._replace(data)
        logger.debug("Saved flow %s (%d bytes)", self.flow_id, len(data))

    def delete(self) -> bool:
        with self._exclusive():
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False
            return True

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._mutex:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with open(self.lock_path, "a") as lock_file:
                if fcntl is not None:
                    fcntl.flock(lock_file, fcntl.LOCK_EX)
                # Closing the file releases the flock
                yield

    def _replace(self, data: str) -> None:
        tmp = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.base_dir,
            prefix=f".{self.flow_id}.",
            suffix=".partial",
            delete=False,
        )
        try:
            with tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp.name, self.path)
        except BaseException:
            Path(tmp.name).unlink(missing_ok=True)
            raise


class InMemoryFlowStore:
    """Keeps the serialized flow in memory. Used by tests and ephemeral sessions."""

    def __init__(self, data: Optional[str] = None):
        self.data = data
        self.saves = 0

    def load(self) -> Optional[str]:
        return self.data

    def save(self, data: str) -> None:
        self.data = data
        self.saves += 1
