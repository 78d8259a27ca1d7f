"""Persisted module timestamps for incremental loading.

This module remembers, across runs, the last-modified timestamp of every
module file that was loaded. A later run only loads files that are new or
were modified since they were last loaded.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from types import TracebackType
from typing import Optional

from ..config import config
from ..exceptions import StateStoreError
from .finder import DiscoveredFile

logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


def default_state_file(root_dir: Path, state_dir: Optional[Path] = None) -> Path:
    """Get the default state file for a modules root.

    Args:
        root_dir: Modules root directory
        state_dir: Directory holding state files. Defaults to
                   ~/.config/mlmodules/state/

    Returns:
        Path to a JSON file keyed by a hash of the absolute root path
    """
    if state_dir is None:
        state_dir = config.state_dir
    root_abs = str(Path(root_dir).resolve())
    key = hashlib.sha256(root_abs.encode()).hexdigest()[:16]
    return state_dir / f"{key}.json"


class ModuleStateStore:
    """Stores the last loaded timestamp of each module file.

    Records are keyed by the file's absolute path and kept in a JSON file.
    The store must be opened before use, either with ``open()``/``close()``
    or as a context manager. ``record_loaded`` may be called from several
    upload threads at once; updates are serialized by a lock and kept in
    memory until ``flush()`` or ``close()`` writes them out.

    Examples:
        >>> with ModuleStateStore(Path("/tmp/modules-state.json")) as store:
        ...     if store.should_load(file):
        ...         store.record_loaded(file)
        ...     store.flush()
    """

    def __init__(self, state_file: Path, minimum_timestamp: Optional[float] = None):
        """Initialize the state store.

        Args:
            state_file: JSON file holding the records
            minimum_timestamp: Files modified before this Unix timestamp are
                never loaded (0 or None disables the check)
        """
        self.state_file = Path(state_file)
        self.minimum_timestamp: float = minimum_timestamp or 0
        self._records: dict[str, float] = {}
        self._lock = threading.Lock()
        self._dirty = False
        self._is_open = False

    @classmethod
    def for_root(
        cls, root_dir: Path, state_dir: Optional[Path] = None
    ) -> "ModuleStateStore":
        """Create a store using the default state file for a modules root."""
        return cls(default_state_file(root_dir, state_dir))

    def __enter__(self) -> "ModuleStateStore":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_value: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._is_open

    def __len__(self) -> int:
        return len(self._records)

    def open(self) -> None:
        """Load persisted records.

        A missing file means an empty store. A corrupt or unreadable file
        is logged and treated as empty, so every file gets loaded.
        """
        with self._lock:
            self._records = self._read_records()
            self._dirty = False
            self._is_open = True
        logger.debug(
            f"Opened module state {self.state_file} with {len(self._records)} record(s)"
        )

    def close(self) -> None:
        """Flush records to disk and close the store."""
        if not self._is_open:
            return
        with self._lock:
            try:
                if self._dirty:
                    self._write_records()
            finally:
                self._is_open = False
        logger.debug(f"Closed module state {self.state_file}")

    def _require_open(self) -> None:
        if not self._is_open:
            raise StateStoreError("Module state store is not open")

    def _read_records(self) -> dict[str, float]:
        if not self.state_file.exists():
            logger.debug(f"No module state found at {self.state_file}")
            return {}

        try:
            with open(self.state_file, encoding="utf-8") as f:
                data = json.load(f)
            records = data.get("files", {})
            return {str(k): float(v) for k, v in records.items()}
        except (OSError, json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            logger.warning(
                f"Failed to load module state from {self.state_file}, "
                f"all files will be loaded: {e}"
            )
            return {}

    def _write_records(self) -> None:
        """Atomically replace the state file with the current records."""
        data = {"version": STATE_FORMAT_VERSION, "files": self._records}
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.state_file.parent, prefix=".state-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_name, self.state_file)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateStoreError(
                f"Failed to save module state to {self.state_file}: {e}"
            ) from e

    @staticmethod
    def key_for(file: DiscoveredFile) -> str:
        return str(file.path)

    def last_loaded(self, file: DiscoveredFile) -> Optional[float]:
        """Timestamp recorded when the file was last loaded, if any."""
        self._require_open()
        return self._records.get(self.key_for(file))

    def set_minimum_timestamp(self, timestamp: Optional[float]) -> None:
        """Skip every file modified before the given Unix timestamp.

        Args:
            timestamp: Minimum last-modified time; 0 or None clears it
        """
        self.minimum_timestamp = timestamp or 0

    def should_load(self, file: DiscoveredFile) -> bool:
        """Decide whether a file needs to be (re)loaded.

        Args:
            file: Discovered module file

        Returns:
            False if the file is older than the minimum timestamp or has not
            been modified since it was last loaded, True otherwise
        """
        self._require_open()
        if self.minimum_timestamp and self.minimum_timestamp > file.mtime:
            return False

        last_loaded = self._records.get(self.key_for(file))
        if last_loaded is None:
            return True
        return file.mtime > last_loaded

    def record_loaded(self, file: DiscoveredFile) -> None:
        """Remember that a file was loaded at its current timestamp.

        The record is persisted by the next ``flush()`` or ``close()``.
        """
        self._require_open()
        with self._lock:
            self._records[self.key_for(file)] = file.mtime
            self._dirty = True

    def flush(self) -> None:
        """Write pending records to the state file.

        Raises:
            StateStoreError: If the records cannot be persisted
        """
        self._require_open()
        with self._lock:
            if not self._dirty:
                return
            self._write_records()
            self._dirty = False

    def reset(self) -> None:
        """Drop every record and delete the state file.

        Safe to call repeatedly or when no state exists.

        Raises:
            StateStoreError: If the state file cannot be deleted
        """
        with self._lock:
            self._records = {}
            self._dirty = False
            try:
                self.state_file.unlink(missing_ok=True)
            except OSError as e:
                raise StateStoreError(
                    f"Failed to delete module state {self.state_file}: {e}"
                ) from e
        logger.debug(f"Cleared module state at {self.state_file}")
