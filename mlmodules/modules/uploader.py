"""Batched upload of module files to the document store."""

import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..api import DocumentStore
from ..exceptions import StateStoreError, UploadError
from ..utils import content_type_for
from .finder import DiscoveredFile
from .state import ModuleStateStore
from .tokens import TokenReplacer

logger = logging.getLogger(__name__)


def plan_batches(
    files: Sequence[DiscoveredFile], batch_size: int
) -> list[list[DiscoveredFile]]:
    """Split files into ordered batches.

    Args:
        files: Files in load order
        batch_size: Maximum batch size; values below 1 put every file in
                    a single batch

    Returns:
        List of batches (empty for empty input)
    """
    if not files:
        return []
    if batch_size < 1:
        return [list(files)]
    return [list(files[i : i + batch_size]) for i in range(0, len(files), batch_size)]


@dataclass
class UploadProgress:
    """Progress information reported after each file."""

    file: DiscoveredFile
    success: bool
    batch_num: int
    total_batches: int
    files_done: int
    files_total: int


@dataclass
class UploadReport:
    """Outcome of an upload run."""

    uploaded: list[DiscoveredFile] = field(default_factory=list)
    """Files written successfully, in load order"""

    failures: list[UploadError] = field(default_factory=list)
    """One entry per file that could not be written"""

    skipped: list[DiscoveredFile] = field(default_factory=list)
    """Files left out because they were not new or modified"""

    batches: int = 0
    """Number of batches started"""

    cancelled: bool = False
    """Whether the run stopped early between batches"""

    @property
    def succeeded(self) -> bool:
        return not self.failures and not self.cancelled

    @property
    def failed_files(self) -> list[DiscoveredFile]:
        return [error.file for error in self.failures]


class BatchUploader:
    """Writes module files to a document store in bounded batches.

    Files of one batch are written concurrently; the next batch starts only
    when every write of the current batch has finished.
    """

    def __init__(
        self,
        store: DocumentStore,
        collections: Sequence[str] = (),
        permissions: Optional[list[tuple[str, str]]] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize batch uploader.

        Args:
            store: Document store receiving the files
            collections: Collections added to every document
            permissions: (role, capability) pairs set on every document
            max_workers: Upper bound for concurrent writes within a batch
        """
        self.store = store
        self.collections = tuple(collections)
        self.permissions = permissions or []
        self.max_workers = max_workers

    def select(
        self,
        files: Sequence[DiscoveredFile],
        state_store: Optional[ModuleStateStore],
        minimum_timestamp: float = 0,
    ) -> tuple[list[DiscoveredFile], list[DiscoveredFile]]:
        """Split files into those to load and those to skip.

        Args:
            files: Files in load order
            state_store: Store deciding which files changed; None loads all
            minimum_timestamp: Files modified before this Unix timestamp are
                skipped for this call only (0 disables)
        """
        to_load: list[DiscoveredFile] = []
        skipped: list[DiscoveredFile] = []
        for file in files:
            if minimum_timestamp and minimum_timestamp > file.mtime:
                skipped.append(file)
            elif state_store is None or self._should_load(file, state_store):
                to_load.append(file)
            else:
                skipped.append(file)
        return to_load, skipped

    def _should_load(self, file: DiscoveredFile, state_store: ModuleStateStore) -> bool:
        try:
            return state_store.should_load(file)
        except StateStoreError as e:
            logger.warning(f"Could not check state of {file.relative_path}, loading it: {e}")
            return True

    def upload(
        self,
        files: Sequence[DiscoveredFile],
        batch_size: int,
        token_replacer: Optional[TokenReplacer] = None,
        state_store: Optional[ModuleStateStore] = None,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[Callable[[UploadProgress], None]] = None,
        minimum_timestamp: float = 0,
    ) -> UploadReport:
        """Upload the files that need loading.

        Args:
            files: Discovered files in load order
            batch_size: Files per batch (below 1 means a single batch)
            token_replacer: Applied to every file's content before writing
            state_store: Decides which files to load and records successes
            cancel_event: When set, no further batch is started
            progress_callback: Called after every file
            minimum_timestamp: Skip files modified before this Unix timestamp

        Returns:
            UploadReport with uploaded files and per-file failures
        """
        to_load, skipped = self.select(files, state_store, minimum_timestamp)
        report = UploadReport(skipped=skipped)
        batches = plan_batches(to_load, batch_size)
        logger.debug(
            f"Loading {len(to_load)} file(s) in {len(batches)} batch(es), "
            f"skipping {len(skipped)}"
        )

        uploaded: set[DiscoveredFile] = set()
        files_done = 0
        for batch_num, batch in enumerate(batches, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.debug(f"Cancelled before batch {batch_num}/{len(batches)}")
                report.cancelled = True
                break

            report.batches += 1
            batch_start = time.time()
            workers = len(batch)
            if self.max_workers is not None:
                workers = min(workers, self.max_workers)

            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = {
                    executor.submit(self._load_file, file, token_replacer, state_store): file
                    for file in batch
                }
                for future in as_completed(futures):
                    file = futures[future]
                    error = future.result()
                    if error is None:
                        uploaded.add(file)
                    else:
                        report.failures.append(error)
                    files_done += 1
                    if progress_callback is not None:
                        progress_callback(
                            UploadProgress(
                                file=file,
                                success=error is None,
                                batch_num=batch_num,
                                total_batches=len(batches),
                                files_done=files_done,
                                files_total=len(to_load),
                            )
                        )

            if state_store is not None:
                self._flush_state(state_store)
            logger.debug(
                f"Batch {batch_num}/{len(batches)} of {len(batch)} file(s) "
                f"took {time.time() - batch_start:.2f}s"
            )

        # Keep discovery order regardless of completion order
        report.uploaded = [f for f in to_load if f in uploaded]
        order = {f: i for i, f in enumerate(to_load)}
        report.failures.sort(key=lambda e: order[e.file])
        return report

    def _flush_state(self, state_store: ModuleStateStore) -> None:
        try:
            state_store.flush()
        except StateStoreError as e:
            logger.warning(f"Could not save module state: {e}")

    def _load_file(
        self,
        file: DiscoveredFile,
        token_replacer: Optional[TokenReplacer],
        state_store: Optional[ModuleStateStore],
    ) -> Optional[UploadError]:
        """Write a single file; return the error instead of raising it."""
        start = time.time()
        try:
            content = file.path.read_bytes()
            if token_replacer is not None:
                content = token_replacer.transform(content, file.path)
            self.store.write_document(
                file.uri,
                content,
                content_type=content_type_for(file.path),
                collections=self.collections,
                permissions=self.permissions,
            )
        except Exception as e:
            logger.warning(f"Failed to load {file.relative_path} to {file.uri}: {e}")
            return UploadError(file, e)

        if state_store is not None:
            try:
                state_store.record_loaded(file)
            except StateStoreError as e:
                # Written, but not remembered; it is loaded again next run
                logger.warning(f"Could not record {file.relative_path}: {e}")

        logger.debug(f"Loaded {file.relative_path} to {file.uri} in {time.time() - start:.2f}s")
        return None
