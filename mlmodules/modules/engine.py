"""Modules loader: discovery, filtering and batched upload."""

import logging
import threading
import time
from pathlib import Path
from typing import Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..api import DocumentStore
from ..output import OutputFormatter
from .filter import PatternFilter
from .finder import DiscoveredFile, ModulesFinder
from .options import LoadOptions
from .state import ModuleStateStore
from .tokens import TokenReplacer
from .uploader import BatchUploader, UploadProgress, UploadReport

logger = logging.getLogger(__name__)


class ModulesLoader:
    """Loads a modules root directory into a document store.

    This is the entry point tying the pieces together: files are
    discovered and classified, filtered by pattern, checked against the
    persisted timestamps and uploaded in batches with token replacement.
    """

    def __init__(
        self,
        store: DocumentStore,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize modules loader.

        Args:
            store: Document store receiving the modules
            output: Output formatter for displaying progress/status
        """
        self.store = store
        self.output = output or OutputFormatter(quiet=True)

    @property
    def _interactive(self) -> bool:
        """Whether progress and summaries are shown."""
        return not self.output.quiet and not self.output.json_output

    def run(
        self,
        root_dir: Path,
        options: Optional[LoadOptions] = None,
        state_store: Optional[ModuleStateStore] = None,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> UploadReport:
        """Load the modules of a root directory.

        Args:
            root_dir: Modules root directory
            options: Load options (defaults apply if not provided)
            state_store: Open state store; without one every file is loaded
                unless it predates ``options.minimum_timestamp``
            dry_run: If True, only report which files would be loaded
            cancel_event: When set, no further batch is started

        Returns:
            UploadReport; ``report.uploaded`` holds the files loaded on this run

        Raises:
            ConfigurationError: If the options are invalid
            DiscoveryError: If the root directory cannot be scanned

        Examples:
            >>> loader = ModulesLoader(client)
            >>> with ModuleStateStore.for_root(root) as state:
            ...     report = loader.run(root, LoadOptions(batch_size=20), state)
            >>> print(f"Loaded {len(report.uploaded)} module(s)")
        """
        options = options or LoadOptions()
        options.validate()
        root_dir = Path(root_dir)

        pattern_filter = PatternFilter(options.include_pattern, options.exclude_filenames)
        token_replacer = TokenReplacer(options.tokens)

        start_time = time.time()
        files = self._discover(root_dir, options)
        accepted = pattern_filter.filter(files)
        logger.debug(
            f"{len(accepted)} of {len(files)} file(s) accepted in "
            f"{time.time() - start_time:.2f}s"
        )

        if self._interactive:
            self.output.info(f"Loading modules from: {root_dir}")
            if dry_run:
                self.output.info("Dry run: No documents will be written")
            self.output.print("")

        uploader = BatchUploader(
            self.store,
            collections=options.collections,
            permissions=options.permission_pairs,
            max_workers=options.max_workers,
        )

        if dry_run:
            to_load, skipped = uploader.select(
                accepted, state_store, options.minimum_timestamp
            )
            report = UploadReport(uploaded=to_load, skipped=skipped)
        else:
            report = self._upload(
                uploader, accepted, options, token_replacer, state_store, cancel_event
            )

        logger.debug(f"Modules load took {time.time() - start_time:.2f}s")
        if self._interactive:
            self._display_summary(report, dry_run)
        return report

    def _discover(self, root_dir: Path, options: LoadOptions) -> list[DiscoveredFile]:
        finder = ModulesFinder(
            rest_group=options.rest_group,
            rest_server=options.rest_server,
            exclude_dot_files=options.exclude_dot_files,
        )
        if not self._interactive:
            return finder.discover(root_dir)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            task = progress.add_task("Scanning modules directory...", total=None)
            files = finder.discover(root_dir)
            progress.update(task, description=f"Found {len(files)} module file(s)")
        return files

    def _upload(
        self,
        uploader: BatchUploader,
        files: list[DiscoveredFile],
        options: LoadOptions,
        token_replacer: TokenReplacer,
        state_store: Optional[ModuleStateStore],
        cancel_event: Optional[threading.Event],
    ) -> UploadReport:
        if not self._interactive:
            return uploader.upload(
                files,
                options.batch_size,
                token_replacer,
                state_store,
                cancel_event=cancel_event,
                minimum_timestamp=options.minimum_timestamp,
            )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
        ) as progress:
            task = progress.add_task("Loading modules...", total=None)

            def on_progress(info: UploadProgress) -> None:
                progress.update(
                    task,
                    completed=info.files_done,
                    total=info.files_total,
                    description=f"Batch {info.batch_num}/{info.total_batches}",
                )
                if not info.success:
                    progress.console.print(
                        f"[red]✗[/red] {info.file.relative_path}", highlight=False
                    )

            report = uploader.upload(
                files,
                options.batch_size,
                token_replacer,
                state_store,
                cancel_event=cancel_event,
                progress_callback=on_progress,
                minimum_timestamp=options.minimum_timestamp,
            )
        return report

    def _display_summary(self, report: UploadReport, dry_run: bool) -> None:
        self.output.print("")
        if dry_run:
            self.output.success("Dry run complete!")
            if report.uploaded:
                self.output.info(f"Would load: {len(report.uploaded)} file(s)")
                for file in report.uploaded:
                    self.output.info(
                        f"  ↑ {file.relative_path} -> {file.uri} "
                        f"({self.output.format_size(file.size)})"
                    )
        elif report.failures:
            self.output.warning(
                f"Modules load finished with {len(report.failures)} failure(s)"
            )
            for error in report.failures:
                self.output.warning(f"  {error.file.relative_path}: {error.cause}")
        elif report.cancelled:
            self.output.warning("Modules load cancelled")
        else:
            self.output.success("Modules load complete!")

        if not dry_run:
            if report.uploaded:
                self.output.info(f"  Loaded: {len(report.uploaded)} file(s)")
            else:
                self.output.info("No modules needed loading - everything is up to date!")
        if report.skipped:
            self.output.info(f"  Unchanged: {len(report.skipped)} file(s)")
