"""Include/exclude filtering of discovered module files."""

import logging
import re
from collections.abc import Iterable
from typing import Optional, Union

from ..exceptions import ConfigurationError
from .finder import DiscoveredFile

logger = logging.getLogger(__name__)


class PatternFilter:
    """Stateless predicate deciding which discovered files are loaded.

    A file is accepted when its match path (relative path with a leading
    slash) fully matches the include pattern, if one is set, and its file
    name is not in the exclude set.

    Examples:
        >>> f = PatternFilter(include_pattern=r".*/ext/.*")
        >>> f.accepts_path("/ext/lib/module2.xqy")
        True
        >>> f.accepts_path("/root/module3.xqy")
        False
    """

    def __init__(
        self,
        include_pattern: Optional[Union[str, re.Pattern[str]]] = None,
        exclude_filenames: Optional[Iterable[str]] = None,
    ):
        """Initialize the filter.

        Args:
            include_pattern: Regular expression the whole path must match
            exclude_filenames: Literal file names that are never loaded

        Raises:
            ConfigurationError: If the include pattern is not a valid regex
        """
        if isinstance(include_pattern, str):
            try:
                include_pattern = re.compile(include_pattern)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid include pattern {include_pattern!r}: {e}"
                ) from e
        self.include_pattern: Optional[re.Pattern[str]] = include_pattern
        self.exclude_filenames: frozenset[str] = frozenset(exclude_filenames or ())

    def accepts_path(self, match_path: str) -> bool:
        """Check a path (relative, with leading slash) against the filter."""
        name = match_path.rsplit("/", 1)[-1]
        if name in self.exclude_filenames:
            return False
        if self.include_pattern is not None:
            return self.include_pattern.fullmatch(match_path) is not None
        return True

    def accepts(self, file: DiscoveredFile) -> bool:
        """Check whether a discovered file should be loaded."""
        return self.accepts_path(file.match_path)

    def filter(self, files: Iterable[DiscoveredFile]) -> list[DiscoveredFile]:
        """Return the accepted files, keeping their order."""
        accepted = [f for f in files if self.accepts(f)]
        logger.debug(f"Pattern filter accepted {len(accepted)} file(s)")
        return accepted
