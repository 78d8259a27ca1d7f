"""Module discovery and classification.

Walks a modules root directory and classifies every file by the special
top-level directory it lives in. The classification decides the logical
URI a file is written to in the modules database.

Layout of a modules root::

    root/        assets loaded relative to "/"
    ext/         assets loaded under "/ext"
    options/     REST search options
    services/    REST resource extensions
    transforms/  REST transforms
    namespaces/  REST namespace bindings

Because the "root/" prefix is dropped, "root/lib/a.xqy" and "lib/a.xqy"
both map to "/lib/a.xqy". Such collisions are reported as a
DiscoveryError before anything is loaded.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Optional

from ..exceptions import DiscoveryError
from ..utils import DEFAULT_REST_GROUP, DEFAULT_REST_SERVER, LIBRARY_EXTENSIONS

logger = logging.getLogger(__name__)

ROOT_ASSET_DIR = "root"


class ModuleCategory(str, Enum):
    """Closed set of categories a discovered file can belong to."""

    LIBRARY = "library"
    """Code module (XQuery, JavaScript, XSLT) in an asset directory"""

    ASSET = "asset"
    """Any other file in an asset directory"""

    OPTIONS = "options"
    """REST search options file"""

    TRANSFORM = "transform"
    """REST transform"""

    SERVICE = "service"
    """REST resource extension"""

    NAMESPACE = "namespace"
    """REST namespace binding"""

    @property
    def is_asset(self) -> bool:
        """Whether files of this category keep their relative path as URI."""
        return self in (ModuleCategory.LIBRARY, ModuleCategory.ASSET)


SPECIAL_DIRECTORIES: dict[str, ModuleCategory] = {
    "options": ModuleCategory.OPTIONS,
    "transforms": ModuleCategory.TRANSFORM,
    "services": ModuleCategory.SERVICE,
    "namespaces": ModuleCategory.NAMESPACE,
}


def classify(relative_path: str) -> ModuleCategory:
    """Classify a file from its POSIX path relative to the modules root.

    Only files directly inside a special directory take that directory's
    category; everything else is a library module or an asset.

    Args:
        relative_path: Relative path using forward slashes

    Returns:
        The file's category
    """
    parts = PurePosixPath(relative_path).parts
    if len(parts) == 2 and parts[0] in SPECIAL_DIRECTORIES:
        return SPECIAL_DIRECTORIES[parts[0]]
    if PurePosixPath(relative_path).suffix.lower() in LIBRARY_EXTENSIONS:
        return ModuleCategory.LIBRARY
    return ModuleCategory.ASSET


def logical_uri(
    category: ModuleCategory,
    relative_path: str,
    rest_group: str = DEFAULT_REST_GROUP,
    rest_server: str = DEFAULT_REST_SERVER,
) -> str:
    """Derive the URI a file is written to in the modules database.

    Args:
        category: File category
        relative_path: Relative path using forward slashes
        rest_group: Group of the REST API server (options, namespaces)
        rest_server: Name of the REST API server (options, namespaces)

    Returns:
        Logical URI, always starting with "/"

    Examples:
        >>> logical_uri(ModuleCategory.LIBRARY, "root/lib/module4.xqy")
        '/lib/module4.xqy'
        >>> logical_uri(ModuleCategory.SERVICE, "services/sample.xqy")
        '/marklogic.rest.resource/sample/assets/resource.xqy'
    """
    path = PurePosixPath(relative_path)

    if category.is_asset:
        parts = path.parts
        if len(parts) > 1 and parts[0] == ROOT_ASSET_DIR:
            return "/" + "/".join(parts[1:])
        return "/" + path.as_posix()
    if category == ModuleCategory.OPTIONS:
        return f"/{rest_group}/{rest_server}/rest-api/options/{path.name}"
    if category == ModuleCategory.NAMESPACE:
        return f"/{rest_group}/{rest_server}/rest-api/namespaces/{path.name}"
    if category == ModuleCategory.SERVICE:
        return f"/marklogic.rest.resource/{path.stem}/assets/resource{path.suffix}"
    if category == ModuleCategory.TRANSFORM:
        return f"/marklogic.rest.transform/{path.stem}/assets/transform{path.suffix}"
    raise ValueError(f"Unknown module category: {category}")


@dataclass(frozen=True)
class DiscoveredFile:
    """A module file found under a modules root."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Path relative to the modules root (forward slashes)"""

    uri: str
    """Logical URI in the modules database"""

    category: ModuleCategory
    """Classification of the file"""

    size: int
    """File size in bytes"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def match_path(self) -> str:
        """Relative path with a leading slash, used for pattern matching."""
        return "/" + self.relative_path


class ModulesFinder:
    """Discovers and classifies the files of a modules root.

    Examples:
        >>> finder = ModulesFinder()
        >>> files = finder.discover(Path("src/main/ml-modules"))
        >>> [f.uri for f in files if f.category == ModuleCategory.OPTIONS]
        ['/Default/App-Services/rest-api/options/sample-options.xml']
    """

    def __init__(
        self,
        rest_group: str = DEFAULT_REST_GROUP,
        rest_server: str = DEFAULT_REST_SERVER,
        exclude_dot_files: bool = False,
    ):
        """Initialize modules finder.

        Args:
            rest_group: Group of the REST API server
            rest_server: Name of the REST API server
            exclude_dot_files: Whether to skip files/folders starting with dot
        """
        self.rest_group = rest_group
        self.rest_server = rest_server
        self.exclude_dot_files = exclude_dot_files

    def discover(self, root_dir: Path) -> list[DiscoveredFile]:
        """Find every module file below a root directory.

        Args:
            root_dir: Modules root directory

        Returns:
            Discovered files sorted by relative path

        Raises:
            DiscoveryError: If the root is missing, not a directory or not
                readable, or if two files map to the same URI
        """
        root_dir = Path(root_dir)
        if not root_dir.exists():
            raise DiscoveryError(f"Modules directory does not exist: {root_dir}")
        if not root_dir.is_dir():
            raise DiscoveryError(f"Modules path is not a directory: {root_dir}")
        if not os.access(root_dir, os.R_OK | os.X_OK):
            raise DiscoveryError(f"Modules directory is not readable: {root_dir}")

        root_dir = root_dir.resolve()
        try:
            paths = self._walk(root_dir, root_dir)
        except PermissionError as e:
            raise DiscoveryError(f"Cannot read modules directory {root_dir}: {e}") from e

        files: list[DiscoveredFile] = []
        seen_uris: dict[str, str] = {}
        for file_path in sorted(paths, key=lambda p: p.relative_to(root_dir).as_posix()):
            discovered = self._build_file(file_path, root_dir)
            if discovered is None:
                continue
            previous = seen_uris.get(discovered.uri)
            if previous is not None:
                raise DiscoveryError(
                    f"Files {previous} and {discovered.relative_path} both map to "
                    f"URI {discovered.uri} (files under {ROOT_ASSET_DIR}/ are loaded "
                    f"without the {ROOT_ASSET_DIR}/ prefix)"
                )
            seen_uris[discovered.uri] = discovered.relative_path
            files.append(discovered)

        logger.debug(f"Discovered {len(files)} module file(s) in {root_dir}")
        return files

    def _walk(self, directory: Path, root_dir: Path) -> list[Path]:
        """Recursively list regular files, skipping unreadable subdirectories."""
        found: list[Path] = []
        for item in directory.iterdir():
            if self.exclude_dot_files and item.name.startswith("."):
                continue
            if item.is_file():
                found.append(item)
            elif item.is_dir():
                try:
                    found.extend(self._walk(item, root_dir))
                except PermissionError as e:
                    logger.warning(f"Skipping unreadable directory {item}: {e}")
        return found

    def _build_file(self, file_path: Path, root_dir: Path) -> Optional[DiscoveredFile]:
        relative_path = file_path.relative_to(root_dir).as_posix()
        try:
            stat = file_path.stat()
        except OSError as e:
            logger.warning(f"Skipping {relative_path}: {e}")
            return None

        category = classify(relative_path)
        return DiscoveredFile(
            path=file_path,
            relative_path=relative_path,
            uri=logical_uri(category, relative_path, self.rest_group, self.rest_server),
            category=category,
            size=stat.st_size,
            mtime=stat.st_mtime,
        )
