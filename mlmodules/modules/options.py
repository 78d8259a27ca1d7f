"""Immutable options controlling a modules load."""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..exceptions import ConfigurationError
from ..utils import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MODULE_PERMISSIONS,
    DEFAULT_REST_GROUP,
    DEFAULT_REST_SERVER,
)

logger = logging.getLogger(__name__)


def parse_permissions(permissions: str) -> list[tuple[str, str]]:
    """Parse a "role,capability,role,capability" string.

    Args:
        permissions: Comma-separated role/capability pairs

    Returns:
        List of (role, capability) tuples

    Raises:
        ConfigurationError: If the string does not hold complete pairs

    Examples:
        >>> parse_permissions("rest-reader,read,rest-writer,update")
        [('rest-reader', 'read'), ('rest-writer', 'update')]
    """
    tokens = [t.strip() for t in permissions.split(",") if t.strip()]
    if len(tokens) % 2 != 0:
        raise ConfigurationError(
            f"Permissions must be role,capability pairs: {permissions!r}"
        )
    return list(zip(tokens[::2], tokens[1::2]))


@dataclass(frozen=True)
class LoadOptions:
    """Configuration for one run of the modules loader.

    Options are fixed for the duration of a run. A batch size below 1
    means "one batch containing every file".
    """

    include_pattern: Optional[str] = None
    """Regular expression the file path (with leading slash) must fully match"""

    exclude_filenames: tuple[str, ...] = ()
    """File names that are never loaded"""

    tokens: dict[str, str] = field(default_factory=dict)
    """Literal token -> replacement applied to text files"""

    batch_size: int = DEFAULT_BATCH_SIZE
    """Maximum number of concurrent writes per batch"""

    max_workers: Optional[int] = None
    """Upper bound for upload threads (defaults to the batch size)"""

    minimum_timestamp: float = 0
    """Files modified before this Unix timestamp are skipped (0 disables)"""

    permissions: str = DEFAULT_MODULE_PERMISSIONS
    """Role/capability pairs set on every loaded module"""

    collections: tuple[str, ...] = ()
    """Collections every loaded module is added to"""

    rest_group: str = DEFAULT_REST_GROUP
    rest_server: str = DEFAULT_REST_SERVER

    exclude_dot_files: bool = False
    """Skip files and folders starting with a dot"""

    def __post_init__(self) -> None:
        # Callers may pass lists
        object.__setattr__(self, "exclude_filenames", tuple(self.exclude_filenames))
        object.__setattr__(self, "collections", tuple(self.collections))
        object.__setattr__(self, "tokens", dict(self.tokens))

    def validate(self) -> None:
        """Check the options before a run.

        Raises:
            ConfigurationError: If a value is invalid
        """
        if self.include_pattern is not None:
            try:
                re.compile(self.include_pattern)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid include pattern {self.include_pattern!r}: {e}"
                ) from e
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.minimum_timestamp < 0:
            raise ConfigurationError("minimum_timestamp cannot be negative")
        parse_permissions(self.permissions)

    @property
    def permission_pairs(self) -> list[tuple[str, str]]:
        return parse_permissions(self.permissions)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoadOptions":
        """Create load options from a dictionary.

        Keys use camelCase, e.g.::

            {
                "includePattern": ".*/ext/.*",
                "excludeFilenames": ["notes.txt"],
                "tokens": {"%%DB%%": "my-content"},
                "batchSize": 20
            }

        Raises:
            ConfigurationError: If a value has the wrong type
        """
        tokens = data.get("tokens", {})
        if not isinstance(tokens, dict):
            raise ConfigurationError("'tokens' must be an object")

        try:
            options = cls(
                include_pattern=data.get("includePattern"),
                exclude_filenames=tuple(data.get("excludeFilenames", [])),
                tokens={str(k): str(v) for k, v in tokens.items()},
                batch_size=int(data.get("batchSize", DEFAULT_BATCH_SIZE)),
                max_workers=(
                    int(data["maxWorkers"]) if data.get("maxWorkers") is not None else None
                ),
                minimum_timestamp=float(data.get("minimumTimestamp", 0)),
                permissions=str(data.get("permissions", DEFAULT_MODULE_PERMISSIONS)),
                collections=tuple(data.get("collections", [])),
                rest_group=str(data.get("restGroup", DEFAULT_REST_GROUP)),
                rest_server=str(data.get("restServer", DEFAULT_REST_SERVER)),
                exclude_dot_files=bool(data.get("excludeDotFiles", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid load options: {e}") from e

        options.validate()
        return options

    def to_dict(self) -> dict[str, Any]:
        """Convert load options to a dictionary (camelCase keys)."""
        return {
            "includePattern": self.include_pattern,
            "excludeFilenames": list(self.exclude_filenames),
            "tokens": dict(self.tokens),
            "batchSize": self.batch_size,
            "maxWorkers": self.max_workers,
            "minimumTimestamp": self.minimum_timestamp,
            "permissions": self.permissions,
            "collections": list(self.collections),
            "restGroup": self.rest_group,
            "restServer": self.rest_server,
            "excludeDotFiles": self.exclude_dot_files,
        }


def load_options_from_json(path: Path) -> LoadOptions:
    """Read load options from a JSON file.

    Args:
        path: JSON file holding a single options object

    Returns:
        Parsed LoadOptions

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read options file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in options file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Options file {path} must contain a JSON object")

    logger.debug(f"Loaded options from {path}")
    return LoadOptions.from_dict(data)
