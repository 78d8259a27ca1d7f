"""Connection configuration for mlmodules."""

import logging
import os
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8000
DEFAULT_SCHEME = "http"


class Config:
    """Configuration manager for mlmodules.

    Values are read from environment variables first, then from
    ``~/.config/mlmodules/config`` (simple ``KEY=VALUE`` lines).
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_dir: Directory holding the config file. Defaults to
                        ~/.config/mlmodules/
        """
        self.config_dir = config_dir or Path.home() / ".config" / "mlmodules"
        self.config_file = self.config_dir / "config"
        self._file_values: Optional[dict[str, str]] = None

    def _load_file(self) -> dict[str, str]:
        """Read KEY=VALUE pairs from the config file (cached)."""
        if self._file_values is not None:
            return self._file_values

        values: dict[str, str] = {}
        if self.config_file.exists():
            try:
                for line in self.config_file.read_text(encoding="utf-8").splitlines():
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    values[key.strip()] = value.strip().strip('"').strip("'")
            except OSError as e:
                logger.warning(f"Failed to read config file {self.config_file}: {e}")
        self._file_values = values
        return values

    def _get(self, key: str) -> Optional[str]:
        value = os.environ.get(key)
        if value:
            return value
        return self._load_file().get(key)

    @property
    def host(self) -> str:
        return self._get("MLMODULES_HOST") or DEFAULT_HOST

    @property
    def port(self) -> int:
        value = self._get("MLMODULES_PORT")
        if not value:
            return DEFAULT_PORT
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Ignoring invalid MLMODULES_PORT value: {value!r}")
            return DEFAULT_PORT

    @property
    def scheme(self) -> str:
        return self._get("MLMODULES_SCHEME") or DEFAULT_SCHEME

    @property
    def username(self) -> Optional[str]:
        return self._get("MLMODULES_USERNAME")

    @property
    def password(self) -> Optional[str]:
        return self._get("MLMODULES_PASSWORD")

    @property
    def database(self) -> Optional[str]:
        return self._get("MLMODULES_DATABASE")

    @property
    def state_dir(self) -> Path:
        """Directory where module timestamps are persisted."""
        value = self._get("MLMODULES_STATE_DIR")
        if value:
            return Path(value).expanduser()
        return self.config_dir / "state"


config = Config()
