"""Configuration management for ZFIN Bridge.

Reads settings from a ``key=value`` file (``config.ini`` by default).
Values are validated once at load time; the resulting :class:`Config`
is read-only for the rest of the process lifetime.
"""

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.ini"

REQUIRED_KEYS = ("bank_root", "zfin_root")

DEFAULT_CONFIG: dict[str, Any] = {
    # ---- folder layout (relative to bank_root / zfin_root) ----
    "bank_out_dir": "OUT",
    "bank_in_dir": "IN",
    "bank_archive_dir": "ARH",
    "zfin_in_dir": "in",
    "zfin_out_dir": "out",
    "zfin_archive_dir": "arc",
    # ---- extensions per direction ----
    "bank_to_zfin_source_ext": "txt",
    "bank_to_zfin_target_ext": "occ",
    "zfin_to_bank_source_ext": "ifm",
    "zfin_to_bank_target_ext": "ifm",
    # ---- polling ----
    "poll_interval_seconds": 60,
    "min_file_age_seconds": 2,
    "max_files_per_cycle": 0,  # 0 = no cap
    "wake_on_change": False,  # watchdog shortcut between polls
    # ---- transfer policy ----
    "overwrite_existing": True,
    "verify_copies": False,  # SHA-256 compare before archiving
    # ---- archive ----
    "archive_retention_days": 90,  # 0 = keep forever
    # ---- runtime ----
    "lock_file": "runtime/zfin-bridge.lock",
    "log_dir": "logs",
    "log_rotate_bytes": 10 * 1024 * 1024,
    "log_rotate_files": 10,
    "log_level": "INFO",
}

# key -> minimum accepted value
_INT_KEYS: dict[str, int] = {
    "poll_interval_seconds": 1,
    "min_file_age_seconds": 0,
    "max_files_per_cycle": 0,
    "archive_retention_days": 0,
    "log_rotate_bytes": 1024,
    "log_rotate_files": 1,
}

_BOOL_KEYS = ("overwrite_existing", "verify_copies", "wake_on_change")

_TRUE_WORDS = ("true", "1", "yes")
_FALSE_WORDS = ("false", "0", "no")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised for a missing, malformed or out-of-range setting."""


def normalize_ext(ext: str) -> str:
    """Lower-case *ext* and strip surrounding blanks and leading dots."""
    return (ext or "").strip().lower().lstrip(".")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def read_key_values(path: Path) -> dict[str, str]:
    """
    Parse a ``key=value`` file into a dict.

    Blank lines, ``#`` / ``;`` comments and ``[section]`` headers are
    skipped. A later duplicate key wins.
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc

    values: dict[str, str] = {}
    for line_no, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped[0] in "#;":
            continue
        if stripped.startswith("[") and stripped.endswith("]"):
            continue

        key, sep, value = stripped.partition("=")
        if not sep:
            raise ConfigError(
                f"Invalid config line {line_no}: expected key=value, got: {line}"
            )
        key = key.strip()
        if not key:
            raise ConfigError(f"Invalid config line {line_no}: empty key")
        values[key] = _unquote(value.strip())
    return values


class Config:
    """Validated, read-only configuration loaded from a key=value file."""

    def __init__(self, values: dict[str, str], base_dir: Path, source: Path | None = None):
        """Validate raw *values*; relative paths resolve against *base_dir*."""
        self._base_dir = base_dir
        self._source = source
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self._unknown_keys = sorted(
            k for k in values if k not in DEFAULT_CONFIG and k not in REQUIRED_KEYS
        )

        for key in REQUIRED_KEYS:
            raw = values.get(key, "").strip()
            if not raw:
                raise ConfigError(f"Missing required key in config: {key}")
            self._data[key] = raw

        for key in DEFAULT_CONFIG:
            raw = values.get(key, "").strip()
            if not raw:
                continue
            if key in _INT_KEYS:
                self._data[key] = self._parse_int(key, raw)
            elif key in _BOOL_KEYS:
                self._data[key] = self._parse_bool(key, raw)
            elif key == "log_level":
                level = raw.upper()
                if level not in _LOG_LEVELS:
                    raise ConfigError(f"Invalid value for log_level: {raw}")
                self._data[key] = level
            else:
                # subdir names and extensions keep inner whitespace as written
                self._data[key] = values[key]

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Read and validate the config file at *path*."""
        path = Path(path).expanduser().absolute()
        values = read_key_values(path)
        cfg = cls(values, base_dir=path.parent, source=path)
        logger.debug("Configuration parsed from %s", path)
        return cfg

    # ---- parsing helpers ----

    @staticmethod
    def _parse_int(key: str, raw: str) -> int:
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"Invalid integer value for {key}: {raw}") from None
        minimum = _INT_KEYS[key]
        if value < minimum:
            raise ConfigError(
                f"Invalid value for {key}: must be >= {minimum}, got {value}"
            )
        return value

    @staticmethod
    def _parse_bool(key: str, raw: str) -> bool:
        word = raw.lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ConfigError(f"Invalid boolean value for {key}: {raw}")

    def _path(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = self._base_dir / path
        return Path(os.path.normpath(path))

    def _under(self, root: Path, subdir: str) -> Path:
        return Path(os.path.normpath(root / subdir.strip()))

    # ---- accessors ----

    @property
    def source(self) -> Path | None:
        """Return the file this configuration was loaded from."""
        return self._source

    @property
    def unknown_keys(self) -> list[str]:
        """Return keys present in the file that this version does not use."""
        return list(self._unknown_keys)

    @property
    def bank_root(self) -> Path:
        """Return the Bank side root folder."""
        return self._path(self._data["bank_root"])

    @property
    def zfin_root(self) -> Path:
        """Return the ZFIN side root folder."""
        return self._path(self._data["zfin_root"])

    @property
    def bank_out_path(self) -> Path:
        """Return the folder the Bank writes outgoing files into."""
        return self._under(self.bank_root, self._data["bank_out_dir"])

    @property
    def bank_in_path(self) -> Path:
        """Return the folder the Bank reads incoming files from."""
        return self._under(self.bank_root, self._data["bank_in_dir"])

    @property
    def bank_archive_path(self) -> Path:
        """Return the archive root for files picked up on the Bank side."""
        return self._under(self.bank_root, self._data["bank_archive_dir"])

    @property
    def zfin_out_path(self) -> Path:
        """Return the folder ZFIN writes outgoing files into."""
        return self._under(self.zfin_root, self._data["zfin_out_dir"])

    @property
    def zfin_in_path(self) -> Path:
        """Return the folder ZFIN reads incoming files from."""
        return self._under(self.zfin_root, self._data["zfin_in_dir"])

    @property
    def zfin_archive_path(self) -> Path:
        """Return the archive root for files picked up on the ZFIN side."""
        return self._under(self.zfin_root, self._data["zfin_archive_dir"])

    @property
    def bank_to_zfin_source_ext(self) -> str:
        return normalize_ext(self._data["bank_to_zfin_source_ext"])

    @property
    def bank_to_zfin_target_ext(self) -> str:
        return normalize_ext(self._data["bank_to_zfin_target_ext"])

    @property
    def zfin_to_bank_source_ext(self) -> str:
        return normalize_ext(self._data["zfin_to_bank_source_ext"])

    @property
    def zfin_to_bank_target_ext(self) -> str:
        return normalize_ext(self._data["zfin_to_bank_target_ext"])

    @property
    def poll_interval(self) -> int:
        """Return the pause between cycles in seconds."""
        return self._data["poll_interval_seconds"]

    @property
    def min_file_age(self) -> int:
        """Return how long a file must sit unmodified before pickup."""
        return self._data["min_file_age_seconds"]

    @property
    def max_files_per_cycle(self) -> int:
        """Return the per-flow batch cap (0 = unbounded)."""
        return self._data["max_files_per_cycle"]

    @property
    def wake_on_change(self) -> bool:
        return self._data["wake_on_change"]

    @property
    def overwrite_existing(self) -> bool:
        """Return whether existing destination/archive files are replaced."""
        return self._data["overwrite_existing"]

    @property
    def verify_copies(self) -> bool:
        return self._data["verify_copies"]

    @property
    def archive_retention_days(self) -> int:
        """Return the archive horizon in days (0 = disabled)."""
        return self._data["archive_retention_days"]

    @property
    def lock_file(self) -> Path:
        return self._path(self._data["lock_file"])

    @property
    def log_dir(self) -> Path:
        return self._path(self._data["log_dir"])

    @property
    def log_rotate_bytes(self) -> int:
        return self._data["log_rotate_bytes"]

    @property
    def log_rotate_files(self) -> int:
        return self._data["log_rotate_files"]

    @property
    def log_level(self) -> str:
        return self._data["log_level"]
