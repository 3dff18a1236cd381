"""Configuration management for reference counting."""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from refcounter.workspace import ExcludePredicate, is_supported_file, make_exclude_predicate

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".refcounter"
CONFIG_SECTION = "reference_counter"

DEFAULT_FILE_EXTENSIONS = ["py", "js", "jsx", "ts", "tsx"]
DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules",
    ".next",
    "dist",
    "build",
    "out",
    ".git",
    "coverage",
    "venv",
    ".venv",
    "site-packages",
]


@dataclass
class RefCounterConfig:
    """Settings for reference accounting.

    Attributes:
        file_extensions: Extensions (without dot) of files that are scanned.
        exclude_patterns: Path patterns skipped both when scanning files and
            when counting references.
        include_imports: Count import-style references as usages.
        enable_unused_symbols: Allow the workspace-wide unused symbol scan.
        debounce_ms: Delay before an edit triggers an accounting pass.
        reanalyze_cooldown_ms: Age after which an indexed file is stale.
        symbol_retry_attempts: Attempts made against a symbol oracle that
            returns nothing.
        symbol_retry_backoff_ms: Fixed delay between those attempts.
        snapshot_path: Oracle dump used by the command line tool, relative
            to the repository root.
    """
    file_extensions: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_EXTENSIONS))
    exclude_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    include_imports: bool = False
    enable_unused_symbols: bool = True
    debounce_ms: int = 500
    reanalyze_cooldown_ms: int = 5000
    symbol_retry_attempts: int = 3
    symbol_retry_backoff_ms: int = 300
    snapshot_path: str = ".refcounter-snapshot.json"

    @property
    def debounce_delay(self) -> float:
        """Debounce delay in seconds."""
        return self.debounce_ms / 1000

    @property
    def retry_backoff(self) -> float:
        """Symbol retry backoff in seconds."""
        return self.symbol_retry_backoff_ms / 1000

    def exclude_predicate(self) -> ExcludePredicate:
        return make_exclude_predicate(self.exclude_patterns)

    def is_file_supported(self, path: str) -> bool:
        return is_supported_file(path, self.file_extensions)

    def with_overrides(self, **overrides: Any) -> "RefCounterConfig":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


_EXPECTED_TYPES: dict[str, type | tuple[type, ...]] = {
    "file_extensions": list,
    "exclude_patterns": list,
    "include_imports": bool,
    "enable_unused_symbols": bool,
    "debounce_ms": int,
    "reanalyze_cooldown_ms": int,
    "symbol_retry_attempts": int,
    "symbol_retry_backoff_ms": int,
    "snapshot_path": str,
}


def _coerce(name: str, value: Any) -> Any:
    expected = _EXPECTED_TYPES[name]
    # bool is a subclass of int, which is never a valid millisecond value
    if expected is int and isinstance(value, bool):
        raise TypeError(f"{name} must be an integer")
    if not isinstance(value, expected):
        raise TypeError(f"{name} must be of type {expected}")
    if expected is list:
        return [str(item) for item in value]
    if expected is int and value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def load_config(repo_root: Path | None = None) -> RefCounterConfig:
    """Load configuration from the .refcounter file in the repository root.

    Args:
        repo_root: Path to repository root. If None, uses current directory.

    Returns:
        RefCounterConfig with loaded or default values.

    Notes:
        If .refcounter doesn't exist or can't be parsed, returns the default
        config. Unknown keys are ignored. Expected YAML structure:

        ```yaml
        reference_counter:
          include_imports: false
          exclude_patterns: [node_modules, dist]
          debounce_ms: 500
        ```
    """
    if repo_root is None:
        repo_root = Path.cwd()

    config_path = repo_root / CONFIG_FILE_NAME

    if not config_path.is_file():
        return RefCounterConfig()

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            return RefCounterConfig()

        section = data.get(CONFIG_SECTION, {})
        if not isinstance(section, dict):
            return RefCounterConfig()

        known = {f.name for f in fields(RefCounterConfig)}
        values = {
            name: _coerce(name, value)
            for name, value in section.items()
            if name in known and value is not None
        }
        return RefCounterConfig(**values)
    except (yaml.YAMLError, OSError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring invalid configuration in {config_path}: {e}")
        return RefCounterConfig()
