"""Configuration file support for smellhunter.

Loads .smellhunter.yml from the project root (or a given path) and provides
analyzed paths, path exclusions, suppression settings and per-analyzer
tunables.

Config format example:

    paths:
      - "app"
      - "routes"

    exclude_paths:
      - "vendor/"
      - "storage/"
      - "**/*Test.php"

    model_paths:
      - "app/Models"

    suppression_keyword: "smellhunter-ignore"
    min_severity: "MEDIUM"
    disabled:
      - "generic-exception-catch"
    jobs: 4

    analyzers:
      silent-failure:
        whitelist_dirs: ["app/Legacy"]
        whitelist_exceptions: ["ModelNotFoundException"]
      logic-in-routes:
        max_closure_lines: 8
"""

import fnmatch
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple

import yaml

CONFIG_NAMES = (".smellhunter.yml", ".smellhunter.yaml")

DEFAULT_PATHS = ("app", "routes", "resources/views", "database", "config")
DEFAULT_MODEL_PATHS = ("app/Models",)
DEFAULT_EXCLUDES = ("vendor/", "node_modules/", "storage/", "bootstrap/cache/")
DEFAULT_SUPPRESSION_KEYWORD = "smellhunter-ignore"

_MISSING = object()


class ConfigError(Exception):
    """The configuration file exists but cannot be used."""


def freeze(value):
    """Recursively turn dicts into read-only mappings and lists into tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({str(k): freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def _dotted(data: Mapping, key: str, default):
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


@dataclass(frozen=True)
class AnalyzerConfig:
    """Read-only tunables of one analyzer."""
    analyzer_id: str
    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, key: str, default=None):
        return _dotted(self.values, key, default)

    def get_list(self, key: str, default: Tuple = ()) -> Tuple:
        value = self.get(key, _MISSING)
        if value is _MISSING or value is None:
            return tuple(default)
        if isinstance(value, (str, int, float)):
            return (value,)
        return tuple(value)


@dataclass(frozen=True)
class SmellhunterConfig:
    """Parsed configuration from .smellhunter.yml."""
    paths: Tuple[str, ...] = DEFAULT_PATHS
    exclude_paths: Tuple[str, ...] = DEFAULT_EXCLUDES
    model_paths: Tuple[str, ...] = DEFAULT_MODEL_PATHS
    suppression_keyword: str = DEFAULT_SUPPRESSION_KEYWORD
    min_severity: Optional[str] = None
    disabled: Tuple[str, ...] = ()
    jobs: int = 1
    analyzers: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    source: Optional[str] = None

    def get(self, key: str, default=None):
        """Dotted lookup, e.g. ``get("analyzers.logic-in-routes.max_closure_lines", 5)``."""
        head, _, rest = key.partition(".")
        if head == "analyzers":
            return _dotted(self.analyzers, rest, default) if rest else self.analyzers
        value = getattr(self, head, _MISSING) if not head.startswith("_") else _MISSING
        if value is _MISSING:
            return default
        if rest:
            return _dotted(value, rest, default) if isinstance(value, Mapping) else default
        return value

    def for_analyzer(self, analyzer_id: str) -> AnalyzerConfig:
        values = self.analyzers.get(analyzer_id, MappingProxyType({}))
        return AnalyzerConfig(analyzer_id, values)

    def is_enabled(self, analyzer_id: str) -> bool:
        return analyzer_id not in self.disabled

    def should_exclude(self, file_path: str) -> bool:
        """Check if a file path matches any exclusion pattern."""
        normalized = file_path.replace(os.sep, "/")
        parts = normalized.split("/")
        for pattern in self.exclude_paths:
            if fnmatch.fnmatch(normalized, pattern):
                return True
            # Directory patterns match any path component sequence
            if pattern.endswith("/"):
                wanted = pattern.rstrip("/").split("/")
                for i in range(len(parts) - len(wanted) + 1):
                    if parts[i:i + len(wanted)] == wanted:
                        return True
        return False


def find_config(target_path: str) -> Optional[str]:
    """Walk up from ``target_path`` looking for a config file."""
    search_dir = os.path.abspath(target_path)
    if os.path.isfile(search_dir):
        search_dir = os.path.dirname(search_dir)

    while True:
        for name in CONFIG_NAMES:
            candidate = os.path.join(search_dir, name)
            if os.path.isfile(candidate):
                return candidate
        parent = os.path.dirname(search_dir)
        if parent == search_dir:
            return None  # Reached filesystem root
        search_dir = parent


def load_config(target_path: str, config_path: str = None) -> SmellhunterConfig:
    """Load smellhunter configuration.

    Args:
        target_path: The scan target path (used to find .smellhunter.yml)
        config_path: Explicit config path (overrides auto-discovery)

    Returns:
        The parsed config, or the defaults when no file is found.

    Raises:
        ConfigError: the explicit file is missing, or a file is malformed.
    """
    if config_path:
        if not os.path.isfile(config_path):
            raise ConfigError(f"config file not found: {config_path}")
        return _parse_config(config_path)

    found = find_config(target_path)
    if found is None:
        return SmellhunterConfig()
    return _parse_config(found)


def _str_list(data: Mapping, key: str, default: Tuple[str, ...], path: str) -> Tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ConfigError(f"{path}: '{key}' must be a list")
    return tuple(str(v) for v in value)


def _parse_config(config_path: str) -> SmellhunterConfig:
    """Parse a .smellhunter.yml file into a SmellhunterConfig."""
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{config_path}: invalid YAML: {e}") from e
    except OSError as e:
        raise ConfigError(f"{config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    analyzers = data.get("analyzers", {}) or {}
    if not isinstance(analyzers, dict):
        raise ConfigError(f"{config_path}: 'analyzers' must be a mapping")
    for analyzer_id, values in analyzers.items():
        if values is not None and not isinstance(values, dict):
            raise ConfigError(f"{config_path}: 'analyzers.{analyzer_id}' must be a mapping")

    min_severity = data.get("min_severity")
    if min_severity is not None:
        min_severity = str(min_severity).upper()
        if min_severity not in ("CRITICAL", "HIGH", "MEDIUM", "LOW"):
            raise ConfigError(f"{config_path}: unknown min_severity {data.get('min_severity')!r}")

    jobs = data.get("jobs", 1)
    if not isinstance(jobs, int) or isinstance(jobs, bool) or jobs < 1:
        raise ConfigError(f"{config_path}: 'jobs' must be a positive integer")

    return SmellhunterConfig(
        paths=_str_list(data, "paths", DEFAULT_PATHS, config_path),
        exclude_paths=_str_list(data, "exclude_paths", DEFAULT_EXCLUDES, config_path),
        model_paths=_str_list(data, "model_paths", DEFAULT_MODEL_PATHS, config_path),
        suppression_keyword=str(data.get("suppression_keyword", DEFAULT_SUPPRESSION_KEYWORD)),
        min_severity=min_severity,
        disabled=_str_list(data, "disabled", (), config_path),
        jobs=jobs,
        analyzers=freeze({k: v or {} for k, v in analyzers.items()}),
        source=os.path.abspath(config_path),
    )


def resolve_paths(base_path: str, config: SmellhunterConfig) -> List[str]:
    """Existing analyzed directories under ``base_path``; the base itself when none exist."""
    found = []
    for rel in config.paths:
        full = os.path.join(base_path, rel)
        if os.path.exists(full):
            found.append(full)
    return found or [base_path]
