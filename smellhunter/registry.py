"""
Cross-file model registry.

Before consumer analyzers run, every PHP file under the model directories is
parsed and each Eloquent model class is mapped to its table. The registry is
complete and read-only once ``build_registry`` returns; ``RegistryCache``
shares built registries across analyzers keyed by base path and directories.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from smellhunter.inflect import table_name_for
from smellhunter.names import NameResolver, ResolvedName, short_name
from smellhunter.tree import NodeKind, ParseError, SyntaxTree, parse, string_value

logger = logging.getLogger(__name__)

MODEL_BASE_CLASSES = frozenset({"Model", "Authenticatable", "Pivot", "MorphPivot"})
MODEL_BASE_FQNS = frozenset({
    "Illuminate\\Database\\Eloquent\\Model",
    "Illuminate\\Foundation\\Auth\\User",
    "Illuminate\\Database\\Eloquent\\Relations\\Pivot",
    "Illuminate\\Database\\Eloquent\\Relations\\MorphPivot",
})


class ModelRegistry:
    """Frozen class -> table map."""

    def __init__(self, tables: Mapping[str, str]):
        self._tables = MappingProxyType({k.lstrip("\\"): v for k, v in tables.items()})
        by_short: Dict[str, List[str]] = {}
        for fqn in self._tables:
            by_short.setdefault(short_name(fqn), []).append(fqn)
        self._by_short = MappingProxyType({k: tuple(v) for k, v in by_short.items()})

    def __len__(self) -> int:
        return len(self._tables)

    def __contains__(self, name: str) -> bool:
        return self.is_model(name)

    @property
    def tables(self) -> Mapping[str, str]:
        return self._tables

    def is_model(self, name: str) -> bool:
        """Accepts a fully qualified name; short names match only when unambiguous."""
        name = name.lstrip("\\")
        if name in self._tables:
            return True
        return "\\" not in name and len(self._by_short.get(name, ())) == 1

    def table_for(self, name: str) -> Optional[str]:
        name = name.lstrip("\\")
        if name in self._tables:
            return self._tables[name]
        candidates = self._by_short.get(short_name(name), ())
        if len(candidates) == 1:
            return self._tables[candidates[0]]
        return None


EMPTY_REGISTRY = ModelRegistry({})


# ============================================================================
# Discovery
# ============================================================================

def models_in_tree(tree: SyntaxTree) -> Dict[str, str]:
    """Model classes declared in one file -> table name."""
    names = NameResolver(tree)
    found = {}
    for cls in tree.of_kind(NodeKind.CLASS):
        name_node = cls.field("name")
        if name_node is None or cls.type != "class_declaration":
            continue
        base = None
        for child in cls.children:
            if child.type == "base_clause":
                base = child.child_of_kind(NodeKind.NAME)
        if base is None:
            continue
        resolved = names.resolve_node(base)
        base_short = resolved.short_name if isinstance(resolved, ResolvedName) else short_name(base.text)
        base_fqn = str(resolved).lstrip("\\") if isinstance(resolved, ResolvedName) else ""
        if base_short not in MODEL_BASE_CLASSES and base_fqn not in MODEL_BASE_FQNS:
            continue
        fqn = names.resolve(name_node.text, name_node)
        table = _declared_table(cls) or table_name_for(name_node.text)
        found[str(fqn).lstrip("\\")] = table
    return found


def _declared_table(cls) -> Optional[str]:
    for prop in cls.find(NodeKind.PROPERTY_DECLARATION, stop_at=(NodeKind.METHOD,)):
        variables = prop.find(NodeKind.VARIABLE)
        if not variables or variables[0].text != "$table":
            continue
        for literal in prop.find(NodeKind.LITERAL):
            value = string_value(literal)
            if value:
                return value
    return None


def _scan_file(path: str) -> Dict[str, str]:
    try:
        with open(path, "rb") as f:
            source = f.read()
        return models_in_tree(parse(source, path))
    except (OSError, ParseError) as e:
        logger.warning("Skipping model file %s: %s", path, e)
        return {}


def php_files(directories: Iterable[str]) -> List[str]:
    files = []
    for directory in directories:
        root = Path(directory)
        if root.is_file() and root.suffix == ".php":
            files.append(str(root))
        elif root.is_dir():
            files.extend(str(p) for p in sorted(root.rglob("*.php")))
    return files


def build_registry(base_path: str, directories: Sequence[str], jobs: int = 1) -> ModelRegistry:
    """Scan every model directory to completion, then freeze the result."""
    full = [os.path.join(base_path, d) for d in directories]
    files = php_files(full)
    tables: Dict[str, str] = {}
    if jobs > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as executor:
            for found in executor.map(_scan_file, files):
                tables.update(found)
    else:
        for path in files:
            tables.update(_scan_file(path))
    logger.debug("Model registry for %s: %d model(s) in %d file(s)", base_path, len(tables), len(files))
    return ModelRegistry(tables)


class RegistryCache:
    """Built registries shared across analyzer runs.

    Keyed by (absolute base path, scanned directories). A key is built at
    most once; concurrent callers for the same key wait for the first build.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, Tuple[str, ...]], ModelRegistry] = {}
        self._key_locks: Dict[Tuple[str, Tuple[str, ...]], threading.Lock] = {}

    @staticmethod
    def key(base_path: str, directories: Sequence[str]) -> Tuple[str, Tuple[str, ...]]:
        return (os.path.abspath(base_path), tuple(directories))

    def get(self, base_path: str, directories: Sequence[str], jobs: int = 1) -> ModelRegistry:
        key = self.key(base_path, directories)
        with self._lock:
            registry = self._entries.get(key)
            if registry is not None:
                logger.debug("Model registry cache hit for %s", key[0])
                return registry
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            with self._lock:
                registry = self._entries.get(key)
            if registry is None:
                registry = build_registry(base_path, directories, jobs)
                with self._lock:
                    self._entries[key] = registry
            return registry

    def invalidate(self, base_path: Optional[str] = None):
        with self._lock:
            if base_path is None:
                self._entries.clear()
                return
            root = os.path.abspath(base_path)
            for key in [k for k in self._entries if k[0] == root]:
                del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
