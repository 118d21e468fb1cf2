"""Built-in analyzers."""

from typing import Dict, Iterable, List, Optional, Type

from smellhunter.analyzers.blade import LogicInBladeAnalyzer
from smellhunter.analyzers.generic_exception import GenericExceptionCatchAnalyzer
from smellhunter.analyzers.mixed_queries import MixedQueryBuilderEloquentAnalyzer
from smellhunter.analyzers.n_plus_one import EloquentNPlusOneAnalyzer
from smellhunter.analyzers.php_side_filtering import PhpSideFilteringAnalyzer
from smellhunter.analyzers.routes import LogicInRoutesAnalyzer
from smellhunter.analyzers.silent_failure import SilentFailureAnalyzer
from smellhunter.analyzers.storage_paths import HardcodedStoragePathsAnalyzer
from smellhunter.classifier import DEFAULT_TABLES, ClassifierTables
from smellhunter.engine import Analyzer
from smellhunter.registry import RegistryCache

ANALYZERS: List[Type[Analyzer]] = [
    PhpSideFilteringAnalyzer,
    SilentFailureAnalyzer,
    GenericExceptionCatchAnalyzer,
    HardcodedStoragePathsAnalyzer,
    LogicInRoutesAnalyzer,
    LogicInBladeAnalyzer,
    MixedQueryBuilderEloquentAnalyzer,
    EloquentNPlusOneAnalyzer,
]

ANALYZERS_BY_ID: Dict[str, Type[Analyzer]] = {cls.id: cls for cls in ANALYZERS}


def create_analyzers(tables: ClassifierTables = DEFAULT_TABLES,
                     registry_cache: Optional[RegistryCache] = None,
                     only: Optional[Iterable[str]] = None) -> List[Analyzer]:
    """Instantiate the built-in analyzers, optionally restricted to ``only`` ids."""
    if only is None:
        selected = ANALYZERS
    else:
        wanted = list(only)
        unknown = [analyzer_id for analyzer_id in wanted if analyzer_id not in ANALYZERS_BY_ID]
        if unknown:
            raise KeyError(f"unknown analyzer(s): {', '.join(unknown)}")
        selected = [cls for cls in ANALYZERS if cls.id in wanted]
    return [cls(tables, registry_cache) for cls in selected]
