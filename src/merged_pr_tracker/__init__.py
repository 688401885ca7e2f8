"""
Merged PR release tracker - find which release branches, tags and GA
releases contain a merged change
"""

from .analyzer import ReleaseAnalyzer, parse_change_reference
from .branch_catalog import BranchCatalog, classify_branch, extract_version
from .config import TrackerConfig, load_config
from .data_models import AnalysisResult, BranchPattern, GAStatusKind, Product
from .ga_status import GAStatusEngine
from .presence_checker import CommitPresenceChecker
from .release_calendar import ReleaseCalendar
from .tag_resolver import TagResolver

__all__ = [
    "AnalysisResult",
    "BranchCatalog",
    "BranchPattern",
    "CommitPresenceChecker",
    "GAStatusEngine",
    "GAStatusKind",
    "Product",
    "ReleaseAnalyzer",
    "ReleaseCalendar",
    "TagResolver",
    "TrackerConfig",
    "classify_branch",
    "extract_version",
    "load_config",
    "parse_change_reference",
]
