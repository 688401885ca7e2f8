"""
Release branch discovery and classification.
"""

import re
from typing import Protocol

from ..shared_utilities import get_logger, get_logging_manager
from .concurrency import LazyValue
from .data_models import BranchPattern, BranchRecord

logger = get_logger(__name__)

# Scan order matters: longer prefixes shadow shorter ones
_SCAN_ORDER = (
    BranchPattern.ACM_MCE,
    BranchPattern.UI_RELEASE,
    BranchPattern.TAGGED_RELEASE,
    BranchPattern.OPENSHIFT_RELEASE,
    BranchPattern.VERSION_PREFIXED,
)

_MINOR_OR_PATCH = re.compile(r"^(\d+\.\d+(?:\.\d+)?)")

_VERSION_PATTERNS = {
    BranchPattern.ACM_MCE: _MINOR_OR_PATCH,
    BranchPattern.OPENSHIFT_RELEASE: _MINOR_OR_PATCH,
    BranchPattern.VERSION_PREFIXED: _MINOR_OR_PATCH,
    BranchPattern.UI_RELEASE: re.compile(r"^(\d+\.\d+(?:\.\d+)?(?:-\w+)?)"),
    BranchPattern.TAGGED_RELEASE: re.compile(r"^(\d+\.\d+\.\d+(?:\.\d+)?)"),
}


class BranchSource(Protocol):
    def list_branch_names(self) -> list[str]: ...


def classify_branch(name: str) -> BranchPattern | None:
    """
    Match a branch name against the release naming families.

    Args:
        name: Branch name

    Returns:
        The first matching pattern, or None for non-release branches
    """
    for pattern in _SCAN_ORDER:
        if not name.startswith(pattern.prefix):
            continue
        if pattern is BranchPattern.VERSION_PREFIXED:
            rest = name[len(pattern.prefix) :]
            if not rest or not rest[0].isdigit():
                continue
        return pattern
    return None


def extract_version(name: str, pattern: BranchPattern) -> str:
    """
    Pull the version token out of a branch name.

    Falls back to the name with the prefix stripped when no token matches.
    """
    remainder = name[len(pattern.prefix) :] if name.startswith(pattern.prefix) else name
    match = _VERSION_PATTERNS[pattern].match(remainder)
    if match:
        return match.group(1)
    return remainder


def build_branch_record(name: str) -> BranchRecord | None:
    pattern = classify_branch(name)
    if pattern is None:
        return None
    return BranchRecord(name=name, pattern=pattern, version=extract_version(name, pattern))


class BranchCatalog:
    """
    Memoized list of the repository's release branches.

    The first get() lists branches; concurrent callers share that listing and
    every later call is served from memory. A failed listing is not kept, so
    the next get() tries again.
    """

    def __init__(self, source: BranchSource):
        self.source = source
        self._snapshot: LazyValue[tuple[BranchRecord, ...]] = LazyValue(
            self._discover, name="branch-catalog", cache_errors=False
        )

    def _discover(self) -> tuple[BranchRecord, ...]:
        names = self.source.list_branch_names()
        records = tuple(
            record
            for record in (build_branch_record(name) for name in names)
            if record is not None
        )
        logger.info(
            f"Discovered {len(records)} release branches",
            total_branches=len(names),
        )
        return records

    def get(self) -> list[BranchRecord]:
        """
        Return the release branches in discovery order.

        Raises:
            DiscoveryError: If listing branches fails
        """
        hit = self._snapshot.is_loaded
        records = self._snapshot.get()
        get_logging_manager().log_cache_operation("get", "branch-catalog", hit=hit)
        return list(records)

    def refresh(self) -> None:
        """Drop the snapshot so the next get() lists branches again."""
        self._snapshot.reset()

    @property
    def listing_count(self) -> int:
        return self._snapshot.load_count
