"""Data models for release presence analysis results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

DATE_FORMAT = "%m-%d-%Y"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_date(value: datetime | None) -> str:
    """Format a timestamp as mm-dd-yyyy, empty string for None."""
    if value is None:
        return ""
    return value.strftime(DATE_FORMAT)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class BranchPattern(Enum):
    """Release branch naming families, keyed by their name prefix."""

    ACM_MCE = "release-ocm-"
    UI_RELEASE = "releases/v"
    TAGGED_RELEASE = "release-v"
    OPENSHIFT_RELEASE = "release-"
    VERSION_PREFIXED = "v"

    @property
    def prefix(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        """Human-readable family name used in reports."""
        return _PATTERN_DESCRIPTIONS[self]


_PATTERN_DESCRIPTIONS = {
    BranchPattern.ACM_MCE: "ACM/MCE",
    BranchPattern.UI_RELEASE: "UI Release",
    BranchPattern.TAGGED_RELEASE: "Version-tagged",
    BranchPattern.OPENSHIFT_RELEASE: "OpenShift",
    BranchPattern.VERSION_PREFIXED: "Version-prefixed",
}

# Display order for grouped reports
PATTERN_DISPLAY_ORDER = [
    BranchPattern.ACM_MCE,
    BranchPattern.UI_RELEASE,
    BranchPattern.OPENSHIFT_RELEASE,
    BranchPattern.TAGGED_RELEASE,
    BranchPattern.VERSION_PREFIXED,
]


class Product(Enum):
    """Co-versioned product lines tracked in the release calendar."""

    ACM = "ACM"  # versioned like the release-ocm branches
    MCE = "MCE"  # minor version trails ACM by a fixed offset


class GAStatusKind(Enum):
    """Outcome of a GA lookup for one product."""

    GA = "GA"
    NEXT_VERSION = "Next Version"
    NOT_FOUND = "Not Found"
    MERGED_NOT_GA = "Merged but not GA"
    UNSUPPORTED = "Unsupported"


@dataclass(frozen=True)
class BranchRecord:
    """A discovered release branch."""

    name: str
    pattern: BranchPattern
    version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "pattern": self.pattern.value,
            "version": self.version,
        }


@dataclass(frozen=True)
class PresenceFact:
    """Whether a commit is reachable from one branch."""

    branch: BranchRecord
    found: bool
    merged_at: datetime | None = None


@dataclass(frozen=True)
class ReleaseRecord:
    """One row of the release calendar.

    A row may describe ACM, MCE or both versions sharing a single GA date.
    """

    acm_version: str | None = None
    mce_version: str | None = None
    ga_date: datetime | None = None

    def version_for(self, product: Product) -> str | None:
        if product is Product.ACM:
            return self.acm_version
        return self.mce_version


@dataclass(frozen=True)
class GAFact:
    """GA information for a single product."""

    product: Product
    version: str
    ga_date: datetime | None = None
    is_ga: bool = False
    is_upcoming: bool = False
    status: GAStatusKind = GAStatusKind.NOT_FOUND

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product.value,
            "version": self.version,
            "ga_date": _iso(self.ga_date),
            "is_ga": self.is_ga,
            "is_upcoming": self.is_upcoming,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class GAStatusReport:
    """Latest and next GA facts for both products of a branch."""

    acm: GAFact
    mce: GAFact
    next_acm: GAFact
    next_mce: GAFact
    calendar_available: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "acm": self.acm.to_dict(),
            "mce": self.mce.to_dict(),
            "next_acm": self.next_acm.to_dict(),
            "next_mce": self.next_mce.to_dict(),
            "calendar_available": self.calendar_available,
        }


@dataclass(frozen=True)
class SnapshotValidation:
    """Result of checking a released GA against its build snapshot."""

    product: Product
    version: str
    ga_date: datetime | None
    component_name: str
    component_sha: str = ""
    success: bool = False
    commit_before_snapshot: bool = False
    error_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product.value,
            "version": self.version,
            "ga_date": _iso(self.ga_date),
            "component_name": self.component_name,
            "component_sha": self.component_sha,
            "success": self.success,
            "commit_before_snapshot": self.commit_before_snapshot,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class UpcomingGAFact:
    """Closest GA of a product after the change was merged."""

    product: Product
    version: str
    ga_date: datetime
    snapshot: SnapshotValidation | None = None

    def is_released(self, now: datetime) -> bool:
        return self.ga_date < now

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product.value,
            "version": self.version,
            "ga_date": _iso(self.ga_date),
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
        }


@dataclass(frozen=True)
class ChangeInfo:
    """The change under analysis: a merged pull request or a bare commit."""

    sha: str
    title: str = ""
    number: int | None = None
    merged_at: datetime | None = None
    merged_into: str = ""
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "title": self.title,
            "sha": self.sha,
            "merged_at": _iso(self.merged_at),
            "merged_into": self.merged_into,
            "url": self.url,
        }


@dataclass(frozen=True)
class ChangeReference:
    """A pull request named by number or by URL."""

    number: int
    owner: str | None = None
    repository: str | None = None


@dataclass(frozen=True)
class CommitSummary:
    """Short description of a commit for release-diff listings."""

    sha: str
    title: str
    date: datetime | None = None

    @property
    def short_sha(self) -> str:
        return self.sha[:8]

    def to_dict(self) -> dict[str, Any]:
        return {"sha": self.sha, "title": self.title, "date": _iso(self.date)}


@dataclass(frozen=True)
class VersionComparison:
    """Commits a release tag shipped on top of the release before it.

    missing_patch names the immediately preceding patch when it was never
    tagged and an older patch of the same minor was compared instead.
    """

    version: str
    previous_version: str
    commits: tuple[CommitSummary, ...] = ()
    missing_patch: str | None = None
    repository: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "version": self.version,
            "previous_version": self.previous_version,
            "missing_patch": self.missing_patch,
            "commits": [commit.to_dict() for commit in self.commits],
        }


@dataclass(frozen=True)
class BranchAnalysis:
    """Everything known about one release branch for one change."""

    presence: PresenceFact
    released_tag: str | None = None
    ga_status: GAStatusReport | None = None
    upcoming: tuple[UpcomingGAFact, ...] = ()

    @property
    def branch(self) -> BranchRecord:
        return self.presence.branch

    @property
    def found(self) -> bool:
        return self.presence.found

    @property
    def is_next_version(self) -> bool:
        """True when the branch maps to a version that is not GA yet."""
        status = self.ga_status
        if status is None:
            return False
        if GAStatusKind.GA in (status.acm.status, status.mce.status):
            return False
        return GAStatusKind.NEXT_VERSION in (status.next_acm.status, status.next_mce.status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch": self.branch.to_dict(),
            "found": self.found,
            "merged_at": _iso(self.presence.merged_at),
            "released_tag": self.released_tag,
            "ga_status": self.ga_status.to_dict() if self.ga_status else None,
            "upcoming_gas": [fact.to_dict() for fact in self.upcoming],
        }


@dataclass(frozen=True)
class TicketAnalysis:
    """Outcome of looking up related changes through a ticket."""

    main_ticket: str
    all_tickets: tuple[str, ...] = ()
    related_urls: tuple[str, ...] = ()
    success: bool = False
    error_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "main_ticket": self.main_ticket,
            "all_tickets": list(self.all_tickets),
            "related_urls": list(self.related_urls),
            "success": self.success,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class RelatedChangeRef:
    """A change URL reported by the ticket tracker and the tickets citing it."""

    url: str
    tickets: tuple[str, ...] = ()


@dataclass(frozen=True)
class RelatedChange:
    """A related (usually backport) change and its own branch analysis."""

    change: ChangeInfo
    tickets: tuple[str, ...]
    branches: tuple[BranchAnalysis, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "change": self.change.to_dict(),
            "tickets": list(self.tickets),
            "release_branches": [branch.to_dict() for branch in self.branches],
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Complete analysis of one change.

    Holds exactly one BranchAnalysis per catalogued branch, in catalog order.
    """

    change: ChangeInfo
    branches: tuple[BranchAnalysis, ...]
    analyzed_at: datetime
    ticket_analysis: TicketAnalysis | None = None
    related_changes: tuple[RelatedChange, ...] = field(default_factory=tuple)

    def branch(self, name: str) -> BranchAnalysis | None:
        for analysis in self.branches:
            if analysis.branch.name == name:
                return analysis
        return None

    def found_branches(self) -> list[BranchAnalysis]:
        return [analysis for analysis in self.branches if analysis.found]

    def to_dict(self) -> dict[str, Any]:
        return {
            "change": self.change.to_dict(),
            "release_branches": [branch.to_dict() for branch in self.branches],
            "analyzed_at": self.analyzed_at.isoformat(),
            "ticket_analysis": (
                self.ticket_analysis.to_dict() if self.ticket_analysis else None
            ),
            "related_changes": [related.to_dict() for related in self.related_changes],
        }
