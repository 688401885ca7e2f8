"""
Release presence analysis for merged changes.

For one change the analyzer lists release branches, checks which contain
the commit, then enriches each branch: earliest released tag for version
branches, GA status and upcoming GAs for ACM/MCE branches, and snapshot
validation for GAs that already shipped. Every fan-out shares one
semaphore, so the analysis never has more than concurrency_limit host
calls in flight.
"""

import re
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Protocol
from urllib.parse import urlparse

from ..shared_utilities import (
    get_logger,
    get_logging_manager,
    global_rate_limit_manager,
    trace_function,
    trace_operation,
)
from .branch_catalog import BranchCatalog
from .concurrency import run_bounded
from .config import TrackerConfig
from .data_models import (
    AnalysisResult,
    BranchAnalysis,
    BranchPattern,
    ChangeInfo,
    ChangeReference,
    PresenceFact,
    Product,
    RelatedChange,
    RelatedChangeRef,
    ReleaseRecord,
    SnapshotValidation,
    TicketAnalysis,
    UpcomingGAFact,
    VersionComparison,
    utc_now,
)
from .errors import CalendarUnavailableError, ReleaseTrackerError
from .ga_status import GAStatusEngine
from .github_client import GitHubClient
from .presence_checker import CommitPresenceChecker
from .release_calendar import ReleaseCalendar
from .tag_resolver import TagResolver

logger = get_logger(__name__)

_PULL_PATH = re.compile(r"^/([^/]+)/([^/]+)/pull/(\d+)/?$")
_GITHUB_HOSTS = ("github.com", "www.github.com")


class SnapshotSource(Protocol):
    """Build-snapshot lookup for a released GA.

    Implementations raise OptionalCollaboratorError when the snapshot cannot
    be read; the analyzer records the failure on the GA and carries on.
    """

    def validate_snapshot(
        self,
        product: Product,
        version: str,
        ga_date: datetime,
        commit_sha: str,
        component_name: str,
    ) -> SnapshotValidation: ...


class TicketTracker(Protocol):
    """Issue tracker that knows which pull requests belong to a ticket.

    Implementations raise OptionalCollaboratorError on lookup failures.
    """

    def find_related_changes(self, ticket_id: str) -> list[RelatedChangeRef]: ...


def parse_change_reference(text: str) -> ChangeReference:
    """
    Parse a PR number ("1234", "#1234") or a GitHub pull request URL.

    Raises:
        ValueError: If the text is neither
    """
    text = text.strip()
    number_text = text[1:] if text.startswith("#") else text
    if number_text.isdigit():
        return ChangeReference(number=int(number_text))

    parsed = urlparse(text)
    if parsed.scheme in ("http", "https") and parsed.netloc in _GITHUB_HOSTS:
        match = _PULL_PATH.match(parsed.path)
        if match:
            return ChangeReference(
                number=int(match.group(3)),
                owner=match.group(1),
                repository=match.group(2),
            )

    raise ValueError(
        f"Invalid PR reference '{text}': expected a number or "
        "https://github.com/<owner>/<repo>/pull/<number>"
    )


class ReleaseAnalyzer:
    """Answers "where did this change ship?" for one repository."""

    def __init__(
        self,
        config: TrackerConfig,
        host: GitHubClient | None = None,
        calendar: ReleaseCalendar | None = None,
        snapshot_source: SnapshotSource | None = None,
        ticket_tracker: TicketTracker | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            config: Repository and tuning settings
            host: Repository host, built from config when omitted
            calendar: Release calendar for GA correlation (optional)
            snapshot_source: Build snapshot lookup (optional)
            ticket_tracker: Source of related changes (optional)
            clock: Returns the current UTC time
        """
        self.config = config
        self.host = host or GitHubClient(
            config.owner,
            config.repository,
            token=config.github_token,
            timeout=config.request_timeout,
        )
        self.calendar = calendar
        self.snapshot_source = snapshot_source
        self.ticket_tracker = ticket_tracker
        self.clock = clock

        self.semaphore = threading.BoundedSemaphore(config.concurrency_limit)
        self.catalog = BranchCatalog(self.host)
        self.presence_checker = CommitPresenceChecker(
            self.host, config.concurrency_limit, self.semaphore
        )
        self.tag_resolver = TagResolver(self.host, config.tag_history_limit)
        self.ga_engine = GAStatusEngine()
        self.ticket_pattern = re.compile(config.ticket_pattern)

        if self.calendar is not None:
            self.calendar.start()

    @trace_function("analyzer.analyze_pull_request", include_args=True)
    def analyze_pull_request(
        self, number: int, include_related: bool = True
    ) -> AnalysisResult:
        """
        Analyse a merged pull request.

        Raises:
            ChangeLookupError: If the PR cannot be fetched or is not merged
            DiscoveryError: If release branches cannot be listed
        """
        manager = get_logging_manager()
        manager.log_operation_start("analyze_pull_request", pr=number)
        start_time = time.time()

        try:
            change = self.host.get_pull_request(number)
            logger.info(f"Analysing PR #{number}: {change.title}", sha=change.sha)

            branches = self._analyze_branches(change)

            ticket_analysis, related = None, ()
            if include_related:
                ticket_analysis, related = self._analyze_related(change)
        except ReleaseTrackerError as e:
            manager.log_operation_error("analyze_pull_request", e, pr=number)
            raise

        manager.log_operation_complete(
            "analyze_pull_request",
            time.time() - start_time,
            pr=number,
            found=sum(branch.found for branch in branches),
        )
        return AnalysisResult(
            change=change,
            branches=branches,
            analyzed_at=self.clock(),
            ticket_analysis=ticket_analysis,
            related_changes=related,
        )

    @trace_function("analyzer.analyze_commit", include_args=True)
    def analyze_commit(self, sha: str) -> AnalysisResult:
        """
        Analyse a bare commit, without ticket lookups.

        Raises:
            ChangeLookupError: If the commit does not exist
            DiscoveryError: If release branches cannot be listed
        """
        change = self.host.get_commit_change(sha)
        return AnalysisResult(
            change=change,
            branches=self._analyze_branches(change),
            analyzed_at=self.clock(),
        )

    @trace_function("analyzer.compare_version", include_args=True)
    def compare_version(self, tag: str) -> VersionComparison:
        """
        List the commits a release tag added over its previous release.

        Raises:
            TagResolutionError: If the tag or its predecessor cannot be found
            DiscoveryError: If tags cannot be listed
        """
        logger.info(f"Comparing {tag} with its previous release")
        comparison = self.tag_resolver.compare_with_previous(tag)
        return replace(comparison, repository=self.config.full_name)

    def _analyze_branches(self, change: ChangeInfo) -> tuple[BranchAnalysis, ...]:
        branches = self.catalog.get()

        self.host.refresh_rate_limit()
        safe, reason = global_rate_limit_manager.check_rate_limit_safety(
            len(branches)
        )
        if not safe:
            logger.warning(f"Rate limit may be exhausted: {reason}")
        global_rate_limit_manager.log_rate_limit_status()

        facts = self.presence_checker.check(change.sha, branches)

        now = self.clock()
        records, calendar_available = self._calendar_records(facts)

        with trace_operation("branch_enrichment", {"branches": len(facts)}):
            analyses = run_bounded(
                lambda fact: self._enrich(
                    fact, change, records, now, calendar_available
                ),
                facts,
                max_workers=self.config.concurrency_limit,
                semaphore=self.semaphore,
                on_error=self._bare_analysis,
                name="enrich",
            )

        return tuple(self._validate_snapshots(analyses, change, now))

    def _calendar_records(
        self, facts: list[PresenceFact]
    ) -> tuple[list[ReleaseRecord] | None, bool]:
        """Calendar rows for GA correlation, and whether the calendar could be read.

        No rows are needed without a calendar or without ACM/MCE branches. An
        unreadable calendar yields no rows, so every GA fact comes out NOT_FOUND.
        """
        if self.calendar is None:
            return None, True
        if not any(fact.branch.pattern is BranchPattern.ACM_MCE for fact in facts):
            return None, True
        try:
            return self.calendar.records(), True
        except CalendarUnavailableError as e:
            logger.warning(f"Release calendar unavailable, GA facts not found: {e}")
            return [], False

    def _bare_analysis(self, fact: PresenceFact, error: Exception) -> BranchAnalysis:
        logger.warning(
            f"Enrichment failed for {fact.branch.name}: {error}", branch=fact.branch.name
        )
        return BranchAnalysis(presence=fact)

    def _needs_tag(self, fact: PresenceFact) -> bool:
        if not fact.found:
            return False
        if fact.branch.pattern is BranchPattern.VERSION_PREFIXED:
            return True
        return (
            fact.branch.pattern is BranchPattern.UI_RELEASE
            and not self.config.is_ui_repository
        )

    def _enrich(
        self,
        fact: PresenceFact,
        change: ChangeInfo,
        records: list[ReleaseRecord] | None,
        now: datetime,
        calendar_available: bool = True,
    ) -> BranchAnalysis:
        branch = fact.branch
        ga_status, upcoming = None, ()

        if branch.pattern is BranchPattern.ACM_MCE and records is not None:
            ga_status = self.ga_engine.status(branch.version, fact.merged_at, records, now)
            upcoming = tuple(
                self.ga_engine.upcoming(branch.version, fact.merged_at, records)
            )
            if not calendar_available:
                ga_status = replace(ga_status, calendar_available=False)

        released_tag = None
        if self._needs_tag(fact):
            try:
                released_tag = self.tag_resolver.resolve_earliest_tag(
                    change.sha, branch.name
                )
            except ReleaseTrackerError as e:
                logger.warning(f"Tag resolution failed for {branch.name}: {e}")

        return BranchAnalysis(
            presence=fact,
            released_tag=released_tag,
            ga_status=ga_status,
            upcoming=upcoming,
        )

    def _wants_snapshot(self, analysis: BranchAnalysis) -> bool:
        if not analysis.found or not analysis.upcoming:
            return False
        pattern = analysis.branch.pattern
        return pattern is BranchPattern.ACM_MCE or (
            pattern is BranchPattern.UI_RELEASE and self.config.is_ui_repository
        )

    def _validate_snapshots(
        self, analyses: list[BranchAnalysis], change: ChangeInfo, now: datetime
    ) -> list[BranchAnalysis]:
        if self.snapshot_source is None:
            return analyses

        # (branch index, upcoming index) of every GA that already shipped
        targets = [
            (branch_index, fact_index)
            for branch_index, analysis in enumerate(analyses)
            if self._wants_snapshot(analysis)
            for fact_index, fact in enumerate(analysis.upcoming)
            if fact.is_released(now)
        ]
        if not targets:
            return analyses

        def validate(target: tuple[int, int]) -> SnapshotValidation:
            branch_index, fact_index = target
            fact = analyses[branch_index].upcoming[fact_index]
            return self._validate_snapshot(fact, change)

        def failed(target: tuple[int, int], error: Exception) -> SnapshotValidation:
            branch_index, fact_index = target
            fact = analyses[branch_index].upcoming[fact_index]
            logger.warning(
                f"Snapshot validation failed for {fact.product.value} {fact.version}: {error}"
            )
            return SnapshotValidation(
                product=fact.product,
                version=fact.version,
                ga_date=fact.ga_date,
                component_name=self.config.component_name,
                error_message=f"Validation failed: {error}",
            )

        with trace_operation("snapshot_validation", {"gas": len(targets)}):
            validations = run_bounded(
                validate,
                targets,
                max_workers=self.config.concurrency_limit,
                semaphore=self.semaphore,
                on_error=failed,
                name="snapshot",
            )

        updated = list(analyses)
        for (branch_index, fact_index), validation in zip(targets, validations):
            upcoming = list(updated[branch_index].upcoming)
            upcoming[fact_index] = replace(upcoming[fact_index], snapshot=validation)
            updated[branch_index] = replace(updated[branch_index], upcoming=tuple(upcoming))
        return updated

    def _validate_snapshot(
        self, fact: UpcomingGAFact, change: ChangeInfo
    ) -> SnapshotValidation:
        validation = self.snapshot_source.validate_snapshot(
            fact.product,
            fact.version,
            fact.ga_date,
            change.sha,
            self.config.component_name,
        )
        if not validation.success:
            return validation

        try:
            change_date = self.host.commit_date(change.sha)
            snapshot_date = self.host.commit_date(validation.component_sha)
        except ReleaseTrackerError as e:
            return replace(
                validation, success=False, error_message=f"Failed to compare commits: {e}"
            )
        return replace(validation, commit_before_snapshot=change_date < snapshot_date)

    def _analyze_related(
        self, change: ChangeInfo
    ) -> tuple[TicketAnalysis | None, tuple[RelatedChange, ...]]:
        if self.ticket_tracker is None:
            return None, ()

        match = self.ticket_pattern.search(change.title)
        if not match:
            return None, ()
        ticket = match.group(0)
        logger.debug(f"Found ticket {ticket} in title of PR #{change.number}")

        try:
            refs = self.ticket_tracker.find_related_changes(ticket)
        except Exception as e:
            # Ticket lookups never fail the analysis of the change itself
            logger.warning(f"Ticket lookup failed for {ticket}: {e}")
            return (
                TicketAnalysis(
                    main_ticket=ticket,
                    error_message=f"Failed to get related tickets: {e}",
                ),
                (),
            )

        urls: list[str] = []
        tickets: list[str] = [ticket]
        tickets_by_url: dict[str, list[str]] = {}
        for ref in refs:
            if ref.url not in tickets_by_url:
                urls.append(ref.url)
                tickets_by_url[ref.url] = []
            for key in ref.tickets:
                if key not in tickets_by_url[ref.url]:
                    tickets_by_url[ref.url].append(key)
                if key not in tickets:
                    tickets.append(key)

        related = []
        for url in urls:
            number = self._same_repository_pull(url, change)
            if number is None:
                continue
            try:
                related_change = self.host.get_pull_request(number)
                branches = self._analyze_branches(related_change)
            except ReleaseTrackerError as e:
                logger.warning(f"Skipping related PR #{number}: {e}")
                continue
            related.append(
                RelatedChange(
                    change=related_change,
                    tickets=tuple(tickets_by_url[url]),
                    branches=branches,
                )
            )

        return (
            TicketAnalysis(
                main_ticket=ticket,
                all_tickets=tuple(tickets),
                related_urls=tuple(urls),
                success=True,
            ),
            tuple(related),
        )

    def _same_repository_pull(self, url: str, change: ChangeInfo) -> int | None:
        try:
            reference = parse_change_reference(url)
        except ValueError:
            return None
        if (reference.owner, reference.repository) != (
            self.config.owner,
            self.config.repository,
        ):
            return None
        if reference.number == change.number:
            return None
        return reference.number
