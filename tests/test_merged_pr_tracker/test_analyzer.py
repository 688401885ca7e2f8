"""
End-to-end tests for ReleaseAnalyzer against an in-memory repository host.
"""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from src.merged_pr_tracker.analyzer import ReleaseAnalyzer, parse_change_reference
from src.merged_pr_tracker.config import TrackerConfig
from src.merged_pr_tracker.data_models import (
    ChangeInfo,
    GAStatusKind,
    Product,
    RelatedChangeRef,
    ReleaseRecord,
    SnapshotValidation,
)
from src.merged_pr_tracker.errors import (
    ChangeLookupError,
    DiscoveryError,
    OptionalCollaboratorError,
    TagResolutionError,
)
from src.merged_pr_tracker.release_calendar import ReleaseCalendar, StaticCalendarSource


def utc(year, month, day, hour=0):
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


CALENDAR_RECORDS = [
    ReleaseRecord(acm_version="2.14.0", mce_version="2.9.0", ga_date=utc(2024, 12, 1)),
    ReleaseRecord(acm_version="2.14.1", mce_version="2.9.1", ga_date=utc(2025, 2, 1)),
    ReleaseRecord(acm_version="2.14.2", ga_date=utc(2025, 4, 1)),
]


def _snapshot(product, version, ga_date, commit_sha, component_name):
    return SnapshotValidation(
        product=product,
        version=version,
        ga_date=ga_date,
        component_name=component_name,
        component_sha="5a" * 20,
        success=True,
    )


class TestParseChangeReference:
    """Test PR reference parsing."""

    @pytest.mark.parametrize("text", ["1234", "#1234", " 1234 "])
    def test_numbers(self, text):
        reference = parse_change_reference(text)
        assert reference.number == 1234
        assert reference.owner is None

    def test_pull_request_url(self):
        reference = parse_change_reference(
            "https://github.com/openshift/assisted-installer/pull/42/"
        )
        assert (reference.owner, reference.repository, reference.number) == (
            "openshift",
            "assisted-installer",
            42,
        )

    @pytest.mark.parametrize(
        "text",
        [
            "abc",
            "https://github.com/openshift/assisted-service/issues/42",
            "https://gitlab.com/openshift/assisted-service/pull/42",
            "https://github.com/openshift/pull/42",
        ],
    )
    def test_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid PR reference"):
            parse_change_reference(text)


class TestReleaseAnalyzer:
    """Test the full analysis pipeline."""

    def _analyzer(self, host, fixed_now, **kwargs):
        config = kwargs.pop("config", TrackerConfig(concurrency_limit=4))
        return ReleaseAnalyzer(config, host=host, clock=lambda: fixed_now, **kwargs)

    def test_presence_and_released_tag(self, release_host, fixed_now):
        result = self._analyzer(release_host, fixed_now).analyze_pull_request(1234)

        assert [analysis.branch.name for analysis in result.branches] == [
            "release-ocm-2.13",
            "release-ocm-2.14",
            "v2.40",
        ]
        assert [analysis.found for analysis in result.branches] == [False, True, True]
        assert result.branch("v2.40").released_tag == "v2.40.0"
        assert result.branch("release-ocm-2.14").released_tag is None
        assert result.branch("master") is None
        assert result.branch("release-ocm-2.14").presence.merged_at == utc(2025, 1, 6, 9)
        assert result.analyzed_at == fixed_now

    def test_tag_lookup_only_for_found_version_branches(self, release_host, fixed_now):
        self._analyzer(release_host, fixed_now).analyze_pull_request(1234)

        # One listing for v2.40, none for the release-ocm branches
        assert release_host.call_count("list_tag_names") == 1

    def test_branch_catalog_is_reused(self, release_host, fixed_now):
        analyzer = self._analyzer(release_host, fixed_now)

        analyzer.analyze_pull_request(1234)
        analyzer.analyze_pull_request(1234)

        assert release_host.call_count("list_branch_names") == 1

    def test_ga_status_from_calendar(self, release_host, fixed_now):
        calendar = ReleaseCalendar(StaticCalendarSource(CALENDAR_RECORDS))

        result = self._analyzer(
            release_host, fixed_now, calendar=calendar
        ).analyze_pull_request(1234)
        analysis = result.branch("release-ocm-2.14")

        assert analysis.ga_status.acm.status is GAStatusKind.GA
        assert analysis.ga_status.acm.version == "2.14.1"
        assert analysis.ga_status.next_acm.version == "2.14.2"
        assert [(fact.product, fact.version) for fact in analysis.upcoming] == [
            (Product.ACM, "2.14.1"),
            (Product.MCE, "2.9.1"),
        ]
        assert result.branch("v2.40").ga_status is None

    def test_calendar_failure_degrades(self, release_host, fixed_now):
        source = Mock()
        source.load.side_effect = RuntimeError("export failed")
        calendar = ReleaseCalendar(source)

        result = self._analyzer(
            release_host, fixed_now, calendar=calendar
        ).analyze_pull_request(1234)

        analysis = result.branch("release-ocm-2.14")
        assert analysis.found
        assert analysis.ga_status.calendar_available is False
        assert analysis.ga_status.acm.status is GAStatusKind.NOT_FOUND
        assert analysis.ga_status.acm.version == "2.14"
        assert analysis.ga_status.next_mce.status is GAStatusKind.NOT_FOUND
        assert analysis.ga_status.next_mce.version == "2.9"
        assert analysis.upcoming == ()
        assert result.branch("v2.40").released_tag == "v2.40.0"

    def test_tag_listing_failure_is_contained(self, release_host, fixed_now):
        release_host.fail_tag_listing = True

        result = self._analyzer(release_host, fixed_now).analyze_pull_request(1234)

        assert result.branch("v2.40").found
        assert result.branch("v2.40").released_tag is None

    def test_snapshot_validation_for_released_gas(self, release_host, fixed_now):
        calendar = ReleaseCalendar(StaticCalendarSource(CALENDAR_RECORDS))
        snapshots = Mock()
        snapshots.validate_snapshot.side_effect = _snapshot

        result = self._analyzer(
            release_host, fixed_now, calendar=calendar, snapshot_source=snapshots
        ).analyze_pull_request(1234)

        upcoming = result.branch("release-ocm-2.14").upcoming
        assert [fact.snapshot.success for fact in upcoming] == [True, True]
        assert all(fact.snapshot.commit_before_snapshot for fact in upcoming)
        assert all(
            fact.snapshot.component_name == "assisted-service" for fact in upcoming
        )
        # Only the found ACM/MCE branch is validated
        assert snapshots.validate_snapshot.call_count == 2

    def test_snapshot_failure_is_recorded(self, release_host, fixed_now):
        calendar = ReleaseCalendar(StaticCalendarSource(CALENDAR_RECORDS))
        snapshots = Mock()
        snapshots.validate_snapshot.side_effect = OptionalCollaboratorError("quay down")

        result = self._analyzer(
            release_host, fixed_now, calendar=calendar, snapshot_source=snapshots
        ).analyze_pull_request(1234)

        snapshot = result.branch("release-ocm-2.14").upcoming[0].snapshot
        assert not snapshot.success
        assert snapshot.error_message == "Validation failed: quay down"

    def test_future_gas_are_not_validated(self, release_host, fixed_now):
        calendar = ReleaseCalendar(
            StaticCalendarSource(
                [ReleaseRecord(acm_version="2.14.2", ga_date=utc(2025, 4, 1))]
            )
        )
        snapshots = Mock()

        result = self._analyzer(
            release_host, fixed_now, calendar=calendar, snapshot_source=snapshots
        ).analyze_pull_request(1234)

        assert result.branch("release-ocm-2.14").upcoming[0].snapshot is None
        snapshots.validate_snapshot.assert_not_called()

    def test_related_changes_from_ticket(self, release_host, fixed_now):
        backport = ChangeInfo(
            number=1300,
            title="MGMT-20001: Fix host validation (2.13)",
            sha="d3" * 20,
            merged_at=utc(2025, 1, 8),
            merged_into="release-ocm-2.13",
            url="https://github.com/openshift/assisted-service/pull/1300",
        )
        release_host.pull_requests[1300] = backport
        release_host.branch_commits["release-ocm-2.13"] = {backport.sha}
        release_host.commit_dates[backport.sha] = utc(2025, 1, 8)

        tracker = Mock()
        tracker.find_related_changes.return_value = [
            RelatedChangeRef(url=backport.url, tickets=("MGMT-20001", "MGMT-20002")),
            RelatedChangeRef(url=backport.url, tickets=("MGMT-20003",)),
            RelatedChangeRef(url="https://github.com/openshift/other/pull/5"),
            RelatedChangeRef(
                url="https://github.com/openshift/assisted-service/pull/1234",
                tickets=("MGMT-20001",),
            ),
        ]

        result = self._analyzer(
            release_host, fixed_now, ticket_tracker=tracker
        ).analyze_pull_request(1234)

        tracker.find_related_changes.assert_called_once_with("MGMT-20001")
        ticket = result.ticket_analysis
        assert ticket.success
        assert ticket.main_ticket == "MGMT-20001"
        assert ticket.all_tickets == ("MGMT-20001", "MGMT-20002", "MGMT-20003")
        assert len(ticket.related_urls) == 3

        (related,) = result.related_changes
        assert related.change.number == 1300
        assert related.tickets == ("MGMT-20001", "MGMT-20002", "MGMT-20003")
        found = [analysis.branch.name for analysis in related.branches if analysis.found]
        assert found == ["release-ocm-2.13"]

    def test_unfetchable_related_change_is_skipped(self, release_host, fixed_now):
        tracker = Mock()
        tracker.find_related_changes.return_value = [
            RelatedChangeRef(url="https://github.com/openshift/assisted-service/pull/77")
        ]

        result = self._analyzer(
            release_host, fixed_now, ticket_tracker=tracker
        ).analyze_pull_request(1234)

        assert result.ticket_analysis.success
        assert result.related_changes == ()

    def test_ticket_tracker_failure(self, release_host, fixed_now):
        tracker = Mock()
        tracker.find_related_changes.side_effect = OptionalCollaboratorError("jira down")

        result = self._analyzer(
            release_host, fixed_now, ticket_tracker=tracker
        ).analyze_pull_request(1234)

        assert not result.ticket_analysis.success
        assert (
            result.ticket_analysis.error_message
            == "Failed to get related tickets: jira down"
        )
        assert result.branch("v2.40").found

    def test_related_lookup_can_be_skipped(self, release_host, fixed_now):
        tracker = Mock()

        result = self._analyzer(
            release_host, fixed_now, ticket_tracker=tracker
        ).analyze_pull_request(1234, include_related=False)

        tracker.find_related_changes.assert_not_called()
        assert result.ticket_analysis is None

    def test_missing_pull_request_is_fatal(self, release_host, fixed_now):
        with pytest.raises(ChangeLookupError):
            self._analyzer(release_host, fixed_now).analyze_pull_request(999)

    def test_branch_listing_failure_is_fatal_and_retried(self, release_host, fixed_now):
        analyzer = self._analyzer(release_host, fixed_now)
        release_host.fail_branch_listing = True

        with pytest.raises(DiscoveryError):
            analyzer.analyze_pull_request(1234)

        release_host.fail_branch_listing = False
        assert analyzer.analyze_pull_request(1234).branch("v2.40").found

    def test_concurrency_limit_holds(self, fake_host_class, merged_change, fixed_now):
        names = [f"release-ocm-2.{minor}" for minor in range(30)]
        host = fake_host_class(
            branches=names,
            branch_commits={name: {merged_change.sha} for name in names[::2]},
            commit_dates={merged_change.sha: merged_change.merged_at},
            pull_requests={1234: merged_change},
            check_delay=0.002,
        )

        result = self._analyzer(
            host, fixed_now, config=TrackerConfig(concurrency_limit=3)
        ).analyze_pull_request(1234)

        assert len(result.branches) == 30
        assert len(result.found_branches()) == 15
        assert host.max_in_flight <= 3

    def test_analyze_commit(self, release_host, fixed_now):
        result = self._analyzer(release_host, fixed_now).analyze_commit("c1" * 20)

        assert result.change.number is None
        assert result.ticket_analysis is None
        assert result.branch("v2.40").released_tag == "v2.40.0"

    def test_compare_version(self, release_host, fixed_now):
        comparison = self._analyzer(release_host, fixed_now).compare_version("v2.40.2")

        assert comparison.repository == "openshift/assisted-service"
        assert comparison.previous_version == "v2.40.1"
        assert len(comparison.commits) == 1

    def test_compare_unknown_version(self, release_host, fixed_now):
        with pytest.raises(TagResolutionError):
            self._analyzer(release_host, fixed_now).compare_version("v3.0.0")

    def test_ui_repository_branches_skip_tag_lookup(self, fake_host_class, fixed_now):
        sha = "e5" * 20
        change = ChangeInfo(number=7, title="Fix wizard", sha=sha, merged_at=utc(2025, 1, 2))
        host = fake_host_class(
            branches=["releases/v2.15-cim"],
            branch_commits={"releases/v2.15-cim": {sha}},
            tags=["releases/v2.15-cim.1"],
            tag_histories={"releases/v2.15-cim.1": [sha]},
            commit_dates={sha: utc(2025, 1, 2)},
            pull_requests={7: change},
        )

        ui = self._analyzer(
            host, fixed_now, config=TrackerConfig(repository="assisted-installer-ui")
        ).analyze_pull_request(7)
        service = self._analyzer(host, fixed_now).analyze_pull_request(7)

        assert ui.branch("releases/v2.15-cim").released_tag is None
        assert service.branch("releases/v2.15-cim").released_tag == "releases/v2.15-cim.1"
