"""
Pytest configuration and shared fixtures.
"""

import threading
import time
from datetime import datetime, timezone

import pytest

from src.merged_pr_tracker.data_models import ChangeInfo, CommitSummary
from src.merged_pr_tracker.errors import (
    ChangeLookupError,
    DiscoveryError,
    PresenceCheckError,
    TagResolutionError,
)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


class FakeRepositoryHost:
    """In-memory repository host with call accounting.

    Branch contents and tag histories are plain sets/lists of SHAs. Every
    call is counted, and the peak number of concurrent is_ancestor calls is
    recorded so tests can check the concurrency bound.
    """

    def __init__(
        self,
        branches=None,
        branch_commits=None,
        tags=None,
        tag_histories=None,
        commit_dates=None,
        pull_requests=None,
        failing_branches=(),
        failing_tags=(),
        check_delay: float = 0.0,
    ):
        self.branches = list(branches or [])
        self.branch_commits = {k: set(v) for k, v in (branch_commits or {}).items()}
        self.tags = list(tags or [])
        self.tag_histories = {k: list(v) for k, v in (tag_histories or {}).items()}
        self.commit_dates = dict(commit_dates or {})
        self.pull_requests = dict(pull_requests or {})
        self.failing_branches = set(failing_branches)
        self.failing_tags = set(failing_tags)
        self.check_delay = check_delay
        self.fail_branch_listing = False
        self.fail_tag_listing = False

        self.calls: dict[str, int] = {}
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight = 0

    def _count(self, name: str) -> None:
        with self._lock:
            self.calls[name] = self.calls.get(name, 0) + 1

    def call_count(self, name: str) -> int:
        return self.calls.get(name, 0)

    def list_branch_names(self):
        self._count("list_branch_names")
        if self.fail_branch_listing:
            raise DiscoveryError("branch listing unavailable")
        return list(self.branches)

    def list_tag_names(self, prefix: str = ""):
        self._count("list_tag_names")
        if self.fail_tag_listing:
            raise DiscoveryError("tag listing unavailable")
        return [tag for tag in self.tags if tag.startswith(prefix)]

    def is_ancestor(self, sha: str, branch: str) -> bool:
        self._count("is_ancestor")
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.check_delay:
                time.sleep(self.check_delay)
            if branch in self.failing_branches:
                raise PresenceCheckError(branch, "compare failed")
            return sha in self.branch_commits.get(branch, set())
        finally:
            with self._lock:
                self._in_flight -= 1

    def commit_date(self, sha: str) -> datetime:
        self._count("commit_date")
        if sha not in self.commit_dates:
            raise DiscoveryError(f"unknown commit {sha}")
        return self.commit_dates[sha]

    def tag_contains_commit(self, tag: str, sha: str, limit=None) -> bool:
        self._count("tag_contains_commit")
        if tag in self.failing_tags:
            raise TagResolutionError(f"history of {tag} unavailable")
        history = self.tag_histories.get(tag, [])
        if limit is not None:
            history = history[:limit]
        return sha in history

    def compare_commits(self, base: str, head: str):
        self._count("compare_commits")
        base_history = set(self.tag_histories.get(base, []))
        return [
            CommitSummary(sha=sha, title=f"commit {sha}", date=self.commit_dates.get(sha))
            for sha in reversed(self.tag_histories.get(head, []))
            if sha not in base_history
        ]

    def tag_exists(self, tag: str) -> bool:
        self._count("tag_exists")
        return tag in self.tags

    def get_pull_request(self, number: int) -> ChangeInfo:
        self._count("get_pull_request")
        if number not in self.pull_requests:
            raise ChangeLookupError(f"Failed to fetch PR #{number}: Not Found")
        return self.pull_requests[number]

    def get_commit_change(self, sha: str) -> ChangeInfo:
        self._count("get_commit_change")
        if sha not in self.commit_dates:
            raise ChangeLookupError(f"Failed to fetch commit {sha}: Not Found")
        return ChangeInfo(sha=sha, title=f"commit {sha}", merged_at=self.commit_dates[sha])

    def refresh_rate_limit(self):
        return None


@pytest.fixture
def fake_host_class():
    """The in-memory host class, for tests that build their own fixtures."""
    return FakeRepositoryHost


@pytest.fixture
def fixed_now():
    """Reference 'now' used by GA status tests."""
    return utc(2025, 3, 1)


@pytest.fixture
def merged_change():
    """A merged PR whose merge commit is C1."""
    return ChangeInfo(
        number=1234,
        title="MGMT-20001: Fix host validation",
        sha="c1" * 20,
        merged_at=utc(2025, 1, 5, 12),
        merged_into="master",
        url="https://github.com/openshift/assisted-service/pull/1234",
    )


@pytest.fixture
def release_host(merged_change):
    """Repository where C1 reached release-ocm-2.14 and v2.40, not release-ocm-2.13."""
    sha = merged_change.sha
    return FakeRepositoryHost(
        branches=[
            "master",
            "release-ocm-2.13",
            "release-ocm-2.14",
            "v2.40",
            "feature/cleanup",
        ],
        branch_commits={
            "master": {sha},
            "release-ocm-2.14": {sha},
            "v2.40": {sha},
        },
        tags=["v2.40.0", "v2.40.1", "v2.40.2", "v2.39.4"],
        tag_histories={
            "v2.40.0": [sha, "b0" * 20],
            "v2.40.1": ["b1" * 20, sha, "b0" * 20],
            "v2.40.2": ["b2" * 20, "b1" * 20, sha, "b0" * 20],
            "v2.39.4": ["a4" * 20],
        },
        commit_dates={sha: utc(2025, 1, 6, 9), "5a" * 20: utc(2025, 1, 20)},
        pull_requests={1234: merged_change},
    )
