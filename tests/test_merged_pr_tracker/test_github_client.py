"""
Tests for the GitHub client wrapper.
"""

from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
from github import GithubException

from src.merged_pr_tracker.branch_catalog import BranchCatalog
from src.merged_pr_tracker.errors import (
    ChangeLookupError,
    DiscoveryError,
    PresenceCheckError,
    TagResolutionError,
)
from src.merged_pr_tracker.github_client import GitHubClient
from src.merged_pr_tracker.tag_resolver import TagResolver


def _not_found():
    return GithubException(404, {"message": "Not Found"}, None)


def _commit(sha, message="Fix things\n\nLonger body", date=None):
    commit = Mock()
    commit.sha = sha
    commit.html_url = f"https://github.com/openshift/assisted-service/commit/{sha}"
    commit.commit.message = message
    commit.commit.committer.date = date or datetime(2025, 1, 6, 9)
    return commit


class TestGitHubClient:
    """Test GitHubClient."""

    def setup_method(self):
        """Set up test fixtures."""
        self.github = Mock()
        self.github.rate_limiting = (4990, 5000)
        self.github.rate_limiting_resettime = 1735689600
        self.repo = Mock()
        self.github.get_repo.return_value = self.repo
        self.client = GitHubClient("openshift", "assisted-service", github=self.github)

    @patch("src.merged_pr_tracker.github_client.Auth")
    @patch("src.merged_pr_tracker.github_client.Github")
    def test_token_authentication(self, mock_github, mock_auth):
        GitHubClient("openshift", "assisted-service", token="secret", timeout=15)

        mock_auth.Token.assert_called_once_with("secret")
        mock_github.assert_called_once_with(
            auth=mock_auth.Token.return_value, timeout=15, per_page=100
        )

    def test_repository_fetched_once(self):
        self.repo.get_branches.return_value = []
        self.repo.get_tags.return_value = []

        self.client.list_branch_names()
        self.client.list_tag_names()

        self.github.get_repo.assert_called_once_with("openshift/assisted-service")

    def test_repository_failure_is_retried(self):
        self.github.get_repo.side_effect = [_not_found(), self.repo]
        self.repo.get_branches.return_value = []

        with pytest.raises(DiscoveryError):
            self.client.list_branch_names()
        assert self.client.list_branch_names() == []

    def test_get_pull_request(self):
        pr = Mock()
        pr.number = 1234
        pr.title = "MGMT-20001: Fix host validation"
        pr.merged = True
        pr.merge_commit_sha = "c1" * 20
        pr.merged_at = datetime(2025, 1, 5, 12)
        pr.base.ref = "master"
        pr.html_url = "https://github.com/openshift/assisted-service/pull/1234"
        self.repo.get_pull.return_value = pr

        change = self.client.get_pull_request(1234)

        assert change.sha == "c1" * 20
        assert change.merged_into == "master"
        assert change.merged_at == datetime(2025, 1, 5, 12, tzinfo=timezone.utc)

    def test_unmerged_pull_request(self):
        pr = Mock()
        pr.merged = False
        self.repo.get_pull.return_value = pr

        with pytest.raises(ChangeLookupError, match="not merged"):
            self.client.get_pull_request(5)

    def test_missing_pull_request(self):
        self.repo.get_pull.side_effect = _not_found()

        with pytest.raises(ChangeLookupError, match="Not Found"):
            self.client.get_pull_request(5)

    def test_get_commit_change_uses_first_message_line(self):
        self.repo.get_commit.return_value = _commit("ab" * 20)

        change = self.client.get_commit_change("ab" * 20)

        assert change.title == "Fix things"
        assert change.number is None

    def test_list_branch_names_refreshes_rate_limit(self):
        branches = [Mock(), Mock()]
        branches[0].name = "master"
        branches[1].name = "release-ocm-2.14"
        self.repo.get_branches.return_value = branches

        with patch(
            "src.merged_pr_tracker.github_client.global_rate_limit_manager"
        ) as manager:
            assert self.client.list_branch_names() == ["master", "release-ocm-2.14"]
            manager.update_from_github.assert_called_once_with(self.github)

    def test_list_branch_names_failure(self):
        self.repo.get_branches.side_effect = GithubException(500, "boom", None)

        with pytest.raises(DiscoveryError):
            self.client.list_branch_names()

    def test_list_tag_names_filters_prefix(self):
        tags = [Mock(), Mock()]
        tags[0].name = "v2.40.1"
        tags[1].name = "v2.39.4"
        self.repo.get_tags.return_value = tags

        assert self.client.list_tag_names("v2.40.") == ["v2.40.1"]

    def test_tag_exists(self):
        self.repo.get_git_ref.side_effect = [Mock(), _not_found()]

        assert self.client.tag_exists("v2.40.1")
        assert not self.client.tag_exists("v9.9.9")
        self.repo.get_git_ref.assert_any_call("tags/v2.40.1")

    @pytest.mark.parametrize("ahead_by,expected", [(0, True), (1, False)])
    def test_is_ancestor(self, ahead_by, expected):
        self.repo.compare.return_value = Mock(ahead_by=ahead_by)

        assert self.client.is_ancestor("c1" * 20, "release-ocm-2.14") is expected
        self.repo.compare.assert_called_once_with("release-ocm-2.14", "c1" * 20)

    def test_is_ancestor_failure(self):
        self.repo.compare.side_effect = _not_found()

        with pytest.raises(PresenceCheckError) as exc_info:
            self.client.is_ancestor("c1" * 20, "release-ocm-2.14")
        assert exc_info.value.branch == "release-ocm-2.14"

    def test_tag_contains_commit(self):
        self.repo.get_commits.return_value = [_commit("b1" * 20), _commit("c1" * 20)]

        assert self.client.tag_contains_commit("v2.40.1", "c1" * 20)
        assert not self.client.tag_contains_commit("v2.40.1", "c1" * 20, limit=1)
        self.repo.get_commits.assert_called_with(sha="v2.40.1")

    def test_tag_contains_commit_failure(self):
        self.repo.get_commits.side_effect = _not_found()

        with pytest.raises(TagResolutionError):
            self.client.tag_contains_commit("v2.40.1", "c1" * 20)

    def test_tag_history_timeout(self):
        self.repo.get_commits.side_effect = TimeoutError("read timed out")

        with pytest.raises(TagResolutionError, match="read timed out"):
            self.client.tag_contains_commit("v2.40.0", "c1" * 20)

    def test_timed_out_tag_is_skipped_by_resolver(self):
        sha = "c1" * 20
        tags = [Mock(), Mock()]
        tags[0].name = "v2.40.0"
        tags[1].name = "v2.40.1"
        self.repo.get_tags.return_value = tags

        def history(sha=None):
            if sha == "v2.40.0":
                raise TimeoutError("read timed out")
            return [_commit("b1" * 20), _commit("c1" * 20)]

        self.repo.get_commits.side_effect = history

        assert TagResolver(self.client).resolve_earliest_tag(sha, "v2.40") == "v2.40.1"

    @pytest.mark.parametrize(
        "method,args",
        [
            ("list_branch_names", ()),
            ("list_tag_names", ("v2.40.",)),
            ("commit_date", ("c1" * 20,)),
            ("tag_exists", ("v2.40.1",)),
        ],
    )
    def test_transport_failure_is_discovery_error(self, method, args):
        self.repo.get_branches.side_effect = ConnectionError("down")
        self.repo.get_tags.side_effect = ConnectionError("down")
        self.repo.get_commit.side_effect = ConnectionError("down")
        self.repo.get_git_ref.side_effect = ConnectionError("down")

        with pytest.raises(DiscoveryError, match="down"):
            getattr(self.client, method)(*args)

    def test_repository_transport_failure(self):
        self.github.get_repo.side_effect = ConnectionError("down")

        with pytest.raises(DiscoveryError, match="unavailable: down"):
            self.client.list_branch_names()

    def test_catalog_reports_transport_failure(self):
        self.repo.get_branches.side_effect = ConnectionError("down")

        with pytest.raises(DiscoveryError):
            BranchCatalog(self.client).get()

    def test_pull_request_transport_failure(self):
        self.repo.get_pull.side_effect = ConnectionError("down")

        with pytest.raises(ChangeLookupError, match="Failed to fetch PR #5: down"):
            self.client.get_pull_request(5)

    def test_compare_transport_failure(self):
        self.repo.compare.side_effect = TimeoutError("read timed out")

        with pytest.raises(TagResolutionError):
            self.client.compare_commits("v2.40.0", "v2.40.1")
        with pytest.raises(PresenceCheckError):
            self.client.is_ancestor("c1" * 20, "v2.40")

    def test_compare_commits(self):
        self.repo.compare.return_value = Mock(
            commits=[_commit("b1" * 20, "First"), _commit("b2" * 20, "Second")]
        )

        summaries = self.client.compare_commits("v2.40.0", "v2.40.2")

        assert [summary.title for summary in summaries] == ["First", "Second"]
        assert summaries[0].date.tzinfo == timezone.utc

    def test_refresh_rate_limit(self):
        status = self.client.refresh_rate_limit()

        assert status.remaining == 4990
        assert status.limit == 5000
