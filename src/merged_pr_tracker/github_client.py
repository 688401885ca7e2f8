"""
GitHub API client for release presence queries
"""

import os
from datetime import datetime, timezone
from itertools import islice

from github import Auth, Github, GithubException
from github.Repository import Repository

from ..shared_utilities import get_logger, global_rate_limit_manager
from .concurrency import LazyValue
from .data_models import ChangeInfo, CommitSummary
from .errors import (
    ChangeLookupError,
    DiscoveryError,
    PresenceCheckError,
    TagResolutionError,
)

logger = get_logger(__name__)


def _error_message(e: GithubException) -> str:
    if isinstance(e.data, dict):
        return e.data.get("message", str(e))
    return str(e)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _first_line(message: str) -> str:
    return message.splitlines()[0] if message else ""


class GitHubClient:
    """Client for the repository whose release branches are analysed."""

    def __init__(
        self,
        owner: str,
        repository: str,
        token: str | None = None,
        timeout: int = 30,
        github: Github | None = None,
    ):
        """
        Initialize GitHub client.

        Args:
            owner: Repository owner or organisation
            repository: Repository name
            token: API token, defaults to GITHUB_TOKEN
            timeout: Per-request timeout in seconds
            github: Preconfigured Github instance (mostly for tests)
        """
        self.owner = owner
        self.repository = repository
        self.token = token or os.environ.get("GITHUB_TOKEN")

        if github is not None:
            self.github = github
        elif self.token:
            self.github = Github(auth=Auth.Token(self.token), timeout=timeout, per_page=100)
        else:
            logger.warning("No GitHub token configured, requests are rate limited")
            self.github = Github(timeout=timeout, per_page=100)

        self._repo: LazyValue[Repository] = LazyValue(
            self._load_repo, name="repository", cache_errors=False
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repository}"

    def _load_repo(self) -> Repository:
        try:
            return self.github.get_repo(self.full_name)
        except GithubException as e:
            raise DiscoveryError(
                f"Repository {self.full_name} unavailable: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise DiscoveryError(f"Repository {self.full_name} unavailable: {e}") from e

    @property
    def repo(self) -> Repository:
        return self._repo.get()

    def get_pull_request(self, number: int) -> ChangeInfo:
        """
        Fetch a merged pull request.

        Raises:
            ChangeLookupError: If the PR cannot be fetched or is not merged
        """
        try:
            pr = self.repo.get_pull(number)
        except GithubException as e:
            raise ChangeLookupError(
                f"Failed to fetch PR #{number}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise ChangeLookupError(f"Failed to fetch PR #{number}: {e}") from e

        if not pr.merged or not pr.merge_commit_sha:
            raise ChangeLookupError(f"PR #{number} is not merged")

        return ChangeInfo(
            number=pr.number,
            title=pr.title or "",
            sha=pr.merge_commit_sha,
            merged_at=_as_utc(pr.merged_at),
            merged_into=pr.base.ref if pr.base else "",
            url=pr.html_url or "",
        )

    def get_commit_change(self, sha: str) -> ChangeInfo:
        """
        Describe a bare commit as a change.

        Raises:
            ChangeLookupError: If the commit does not exist
        """
        try:
            commit = self.repo.get_commit(sha)
        except GithubException as e:
            raise ChangeLookupError(
                f"Failed to fetch commit {sha}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise ChangeLookupError(f"Failed to fetch commit {sha}: {e}") from e

        return ChangeInfo(
            sha=commit.sha,
            title=_first_line(commit.commit.message),
            merged_at=_as_utc(commit.commit.committer.date),
            url=commit.html_url or "",
        )

    def commit_date(self, sha: str) -> datetime:
        """Committer date of a commit, UTC."""
        try:
            commit = self.repo.get_commit(sha)
        except DiscoveryError:
            raise
        except GithubException as e:
            raise DiscoveryError(
                f"Failed to fetch commit {sha}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise DiscoveryError(f"Failed to fetch commit {sha}: {e}") from e
        return _as_utc(commit.commit.committer.date)

    def list_branch_names(self) -> list[str]:
        """
        List every branch name in discovery order.

        Raises:
            DiscoveryError: If the listing fails
        """
        try:
            names = [branch.name for branch in self.repo.get_branches()]
        except DiscoveryError:
            raise
        except GithubException as e:
            raise DiscoveryError(
                f"Failed to list branches for {self.full_name}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise DiscoveryError(
                f"Failed to list branches for {self.full_name}: {e}"
            ) from e
        self.refresh_rate_limit()
        return names

    def list_tag_names(self, prefix: str = "") -> list[str]:
        """
        List tag names, optionally restricted to a prefix.

        Raises:
            DiscoveryError: If the listing fails
        """
        try:
            return [
                tag.name for tag in self.repo.get_tags() if tag.name.startswith(prefix)
            ]
        except DiscoveryError:
            raise
        except GithubException as e:
            raise DiscoveryError(
                f"Failed to list tags for {self.full_name}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise DiscoveryError(f"Failed to list tags for {self.full_name}: {e}") from e

    def tag_exists(self, tag: str) -> bool:
        try:
            self.repo.get_git_ref(f"tags/{tag}")
        except DiscoveryError:
            raise
        except GithubException as e:
            if e.status == 404:
                return False
            raise DiscoveryError(
                f"Failed to look up tag {tag}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise DiscoveryError(f"Failed to look up tag {tag}: {e}") from e
        return True

    def is_ancestor(self, sha: str, branch: str) -> bool:
        """
        Check whether a commit is reachable from a branch head.

        The commit is contained when comparing the branch (base) with the
        commit (head) shows the commit is not ahead of the branch.

        Raises:
            PresenceCheckError: If the comparison fails
        """
        try:
            comparison = self.repo.compare(branch, sha)
        except GithubException as e:
            raise PresenceCheckError(branch, _error_message(e)) from e
        except Exception as e:
            raise PresenceCheckError(branch, str(e)) from e
        return comparison.ahead_by == 0

    def tag_contains_commit(self, tag: str, sha: str, limit: int | None = None) -> bool:
        """
        Walk the history reachable from a tag looking for an exact SHA.

        Args:
            tag: Tag name
            sha: Full commit SHA
            limit: Stop after this many commits (None walks everything)

        Raises:
            TagResolutionError: If the history cannot be listed
        """
        try:
            for commit in islice(self.repo.get_commits(sha=tag), limit):
                if commit.sha == sha:
                    return True
        except GithubException as e:
            raise TagResolutionError(
                f"Failed to list commits for tag {tag}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise TagResolutionError(f"Failed to list commits for tag {tag}: {e}") from e
        return False

    def compare_commits(self, base: str, head: str) -> list[CommitSummary]:
        """
        Commits reachable from head but not from base, oldest first.

        Raises:
            TagResolutionError: If the comparison fails
        """
        try:
            comparison = self.repo.compare(base, head)
            return [
                CommitSummary(
                    sha=commit.sha,
                    title=_first_line(commit.commit.message),
                    date=_as_utc(commit.commit.committer.date),
                )
                for commit in comparison.commits
            ]
        except GithubException as e:
            raise TagResolutionError(
                f"Failed to compare {base}...{head}: {_error_message(e)}"
            ) from e
        except Exception as e:
            raise TagResolutionError(f"Failed to compare {base}...{head}: {e}") from e

    def refresh_rate_limit(self):
        """Record the current quota in the shared rate limit manager."""
        return global_rate_limit_manager.update_from_github(self.github)
