"""
Parallel commit presence checks across release branches.
"""

import threading
from datetime import datetime
from typing import Protocol

from ..shared_utilities import get_logger, trace_operation
from .concurrency import LazyValue, run_bounded
from .data_models import BranchRecord, PresenceFact
from .errors import PresenceCheckError

logger = get_logger(__name__)

DEFAULT_CONCURRENCY = 10


class PresenceHost(Protocol):
    def is_ancestor(self, sha: str, branch: str) -> bool: ...

    def commit_date(self, sha: str) -> datetime: ...


class CommitPresenceChecker:
    """Decides which branches contain a commit."""

    def __init__(
        self,
        host: PresenceHost,
        max_workers: int = DEFAULT_CONCURRENCY,
        semaphore: threading.Semaphore | None = None,
    ):
        """
        Args:
            host: Repository host answering ancestry queries
            max_workers: Upper bound on concurrent branch checks
            semaphore: Permit shared with the other fan-outs of an analysis
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.host = host
        self.max_workers = max_workers
        self.semaphore = semaphore

    def check(self, sha: str, branches: list[BranchRecord]) -> list[PresenceFact]:
        """
        Check every branch for the commit.

        Returns one fact per branch, in the order given. A branch whose check
        fails is reported as not found. A branch that contains the commit but
        whose commit date cannot be fetched is still found, without a date.
        """
        # Fetched once on success; a failed fetch is retried by the next branch
        merged_at = LazyValue(
            lambda: self.host.commit_date(sha), name="commit-date", cache_errors=False
        )

        def check_branch(branch: BranchRecord) -> PresenceFact:
            try:
                found = self.host.is_ancestor(sha, branch.name)
            except PresenceCheckError:
                raise
            except Exception as e:
                raise PresenceCheckError(branch.name, str(e)) from e

            if not found:
                return PresenceFact(branch=branch, found=False)

            try:
                date = merged_at.get()
            except Exception as e:
                logger.warning(
                    f"Commit date unavailable for {sha[:8]} on {branch.name}: {e}",
                    branch=branch.name,
                )
                date = None
            return PresenceFact(branch=branch, found=True, merged_at=date)

        def contain(branch: BranchRecord, error: Exception) -> PresenceFact:
            logger.warning(
                f"Presence check failed for {branch.name}: {error}",
                branch=branch.name,
            )
            return PresenceFact(branch=branch, found=False)

        with trace_operation(
            "presence_check", {"sha": sha, "branches": len(branches)}
        ):
            facts = run_bounded(
                check_branch,
                branches,
                max_workers=self.max_workers,
                semaphore=self.semaphore,
                on_error=contain,
                name="presence",
            )

        logger.debug(
            f"Commit {sha[:8]} found in {sum(fact.found for fact in facts)} "
            f"of {len(facts)} branches"
        )
        return facts
