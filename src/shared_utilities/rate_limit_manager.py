"""
GitHub rate limit awareness for fan-out heavy analysis.

Reads the quota PyGithub tracks from response headers and decides whether a
planned batch of calls fits in it.
"""

import threading
import time
from dataclasses import dataclass

from github import Github, GithubException
from loguru import logger


@dataclass
class RateLimitStatus:
    """Current rate limit status from GitHub API."""

    limit: int  # Total requests allowed per hour
    remaining: int  # Requests remaining in current window
    reset_time: int  # Unix timestamp when limit resets

    @property
    def used(self) -> int:
        return max(0, self.limit - self.remaining)

    @property
    def usage_percentage(self) -> float:
        """Percentage of rate limit used (0.0 to 1.0)."""
        if self.limit <= 0:
            return 0.0
        return self.used / self.limit

    @property
    def minutes_until_reset(self) -> float:
        """Minutes until rate limit resets."""
        return max(0, (self.reset_time - time.time()) / 60)


class RateLimitManager:
    """
    Tracks GitHub quota across the analysis of one or more changes.

    Shared by every fan-out in the process so that parallel presence checks,
    tag walks and related-change analysis all see the same quota.
    """

    def __init__(self, safety_buffer: int = 10, min_requests_threshold: int = 50):
        """
        Initialize rate limit manager.

        Args:
            safety_buffer: Number of requests to keep in reserve
            min_requests_threshold: Below this, batches are shrunk
        """
        self.safety_buffer = safety_buffer
        self.min_requests_threshold = min_requests_threshold
        self.last_status: RateLimitStatus | None = None
        self._lock = threading.Lock()

    def update_from_github(self, github: Github) -> RateLimitStatus | None:
        """
        Refresh the status from the quota PyGithub recorded on its last response.

        Args:
            github: Authenticated Github instance

        Returns:
            RateLimitStatus, or None if GitHub could not be asked
        """
        try:
            remaining, limit = github.rate_limiting
            status = RateLimitStatus(
                limit=int(limit),
                remaining=int(remaining),
                reset_time=int(github.rate_limiting_resettime),
            )
        except (GithubException, TypeError, ValueError) as e:
            logger.warning(f"Failed to read rate limit status: {e}")
            return None

        with self._lock:
            self.last_status = status
        return status

    def log_rate_limit_status(self, tool_name: str = "merged-pr-tracker") -> None:
        """Log the last known rate limit status."""
        status = self.last_status
        if status is None:
            return
        logger.info(
            f"[{tool_name}] Rate limit: {status.remaining}/{status.limit} remaining "
            f"({status.usage_percentage:.1%} used, resets in {status.minutes_until_reset:.1f}m)"
        )

    def check_rate_limit_safety(self, required_requests: int = 1) -> tuple[bool, str]:
        """
        Check if it's safe to make a certain number of requests.

        Args:
            required_requests: Number of requests planned

        Returns:
            Tuple of (is_safe, reason)
        """
        status = self.last_status
        if status is None:
            return True, "No rate limit information available"

        safe_remaining = status.remaining - self.safety_buffer
        if required_requests > safe_remaining:
            return False, (
                f"Not enough requests remaining: need {required_requests}, "
                f"have {safe_remaining} (keeping {self.safety_buffer} in reserve)"
            )

        return True, "Safe to proceed"

    def get_recommended_batch_size(self, default_batch_size: int) -> int:
        """
        Get recommended worker count based on current rate limit status.

        Args:
            default_batch_size: Preferred size under normal conditions

        Returns:
            Recommended size, never below 1
        """
        status = self.last_status
        if status is None:
            return default_batch_size

        if status.remaining < self.min_requests_threshold:
            return min(default_batch_size, max(1, status.remaining // 4))
        elif status.remaining < self.min_requests_threshold * 2:
            return min(default_batch_size, max(1, status.remaining // 3))
        return default_batch_size

    def should_pause_operations(self) -> tuple[bool, float]:
        """
        Check if operations should wait for the quota to reset.

        Returns:
            Tuple of (should_pause, recommended_wait_time_seconds)
        """
        status = self.last_status
        if status is None:
            return False, 0

        if status.remaining <= self.safety_buffer:
            return True, min(status.minutes_until_reset * 60, 3600)

        return False, 0

    def format_status_summary(self) -> str:
        """Get a formatted summary of current rate limit status."""
        status = self.last_status
        if status is None:
            return "Rate limit status: Unknown"

        return (
            f"Rate limit: {status.remaining}/{status.limit} remaining "
            f"({status.usage_percentage:.1%} used), "
            f"resets in {status.minutes_until_reset:.1f} minutes"
        )


# Shared by every GitHubClient in the process
global_rate_limit_manager = RateLimitManager()
