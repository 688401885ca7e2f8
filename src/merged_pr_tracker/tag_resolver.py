"""
Narrow branch presence down to the earliest released tag.
"""

import re
from typing import Protocol

from ..shared_utilities import get_logger, trace_function
from .data_models import CommitSummary, VersionComparison
from .errors import TagResolutionError

logger = get_logger(__name__)

_TAG_VERSION = re.compile(r"(\d+(?:\.\d+)*)(.*)$")
_SEMVER_TAG = re.compile(r"^(?P<prefix>\D*)(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)$")


class TagHost(Protocol):
    def list_tag_names(self, prefix: str = "") -> list[str]: ...

    def tag_contains_commit(self, tag: str, sha: str, limit: int | None = None) -> bool: ...

    def compare_commits(self, base: str, head: str) -> list[CommitSummary]: ...

    def tag_exists(self, tag: str) -> bool: ...


def version_sort_key(tag: str) -> tuple:
    """
    Order tags by their numeric components.

    v2.40.9 sorts before v2.40.10, and a pre-release suffix sorts before the
    plain release of the same numbers.
    """
    match = _TAG_VERSION.search(tag)
    if not match:
        return ((), 0, tag)
    numbers = tuple(int(part) for part in match.group(1).split("."))
    suffix = match.group(2)
    return (numbers, 0 if suffix else 1, suffix)


def _parse_semver_tag(tag: str) -> tuple[str, int, int, int]:
    match = _SEMVER_TAG.match(tag)
    if not match:
        raise TagResolutionError(f"Invalid version format: {tag}")
    return (
        match.group("prefix"),
        int(match.group("major")),
        int(match.group("minor")),
        int(match.group("patch")),
    )


class TagResolver:
    """Finds which tags of a release line contain a commit."""

    def __init__(self, host: TagHost, history_limit: int | None = None):
        """
        Args:
            host: Repository host
            history_limit: Maximum commits walked per tag (None for all)
        """
        self.host = host
        self.history_limit = history_limit

    @trace_function("tag_resolver.resolve_earliest_tag")
    def resolve_earliest_tag(self, sha: str, version_prefix: str) -> str | None:
        """
        Return the earliest tag of a release line that contains the commit.

        Tags are tried from the lowest version upwards; once a tag contains
        the commit every later tag of the line does too, so the first hit is
        the answer.

        Args:
            sha: Commit SHA
            version_prefix: Release line, e.g. "v2.40" selects "v2.40.*"

        Returns:
            The tag name, or None when no tag contains the commit yet

        Raises:
            DiscoveryError: If tags cannot be listed
        """
        candidates = sorted(
            self.host.list_tag_names(f"{version_prefix}."), key=version_sort_key
        )
        logger.debug(
            f"Checking {len(candidates)} tags for {sha[:8]}", prefix=version_prefix
        )

        for tag in candidates:
            try:
                if self.host.tag_contains_commit(tag, sha, self.history_limit):
                    logger.info(f"Commit {sha[:8]} first released in {tag}")
                    return tag
            except TagResolutionError as e:
                logger.warning(f"Skipping tag {tag}: {e}", tag=tag)

        return None

    def find_previous_version(self, tag: str) -> str:
        """
        Find the release preceding a version tag.

        For vX.Y.Z with Z > 0 this is the nearest lower patch of X.Y that
        exists; for vX.Y.0, or when no lower patch exists, it is the latest
        patch of X.(Y-1).

        Raises:
            TagResolutionError: If the tag is malformed or nothing precedes it
        """
        prefix, major, minor, patch = _parse_semver_tag(tag)

        same_minor = set(self.host.list_tag_names(f"{prefix}{major}.{minor}."))
        for lower in range(patch - 1, -1, -1):
            candidate = f"{prefix}{major}.{minor}.{lower}"
            if candidate in same_minor:
                return candidate

        if minor > 0:
            previous_minor = [
                name
                for name in self.host.list_tag_names(f"{prefix}{major}.{minor - 1}.")
                if _SEMVER_TAG.match(name)
            ]
            if previous_minor:
                return max(previous_minor, key=version_sort_key)

        raise TagResolutionError(f"No previous version found for {tag}")

    def changes_between(self, base_tag: str, head_tag: str) -> list[CommitSummary]:
        """Commits shipped in head_tag that were not in base_tag, oldest first."""
        return self.host.compare_commits(base_tag, head_tag)

    @trace_function("tag_resolver.compare_with_previous")
    def compare_with_previous(self, tag: str) -> VersionComparison:
        """
        Diff a release tag against the release before it.

        Raises:
            TagResolutionError: If the tag does not exist, nothing precedes
                it, or the comparison fails
            DiscoveryError: If tags cannot be looked up
        """
        if not self.tag_exists(tag):
            raise TagResolutionError(f"No release found with tag '{tag}'")

        previous = self.find_previous_version(tag)
        prefix, major, minor, patch = _parse_semver_tag(tag)
        _, prev_major, prev_minor, prev_patch = _parse_semver_tag(previous)

        missing_patch = None
        if (prev_major, prev_minor) == (major, minor) and prev_patch < patch - 1:
            missing_patch = f"{prefix}{major}.{minor}.{patch - 1}"

        commits = self.changes_between(previous, tag)
        logger.info(f"{len(commits)} commits between {previous} and {tag}")
        return VersionComparison(
            version=tag,
            previous_version=previous,
            commits=tuple(commits),
            missing_patch=missing_patch,
        )

    def tag_exists(self, tag: str) -> bool:
        return self.host.tag_exists(tag)
