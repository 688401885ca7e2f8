"""
Exception hierarchy for release presence analysis.

Only ChangeLookupError and DiscoveryError raised from the sequential steps of an
analysis reach the caller. Errors raised inside per-branch, per-tag or
per-upcoming-GA tasks are contained at the task boundary and turned into
not-found facts.
"""


class ReleaseTrackerError(Exception):
    """Base exception for release tracker operations."""

    pass


class ChangeLookupError(ReleaseTrackerError):
    """The analysed change could not be fetched or is not merged."""

    pass


class DiscoveryError(ReleaseTrackerError):
    """Listing branches or tags from the repository host failed."""

    pass


class PresenceCheckError(ReleaseTrackerError):
    """Containment check of a commit in a single branch failed."""

    def __init__(self, branch: str, message: str):
        super().__init__(f"{branch}: {message}")
        self.branch = branch


class TagResolutionError(ReleaseTrackerError):
    """A tag's history could not be listed or a tag lookup failed."""

    pass


class CalendarUnavailableError(ReleaseTrackerError):
    """Release calendar ingestion failed."""

    pass


class UnsupportedVersionError(ReleaseTrackerError):
    """A branch version cannot be mapped onto a product version line."""

    pass


class OptionalCollaboratorError(ReleaseTrackerError):
    """Snapshot source or ticket tracker call failed."""

    pass
