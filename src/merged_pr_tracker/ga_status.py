"""
GA status computation for ACM/MCE release branches.

A release-ocm-X.Y branch ships as ACM X.Y.z and as MCE X.(Y-5).z. The
engine matches calendar rows by major.minor family and splits them around
"now" into the latest shipped GA and the next scheduled one.
"""

from collections.abc import Sequence
from datetime import datetime

from ..shared_utilities import get_logger
from .data_models import (
    GAFact,
    GAStatusKind,
    GAStatusReport,
    Product,
    ReleaseRecord,
    UpcomingGAFact,
)
from .errors import UnsupportedVersionError

logger = get_logger(__name__)

MCE_VERSION_OFFSET = 5


def major_minor(version: str) -> str:
    """Reduce "2.14.1" to "2.14"; shorter strings are returned as they are."""
    parts = version.split(".")
    if len(parts) >= 2:
        return f"{parts[0]}.{parts[1]}"
    return version


class GAStatusEngine:
    """Correlates a branch version with the release calendar."""

    def __init__(self, mce_offset: int = MCE_VERSION_OFFSET):
        self.mce_offset = mce_offset

    def map_product_version(self, branch_version: str, product: Product) -> str:
        """
        Expected major.minor of a product for a branch version.

        Raises:
            UnsupportedVersionError: If the version cannot be parsed or the
                MCE minor would be negative
        """
        parts = branch_version.split(".")
        try:
            major, minor = int(parts[0]), int(parts[1])
        except (IndexError, ValueError) as e:
            raise UnsupportedVersionError(
                f"Cannot map branch version '{branch_version}'"
            ) from e

        if product is Product.ACM:
            return f"{major}.{minor}"

        mce_minor = minor - self.mce_offset
        if mce_minor < 0:
            raise UnsupportedVersionError(
                f"Branch version {branch_version} has no MCE counterpart"
            )
        return f"{major}.{mce_minor}"

    def _family(
        self, records: Sequence[ReleaseRecord], product: Product, expected: str
    ) -> list[tuple[str, datetime]]:
        matches = []
        for record in records:
            version = record.version_for(product)
            if not version or record.ga_date is None:
                continue
            if major_minor(version) == expected:
                matches.append((version, record.ga_date))
        return matches

    def _product_status(
        self,
        product: Product,
        branch_version: str,
        merged_at: datetime | None,
        records: Sequence[ReleaseRecord],
        now: datetime,
    ) -> tuple[GAFact, GAFact]:
        try:
            expected = self.map_product_version(branch_version, product)
        except UnsupportedVersionError as e:
            logger.debug(str(e), product=product.value)
            unsupported = GAFact(
                product=product, version=branch_version, status=GAStatusKind.UNSUPPORTED
            )
            return unsupported, unsupported

        latest: tuple[str, datetime] | None = None
        upcoming: tuple[str, datetime] | None = None
        for version, ga_date in self._family(records, product, expected):
            if ga_date < now:
                if latest is None or ga_date > latest[1]:
                    latest = (version, ga_date)
            elif upcoming is None or ga_date < upcoming[1]:
                upcoming = (version, ga_date)

        if upcoming is not None:
            next_fact = GAFact(
                product=product,
                version=upcoming[0],
                ga_date=upcoming[1],
                is_upcoming=True,
                status=GAStatusKind.NEXT_VERSION,
            )
        else:
            next_fact = GAFact(product=product, version=expected)

        if latest is not None:
            latest_fact = GAFact(
                product=product,
                version=latest[0],
                ga_date=latest[1],
                is_ga=True,
                status=GAStatusKind.GA,
            )
        elif merged_at is not None and upcoming is not None:
            # Merged into a family that has only a scheduled GA
            latest_fact = GAFact(
                product=product,
                version=upcoming[0],
                ga_date=upcoming[1],
                is_upcoming=True,
                status=GAStatusKind.MERGED_NOT_GA,
            )
        else:
            latest_fact = GAFact(product=product, version=expected)

        return latest_fact, next_fact

    def status(
        self,
        branch_version: str,
        merged_at: datetime | None,
        records: Sequence[ReleaseRecord],
        now: datetime,
    ) -> GAStatusReport:
        """
        Latest and next GA facts for ACM and MCE.

        Args:
            branch_version: Version extracted from the branch name, e.g. "2.14"
            merged_at: When the change landed on the branch
            records: Calendar rows
            now: Boundary between shipped and scheduled GAs
        """
        acm, next_acm = self._product_status(
            Product.ACM, branch_version, merged_at, records, now
        )
        mce, next_mce = self._product_status(
            Product.MCE, branch_version, merged_at, records, now
        )
        return GAStatusReport(acm=acm, mce=mce, next_acm=next_acm, next_mce=next_mce)

    def upcoming(
        self,
        branch_version: str,
        merged_at: datetime | None,
        records: Sequence[ReleaseRecord],
    ) -> list[UpcomingGAFact]:
        """
        First GA of each product strictly after the merge.

        Records sharing the earliest date resolve to the one listed first.
        Results are ordered by product, ACM then MCE, not by GA date, even
        when the MCE GA comes first. A product with nothing scheduled after
        the merge has no entry.
        """
        if merged_at is None:
            return []

        facts = []
        for product in (Product.ACM, Product.MCE):
            try:
                expected = self.map_product_version(branch_version, product)
            except UnsupportedVersionError:
                continue

            closest: tuple[str, datetime] | None = None
            for version, ga_date in self._family(records, product, expected):
                if ga_date <= merged_at:
                    continue
                if closest is None or ga_date < closest[1]:
                    closest = (version, ga_date)

            if closest is not None:
                facts.append(
                    UpcomingGAFact(product=product, version=closest[0], ga_date=closest[1])
                )
        return facts
