"""
Release calendar ingestion.

The calendar is a loosely structured spreadsheet maintained by release
management. Two sheets matter: "In Progress", where a row names ACM and/or
MCE versions somewhere and carries one or more dates (the latest one is the
GA date), and "ACM MCE Completed " (trailing space included), where column 0
holds the version and column 1 the GA date.
"""

import calendar
import re
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, timezone
from pathlib import Path
from zipfile import BadZipFile
from typing import Any, Protocol

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from ..shared_utilities import get_logger, trace_operation
from .concurrency import LazyValue
from .data_models import Product, ReleaseRecord, utc_now
from .errors import CalendarUnavailableError

logger = get_logger(__name__)

IN_PROGRESS_SHEET = "In Progress"
COMPLETED_SHEET = "ACM MCE Completed "

_ABSOLUTE_FORMATS = (
    "%m/%d/%Y",  # 3/25/2025 and 03/25/2025
    "%Y-%m-%d",
    "%b %d, %Y",
    "%B %d, %Y",
)
_MONTH_DAY = re.compile(r"^(\d{1,2})/(\d{1,2})$")


def _months_before(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    day = min(moment.day, calendar.monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_calendar_date(value: Any, now: datetime) -> datetime | None:
    """
    Parse a calendar cell into a UTC timestamp.

    Cells that are already dates are taken as they are. Text is tried against
    the absolute formats first; a bare month/day is placed in now's year,
    unless that lands more than six months before now, in which case it is
    read as next year's date.

    Args:
        value: Cell value (text, date or datetime)
        now: Reference time for year inference

    Returns:
        Parsed timestamp, or None if the cell holds no date
    """
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    for fmt in _ABSOLUTE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    match = _MONTH_DAY.match(text)
    if not match:
        return None

    month, day = int(match.group(1)), int(match.group(2))
    try:
        candidate = datetime(now.year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None

    if candidate < _months_before(now, 6):
        try:
            return candidate.replace(year=now.year + 1)
        except ValueError:
            # Feb 29 with no leap day next year
            return candidate
    return candidate


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def extract_product_version(text: Any, product: Product) -> str | None:
    """Find a full x.y.z version written as e.g. "ACM 2.13.3" in a cell."""
    match = re.search(rf"{product.value}\s+(\d+\.\d+\.\d+)", _cell_text(text))
    return match.group(1) if match else None


def _row_version(row: Sequence[Any], product: Product) -> str | None:
    for cell in row:
        version = extract_product_version(cell, product)
        if version:
            return version
    return None


def parse_in_progress_rows(
    rows: Iterable[Sequence[Any]], now: datetime
) -> list[ReleaseRecord]:
    """Normalise rows of the in-progress sheet."""
    records = []
    for index, row in enumerate(rows, start=1):
        if len(row) < 2:
            continue

        acm_version = _row_version(row, Product.ACM)
        mce_version = _row_version(row, Product.MCE)
        if not acm_version and not mce_version:
            continue

        dates = [
            parsed
            for parsed in (parse_calendar_date(cell, now) for cell in row)
            if parsed is not None
        ]
        ga_date = max(dates) if dates else None
        logger.debug(
            f"In-progress row {index}: ACM={acm_version} MCE={mce_version} GA={ga_date}"
        )
        records.append(
            ReleaseRecord(acm_version=acm_version, mce_version=mce_version, ga_date=ga_date)
        )
    return records


def parse_completed_rows(
    rows: Iterable[Sequence[Any]], now: datetime
) -> list[ReleaseRecord]:
    """Normalise rows of the completed sheet (version, GA date, ...)."""
    records = []
    for row in rows:
        if len(row) < 2:
            continue

        acm_version = extract_product_version(row[0], Product.ACM)
        mce_version = extract_product_version(row[0], Product.MCE)
        if not acm_version and not mce_version:
            continue

        records.append(
            ReleaseRecord(
                acm_version=acm_version,
                mce_version=mce_version,
                ga_date=parse_calendar_date(row[1], now),
            )
        )
    return records


class CalendarSource(Protocol):
    def load(self) -> list[ReleaseRecord]: ...


class StaticCalendarSource:
    """Calendar records supplied directly, e.g. from configuration or tests."""

    def __init__(self, records: Iterable[ReleaseRecord]):
        self._records = list(records)

    def load(self) -> list[ReleaseRecord]:
        return list(self._records)


class WorkbookCalendarSource:
    """Reads the release schedule from an exported .xlsx workbook."""

    def __init__(self, path: str | Path, clock: Callable[[], datetime] = utc_now):
        self.path = Path(path)
        self.clock = clock

    def load(self) -> list[ReleaseRecord]:
        """
        Read both schedule sheets.

        A missing sheet is logged and contributes no records.

        Raises:
            CalendarUnavailableError: If the workbook cannot be opened
        """
        try:
            workbook = openpyxl.load_workbook(self.path, read_only=True, data_only=True)
        except (OSError, BadZipFile, InvalidFileException, KeyError, ValueError) as e:
            raise CalendarUnavailableError(
                f"Failed to open release calendar {self.path}: {e}"
            ) from e

        now = self.clock()
        try:
            in_progress = parse_in_progress_rows(
                self._sheet_rows(workbook, IN_PROGRESS_SHEET), now
            )
            completed = parse_completed_rows(
                self._sheet_rows(workbook, COMPLETED_SHEET), now
            )
        finally:
            workbook.close()

        logger.info(
            f"Loaded {len(in_progress) + len(completed)} calendar records",
            in_progress=len(in_progress),
            completed=len(completed),
        )
        return in_progress + completed

    def _sheet_rows(self, workbook, sheet_name: str) -> list[tuple]:
        if sheet_name not in workbook.sheetnames:
            logger.warning(f"Calendar sheet '{sheet_name}' not found", path=str(self.path))
            return []
        return [
            tuple(row) for row in workbook[sheet_name].iter_rows(values_only=True)
        ]


class ReleaseCalendar:
    """
    Process-wide release calendar.

    Ingestion happens at most once. start() runs it in the background so the
    first analysis does not pay for it; records() waits for it. A failed
    ingestion stays failed for the life of the process.
    """

    def __init__(self, source: CalendarSource):
        self.source = source
        self._records: LazyValue[tuple[ReleaseRecord, ...]] = LazyValue(
            self._ingest, name="release-calendar", cache_errors=True
        )

    def _ingest(self) -> tuple[ReleaseRecord, ...]:
        with trace_operation("calendar_ingest"):
            try:
                records = self.source.load()
            except CalendarUnavailableError:
                raise
            except Exception as e:
                raise CalendarUnavailableError(
                    f"Release calendar ingestion failed: {e}"
                ) from e
        return tuple(records)

    def start(self) -> None:
        """Begin ingestion in the background if it has not started."""
        self._records.start()

    def records(self) -> list[ReleaseRecord]:
        """
        Block until ingestion finishes.

        Raises:
            CalendarUnavailableError: If ingestion failed
        """
        return list(self._records.get())

    def release_records(self, product: Product) -> list[ReleaseRecord]:
        """Rows carrying a version of the product and a GA date."""
        return [
            record
            for record in self.records()
            if record.version_for(product) and record.ga_date is not None
        ]

    @property
    def ingestion_count(self) -> int:
        return self._records.load_count
