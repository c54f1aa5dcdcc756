"""
app/domain/periods.py

Period tags, business-day boundaries and the resolver that turns request
parameters into a canonical date range.

Boundary conventions
--------------------
A business day ``d`` spans ``[d at start_hour, (d + 1) at start_hour - 1 ms]``
in the convention's timezone:

    start_hour=0  →  00:00:00.000 .. 23:59:59.999   (calendar day)
    start_hour=6  →  06:00:00.000 .. 05:59:59.999 next day

Symbolic periods
----------------
Every tag except CUSTOM ends on "yesterday" relative to the resolution
instant, so the day in progress is never aggregated:

    LAST_7_D      today - 7    .. today - 1
    LAST_30_D     today - 30   .. today - 1
    LAST_6_M      today - 180  .. today - 1
    THIS_MONTH    1st of yesterday's month .. today - 1
    LAST_MONTH    1st .. last day of the previous month
    YEAR_TO_DATE  1 January of yesterday's year .. today - 1
"""

from __future__ import annotations

import calendar
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from app.domain.errors import (
    InvalidFormatError,
    MissingParameterError,
    MissingPeriodError,
    RangeInvertedError,
)
from app.validators.date_validator import validate_date_range

_ONE_MS = timedelta(milliseconds=1)


class Period(str, Enum):
    LAST_7_D = "LAST_7_D"
    LAST_30_D = "LAST_30_D"
    LAST_6_M = "LAST_6_M"
    THIS_MONTH = "THIS_MONTH"
    LAST_MONTH = "LAST_MONTH"
    YEAR_TO_DATE = "YEAR_TO_DATE"
    CUSTOM = "CUSTOM"

    @property
    def is_symbolic(self) -> bool:
        return self is not Period.CUSTOM

    @classmethod
    def parse(cls, raw: Period | str | None) -> Period | None:
        """
        Parse a period tag, tolerating case and surrounding whitespace.

        Raises
        ------
        InvalidFormatError
            If *raw* is not a known tag.
        """
        if raw is None or isinstance(raw, Period):
            return raw
        candidate = raw.strip().upper()
        if not candidate:
            return None
        try:
            return cls(candidate)
        except ValueError as exc:
            raise InvalidFormatError(
                f"Unknown period {raw!r}. Valid periods: {[p.value for p in cls]}.",
                context={"period": raw},
            ) from exc


SYMBOLIC_PERIODS: tuple[Period, ...] = tuple(p for p in Period if p.is_symbolic)

_TRAILING_DAYS: dict[Period, int] = {
    Period.LAST_7_D: 7,
    Period.LAST_30_D: 30,
    Period.LAST_6_M: 180,
}


class Granularity(str, Enum):
    DAY = "day"
    MONTH = "month"


# ---------------------------------------------------------------------------
# Boundary convention
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoundaryConvention:
    """
    Start-of-business-day hour in a given timezone.
    """

    start_hour: int = 0
    timezone: str = "UTC"

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour <= 23:
            raise ValueError(f"start_hour must be within 0..23, got {self.start_hour}")
        ZoneInfo(self.timezone)

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def start_of(self, day: date) -> datetime:
        """First instant of business day *day*."""
        return datetime.combine(day, time(self.start_hour), tzinfo=self.tzinfo)

    def end_of(self, day: date) -> datetime:
        """Last instant (millisecond precision) of business day *day*."""
        return self.start_of(day + timedelta(days=1)) - _ONE_MS

    def business_day_of(self, instant: datetime) -> date:
        """Business day an instant belongs to."""
        local = instant.astimezone(self.tzinfo)
        if local.hour < self.start_hour:
            return local.date() - timedelta(days=1)
        return local.date()

    def today(self, now: datetime) -> date:
        """Calendar date of *now* in the convention's timezone."""
        return now.astimezone(self.tzinfo).date()


CALENDAR_DAY = BoundaryConvention(start_hour=0)
BUSINESS_DAY = BoundaryConvention(start_hour=6)


# ---------------------------------------------------------------------------
# Date range
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive ``[start, end]`` pair of timezone-aware instants.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise RangeInvertedError(
                "Range start must not be after its end.",
                context={"start": self.start.isoformat(), "end": self.end.isoformat()},
            )

    @classmethod
    def for_days(cls, first: date, last: date, boundary: BoundaryConvention) -> DateRange:
        return cls(start=boundary.start_of(first), end=boundary.end_of(last))

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end

    def first_day(self, boundary: BoundaryConvention) -> date:
        return boundary.business_day_of(self.start)

    def last_day(self, boundary: BoundaryConvention) -> date:
        return boundary.business_day_of(self.end)

    def business_days(self, boundary: BoundaryConvention) -> int:
        return (self.last_day(boundary) - self.first_day(boundary)).days + 1

    @property
    def stop(self) -> datetime:
        """Exclusive upper bound, one millisecond past ``end``."""
        return self.end + _ONE_MS

    @property
    def seconds(self) -> float:
        return (self.stop - self.start).total_seconds()

    def previous(self, boundary: BoundaryConvention) -> DateRange:
        """Range of equal business-day length ending right before this one."""
        first = self.first_day(boundary)
        length = self.business_days(boundary)
        return DateRange.for_days(
            first - timedelta(days=length),
            first - timedelta(days=1),
            boundary,
        )

    def split(self, granularity: Granularity, boundary: BoundaryConvention) -> list[Bucket]:
        """
        Split into chronological day or month buckets clamped to this range.
        """
        first = self.first_day(boundary)
        last = self.last_day(boundary)
        buckets: list[Bucket] = []

        cursor = first
        while cursor <= last:
            if granularity is Granularity.DAY:
                bucket_last = cursor
                label = cursor.isoformat()
            else:
                month_end = date(
                    cursor.year,
                    cursor.month,
                    calendar.monthrange(cursor.year, cursor.month)[1],
                )
                bucket_last = min(month_end, last)
                label = f"{cursor.year:04d}-{cursor.month:02d}"

            buckets.append(
                Bucket(
                    label=label,
                    range=DateRange(
                        start=max(self.start, boundary.start_of(cursor)),
                        end=min(self.end, boundary.end_of(bucket_last)),
                    ),
                )
            )
            cursor = bucket_last + timedelta(days=1)

        return buckets


@dataclass(frozen=True)
class Bucket:
    """One labelled slice of a larger range."""

    label: str
    range: DateRange


@dataclass(frozen=True)
class ResolvedPeriod:
    """
    Canonical output of the resolver.

    ``first_day``/``last_day`` are the business days the range covers and
    feed cache keys; ``range`` holds the concrete boundary instants.
    """

    period: Period
    range: DateRange
    first_day: date
    last_day: date


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class PeriodResolver:
    """
    Turns raw request parameters into a :class:`ResolvedPeriod`.

    The clock is injectable so symbolic periods resolve deterministically
    in tests.
    """

    def __init__(
        self,
        *,
        boundary: BoundaryConvention = CALENDAR_DAY,
        clock: Callable[[], datetime] = _utc_now,
        max_range_days: int = 0,
    ) -> None:
        self._boundary = boundary
        self._clock = clock
        self._max_range_days = max(0, max_range_days)

    @property
    def boundary(self) -> BoundaryConvention:
        return self._boundary

    def resolve(
        self,
        raw_start: str | None = None,
        raw_end: str | None = None,
        period: Period | str | None = None,
        *,
        require_period: bool = True,
    ) -> ResolvedPeriod:
        """
        Resolve request parameters into a canonical range.

        Explicit dates win over a symbolic tag; the tag then only labels
        the resulting snapshot.

        Raises
        ------
        MissingPeriodError
            No period on a path that requires one.
        MissingParameterError
            Only one date given, or CUSTOM without dates.
        InvalidFormatError, InvalidDateError
            Malformed or impossible dates, or an unknown tag.
        RangeInvertedError
            Start date after end date.
        RangeTooLongError
            Custom range longer than ``max_range_days``.
        """
        tag = Period.parse(period)
        if tag is None and require_period:
            raise MissingPeriodError("period is required.", context={"parameter": "period"})

        has_start = bool(raw_start and raw_start.strip())
        has_end = bool(raw_end and raw_end.strip())
        if has_start != has_end:
            raise MissingParameterError(
                "startDate and endDate must be provided together.",
                context={"startDate": raw_start, "endDate": raw_end},
            )

        if has_start:
            first, last = validate_date_range(
                raw_start,
                raw_end,
                max_days=self._max_range_days,
            ).unwrap()
            return self._build(tag or Period.CUSTOM, first, last)

        if tag is None or tag is Period.CUSTOM:
            raise MissingParameterError(
                "startDate and endDate are required for a custom period.",
                context={"period": tag.value if tag else None},
            )

        return self.range_for(tag)

    def range_for(self, period: Period, today: date | None = None) -> ResolvedPeriod:
        """
        Derive the concrete range for a symbolic tag.
        """
        if period is Period.CUSTOM:
            raise MissingParameterError("CUSTOM periods need explicit dates.")

        current = today or self._boundary.today(self._clock())
        yesterday = current - timedelta(days=1)

        if period in _TRAILING_DAYS:
            first = current - timedelta(days=_TRAILING_DAYS[period])
            last = yesterday
        elif period is Period.THIS_MONTH:
            first = yesterday.replace(day=1)
            last = yesterday
        elif period is Period.LAST_MONTH:
            last = current.replace(day=1) - timedelta(days=1)
            first = last.replace(day=1)
        elif period is Period.YEAR_TO_DATE:
            first = date(yesterday.year, 1, 1)
            last = yesterday
        else:  # pragma: no cover
            raise InvalidFormatError(f"Unsupported period {period!r}")

        return self._build(period, first, last)

    def previous(self, resolved: ResolvedPeriod) -> ResolvedPeriod:
        """Equal-length window immediately preceding *resolved*."""
        length = (resolved.last_day - resolved.first_day).days + 1
        return self._build(
            Period.CUSTOM,
            resolved.first_day - timedelta(days=length),
            resolved.first_day - timedelta(days=1),
        )

    def _build(self, period: Period, first: date, last: date) -> ResolvedPeriod:
        return ResolvedPeriod(
            period=period,
            range=DateRange.for_days(first, last, self._boundary),
            first_day=first,
            last_day=last,
        )
