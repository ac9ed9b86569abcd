"""Date partitions and date queries.

A partition is a calendar day. A date query selects a year, a month or a
single day, written ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``.
"""

from __future__ import annotations

import calendar
import re
from datetime import UTC, date, datetime, timedelta

from pydantic import BaseModel, ValidationError, model_validator

from sitemapper.errors import InvalidDateError

_QUERY_RE = re.compile(r"^(\d{4})(?:-(\d{1,2})(?:-(\d{1,2}))?)?$")


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_partition(value: str | date) -> date:
    """Parse ``YYYY-MM-DD`` into a partition date.

    Raises InvalidDateError if the string is not a real calendar day.
    """
    if isinstance(value, date):
        return value
    query = parse_date_query(value)
    if query.month is None or query.day is None:
        raise InvalidDateError(f"Expected a full date (YYYY-MM-DD), got {value!r}")
    return date(query.year, query.month, query.day)


def format_partition(partition: date) -> str:
    return partition.isoformat()


class DateQuery(BaseModel):
    """A year, month or day selector."""

    year: int
    month: int | None = None
    day: int | None = None

    @model_validator(mode="after")
    def _check_ranges(self) -> DateQuery:
        if not 1 <= self.year <= 9999:
            raise ValueError(f"year out of range: {self.year}")
        if self.day is not None and self.month is None:
            raise ValueError("day requires a month")
        if self.month is not None and not 1 <= self.month <= 12:
            raise ValueError(f"month out of range: {self.month}")
        if self.day is not None:
            last = calendar.monthrange(self.year, self.month)[1]
            if not 1 <= self.day <= last:
                raise ValueError(f"day out of range: {self.day}")
        return self

    def matches(self, partition: date) -> bool:
        if partition.year != self.year:
            return False
        if self.month is not None and partition.month != self.month:
            return False
        if self.day is not None and partition.day != self.day:
            return False
        return True

    def expand(self, today: date | None = None) -> list[date]:
        """Return every day the query covers, never past ``today``."""
        today = today or date.today()
        if self.day is not None:
            start = end = date(self.year, self.month, self.day)
        elif self.month is not None:
            start = date(self.year, self.month, 1)
            end = date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])
        else:
            start = date(self.year, 1, 1)
            end = date(self.year, 12, 31)
        end = min(end, today)
        days: list[date] = []
        current = start
        while current <= end:
            days.append(current)
            current += timedelta(days=1)
        return days

    def __str__(self) -> str:
        if self.day is not None:
            return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"
        if self.month is not None:
            return f"{self.year:04d}-{self.month:02d}"
        return f"{self.year:04d}"


def parse_date_query(text: str) -> DateQuery:
    """Parse ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``.

    Raises InvalidDateError on anything else, including impossible days.
    """
    match = _QUERY_RE.match(text.strip())
    if match is None:
        raise InvalidDateError(f"Invalid date {text!r}: expected YYYY, YYYY-MM or YYYY-MM-DD")
    year, month, day = (int(g) if g is not None else None for g in match.groups())
    try:
        return DateQuery(year=year, month=month, day=day)
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"].removeprefix("Value error, ")
        raise InvalidDateError(f"Invalid date {text!r}: {reason}") from exc


def expand_date_queries(queries: list[DateQuery], today: date | None = None) -> list[date]:
    """Expand queries into distinct days, in first-seen order."""
    seen: dict[date, None] = {}
    for query in queries:
        for day in query.expand(today):
            seen.setdefault(day, None)
    return list(seen)
