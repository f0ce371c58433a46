from datetime import date, datetime, timedelta, timezone

from pipeline_errors import ConfigurationError, InvalidRangeError


class DateSpan:
    """Calendar dates from start to end, both inclusive.

    Iterating twice yields the same dates. Stepping uses plain date
    arithmetic, so there is no time-of-day and no DST to skip over.
    """

    def __init__(self, start, end):
        self.start = parse_date(start)
        self.end = parse_date(end)
        if self.end < self.start:
            raise InvalidRangeError(
                f"End date {self.end.isoformat()} is before start date {self.start.isoformat()}"
            )

    def __iter__(self):
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def __len__(self):
        return (self.end - self.start).days + 1

    def __repr__(self):
        return f"DateSpan({self.start.isoformat()}, {self.end.isoformat()})"


def parse_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), "%Y-%m-%d").date()
        except ValueError:
            pass
    raise ConfigurationError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def compact_to_iso(value):
    # GA4 returns the date dimension as YYYYMMDD
    return datetime.strptime(value, "%Y%m%d").date().isoformat()


def recent_span(days=7, today=None):
    """The `days` full days before today (UTC), e.g. GA4's 7daysAgo..yesterday."""
    if days < 1:
        raise InvalidRangeError(f"days must be at least 1, got {days}")
    today = today or datetime.now(timezone.utc).date()
    return DateSpan(today - timedelta(days=days), today - timedelta(days=1))
