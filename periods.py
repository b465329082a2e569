from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def start_key(self) -> str:
        return self.start.isoformat()

    @property
    def end_key(self) -> str:
        return self.end.isoformat()

    def contains(self, date_str: str) -> bool:
        # ISO date strings sort like the dates they encode
        return self.start_key <= date_str <= self.end_key


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def parse_year_month(year_month: str) -> tuple[int, int]:
    try:
        year_raw, month_raw = year_month.split("-")
        year, month = int(year_raw), int(month_raw)
    except ValueError as exc:
        raise ValueError("Month must look like YYYY-MM") from exc
    if not 1 <= month <= 12:
        raise ValueError("Month must look like YYYY-MM")
    return year, month


def format_year_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_period(year_month: str) -> Period:
    year, month = parse_year_month(year_month)
    return Period("month", month_start(year, month), month_end(year, month))


def year_period(year: int) -> Period:
    return Period("year", date(year, 1, 1), date(year, 12, 31))


def week_period(day: date) -> Period:
    """Sunday to Saturday week containing ``day``."""
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return Period("week", start, start + timedelta(days=6))


def selected_months_periods(year: int, months: Iterable[int]) -> list[Period]:
    return [month_period(format_year_month(year, m)) for m in sorted(set(months))]


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    month: Optional[str] = None,
    year: Optional[int] = None,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "week":
        return week_period(today)
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "month":
        if not month:
            raise ValueError("Month period requires a month")
        return month_period(month)
    if period == "year":
        return year_period(year or today.year)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    # this month
    first = today.replace(day=1)
    return Period("this_month", first, month_end(first.year, first.month))
