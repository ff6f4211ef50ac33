from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Union

import pandas as pd


PRESETS = {
    "7d": "Last 7 days",
    "30d": "Last 30 days",
    "90d": "Last 90 days",
    "mtd": "Month to date",
    "qtd": "Quarter to date",
    "ytd": "Year to date",
    "all": "All time",
}
ALL_TIME_START = dt.date(2000, 1, 1)
GRAINS = ("day", "week", "month")

DateLike = Union[dt.date, str]


@dataclass(frozen=True)
class DateRange:
    start: dt.date
    end: dt.date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def as_params(self) -> tuple[str, str]:
        return self.start.isoformat(), self.end.isoformat()

    def label(self) -> str:
        return f"{self.start:%b %d, %Y} - {self.end:%b %d, %Y}"


def _as_date(value: DateLike) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def validate_range(start: DateLike, end: DateLike) -> DateRange:
    start_date, end_date = _as_date(start), _as_date(end)
    if start_date > end_date:
        raise ValueError("Start date must be before end date.")
    return DateRange(start_date, end_date)


def date_range_preset(preset: str, anchor: Optional[DateLike] = None) -> DateRange:
    end = _as_date(anchor) if anchor else dt.date.today()
    if preset == "7d":
        start = end - dt.timedelta(days=6)
    elif preset == "30d":
        start = end - dt.timedelta(days=29)
    elif preset == "90d":
        start = end - dt.timedelta(days=89)
    elif preset == "mtd":
        start = end.replace(day=1)
    elif preset == "qtd":
        start = dt.date(end.year, 3 * ((end.month - 1) // 3) + 1, 1)
    elif preset == "ytd":
        start = dt.date(end.year, 1, 1)
    elif preset == "all":
        start = min(ALL_TIME_START, end)
    else:
        raise ValueError(f"Unknown date preset: {preset}")
    return DateRange(start, end)


def previous_period(current: DateRange) -> DateRange:
    prev_end = current.start - dt.timedelta(days=1)
    prev_start = prev_end - dt.timedelta(days=current.days - 1)
    return DateRange(prev_start, prev_end)


def select_grain(start: DateLike, end: DateLike) -> str:
    span = (_as_date(end) - _as_date(start)).days + 1
    if span <= 31:
        return "day"
    if span <= 182:
        return "week"
    return "month"


def bucket_dates(values: pd.Series, grain: str) -> pd.Series:
    if grain not in GRAINS:
        raise ValueError(f"Unknown grain: {grain}")
    dates = pd.to_datetime(values, errors="coerce").dt.normalize()
    if grain == "week":
        return dates - pd.to_timedelta(dates.dt.weekday, unit="D")
    if grain == "month":
        return dates.dt.to_period("M").dt.start_time
    return dates


def period_label(value: DateLike, grain: str) -> str:
    date = pd.Timestamp(value)
    if grain == "month":
        return date.strftime("%b %Y")
    if grain == "week":
        return f"Wk of {date.strftime('%b %d')}"
    return date.strftime("%b %d")
