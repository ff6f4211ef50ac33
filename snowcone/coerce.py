from __future__ import annotations

import datetime as dt
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import pandas as pd


EPOCH = dt.date(1970, 1, 1)
_DIGITS = re.compile(r"^\d+$")


def to_number(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return default if math.isnan(number) or math.isinf(number) else number
    text = str(value).strip().replace(",", "").replace("$", "")
    if not text:
        return default
    try:
        number = float(Decimal(text))
    except (InvalidOperation, ValueError):
        return default
    return default if math.isnan(number) or math.isinf(number) else number


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "t", "yes", "y"}
    if value is None:
        return False
    try:
        if pd.isna(value):
            return False
    except (TypeError, ValueError):
        pass
    return bool(value)


def coerce_numeric(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    df = df.copy()
    for col in columns:
        if col in df.columns:
            df[col] = df[col].map(to_number).astype(float)
    return df


def parse_warehouse_date(value: Any) -> Optional[dt.date]:
    """Parse the date shapes the warehouse hands back.

    DATE columns can arrive as epoch-day counts ("20393" is 2025-11-01),
    compact YYYYMMDD strings, ISO dates, timestamps, or already-parsed
    date objects. Anything else is None.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or not value.is_integer()):
            return None
        value = str(int(value))

    text = str(value).strip()
    if not text:
        return None
    if _DIGITS.match(text):
        number = int(text)
        if 10000 < number < 100000:
            return EPOCH + dt.timedelta(days=number)
        if len(text) == 8:
            try:
                return dt.datetime.strptime(text, "%Y%m%d").date()
            except ValueError:
                return None
        return None
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        pass
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def to_iso_date(value: Any) -> Optional[str]:
    parsed = parse_warehouse_date(value)
    return parsed.isoformat() if parsed else None


def normalize_dates(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    df = df.copy()
    for col in columns:
        if col in df.columns:
            df[col] = df[col].map(to_iso_date)
    return df
