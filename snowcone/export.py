from __future__ import annotations

import datetime as dt
import re
from typing import Optional

import pandas as pd


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def _slug(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", str(text).lower()).strip("_")
    return slug or "export"


def export_filename(prefix: str, ext: str = "csv", today: Optional[dt.date] = None) -> str:
    today = today or dt.date.today()
    return f"{_slug(prefix)}_{today.isoformat()}.{ext.lstrip('.')}"
