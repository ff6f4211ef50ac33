from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pandas as pd
import streamlit as st

from config.settings import get_settings
from snowcone import metrics, queries
from snowcone.export import export_filename, to_csv_bytes


CACHE_TTL = get_settings().query_cache_ttl_s


@st.cache_data(ttl=CACHE_TTL)
def load_locations() -> pd.DataFrame:
    return queries.get_locations().df


def location_names() -> Dict[int, str]:
    df = load_locations()
    if df.empty:
        return {}
    return {int(row.location_id): str(row.name) for row in df.itertuples(index=False)}


@st.cache_data(ttl=CACHE_TTL)
def load_date_bounds() -> Tuple[Optional[str], Optional[str]]:
    df = queries.get_data_date_bounds().df
    if df.empty:
        return None, None
    row = df.iloc[0]
    return row.get("min_date"), row.get("max_date")


@st.cache_data(ttl=CACHE_TTL)
def load_sales(start: str, end: str, location_ids: Tuple[int, ...] = ()) -> pd.DataFrame:
    return queries.get_daily_sales(start, end, list(location_ids) or None).df


@st.cache_data(ttl=CACHE_TTL)
def load_reviews(start: str, end: str, location_ids: Tuple[int, ...] = ()) -> pd.DataFrame:
    return queries.get_reviews(start, end, list(location_ids) or None).df


@st.cache_data(ttl=CACHE_TTL)
def load_inventory(start: str, end: str, location_ids: Tuple[int, ...] = ()) -> pd.DataFrame:
    return queries.get_inventory(start, end, list(location_ids) or None).df


@st.cache_data(ttl=CACHE_TTL)
def load_scorecard_aggregates(start: str, end: str) -> pd.DataFrame:
    return queries.get_scorecard_aggregates(start, end).df


@st.cache_data(ttl=CACHE_TTL)
def load_revenue_trend(start: str, end: str, location_id: Optional[int] = None) -> pd.DataFrame:
    return queries.get_revenue_trend(start, end, location_id).df


@st.cache_data(ttl=CACHE_TTL)
def load_company_average(start: str, end: str) -> pd.DataFrame:
    return queries.get_company_daily_average(start, end).df


@st.cache_data(ttl=CACHE_TTL)
def load_sales_by_order_type(start: str, end: str, location_id: Optional[int] = None) -> pd.DataFrame:
    return queries.get_sales_by_order_type(start, end, location_id).df


@st.cache_data(ttl=CACHE_TTL)
def load_waste_by_location(start: str, end: str, category: Optional[str] = None) -> pd.DataFrame:
    return queries.get_waste_by_location(start, end, category).df


@st.cache_data(ttl=CACHE_TTL)
def load_waste_by_category(start: str, end: str, location_id: Optional[int] = None) -> pd.DataFrame:
    return queries.get_waste_by_category(start, end, location_id).df


@st.cache_data(ttl=CACHE_TTL)
def load_location_detail(location_id: int) -> pd.DataFrame:
    return queries.get_location_detail(location_id).df


@st.cache_data(ttl=CACHE_TTL)
def load_recent_reviews(location_id: int, limit: int = 5) -> pd.DataFrame:
    return queries.get_recent_reviews(location_id, limit).df


@st.cache_data(ttl=CACHE_TTL)
def load_inventory_summary(location_id: int, start: str, end: str) -> pd.DataFrame:
    return queries.get_location_inventory_summary(location_id, start, end).df


@st.cache_data(ttl=CACHE_TTL)
def load_weekly_waste() -> pd.DataFrame:
    return queries.get_weekly_waste_summary().df


@st.cache_data(ttl=CACHE_TTL)
def load_waste_timeseries(
    start: str, end: str, grain: str, location_id: Optional[int] = None
) -> pd.DataFrame:
    return queries.get_waste_timeseries(start, end, grain, location_id).df


@st.cache_data(ttl=60)
def load_cortex_balance(user_email: str) -> pd.DataFrame:
    return queries.get_cortex_balance(user_email).df


@st.cache_data(ttl=CACHE_TTL)
def load_scores(start: str, end: str) -> List[metrics.LocationScore]:
    settings = get_settings()
    return metrics.compute_location_scores(
        load_locations(),
        load_sales(start, end),
        load_reviews(start, end),
        load_inventory(start, end),
        settings,
    )


@st.cache_data(ttl=CACHE_TTL)
def load_waste_scores(start: str, end: str) -> List[metrics.WasteScore]:
    return metrics.compute_waste_scores(load_locations(), load_inventory(start, end), get_settings())


def csv_download(df: pd.DataFrame, prefix: str, key: str) -> None:
    st.download_button(
        "Download CSV",
        data=to_csv_bytes(df),
        file_name=export_filename(prefix),
        mime="text/csv",
        key=key,
        disabled=df.empty,
    )
