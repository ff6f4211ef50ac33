from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from config.settings import Settings, get_settings
from snowcone.coerce import coerce_numeric, normalize_dates, to_bool
from snowcone.dates import GRAINS
from snowcone.metrics import flag_weekly_waste
from snowcone.snowflake_conn import open_connection


logger = logging.getLogger(__name__)

ORDER_TYPES = ("dine-in", "takeout", "delivery")
INVENTORY_CATEGORIES = ("dairy", "produce", "cones_cups", "toppings", "syrups")


@dataclass
class QueryResult:
    df: pd.DataFrame
    sql: str
    params: Dict[str, Any]


def fetch_df(sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
    params = params or {}
    started = time.perf_counter()
    try:
        with open_connection() as conn:
            cur = conn.cursor()
            try:
                cur.execute(sql, params)
                try:
                    df = cur.fetch_pandas_all()
                except Exception as exc:
                    fallback_allowed = (
                        "254007" in str(exc) or type(exc).__name__ == "NotSupportedError"
                    )
                    if not fallback_allowed:
                        raise
                    rows = cur.fetchall()
                    cols = [desc[0] for desc in cur.description] if cur.description else []
                    df = pd.DataFrame(rows, columns=cols)
            finally:
                cur.close()
    except Exception:
        logger.exception(
            "query failed", extra={"data": {"sql_length": len(sql), "params": sorted(params)}}
        )
        raise
    df.columns = [str(c).lower() for c in df.columns]
    logger.debug(
        "query ok rows=%d elapsed_ms=%d",
        len(df),
        int((time.perf_counter() - started) * 1000),
        extra={"data": {"sql_length": len(sql), "params": sorted(params)}},
    )
    return QueryResult(df=df, sql=sql, params=params)


def execute_scalar(sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
    with open_connection() as conn:
        cur = conn.cursor()
        try:
            cur.execute(sql, params or {})
            row = cur.fetchone()
            return row[0] if row else None
        finally:
            cur.close()


def _in_clause(column: str, param_base: str, values: Optional[Iterable[Any]]) -> tuple[str, Dict[str, Any]]:
    values = list(values or [])
    if not values:
        return "", {}
    placeholders = []
    params: Dict[str, Any] = {}
    for idx, value in enumerate(values):
        key = f"{param_base}{idx}"
        placeholders.append(f"%({key})s")
        params[key] = value
    clause = f"AND {column} IN (" + ", ".join(placeholders) + ")"
    return clause, params


def _typed(result: QueryResult, numeric: Iterable[str] = (), dates: Iterable[str] = ()) -> QueryResult:
    df = coerce_numeric(result.df, numeric)
    df = normalize_dates(df, dates)
    if "location_id" in df.columns:
        df["location_id"] = pd.to_numeric(df["location_id"], errors="coerce").astype("Int64")
    result.df = df
    return result


def _settings(settings: Optional[Settings]) -> Settings:
    return settings or get_settings()


def get_locations(active_only: bool = True, settings: Optional[Settings] = None) -> QueryResult:
    cfg = _settings(settings)
    active_clause = "WHERE IS_ACTIVE = TRUE" if active_only else ""
    sql = f"""
        SELECT
          LOCATION_ID,
          NAME,
          CITY,
          STATE,
          ADDRESS,
          MANAGER_NAME,
          OPEN_DATE,
          SEATING_CAPACITY,
          IS_ACTIVE
        FROM {cfg.table("LOCATIONS")}
        {active_clause}
        ORDER BY NAME
    """
    result = _typed(fetch_df(sql), numeric=["seating_capacity"], dates=["open_date"])
    if "is_active" in result.df.columns:
        result.df["is_active"] = result.df["is_active"].map(to_bool)
    return result


def get_location_detail(location_id: int, settings: Optional[Settings] = None) -> QueryResult:
    cfg = _settings(settings)
    sql = f"""
        SELECT
          LOCATION_ID,
          NAME,
          CITY,
          STATE,
          ADDRESS,
          MANAGER_NAME,
          OPEN_DATE,
          SEATING_CAPACITY,
          IS_ACTIVE
        FROM {cfg.table("LOCATIONS")}
        WHERE LOCATION_ID = %(location_id)s
    """
    result = _typed(
        fetch_df(sql, {"location_id": int(location_id)}),
        numeric=["seating_capacity"],
        dates=["open_date"],
    )
    if "is_active" in result.df.columns:
        result.df["is_active"] = result.df["is_active"].map(to_bool)
    return result


def get_data_date_bounds(settings: Optional[Settings] = None) -> QueryResult:
    cfg = _settings(settings)
    sql = f"""
        SELECT
          MIN(SALE_DATE) AS min_date,
          MAX(SALE_DATE) AS max_date
        FROM {cfg.table("DAILY_SALES")}
        WHERE SALE_DATE IS NOT NULL
    """
    return _typed(fetch_df(sql), dates=["min_date", "max_date"])


def get_daily_sales(
    start_date: str,
    end_date: str,
    location_ids: Optional[list[int]] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    loc_clause, loc_params = _in_clause("LOCATION_ID", "loc", location_ids)
    sql = f"""
        SELECT
          SALE_ID,
          LOCATION_ID,
          SALE_DATE,
          ORDER_TYPE,
          REVENUE,
          NUM_ORDERS,
          AVG_ORDER_VALUE
        FROM {cfg.table("DAILY_SALES")}
        WHERE SALE_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        ORDER BY SALE_DATE
    """
    return _typed(
        fetch_df(sql, {"start_date": start_date, "end_date": end_date, **loc_params}),
        numeric=["revenue", "num_orders", "avg_order_value"],
        dates=["sale_date"],
    )


def get_reviews(
    start_date: str,
    end_date: str,
    location_ids: Optional[list[int]] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    loc_clause, loc_params = _in_clause("LOCATION_ID", "loc", location_ids)
    sql = f"""
        SELECT
          REVIEW_ID,
          LOCATION_ID,
          REVIEW_DATE,
          RATING,
          REVIEW_TEXT,
          CUSTOMER_NAME
        FROM {cfg.table("CUSTOMER_REVIEWS")}
        WHERE REVIEW_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        ORDER BY REVIEW_DATE DESC
    """
    return _typed(
        fetch_df(sql, {"start_date": start_date, "end_date": end_date, **loc_params}),
        numeric=["rating"],
        dates=["review_date"],
    )


def get_inventory(
    start_date: str,
    end_date: str,
    location_ids: Optional[list[int]] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    loc_clause, loc_params = _in_clause("LOCATION_ID", "loc", location_ids)
    sql = f"""
        SELECT
          INVENTORY_ID,
          LOCATION_ID,
          RECORD_DATE,
          CATEGORY,
          UNITS_RECEIVED,
          UNITS_USED,
          UNITS_WASTED,
          WASTE_COST
        FROM {cfg.table("INVENTORY")}
        WHERE RECORD_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        ORDER BY RECORD_DATE
    """
    return _typed(
        fetch_df(sql, {"start_date": start_date, "end_date": end_date, **loc_params}),
        numeric=["units_received", "units_used", "units_wasted", "waste_cost"],
        dates=["record_date"],
    )


def get_scorecard_aggregates(
    start_date: str,
    end_date: str,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    sql = f"""
        SELECT
          l.LOCATION_ID,
          l.NAME,
          l.CITY,
          l.MANAGER_NAME,
          l.SEATING_CAPACITY,
          COALESCE(s.TOTAL_REVENUE, 0) AS total_revenue,
          COALESCE(s.TOTAL_ORDERS, 0) AS total_orders,
          COALESCE(r.AVG_RATING, 0) AS avg_rating,
          COALESCE(r.REVIEW_COUNT, 0) AS review_count,
          COALESCE(i.TOTAL_WASTE_COST, 0) AS total_waste_cost
        FROM {cfg.table("LOCATIONS")} l
        LEFT JOIN (
          SELECT LOCATION_ID,
                 SUM(REVENUE) AS TOTAL_REVENUE,
                 SUM(NUM_ORDERS) AS TOTAL_ORDERS
          FROM {cfg.table("DAILY_SALES")}
          WHERE SALE_DATE BETWEEN %(start_date)s AND %(end_date)s
          GROUP BY LOCATION_ID
        ) s ON l.LOCATION_ID = s.LOCATION_ID
        LEFT JOIN (
          SELECT LOCATION_ID,
                 AVG(RATING) AS AVG_RATING,
                 COUNT(*) AS REVIEW_COUNT
          FROM {cfg.table("CUSTOMER_REVIEWS")}
          WHERE REVIEW_DATE BETWEEN %(start_date)s AND %(end_date)s
          GROUP BY LOCATION_ID
        ) r ON l.LOCATION_ID = r.LOCATION_ID
        LEFT JOIN (
          SELECT LOCATION_ID,
                 SUM(WASTE_COST) AS TOTAL_WASTE_COST
          FROM {cfg.table("INVENTORY")}
          WHERE RECORD_DATE BETWEEN %(start_date)s AND %(end_date)s
          GROUP BY LOCATION_ID
        ) i ON l.LOCATION_ID = i.LOCATION_ID
        WHERE l.IS_ACTIVE = TRUE
        ORDER BY total_revenue DESC
    """
    return _typed(
        fetch_df(sql, {"start_date": start_date, "end_date": end_date}),
        numeric=[
            "seating_capacity",
            "total_revenue",
            "total_orders",
            "avg_rating",
            "review_count",
            "total_waste_cost",
        ],
    )


def get_revenue_trend(
    start_date: str,
    end_date: str,
    location_id: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    params: Dict[str, Any] = {"start_date": start_date, "end_date": end_date}
    loc_clause = ""
    if location_id is not None:
        loc_clause = "AND LOCATION_ID = %(location_id)s"
        params["location_id"] = int(location_id)
    sql = f"""
        SELECT
          SALE_DATE AS sale_date,
          ORDER_TYPE AS order_type,
          SUM(REVENUE) AS daily_total,
          SUM(NUM_ORDERS) AS daily_orders
        FROM {cfg.table("DAILY_SALES")}
        WHERE SALE_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        GROUP BY SALE_DATE, ORDER_TYPE
        ORDER BY SALE_DATE ASC
    """
    return _typed(
        fetch_df(sql, params),
        numeric=["daily_total", "daily_orders"],
        dates=["sale_date"],
    )


def get_company_daily_average(
    start_date: str,
    end_date: str,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    sql = f"""
        SELECT
          SALE_DATE AS sale_date,
          SUM(REVENUE) / NULLIF(COUNT(DISTINCT LOCATION_ID), 0) AS avg_daily_revenue
        FROM {cfg.table("DAILY_SALES")}
        WHERE SALE_DATE BETWEEN %(start_date)s AND %(end_date)s
        GROUP BY SALE_DATE
        ORDER BY SALE_DATE ASC
    """
    return _typed(
        fetch_df(sql, {"start_date": start_date, "end_date": end_date}),
        numeric=["avg_daily_revenue"],
        dates=["sale_date"],
    )


def get_sales_by_order_type(
    start_date: str,
    end_date: str,
    location_id: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    params: Dict[str, Any] = {"start_date": start_date, "end_date": end_date}
    loc_clause = ""
    if location_id is not None:
        loc_clause = "AND s.LOCATION_ID = %(location_id)s"
        params["location_id"] = int(location_id)
    sql = f"""
        SELECT
          s.ORDER_TYPE AS order_type,
          ROUND(SUM(s.REVENUE), 2) AS total_revenue,
          SUM(s.NUM_ORDERS) AS total_orders
        FROM {cfg.table("DAILY_SALES")} s
        WHERE s.SALE_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        GROUP BY s.ORDER_TYPE
        ORDER BY total_revenue DESC
    """
    return _typed(fetch_df(sql, params), numeric=["total_revenue", "total_orders"])


def get_recent_reviews(
    location_id: int,
    limit: int = 5,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    sql = f"""
        SELECT
          REVIEW_ID,
          REVIEW_DATE,
          RATING,
          REVIEW_TEXT,
          CUSTOMER_NAME
        FROM {cfg.table("CUSTOMER_REVIEWS")}
        WHERE LOCATION_ID = %(location_id)s
        ORDER BY REVIEW_DATE DESC
        LIMIT %(limit_rows)s
    """
    return _typed(
        fetch_df(sql, {"location_id": int(location_id), "limit_rows": int(limit)}),
        numeric=["rating"],
        dates=["review_date"],
    )


def get_waste_by_location(
    start_date: str,
    end_date: str,
    category: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    params: Dict[str, Any] = {"start_date": start_date, "end_date": end_date}
    category_clause = ""
    if category:
        category_clause = "AND i.CATEGORY = %(category)s"
        params["category"] = category
    sql = f"""
        SELECT
          l.LOCATION_ID,
          l.NAME,
          SUM(i.WASTE_COST) AS total_waste_cost,
          SUM(i.UNITS_WASTED) AS total_units_wasted,
          SUM(i.UNITS_RECEIVED) AS total_units_received,
          SUM(i.UNITS_WASTED) / NULLIF(SUM(i.UNITS_RECEIVED), 0) * 100 AS waste_rate
        FROM {cfg.table("INVENTORY")} i
        JOIN {cfg.table("LOCATIONS")} l ON l.LOCATION_ID = i.LOCATION_ID
        WHERE i.RECORD_DATE BETWEEN %(start_date)s AND %(end_date)s
          {category_clause}
        GROUP BY l.LOCATION_ID, l.NAME
        ORDER BY total_waste_cost DESC
    """
    return _typed(
        fetch_df(sql, params),
        numeric=["total_waste_cost", "total_units_wasted", "total_units_received", "waste_rate"],
    )


def get_waste_by_category(
    start_date: str,
    end_date: str,
    location_id: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    params: Dict[str, Any] = {"start_date": start_date, "end_date": end_date}
    loc_clause = ""
    if location_id is not None:
        loc_clause = "AND i.LOCATION_ID = %(location_id)s"
        params["location_id"] = int(location_id)
    sql = f"""
        SELECT
          i.CATEGORY AS category,
          SUM(i.UNITS_WASTED) AS units_wasted,
          SUM(i.WASTE_COST) AS waste_cost
        FROM {cfg.table("INVENTORY")} i
        WHERE i.RECORD_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        GROUP BY i.CATEGORY
        ORDER BY waste_cost DESC
    """
    return _typed(fetch_df(sql, params), numeric=["units_wasted", "waste_cost"])


def get_location_inventory_summary(
    location_id: int,
    start_date: str,
    end_date: str,
    settings: Optional[Settings] = None,
) -> QueryResult:
    cfg = _settings(settings)
    sql = f"""
        SELECT
          CATEGORY AS category,
          SUM(UNITS_RECEIVED) AS total_units_received,
          SUM(UNITS_USED) AS total_units_used,
          SUM(UNITS_WASTED) AS total_units_wasted,
          ROUND(SUM(WASTE_COST), 2) AS waste_cost_total,
          ROUND(100.0 * SUM(UNITS_WASTED) / NULLIF(SUM(UNITS_RECEIVED), 0), 2) AS waste_percentage
        FROM {cfg.table("INVENTORY")}
        WHERE LOCATION_ID = %(location_id)s
          AND RECORD_DATE BETWEEN %(start_date)s AND %(end_date)s
        GROUP BY CATEGORY
        ORDER BY waste_cost_total DESC
    """
    return _typed(
        fetch_df(
            sql,
            {"location_id": int(location_id), "start_date": start_date, "end_date": end_date},
        ),
        numeric=[
            "total_units_received",
            "total_units_used",
            "total_units_wasted",
            "waste_cost_total",
            "waste_percentage",
        ],
    )


def get_weekly_waste_summary(settings: Optional[Settings] = None) -> QueryResult:
    """Last-week vs prior-week waste cost per location.

    Each location's window is anchored to its own latest RECORD_DATE so a
    store that reports late is not compared against an empty week.
    """
    cfg = _settings(settings)
    sql = f"""
        WITH last_record AS (
          SELECT LOCATION_ID, MAX(RECORD_DATE) AS LAST_RECORD_DATE
          FROM {cfg.table("INVENTORY")}
          GROUP BY LOCATION_ID
        ),
        inv_agg AS (
          SELECT
            i.LOCATION_ID,
            SUM(i.UNITS_WASTED) AS TOTAL_WASTE_UNITS,
            ROUND(SUM(i.WASTE_COST), 2) AS TOTAL_WASTE_COST,
            COUNT(DISTINCT i.CATEGORY) AS CATEGORY_COUNT,
            SUM(CASE WHEN i.RECORD_DATE > DATEADD(day, -7, lr.LAST_RECORD_DATE)
                     THEN i.WASTE_COST ELSE 0 END) AS COST_LAST_1W,
            SUM(CASE WHEN i.RECORD_DATE > DATEADD(day, -14, lr.LAST_RECORD_DATE)
                      AND i.RECORD_DATE <= DATEADD(day, -7, lr.LAST_RECORD_DATE)
                     THEN i.WASTE_COST ELSE 0 END) AS COST_PREV_1W
          FROM {cfg.table("INVENTORY")} i
          JOIN last_record lr ON i.LOCATION_ID = lr.LOCATION_ID
          GROUP BY i.LOCATION_ID
        )
        SELECT
          ia.LOCATION_ID AS location_id,
          l.NAME AS location_name,
          l.CITY AS city,
          ia.TOTAL_WASTE_COST AS total_waste_cost,
          ia.TOTAL_WASTE_UNITS AS total_waste_units,
          ia.CATEGORY_COUNT AS category_count,
          ia.COST_LAST_1W AS cost_last_1w,
          ia.COST_PREV_1W AS cost_prev_1w
        FROM inv_agg ia
        JOIN {cfg.table("LOCATIONS")} l ON ia.LOCATION_ID = l.LOCATION_ID
        ORDER BY ia.TOTAL_WASTE_COST DESC
    """
    result = _typed(
        fetch_df(sql),
        numeric=[
            "total_waste_cost",
            "total_waste_units",
            "category_count",
            "cost_last_1w",
            "cost_prev_1w",
        ],
    )
    result.df = flag_weekly_waste(result.df, cfg.weekly_waste_cost_threshold)
    return result


def get_waste_timeseries(
    start_date: str,
    end_date: str,
    grain: str,
    location_id: Optional[int] = None,
    settings: Optional[Settings] = None,
) -> QueryResult:
    if grain not in GRAINS:
        raise ValueError(f"Unsupported grain: {grain}")
    cfg = _settings(settings)
    params: Dict[str, Any] = {"start_date": start_date, "end_date": end_date}
    loc_clause = ""
    if location_id is not None:
        loc_clause = "AND LOCATION_ID = %(location_id)s"
        params["location_id"] = int(location_id)
    bucket_expr = f"DATE_TRUNC('{grain}', RECORD_DATE)"
    sql = f"""
        SELECT
          {bucket_expr} AS period_start,
          CATEGORY AS category,
          SUM(UNITS_WASTED) AS units_wasted,
          SUM(WASTE_COST) AS waste_cost
        FROM {cfg.table("INVENTORY")}
        WHERE RECORD_DATE BETWEEN %(start_date)s AND %(end_date)s
          {loc_clause}
        GROUP BY {bucket_expr}, CATEGORY
        ORDER BY period_start, category
    """
    return _typed(
        fetch_df(sql, params),
        numeric=["units_wasted", "waste_cost"],
        dates=["period_start"],
    )


def get_cortex_balance(user_email: str = "", settings: Optional[Settings] = None) -> QueryResult:
    cfg = _settings(settings)
    params: Dict[str, Any] = {}
    email_clause = ""
    if user_email:
        email_clause = "WHERE USER_EMAIL = %(user_email)s"
        params["user_email"] = user_email
    sql = f"""
        SELECT
          USER_EMAIL,
          REMAINING_CREDITS,
          TOTAL_SPENT,
          TOTAL_CALLS
        FROM {cfg.database}.{cfg.schema}.CORTEX_BALANCE
        {email_clause}
    """
    return _typed(
        fetch_df(sql, params),
        numeric=["remaining_credits", "total_spent", "total_calls"],
    )
