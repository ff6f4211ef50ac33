import pandas as pd
import pytest

from config.settings import Settings
from snowcone import queries


def test_fetch_df_lowercases_columns_and_closes_cursor(warehouse):
    warehouse.queue(pd.DataFrame({"LOCATION_ID": [1], "NAME": ["Austin Downtown"]}))
    result = queries.fetch_df("SELECT 1", {"a": 1})
    assert list(result.df.columns) == ["location_id", "name"]
    assert result.sql == "SELECT 1"
    assert result.params == {"a": 1}
    assert warehouse.cursors[0].closed


def test_fetch_df_falls_back_to_fetchall(warehouse):
    warehouse.pandas_error = RuntimeError("254007: The result set is not Arrow-formatted")
    warehouse.queue(pd.DataFrame({"REVENUE": [12.5, 7.0]}))
    result = queries.fetch_df("SELECT REVENUE FROM T")
    assert result.df["revenue"].tolist() == [12.5, 7.0]


def test_fetch_df_reraises_other_errors(warehouse):
    warehouse.error = RuntimeError("warehouse offline")
    with pytest.raises(RuntimeError, match="warehouse offline"):
        queries.fetch_df("SELECT 1")
    assert warehouse.cursors[0].closed


def test_execute_scalar(warehouse):
    warehouse.queue(pd.DataFrame({"RESPONSE": ["hello"]}))
    assert queries.execute_scalar("SELECT 'hello'") == "hello"
    assert queries.execute_scalar("SELECT nothing") is None


def test_in_clause():
    clause, params = queries._in_clause("LOCATION_ID", "loc", [3, 7])
    assert clause == "AND LOCATION_ID IN (%(loc0)s, %(loc1)s)"
    assert params == {"loc0": 3, "loc1": 7}
    assert queries._in_clause("LOCATION_ID", "loc", None) == ("", {})


def test_get_daily_sales_binds_and_types(warehouse, settings):
    warehouse.queue(
        pd.DataFrame(
            {
                "LOCATION_ID": ["1"],
                "SALE_DATE": ["20393"],
                "ORDER_TYPE": ["dine-in"],
                "REVENUE": ["12.50"],
                "NUM_ORDERS": [3],
                "AVG_ORDER_VALUE": [None],
            }
        )
    )
    result = queries.get_daily_sales("2025-11-01", "2025-11-30", [1, 2], settings=settings)
    assert "LOCATION_ID IN (%(loc0)s, %(loc1)s)" in result.sql
    assert "SNOWCONE_DB.SNOWCONE.DAILY_SALES" in result.sql
    assert warehouse.last_params == {
        "start_date": "2025-11-01",
        "end_date": "2025-11-30",
        "loc0": 1,
        "loc1": 2,
    }
    row = result.df.iloc[0]
    assert row["sale_date"] == "2025-11-01"
    assert row["revenue"] == 12.5
    assert row["avg_order_value"] == 0.0
    assert row["location_id"] == 1


def test_get_daily_sales_without_location_filter(warehouse, settings):
    queries.get_daily_sales("2025-11-01", "2025-11-30", settings=settings)
    assert " IN (" not in warehouse.last_sql
    assert set(warehouse.last_params) == {"start_date", "end_date"}


def test_get_locations_active_filter_and_override(warehouse):
    cfg = Settings(table_overrides={"LOCATIONS": "OPS.PUBLIC.STORES"})
    warehouse.queue(pd.DataFrame({"LOCATION_ID": [1], "NAME": ["A"], "IS_ACTIVE": ["true"]}))
    result = queries.get_locations(settings=cfg)
    assert "FROM OPS.PUBLIC.STORES" in result.sql
    assert "IS_ACTIVE = TRUE" in result.sql
    assert result.df["is_active"].tolist() == [True]

    queries.get_locations(active_only=False, settings=cfg)
    assert "IS_ACTIVE = TRUE" not in warehouse.last_sql


def test_get_recent_reviews_binds_limit(warehouse, settings):
    queries.get_recent_reviews(4, limit=3, settings=settings)
    assert "LIMIT %(limit_rows)s" in warehouse.last_sql
    assert warehouse.last_params == {"location_id": 4, "limit_rows": 3}


def test_get_waste_by_location_category_filter(warehouse, settings):
    queries.get_waste_by_location("2025-11-01", "2025-11-30", "dairy", settings=settings)
    assert "i.CATEGORY = %(category)s" in warehouse.last_sql
    assert warehouse.last_params["category"] == "dairy"

    queries.get_waste_by_location("2025-11-01", "2025-11-30", settings=settings)
    assert "category" not in warehouse.last_params


def test_get_revenue_trend_location_filter(warehouse, settings):
    queries.get_revenue_trend("2025-11-01", "2025-11-30", location_id=5, settings=settings)
    assert "LOCATION_ID = %(location_id)s" in warehouse.last_sql
    assert warehouse.last_params["location_id"] == 5


def test_get_waste_timeseries_rejects_unknown_grain(warehouse, settings):
    with pytest.raises(ValueError):
        queries.get_waste_timeseries("2025-11-01", "2025-11-30", "year; DROP TABLE x", settings=settings)
    assert warehouse.calls == []


def test_get_waste_timeseries_truncates_by_grain(warehouse, settings):
    queries.get_waste_timeseries("2025-11-01", "2025-11-30", "week", settings=settings)
    assert "DATE_TRUNC('week', RECORD_DATE)" in warehouse.last_sql


def test_get_weekly_waste_summary_flags_threshold(warehouse, settings):
    warehouse.queue(
        pd.DataFrame(
            {
                "LOCATION_ID": [1, 2],
                "LOCATION_NAME": ["Austin Downtown", "Dallas Uptown"],
                "CITY": ["Austin", "Dallas"],
                "TOTAL_WASTE_COST": [1500.0, 300.0],
                "TOTAL_WASTE_UNITS": [90, 20],
                "CATEGORY_COUNT": [5, 3],
                "COST_LAST_1W": ["650.00", "120.00"],
                "COST_PREV_1W": ["400.00", "180.00"],
            }
        )
    )
    df = queries.get_weekly_waste_summary(settings=settings).df
    assert df["above_threshold"].tolist() == [True, False]
    assert df["recent_trend"].tolist() == ["declining", "improving"]


def test_get_cortex_balance_email_filter(warehouse, settings):
    queries.get_cortex_balance("ops@snowcone.test", settings=settings)
    assert "USER_EMAIL = %(user_email)s" in warehouse.last_sql
    assert "SNOWCONE_DB.SNOWCONE.CORTEX_BALANCE" in warehouse.last_sql
    queries.get_cortex_balance(settings=settings)
    assert warehouse.last_params == {}
