from __future__ import annotations

import logging

import streamlit as st

from snowcone import metrics
from snowcone.dates import DateRange
from snowcone.viz import build_order_type_pie, build_revenue_trend
from views.data import csv_download, load_revenue_trend, location_names


logger = logging.getLogger(__name__)


def render_sales(date_range: DateRange) -> None:
    start, end = date_range.as_params()
    try:
        names = location_names()
    except Exception as exc:
        logger.exception("location list failed")
        st.error(f"Location query failed: {exc}")
        return
    with st.sidebar:
        st.subheader("Sales filters")
        location_id = st.selectbox(
            "Location",
            options=[None, *sorted(names, key=names.get)],
            format_func=lambda loc_id: "All locations" if loc_id is None else names[loc_id],
            key="sales_location",
        )
        by_order_type = st.toggle("Split by order type", value=True, key="sales_by_type")
        smooth = st.toggle("7-day moving average", value=False, key="sales_smooth")

    try:
        trend = load_revenue_trend(start, end, location_id)
    except Exception as exc:
        logger.exception("sales load failed")
        st.error(f"Sales query failed: {exc}")
        return
    if trend.empty:
        st.info("No sales in this range.")
        return

    if by_order_type:
        chart_df = trend.rename(columns={"sale_date": "date", "daily_total": "revenue"})
    else:
        chart_df = (
            trend.groupby("sale_date", as_index=False)["daily_total"]
            .sum()
            .rename(columns={"sale_date": "date", "daily_total": "revenue"})
            .sort_values("date")
        )
        if smooth:
            chart_df = metrics.add_moving_average(chart_df, "revenue", window=7)
    if smooth and by_order_type:
        st.caption("Smoothing applies to the combined line; turn off the order type split to see it.")

    title = names.get(location_id, "All locations") if location_id is not None else "All locations"
    st.subheader(f"Revenue: {title}")
    st.plotly_chart(build_revenue_trend(chart_df, by_order_type=by_order_type), use_container_width=True)

    totals = trend.groupby("order_type", as_index=False).agg(
        revenue=("daily_total", "sum"), orders=("daily_orders", "sum")
    )
    totals["label"] = totals["order_type"].map(metrics.order_type_label)
    totals["avg_order_value"] = (totals["revenue"] / totals["orders"].where(totals["orders"] > 0)).round(2)
    left, right = st.columns([1, 1])
    with left:
        st.plotly_chart(build_order_type_pie(totals), use_container_width=True)
    with right:
        st.dataframe(
            totals[["label", "revenue", "orders", "avg_order_value"]],
            use_container_width=True,
            hide_index=True,
            column_config={
                "label": "Order type",
                "revenue": st.column_config.NumberColumn("Revenue", format="$%.0f"),
                "orders": "Orders",
                "avg_order_value": st.column_config.NumberColumn("Avg order", format="$%.2f"),
            },
        )
    csv_download(trend, f"sales_{start}_{end}", key="sales_csv")
