from __future__ import annotations

import logging

import streamlit as st

from config.settings import get_settings
from snowcone import metrics
from snowcone.dates import DateRange
from snowcone.viz import build_comparison_lines, trend_badge
from views.data import csv_download, load_sales, load_scorecard_aggregates, load_scores, location_names


logger = logging.getLogger(__name__)


def render_compare(date_range: DateRange) -> None:
    settings = get_settings()
    start, end = date_range.as_params()
    try:
        names = location_names()
    except Exception as exc:
        logger.exception("location list failed")
        st.error(f"Location query failed: {exc}")
        return
    options = sorted(names, key=names.get)
    selected = st.multiselect(
        f"Locations (2-{settings.max_compare_locations})",
        options=options,
        default=options[:2],
        format_func=names.get,
        max_selections=settings.max_compare_locations,
        key="compare_locations",
    )
    st.session_state["compare_location_names"] = [names[loc_id] for loc_id in selected]
    if len(selected) < 2:
        st.info("Pick at least two locations to compare.")
        return

    try:
        sales = load_sales(start, end, tuple(selected))
        aggregates = load_scorecard_aggregates(start, end)
        scores = load_scores(start, end)
    except Exception as exc:
        logger.exception("compare load failed")
        st.error(f"Comparison query failed: {exc}")
        return

    st.subheader("Daily revenue")
    frame = metrics.comparison_frame(sales, selected, names)
    st.plotly_chart(build_comparison_lines(frame), use_container_width=True)
    csv_download(frame, f"compare_{start}_{end}", key="compare_csv")

    left, right = st.columns([1, 1])
    with left:
        st.subheader("Revenue by order type")
        st.dataframe(
            metrics.order_type_comparison(sales, selected, names),
            use_container_width=True,
            hide_index=True,
        )
    with right:
        st.subheader("Key metrics")
        by_id = {s.location_id: s for s in scores}
        kpis = aggregates[aggregates["location_id"].isin(selected)].copy()
        kpis["trend"] = kpis["location_id"].map(
            lambda loc_id: trend_badge(by_id[loc_id].trend) if loc_id in by_id else ""
        )
        kpis["avg_order_value"] = (
            kpis["total_revenue"] / kpis["total_orders"].where(kpis["total_orders"] > 0)
        ).round(2)
        st.dataframe(
            kpis[
                [
                    "name",
                    "total_revenue",
                    "total_orders",
                    "avg_order_value",
                    "avg_rating",
                    "review_count",
                    "total_waste_cost",
                    "trend",
                ]
            ].set_index("name").T,
            use_container_width=True,
        )
