from __future__ import annotations

import logging

import pandas as pd
import streamlit as st
from streamlit_plotly_events import plotly_events

from config.settings import get_settings
from snowcone import metrics
from snowcone.dates import DateRange, select_grain
from snowcone.queries import INVENTORY_CATEGORIES
from snowcone.viz import (
    build_waste_by_category,
    build_waste_by_location,
    build_waste_timeseries,
    trend_badge,
)
from views.data import (
    csv_download,
    load_waste_by_category,
    load_waste_by_location,
    load_waste_scores,
    load_waste_timeseries,
    load_weekly_waste,
)


logger = logging.getLogger(__name__)


def _location_frame(df: pd.DataFrame, threshold_pct: float) -> pd.DataFrame:
    df = df.rename(columns={"total_waste_cost": "waste_cost"}).copy()
    df["waste_rate"] = df["waste_rate"].fillna(0.0)
    df["above_threshold"] = df["waste_rate"] > threshold_pct
    return df


def render_waste(date_range: DateRange) -> None:
    settings = get_settings()
    threshold_pct = settings.waste_rate_threshold * 100
    start, end = date_range.as_params()
    with st.sidebar:
        st.subheader("Waste filters")
        category = st.selectbox(
            "Category",
            options=[None, *INVENTORY_CATEGORIES],
            format_func=lambda c: "All categories" if c is None else metrics.category_label(c),
            key="waste_category",
        )
        grain_options = ["auto", "day", "week", "month"]
        grain_choice = st.selectbox("Period", grain_options, index=0, key="waste_grain")
    grain = select_grain(date_range.start, date_range.end) if grain_choice == "auto" else grain_choice

    try:
        by_location = load_waste_by_location(start, end, category)
        by_category = load_waste_by_category(start, end)
        weekly = load_weekly_waste()
        waste_scores = load_waste_scores(start, end)
        timeseries = load_waste_timeseries(start, end, grain)
    except Exception as exc:
        logger.exception("waste load failed")
        st.error(f"Waste query failed: {exc}")
        return

    st.subheader("Waste rate by location")
    if by_location.empty:
        st.info("No inventory records in this range.")
    else:
        frame = _location_frame(by_location, threshold_pct)
        flagged = int(frame["above_threshold"].sum())
        st.caption(
            f"{flagged} of {len(frame)} locations above the {threshold_pct:.0f}% waste threshold."
        )
        clicked = plotly_events(
            build_waste_by_location(frame, threshold_pct),
            click_event=True,
            hover_event=False,
            select_event=False,
            key="waste_location_plot",
        )
        if clicked:
            name = clicked[0].get("x")
            row = frame[frame["name"] == name]
            if not row.empty:
                st.session_state["waste_selected_location"] = int(row.iloc[0]["location_id"])
        csv_download(frame, f"waste_by_location_{start}_{end}", key="waste_location_csv")

    st.subheader("Weekly waste cost")
    if weekly.empty:
        st.info("No weekly waste data.")
    else:
        selected_id = st.session_state.get("waste_selected_location")
        view = weekly
        if selected_id is not None:
            view = weekly[weekly["location_id"] == selected_id]
            if st.button("Show all locations", key="waste_clear_selection"):
                st.session_state.pop("waste_selected_location", None)
                st.rerun()
        over = weekly[weekly["above_threshold"]]
        if not over.empty:
            st.warning(
                f"{len(over)} location(s) over ${settings.weekly_waste_cost_threshold:,.0f} "
                f"in waste last week: {', '.join(over['location_name'].astype(str))}"
            )
        st.dataframe(
            view.assign(recent_trend=view["recent_trend"].map(trend_badge))[
                [
                    "location_name",
                    "city",
                    "cost_last_1w",
                    "cost_prev_1w",
                    "recent_trend",
                    "above_threshold",
                    "total_waste_cost",
                ]
            ],
            use_container_width=True,
            hide_index=True,
            column_config={
                "location_name": "Location",
                "city": "City",
                "cost_last_1w": st.column_config.NumberColumn("Last week", format="$%.2f"),
                "cost_prev_1w": st.column_config.NumberColumn("Prior week", format="$%.2f"),
                "recent_trend": "Trend",
                "above_threshold": "Over threshold",
                "total_waste_cost": st.column_config.NumberColumn("All time", format="$%.2f"),
            },
        )

    left, right = st.columns([1, 1])
    with left:
        st.subheader("By category")
        if by_category.empty:
            st.info("No category data.")
        else:
            chart_df = by_category.rename(columns={"units_wasted": "wasted", "waste_cost": "cost"})
            chart_df["label"] = chart_df["category"].map(metrics.category_label)
            st.plotly_chart(build_waste_by_category(chart_df), use_container_width=True)
    with right:
        st.subheader("Waste trend by location")
        trend_df = metrics.waste_scores_frame(waste_scores)
        if trend_df.empty:
            st.info("No locations.")
        else:
            trend_df = trend_df.sort_values("waste_rate", ascending=False)
            st.dataframe(
                trend_df.assign(waste_trend=trend_df["waste_trend"].map(trend_badge))[
                    ["name", "waste_rate", "waste_cost", "waste_trend"]
                ],
                use_container_width=True,
                hide_index=True,
                column_config={
                    "name": "Location",
                    "waste_rate": st.column_config.NumberColumn("Waste %", format="%.1f%%"),
                    "waste_cost": st.column_config.NumberColumn("Cost", format="$%.0f"),
                    "waste_trend": "Trend",
                },
            )

    st.subheader(f"Waste cost per {grain}")
    if category and not timeseries.empty:
        timeseries = timeseries[timeseries["category"] == category]
    st.plotly_chart(build_waste_timeseries(timeseries, grain), use_container_width=True)
    csv_download(timeseries, f"waste_timeseries_{start}_{end}", key="waste_timeseries_csv")
