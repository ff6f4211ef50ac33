from __future__ import annotations

import logging

import streamlit as st

from snowcone import metrics
from snowcone.dates import DateRange
from snowcone.viz import build_scorecard_bar, trend_badge
from views.data import csv_download, load_scores


logger = logging.getLogger(__name__)

SORT_LABELS = {
    "revenue": "Revenue",
    "rating": "Rating",
    "trend": "Trend",
    "attention": "Attention flags",
    "name": "Name",
}
BAR_METRICS = {
    "total_revenue": "Revenue",
    "avg_rating": "Avg rating",
    "trend_percent": "Trend %",
}


def open_location(location_id: int) -> None:
    st.session_state["selected_location_id"] = int(location_id)
    st.session_state["detail_location_select"] = int(location_id)
    st.session_state["pending_view"] = "Location detail"
    st.rerun()


def render_scorecard(date_range: DateRange) -> None:
    start, end = date_range.as_params()
    try:
        scores = load_scores(start, end)
    except Exception as exc:
        logger.exception("scorecard load failed")
        st.error(f"Scorecard query failed: {exc}")
        return
    if not scores:
        st.info("No active locations found.")
        return

    controls = st.columns([2, 1, 2])
    sort_key = controls[0].selectbox(
        "Sort by",
        options=list(SORT_LABELS),
        format_func=SORT_LABELS.get,
        key="scorecard_sort_key",
    )
    descending = controls[1].toggle("Descending", value=sort_key != "name", key="scorecard_desc")
    only_flagged = controls[2].checkbox("Only locations needing attention", key="scorecard_flagged")

    ordered = metrics.sort_scorecard(scores, sort_key, descending)
    if only_flagged:
        ordered = [s for s in ordered if s.needs_attention]

    table = metrics.scores_frame(ordered)
    display = table.assign(
        trend=table["trend"].map(trend_badge),
        flag=table["needs_attention"].map(lambda flagged: "⚠️" if flagged else ""),
    )
    st.dataframe(
        display[
            [
                "flag",
                "name",
                "city",
                "total_revenue",
                "avg_rating",
                "review_count",
                "trend",
                "trend_percent",
                "attention_reasons",
            ]
        ],
        use_container_width=True,
        hide_index=True,
        column_config={
            "flag": st.column_config.TextColumn("", width="small"),
            "name": "Location",
            "city": "City",
            "total_revenue": st.column_config.NumberColumn("Revenue", format="$%.0f"),
            "avg_rating": st.column_config.NumberColumn("Rating", format="%.2f"),
            "review_count": "Reviews",
            "trend": "Trend",
            "trend_percent": st.column_config.NumberColumn("Trend %", format="%+.1f%%"),
            "attention_reasons": "Attention",
        },
    )
    csv_download(table, f"scorecard_{start}_{end}", key="scorecard_csv")

    st.subheader("Compare locations")
    metric = st.radio(
        "Metric",
        options=list(BAR_METRICS),
        format_func=BAR_METRICS.get,
        horizontal=True,
        key="scorecard_bar_metric",
    )
    event = st.plotly_chart(
        build_scorecard_bar(table, metric),
        use_container_width=True,
        on_select="rerun",
        selection_mode="points",
        key="scorecard_bar",
    )
    st.caption("Click a bar to open that location.")
    if event and event.selection and event.selection.points:
        custom = event.selection.points[0].get("customdata") or []
        click = (metric, custom[0]) if custom else None
        # The selection survives reruns; only act on a new click.
        if click and click != st.session_state.get("scorecard_last_click"):
            st.session_state["scorecard_last_click"] = click
            open_location(int(custom[0]))
