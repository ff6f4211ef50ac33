from __future__ import annotations

import logging

import streamlit as st

from config.settings import get_settings
from snowcone import metrics
from snowcone.dates import DateRange, previous_period
from snowcone.viz import build_order_type_pie, build_revenue_trend, build_waste_by_category, trend_badge
from views.data import load_inventory, load_sales, load_scores


logger = logging.getLogger(__name__)


def _delta(current: float, previous: float) -> str | None:
    change = metrics.pct_change(current, previous)
    return f"{change:+.1f}%" if change is not None else None


def render_overview(date_range: DateRange) -> None:
    settings = get_settings()
    start, end = date_range.as_params()
    prev_start, prev_end = previous_period(date_range).as_params()
    try:
        with st.spinner("Loading overview..."):
            scores = load_scores(start, end)
            prev_scores = load_scores(prev_start, prev_end)
            inventory = load_inventory(start, end)
            prev_inventory = load_inventory(prev_start, prev_end)
            sales = load_sales(start, end)
    except Exception as exc:
        logger.exception("overview load failed")
        st.error(f"Overview query failed: {exc}")
        return

    current = metrics.summary_stats(scores, inventory)
    previous = metrics.summary_stats(prev_scores, prev_inventory)

    cols = st.columns(4)
    cols[0].metric(
        "Total revenue",
        f"${current.total_revenue:,.0f}",
        _delta(current.total_revenue, previous.total_revenue),
    )
    cols[1].metric(
        "Avg rating",
        f"{current.avg_rating:.2f}" if current.avg_rating else "n/a",
        f"{current.avg_rating - previous.avg_rating:+.2f}"
        if current.avg_rating and previous.avg_rating
        else None,
    )
    cols[2].metric(
        "Waste cost",
        f"${current.total_waste_cost:,.0f}",
        _delta(current.total_waste_cost, previous.total_waste_cost),
        delta_color="inverse",
    )
    cols[3].metric("Needs attention", current.locations_needing_attention)

    left, right = st.columns([2, 1])
    with left:
        st.subheader("Revenue trend")
        trend = metrics.daily_revenue_trend(sales)
        period_avg = float(trend["revenue"].mean()) if not trend.empty else None
        st.plotly_chart(
            build_revenue_trend(trend, company_avg=period_avg, avg_label="Period avg"),
            use_container_width=True,
        )
    with right:
        st.subheader("Order type mix")
        mix = metrics.sales_by_order_type(sales)
        if mix.empty:
            st.info("No sales in this range.")
        else:
            st.plotly_chart(build_order_type_pie(mix), use_container_width=True)

    left, right = st.columns([1, 1])
    with left:
        st.subheader("Waste by category")
        by_category = metrics.waste_by_category(inventory)
        if by_category.empty:
            st.info("No inventory records in this range.")
        else:
            st.plotly_chart(build_waste_by_category(by_category), use_container_width=True)
    with right:
        st.subheader("Locations needing attention")
        flagged = [s for s in metrics.sort_scorecard(scores, "attention") if s.needs_attention]
        if not flagged:
            st.success("All locations are within thresholds.")
        for score in flagged:
            st.markdown(
                f"**{score.name}** ({score.city}) · {trend_badge(score.trend)} · "
                f"{', '.join(score.attention_reasons)}"
            )
        st.caption(
            f"Flags: rating below {settings.low_rating_threshold}, sales down more than "
            f"{settings.decline_attention_pct:.0f}%, waste above "
            f"{settings.waste_rate_threshold * 100:.0f}% of units received."
        )
