from __future__ import annotations

import logging

import streamlit as st

from snowcone import metrics
from snowcone.coerce import to_number
from snowcone.dates import DateRange
from snowcone.llm import summarize_location
from snowcone.viz import build_order_type_pie, build_rating_distribution, build_revenue_trend, trend_badge
from views.data import (
    csv_download,
    load_company_average,
    load_inventory_summary,
    load_location_detail,
    load_recent_reviews,
    load_reviews,
    load_revenue_trend,
    load_sales_by_order_type,
    load_scores,
    location_names,
)


logger = logging.getLogger(__name__)


def _pick_location(names: dict) -> int | None:
    options = sorted(names, key=names.get)
    if not options:
        return None
    if st.session_state.get("detail_location_select") not in options:
        current = st.session_state.get("selected_location_id")
        st.session_state["detail_location_select"] = current if current in options else options[0]
    location_id = st.selectbox(
        "Location",
        options=options,
        format_func=names.get,
        key="detail_location_select",
    )
    st.session_state["selected_location_id"] = location_id
    return location_id


def render_location_detail(date_range: DateRange) -> None:
    start, end = date_range.as_params()
    try:
        names = location_names()
    except Exception as exc:
        logger.exception("location list failed")
        st.error(f"Location query failed: {exc}")
        return
    location_id = _pick_location(names)
    if location_id is None:
        st.info("No active locations found.")
        return

    try:
        detail = load_location_detail(location_id)
        trend = load_revenue_trend(start, end, location_id)
        company = load_company_average(start, end)
        mix = load_sales_by_order_type(start, end, location_id)
        inventory = load_inventory_summary(location_id, start, end)
        recent = load_recent_reviews(location_id, 5)
        reviews = load_reviews(start, end, (location_id,))
        scores = load_scores(start, end)
    except Exception as exc:
        logger.exception("location detail load failed")
        st.error(f"Location query failed: {exc}")
        return

    if detail.empty:
        st.warning("Location not found.")
        return
    profile = detail.iloc[0]
    score = next((s for s in scores if s.location_id == location_id), None)

    st.subheader(str(profile["name"]))
    st.caption(
        f"{profile.get('address') or ''}, {profile.get('city') or ''}, {profile.get('state') or ''} · "
        f"Manager: {profile.get('manager_name') or 'n/a'} · Opened {profile.get('open_date') or 'n/a'} · "
        f"Seats {int(to_number(profile.get('seating_capacity')))}"
    )

    if score is not None:
        cols = st.columns(4)
        cols[0].metric("Revenue", f"${score.total_revenue:,.0f}")
        cols[1].metric(
            "Avg rating",
            f"{score.avg_rating:.2f}" if score.review_count else "n/a",
            help=f"{score.review_count} reviews in range",
        )
        cols[2].metric("Trend", trend_badge(score.trend), f"{score.trend_percent:+.1f}%")
        cols[3].metric("Attention", ", ".join(score.attention_reasons) or "None")

    st.subheader("Revenue vs company average")
    daily = (
        trend.groupby("sale_date", as_index=False)["daily_total"].sum()
        .rename(columns={"sale_date": "date", "daily_total": "revenue"})
        if not trend.empty
        else trend
    )
    st.plotly_chart(build_revenue_trend(daily, company_trend=company), use_container_width=True)

    left, right = st.columns([1, 1])
    with left:
        st.subheader("Order type mix")
        if mix.empty:
            st.info("No sales in this range.")
        else:
            pie_df = mix.rename(columns={"total_revenue": "revenue"})
            pie_df["label"] = pie_df["order_type"].map(metrics.order_type_label)
            st.plotly_chart(build_order_type_pie(pie_df), use_container_width=True)
    with right:
        st.subheader("Ratings")
        st.plotly_chart(build_rating_distribution(reviews), use_container_width=True)

    st.subheader("Inventory")
    if inventory.empty:
        st.info("No inventory records in this range.")
    else:
        st.dataframe(
            inventory.assign(category=inventory["category"].map(metrics.category_label)),
            use_container_width=True,
            hide_index=True,
            column_config={
                "category": "Category",
                "total_units_received": "Received",
                "total_units_used": "Used",
                "total_units_wasted": "Wasted",
                "waste_cost_total": st.column_config.NumberColumn("Waste cost", format="$%.2f"),
                "waste_percentage": st.column_config.NumberColumn("Waste %", format="%.1f%%"),
            },
        )
        csv_download(inventory, f"{profile['name']}_inventory", key="detail_inventory_csv")

    st.subheader("Recent reviews")
    if recent.empty:
        st.caption("No reviews yet.")
    for review in recent.itertuples(index=False):
        st.markdown(
            f"**{float(review.rating):.1f}★** {review.review_text}  \n"
            f"<small>{review.customer_name or 'Anonymous'} · {review.review_date}</small>",
            unsafe_allow_html=True,
        )

    cache = st.session_state.setdefault("location_summary_cache", {})
    cache_key = f"{location_id}|{start}|{end}"
    if st.button("Summarize with AI", key="detail_summarize"):
        with st.spinner("Summarizing location..."):
            try:
                stats = {
                    "revenue": f"${score.total_revenue:,.0f}" if score else "n/a",
                    "avg rating": f"{score.avg_rating:.2f}" if score and score.review_count else "n/a",
                    "trend": f"{score.trend} ({score.trend_percent:+.1f}%)" if score else "n/a",
                    "flags": ", ".join(score.attention_reasons) if score else "none",
                    "waste cost": f"${inventory['waste_cost_total'].sum():,.0f}"
                    if not inventory.empty
                    else "n/a",
                    "range": date_range.label(),
                }
                cache[cache_key] = summarize_location(
                    str(profile["name"]),
                    stats,
                    recent["review_text"].astype(str).tolist() if not recent.empty else [],
                )
            except Exception as exc:
                logger.exception("location summary failed")
                st.error(f"LLM summary failed: {exc}")
    if cache_key in cache:
        st.info(cache[cache_key])
