from __future__ import annotations

import logging

import streamlit as st

from snowcone import metrics
from snowcone.dates import DateRange
from snowcone.llm import generate_briefing
from views.data import load_scores, load_waste_scores


logger = logging.getLogger(__name__)


def render_briefing(date_range: DateRange) -> None:
    start, end = date_range.as_params()
    try:
        scores = load_scores(start, end)
        waste_scores = load_waste_scores(start, end)
    except Exception as exc:
        logger.exception("briefing load failed")
        st.error(f"Briefing query failed: {exc}")
        return

    facts = metrics.briefing_facts(scores, waste_scores)
    cols = st.columns(3)
    cols[0].metric("Revenue", f"${facts['total_revenue']:,.0f}")
    cols[1].metric("Top performer", facts["top_performer"] or "n/a")
    cols[2].metric("Most concerning", facts["most_concerning"] or "None")

    cache = st.session_state.setdefault("briefing_cache", {})
    cache_key = f"{start}|{end}"
    if st.button("Generate Monday briefing", key="briefing_generate", type="primary"):
        with st.spinner("Writing briefing..."):
            try:
                cache[cache_key] = generate_briefing(facts)
            except Exception as exc:
                logger.exception("briefing failed")
                st.error(f"LLM briefing failed: {exc}")
    if cache_key in cache:
        st.markdown(cache[cache_key])
    else:
        st.caption(f"Briefing covers {date_range.label()}.")

    with st.expander("Data sent to the model"):
        st.json(facts)
