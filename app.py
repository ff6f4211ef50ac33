import datetime as dt
import logging

import streamlit as st

from config.app_metadata import APP_TITLE
from config.settings import ConfigError, get_settings
from snowcone.coerce import parse_warehouse_date
from snowcone.dates import PRESETS, date_range_preset, validate_range
from snowcone.logging_config import configure_logging
from snowcone.snowflake_conn import warehouse_configured


st.set_page_config(page_title=APP_TITLE, layout="wide")

try:
    settings = get_settings()
except ConfigError as exc:
    st.error(f"Configuration error: {exc}")
    st.stop()

configure_logging(settings.log_level, settings.debug_log_path)
logger = logging.getLogger("views.app")

if not warehouse_configured():
    st.error(
        "Snowflake is not configured. Set SNOWFLAKE_ACCOUNT, SNOWFLAKE_USER, SNOWFLAKE_PASSWORD, "
        "SNOWFLAKE_ROLE and SNOWFLAKE_WAREHOUSE in config/secrets.env."
    )
    st.stop()

from views.about import render_about  # noqa: E402
from views.assistant import render_assistant  # noqa: E402
from views.briefing import render_briefing  # noqa: E402
from views.compare import render_compare  # noqa: E402
from views.data import load_date_bounds  # noqa: E402
from views.location_detail import render_location_detail  # noqa: E402
from views.overview import render_overview  # noqa: E402
from views.sales import render_sales  # noqa: E402
from views.scorecard import render_scorecard  # noqa: E402
from views.waste import render_waste  # noqa: E402


VIEWS = {
    "Overview": render_overview,
    "Scorecard": render_scorecard,
    "Sales": render_sales,
    "Waste": render_waste,
    "Location detail": render_location_detail,
    "Compare": render_compare,
    "Assistant": render_assistant,
    "Briefing": render_briefing,
}

st.title(APP_TITLE)

try:
    min_date, max_date = load_date_bounds()
except Exception as exc:
    logger.exception("date bounds failed")
    st.error(f"Could not read the sales date range: {exc}")
    st.stop()

anchor = parse_warehouse_date(max_date) or dt.date.today()
data_start = parse_warehouse_date(min_date) or anchor - dt.timedelta(days=settings.default_range_days - 1)

preset_options = list(PRESETS) + ["custom"]
default_preset = {7: "7d", 30: "30d", 90: "90d"}.get(settings.default_range_days, "30d")

with st.sidebar:
    st.subheader("Date range")
    preset = st.selectbox(
        "Range",
        options=preset_options,
        index=preset_options.index(default_preset),
        format_func=lambda key: PRESETS.get(key, "Custom"),
        key="filters_date_preset",
    )
    if preset == "custom":
        default_range = date_range_preset(default_preset, anchor)
        custom_start = st.date_input(
            "Start date",
            value=default_range.start,
            min_value=data_start,
            max_value=anchor,
            key="filters_start_date",
        )
        custom_end = st.date_input(
            "End date",
            value=anchor,
            min_value=data_start,
            max_value=anchor,
            key="filters_end_date",
        )
        try:
            date_range = validate_range(custom_start, custom_end)
        except ValueError as exc:
            st.error(str(exc))
            st.stop()
    else:
        date_range = date_range_preset(preset, anchor)
    st.caption(f"{date_range.label()} · data through {anchor:%b %d, %Y}")

pending_view = st.session_state.pop("pending_view", None)
if pending_view in VIEWS:
    st.session_state["active_view"] = pending_view

active_view = st.radio(
    "View",
    list(VIEWS) + ["About"],
    horizontal=True,
    key="active_view",
)

if active_view == "About":
    render_about()
else:
    VIEWS[active_view](date_range)
