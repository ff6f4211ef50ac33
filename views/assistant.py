from __future__ import annotations

import logging

import streamlit as st

from config.settings import get_settings
from snowcone.chat import SUGGESTED_QUESTIONS, ChatContext, ChatMessage, ChatSession
from snowcone.dates import DateRange
from views.data import csv_download, load_cortex_balance


logger = logging.getLogger(__name__)


def _session(date_range: DateRange) -> ChatSession:
    session = st.session_state.get("chat_session")
    if session is None:
        session = ChatSession()
        st.session_state["chat_session"] = session
    session.context = ChatContext(
        date_range=date_range,
        locations=st.session_state.get("compare_location_names") or (),
    )
    return session


def _render_message(message: ChatMessage, idx: int) -> None:
    with st.chat_message(message.role):
        if message.kind == "error":
            st.error(message.content)
            return
        if message.kind == "table" and message.df is not None:
            with st.expander("SQL"):
                st.code(message.sql or "", language="sql")
            st.code(message.content, language=None)
            if not message.df.empty:
                rows = message.metadata.get("rows", len(message.df))
                with st.expander(f"All rows ({rows})"):
                    st.dataframe(message.df, use_container_width=True, hide_index=True)
                csv_download(message.df, "assistant_results", key=f"chat_csv_{idx}")
            return
        st.markdown(message.content)


def _render_balance() -> None:
    settings = get_settings()
    if settings.llm_provider != "ask_llm" or not settings.llm_user_email:
        return
    try:
        balance = load_cortex_balance(settings.llm_user_email)
    except Exception as exc:
        logger.warning("credit balance unavailable: %s", exc)
        return
    if balance.empty:
        return
    row = balance.iloc[0]
    st.sidebar.metric(
        "AI credits remaining",
        f"{float(row['remaining_credits']):,.2f}",
        help=f"{int(row['total_calls'])} calls, {float(row['total_spent']):,.2f} spent",
    )


def render_assistant(date_range: DateRange) -> None:
    session = _session(date_range)
    _render_balance()

    header = st.columns([4, 1])
    header[0].caption(f"Ask about locations, sales, reviews and waste. Context: {date_range.label()}")
    if header[1].button("Clear chat", key="chat_clear"):
        session.clear()
        st.rerun()

    if not session.messages:
        st.write("Try one of these:")
        cols = st.columns(len(SUGGESTED_QUESTIONS))
        for col, question in zip(cols, SUGGESTED_QUESTIONS):
            if col.button(question, key=f"chat_suggest_{question}"):
                st.session_state["chat_pending"] = question
                st.rerun()

    for idx, message in enumerate(session.messages):
        _render_message(message, idx)

    question = st.chat_input("Ask a question about the data")
    pending = st.session_state.pop("chat_pending", None)
    question = question or pending
    if question:
        start = len(session.messages)
        with st.spinner("Thinking..."):
            session.ask(question)
        for offset, message in enumerate(session.messages[start:]):
            _render_message(message, start + offset)
