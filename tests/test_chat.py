import datetime as dt

import pandas as pd
import pytest

from snowcone import chat
from snowcone.chat import ChatContext, ChatMessage, ChatSession
from snowcone.dates import DateRange
from snowcone.llm import LLMError, LLMResult
from snowcone.queries import QueryResult


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Here you go:\n```sql\nSELECT * FROM LOCATIONS;\n```", "SELECT * FROM LOCATIONS"),
        ("```SQL\nWITH t AS (SELECT 1) SELECT * FROM t\n```", "WITH t AS (SELECT 1) SELECT * FROM t"),
        ("```\nSELECT NAME FROM LOCATIONS\n```", "SELECT NAME FROM LOCATIONS"),
        ("Sure.\nSELECT NAME FROM LOCATIONS; thanks", "SELECT NAME FROM LOCATIONS"),
        ("I can help with that question.", None),
        ("", None),
    ],
)
def test_extract_sql(text, expected):
    assert chat.extract_sql(text) == expected


@pytest.mark.parametrize(
    "sql,ok",
    [
        ("SELECT * FROM DAILY_SALES", True),
        ("  select name from locations;  ", True),
        ("WITH t AS (SELECT 1 AS x) SELECT x FROM t", True),
        ("SELECT UPDATED_AT, UNITS_USED FROM INVENTORY", True),
        ("DELETE FROM LOCATIONS", False),
        ("SELECT 1; DROP TABLE LOCATIONS", False),
        ("SELECT 1; SELECT 2", False),
        ("SELECT * FROM T WHERE X IN (SELECT 1) UNION SELECT 2; INSERT INTO T VALUES (1)", False),
        ("CALL ASK_LLM('a', 'b', 'c')", False),
        ("SHOW TABLES", False),
    ],
)
def test_is_single_select(sql, ok):
    assert chat.is_single_select(sql) is ok


def test_ensure_limit():
    assert chat.ensure_limit("SELECT * FROM T;", 1000) == "SELECT * FROM T LIMIT 1000"
    assert chat.ensure_limit("SELECT * FROM T LIMIT 5", 1000) == "SELECT * FROM T LIMIT 5"
    assert chat.ensure_limit("SELECT *\nFROM T\nlimit\n10", 50).endswith("10")


def test_validate_sql_raises_value_error_subclass():
    with pytest.raises(ValueError):
        chat.validate_sql("DROP TABLE LOCATIONS")
    assert issubclass(chat.UnsafeSQLError, ValueError)


def test_format_results_for_chat_table():
    df = pd.DataFrame({"name": ["Austin", "El Paso West"], "revenue": [1500.0, 25.5]})
    text = chat.format_results_for_chat(df)
    lines = text.split("\n")
    assert lines[0] == "name         | revenue "
    assert lines[1] == "-------------+---------"
    assert lines[2] == "Austin       | 1,500.00"
    assert lines[3] == "El Paso West | 25.50   "


def test_format_results_for_chat_truncates():
    df = pd.DataFrame({"n": range(13)})
    text = chat.format_results_for_chat(df, max_rows=10)
    assert text.endswith("\n\n... and 3 more rows.")
    assert "\n9" in text
    assert "\n10" not in text.split("\n\n")[0]


def test_format_results_for_chat_empty():
    assert chat.format_results_for_chat(pd.DataFrame()) == "No results found."
    assert chat.format_results_for_chat(None) == "No results found."


def test_build_sql_prompt_includes_context_and_history(settings):
    context = ChatContext(
        date_range=DateRange(dt.date(2025, 11, 1), dt.date(2025, 11, 30)),
        locations=["Austin Downtown", "Dallas Uptown"],
    )
    history = [
        ChatMessage(role="user", content="Top stores?"),
        ChatMessage(role="assistant", content="table", kind="table", sql="SELECT 1"),
    ]
    prompt = chat.build_sql_prompt("And by waste?", history, context, settings)
    assert chat.SCHEMA_CONTEXT in prompt
    assert "Nov 01, 2025 - Nov 30, 2025" in prompt
    assert "Austin Downtown, Dallas Uptown" in prompt
    assert "User: Top stores?" in prompt
    assert "Assistant: SELECT 1" in prompt
    assert "```sql" in prompt
    assert "NO_SQL:" in prompt
    assert prompt.endswith("Question: And by waste?")


def test_suggested_questions():
    assert "What are the top 5 locations by revenue?" in chat.SUGGESTED_QUESTIONS
    assert len(chat.SUGGESTED_QUESTIONS) == 4


@pytest.fixture
def fake_llm(monkeypatch):
    replies = []
    prompts = []

    def _complete(prompt, settings=None, **kwargs):
        prompts.append(prompt)
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResult(text=reply, model="llama3.1-70b", cost=0.002, remaining_credits=9.5)

    monkeypatch.setattr(chat, "complete", _complete)
    return replies, prompts


@pytest.fixture
def fake_fetch(monkeypatch):
    executed = []
    frame = pd.DataFrame({"NAME": ["Austin Downtown"], "TOTAL": [1500.0]})

    def _fetch_df(sql, params=None):
        executed.append(sql)
        return QueryResult(df=frame.rename(columns=str.lower), sql=sql, params=params or {})

    monkeypatch.setattr(chat, "fetch_df", _fetch_df)
    return executed


def test_session_runs_generated_select(settings, fake_llm, fake_fetch):
    replies, _ = fake_llm
    replies.append("```sql\nSELECT NAME, SUM(REVENUE) AS TOTAL FROM DAILY_SALES GROUP BY NAME\n```")
    session = ChatSession(settings=settings)
    reply = session.ask("Top locations?")

    assert [m.role for m in session.messages] == ["user", "assistant"]
    assert reply.kind == "table"
    assert reply.sql.endswith("LIMIT 1000")
    assert fake_fetch == [reply.sql]
    assert reply.df["name"].tolist() == ["Austin Downtown"]
    assert "Austin Downtown" in reply.content
    assert reply.metadata["rows"] == 1
    assert reply.metadata["remaining_credits"] == 9.5


def test_session_blocks_unsafe_sql(settings, fake_llm, fake_fetch):
    replies, _ = fake_llm
    replies.append("```sql\nDELETE FROM LOCATIONS\n```")
    session = ChatSession(settings=settings)
    reply = session.ask("Remove everything")
    assert reply.kind == "error"
    assert "Only single SELECT" in reply.content
    assert fake_fetch == []


def test_session_no_sql_answer(settings, fake_llm, fake_fetch):
    replies, _ = fake_llm
    replies.append("NO_SQL: I answer questions about the snow cone data.")
    reply = ChatSession(settings=settings).ask("Who are you?")
    assert reply.kind == "text"
    assert reply.content == "I answer questions about the snow cone data."
    assert fake_fetch == []


def test_session_records_llm_failure(settings, fake_llm, fake_fetch):
    replies, _ = fake_llm
    replies.append(LLMError("ASK_LLM call failed: timeout"))
    session = ChatSession(settings=settings)
    reply = session.ask("Top locations?")
    assert reply.kind == "error"
    assert "timeout" in reply.content
    assert len(session.messages) == 2


def test_session_history_and_clear(settings, fake_llm, fake_fetch):
    replies, prompts = fake_llm
    replies.extend(["NO_SQL: first", "NO_SQL: second"])
    session = ChatSession(settings=settings)
    session.ask("one")
    session.ask("two")
    assert "User: one" in prompts[1]
    assert "Assistant: first" in prompts[1]
    assert session.ask("   ") is None
    assert len(session.messages) == 4
    session.clear()
    assert session.messages == []


def test_ensure_limit_ignores_trailing_comment():
    sql = chat.validate_sql(chat.extract_sql("```sql\nSELECT * FROM DAILY_SALES\n-- all rows\n```"))
    assert chat.ensure_limit(sql, 1000) == "SELECT * FROM DAILY_SALES LIMIT 1000"
    assert chat.ensure_limit("SELECT * FROM T /* every row */;", 50) == "SELECT * FROM T LIMIT 50"


def test_ensure_limit_needs_outer_limit():
    sql = "WITH t AS (SELECT * FROM X LIMIT 5) SELECT * FROM DAILY_SALES"
    assert chat.ensure_limit(sql, 1000) == f"{sql} LIMIT 1000"
    nested = "SELECT * FROM (SELECT * FROM X LIMIT 5) s WHERE NOTE = 'limit 3'"
    assert chat.ensure_limit(nested, 100).endswith("'limit 3' LIMIT 100")


def test_ensure_limit_caps_larger_limit():
    assert chat.ensure_limit("SELECT * FROM T LIMIT 50000", 1000) == (
        "SELECT * FROM (SELECT * FROM T LIMIT 50000) LIMIT 1000"
    )


def test_strip_sql_comments_keeps_literals():
    sql = "SELECT '--not a comment' AS x -- trailing\nFROM T"
    assert chat.strip_sql_comments(sql) == "SELECT '--not a comment' AS x \nFROM T"
    assert chat.is_single_select("SELECT 1; -- done")
    assert chat.is_single_select("SELECT NAME FROM T -- update later")


def test_session_caps_commented_sql(settings, fake_llm, fake_fetch):
    replies, _ = fake_llm
    replies.append("```sql\nSELECT * FROM DAILY_SALES\n-- all rows\n```")
    reply = ChatSession(settings=settings).ask("All sales?")
    assert fake_fetch == ["SELECT * FROM DAILY_SALES LIMIT 1000"]
    assert reply.kind == "table"
