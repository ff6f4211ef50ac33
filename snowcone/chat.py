from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from config.settings import Settings, get_settings
from snowcone.dates import DateRange
from snowcone.llm import complete
from snowcone.queries import fetch_df


logger = logging.getLogger(__name__)

SCHEMA_CONTEXT = """
Tables:
1. LOCATIONS (LOCATION_ID, NAME, CITY, STATE, ADDRESS, MANAGER_NAME, OPEN_DATE, SEATING_CAPACITY, IS_ACTIVE)
   - 15 snow cone locations across Texas with store details and manager info
2. DAILY_SALES (SALE_ID, LOCATION_ID, SALE_DATE, ORDER_TYPE, REVENUE, NUM_ORDERS, AVG_ORDER_VALUE)
   - Daily sales from Nov 2025 to Jan 2026
   - ORDER_TYPE values: 'dine-in', 'takeout', 'delivery'
3. CUSTOMER_REVIEWS (REVIEW_ID, LOCATION_ID, REVIEW_DATE, RATING, REVIEW_TEXT, CUSTOMER_NAME)
   - RATING scale: 1.0 to 5.0
4. INVENTORY (INVENTORY_ID, LOCATION_ID, RECORD_DATE, CATEGORY, UNITS_RECEIVED, UNITS_USED, UNITS_WASTED, WASTE_COST)
   - Weekly inventory records
   - CATEGORY values: 'dairy', 'produce', 'cones_cups', 'toppings', 'syrups'
""".strip()

SUGGESTED_QUESTIONS = [
    "What are the top 5 locations by revenue?",
    "Show me recent low ratings",
    "Which location has the most waste?",
    "What's the average order value?",
]

NO_SQL_PREFIX = "NO_SQL:"
HISTORY_TURNS = 6

_FENCED_SQL = re.compile(r"```(?:sql)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)
_BARE_SQL = re.compile(r"^\s*((?:select|with)\s.+?)(?:;|\Z)", re.IGNORECASE | re.DOTALL | re.MULTILINE)
_FORBIDDEN = re.compile(
    r"\b(insert|update|delete|merge|create|drop|alter|truncate|grant|revoke|call|copy|put|remove|undrop|use)\b",
    re.IGNORECASE,
)
_LIMIT = re.compile(r"\blimit\s+(\d+)", re.IGNORECASE)


class UnsafeSQLError(ValueError):
    pass


@dataclass
class ChatContext:
    date_range: Optional[DateRange] = None
    locations: Sequence[str] = ()

    def header(self) -> str:
        parts = []
        if self.date_range is not None:
            parts.append(f"Date range selected in the dashboard: {self.date_range.label()}")
        if self.locations:
            parts.append(f"Locations being compared: {', '.join(self.locations)}")
        return "\n".join(parts)


@dataclass
class ChatMessage:
    role: str
    content: str
    kind: str = "text"
    sql: Optional[str] = None
    df: Optional[pd.DataFrame] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _history_lines(history: Iterable[ChatMessage]) -> List[str]:
    lines = []
    for msg in list(history)[-HISTORY_TURNS:]:
        speaker = "User" if msg.role == "user" else "Assistant"
        text = msg.sql if msg.kind == "table" and msg.sql else msg.content
        lines.append(f"{speaker}: {text}")
    return lines


def build_sql_prompt(
    question: str,
    history: Iterable[ChatMessage] = (),
    context: Optional[ChatContext] = None,
    settings: Optional[Settings] = None,
) -> str:
    cfg = settings or get_settings()
    sections = [
        "You are a data assistant for a snow cone shop operations dashboard.",
        f"Database: {cfg.database} | Schema: {cfg.schema}. Use fully qualified table names.",
        SCHEMA_CONTEXT,
    ]
    header = context.header() if context else ""
    if header:
        sections.append(header)
    lines = _history_lines(history)
    if lines:
        sections.append("Conversation so far:\n" + "\n".join(lines))
    sections.append(
        "Answer the question with exactly one Snowflake SELECT statement inside a ```sql "
        "fenced block and nothing else. If the question does not need data, reply with "
        f"'{NO_SQL_PREFIX} <your answer>' instead."
    )
    sections.append(f"Question: {question.strip()}")
    return "\n\n".join(sections)


def extract_sql(text: str) -> Optional[str]:
    if not text:
        return None
    for block in _FENCED_SQL.findall(text):
        candidate = block.strip()
        if candidate:
            return candidate.rstrip(";").strip()
    match = _BARE_SQL.search(text)
    if match:
        return match.group(1).strip()
    return None


def strip_sql_comments(sql: str) -> str:
    """Drop ``--`` and ``/* */`` comments, leaving string literals alone."""
    out = []
    quote = None
    i, n = 0, len(sql)
    while i < n:
        ch = sql[i]
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            i += 1
        elif ch in ("'", '"'):
            quote = ch
            out.append(ch)
            i += 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = n if end == -1 else end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
            out.append(" ")
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _top_level(sql: str) -> str:
    # Blank out string literals and anything nested in parentheses.
    out = []
    depth = 0
    quote = None
    for ch in sql:
        if quote:
            if ch == quote:
                quote = None
            out.append(" ")
        elif ch in ("'", '"'):
            quote = ch
            out.append(" ")
        elif ch == "(":
            depth += 1
            out.append(" ")
        elif ch == ")":
            depth = max(depth - 1, 0)
            out.append(" ")
        else:
            out.append(ch if depth == 0 else " ")
    return "".join(out)


def _clean(sql: str) -> str:
    return strip_sql_comments(sql).strip().rstrip(";").strip()


def is_single_select(sql: str) -> bool:
    stripped = _clean(sql)
    lowered = stripped.lower()
    if not (lowered.startswith("select") or lowered.startswith("with")):
        return False
    if _FORBIDDEN.search(lowered):
        return False
    parts = [p for p in _top_level(stripped).split(";") if p.strip()]
    return len(parts) == 1


def ensure_limit(sql: str, max_rows: int = 1000) -> str:
    """Cap the statement at ``max_rows`` using its outermost LIMIT."""
    cleaned = _clean(sql)
    max_rows = int(max_rows)
    limits = _LIMIT.findall(_top_level(cleaned))
    if not limits:
        return f"{cleaned} LIMIT {max_rows}"
    if int(limits[-1]) <= max_rows:
        return cleaned
    return f"SELECT * FROM ({cleaned}) LIMIT {max_rows}"


def validate_sql(sql: str) -> str:
    if not is_single_select(sql):
        raise UnsafeSQLError("Only single SELECT statements are allowed.")
    return _clean(sql)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


def format_results_for_chat(df: pd.DataFrame, max_rows: int = 10) -> str:
    if df is None or df.empty:
        return "No results found."
    headers = [str(c) for c in df.columns]
    shown = df.head(max_rows)
    rows = [[_cell(v) for v in record] for record in shown.itertuples(index=False, name=None)]
    widths = [
        max([len(headers[i])] + [len(row[i]) for row in rows]) for i in range(len(headers))
    ]
    lines = [" | ".join(h.ljust(w) for h, w in zip(headers, widths))]
    lines.append("-+-".join("-" * w for w in widths))
    for row in rows:
        lines.append(" | ".join(v.ljust(w) for v, w in zip(row, widths)))
    text = "\n".join(lines)
    remaining = len(df) - len(shown)
    if remaining > 0:
        text += f"\n\n... and {remaining} more rows."
    return text


class ChatSession:
    """In-memory conversation that turns questions into warehouse queries."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        context: Optional[ChatContext] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.context = context or ChatContext()
        self.messages: List[ChatMessage] = []

    def clear(self) -> None:
        self.messages = []

    def ask(self, question: str) -> Optional[ChatMessage]:
        question = (question or "").strip()
        if not question:
            return None
        history = list(self.messages)
        self.messages.append(ChatMessage(role="user", content=question))
        try:
            reply = self._answer(question, history)
        except Exception as exc:
            logger.exception("chat question failed")
            reply = ChatMessage(role="assistant", content=str(exc), kind="error")
        self.messages.append(reply)
        return reply

    def _answer(self, question: str, history: List[ChatMessage]) -> ChatMessage:
        prompt = build_sql_prompt(question, history, self.context, self.settings)
        result = complete(prompt, settings=self.settings)
        meta = {
            "model": result.model,
            "cost": result.cost,
            "remaining_credits": result.remaining_credits,
        }
        text = result.text.strip()
        if text.upper().startswith(NO_SQL_PREFIX):
            answer = text[len(NO_SQL_PREFIX):].strip()
            return ChatMessage(role="assistant", content=answer, metadata=meta)

        sql = extract_sql(text)
        if sql is None:
            return ChatMessage(role="assistant", content=text, metadata=meta)

        safe_sql = ensure_limit(validate_sql(sql), self.settings.chat_max_rows)
        logger.info("chat sql", extra={"data": {"sql": safe_sql}})
        query = fetch_df(safe_sql)
        meta["rows"] = len(query.df)
        return ChatMessage(
            role="assistant",
            content=format_results_for_chat(query.df, self.settings.chat_display_rows),
            kind="table",
            sql=safe_sql,
            df=query.df,
            metadata=meta,
        )
