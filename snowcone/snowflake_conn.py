import logging
from contextlib import contextmanager

import snowflake.connector
try:
    from snowflake.snowpark.context import get_active_session
    _SNOWPARK_AVAILABLE = True
except Exception:
    get_active_session = None
    _SNOWPARK_AVAILABLE = False

from config.settings import connection_params, has_connection_env


logger = logging.getLogger(__name__)


def _session_connection():
    if not _SNOWPARK_AVAILABLE:
        return None
    try:
        # Streamlit in Snowflake uses the active session; no env vars needed.
        return get_active_session()._conn._conn  # type: ignore[attr-defined]
    except Exception:
        # Fall through to env-based connection for local runs.
        return None


def warehouse_configured() -> bool:
    return _session_connection() is not None or has_connection_env()


def get_connection():
    session_conn = _session_connection()
    if session_conn is not None:
        return session_conn
    params = connection_params()
    logger.debug(
        "opening snowflake connection account=%s warehouse=%s",
        params["account"],
        params["warehouse"],
    )
    return snowflake.connector.connect(**params)


@contextmanager
def open_connection():
    """Yield a connection, closing it only when it was opened here."""
    session_conn = _session_connection()
    if session_conn is not None:
        yield session_conn
        return
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()
