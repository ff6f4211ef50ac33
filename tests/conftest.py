"""Shared fixtures: a fake warehouse connection and small sample frames."""

from contextlib import contextmanager

import pandas as pd
import pytest

from config.settings import Settings


class FakeCursor:
    def __init__(self, warehouse):
        self.warehouse = warehouse
        self.description = None
        self._df = pd.DataFrame()
        self.closed = False

    def execute(self, sql, params=None):
        self.warehouse.calls.append((sql, dict(params or {})))
        if self.warehouse.error is not None:
            raise self.warehouse.error
        self._df = self.warehouse.next_frame()
        self.description = [(col,) for col in self._df.columns]

    def fetch_pandas_all(self):
        if self.warehouse.pandas_error is not None:
            raise self.warehouse.pandas_error
        return self._df.copy()

    def fetchall(self):
        return list(self._df.itertuples(index=False, name=None))

    def fetchone(self):
        rows = self.fetchall()
        return rows[0] if rows else None

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, warehouse):
        self.warehouse = warehouse

    def cursor(self):
        cursor = FakeCursor(self.warehouse)
        self.warehouse.cursors.append(cursor)
        return cursor


class FakeWarehouse:
    """Records every statement and replays queued result frames."""

    def __init__(self):
        self.calls = []
        self.cursors = []
        self.frames = []
        self.error = None
        self.pandas_error = None

    def queue(self, *frames):
        self.frames.extend(frames)

    def next_frame(self):
        if self.frames:
            return self.frames.pop(0)
        return pd.DataFrame()

    @property
    def last_sql(self):
        return self.calls[-1][0]

    @property
    def last_params(self):
        return self.calls[-1][1]


@pytest.fixture
def warehouse(monkeypatch):
    fake = FakeWarehouse()

    @contextmanager
    def _open_connection():
        yield FakeConnection(fake)

    monkeypatch.setattr("snowcone.queries.open_connection", _open_connection)
    return fake


@pytest.fixture
def settings():
    return Settings(llm_user_email="ops@snowcone.test", openai_api_key="sk-test")


@pytest.fixture
def locations():
    return pd.DataFrame(
        {
            "location_id": [1, 2, 3],
            "name": ["Austin Downtown", "Dallas Uptown", "El Paso West"],
            "city": ["Austin", "Dallas", "El Paso"],
        }
    )


@pytest.fixture
def sales():
    # Austin grows, Dallas drops by half, El Paso is flat.
    rows = []
    for day, (austin, dallas, el_paso) in enumerate(
        [(100, 200, 50), (100, 200, 50), (150, 100, 50), (150, 100, 50)], start=1
    ):
        date = f"2025-11-0{day}"
        rows.append({"location_id": 1, "sale_date": date, "order_type": "dine-in", "revenue": austin})
        rows.append({"location_id": 2, "sale_date": date, "order_type": "takeout", "revenue": dallas})
        rows.append({"location_id": 3, "sale_date": date, "order_type": "delivery", "revenue": el_paso})
    return pd.DataFrame(rows)


@pytest.fixture
def reviews():
    return pd.DataFrame(
        {
            "location_id": [1, 1, 2, 2],
            "review_date": ["2025-11-01", "2025-11-02", "2025-11-01", "2025-11-03"],
            "rating": [4.5, 4.0, 3.0, 3.2],
        }
    )


@pytest.fixture
def inventory():
    return pd.DataFrame(
        {
            "location_id": [1, 1, 2, 3, 3],
            "record_date": ["2025-11-01", "2025-11-08", "2025-11-01", "2025-11-01", "2025-11-08"],
            "category": ["dairy", "syrups", "dairy", "produce", "produce"],
            "units_received": [100, 100, 100, 100, 100],
            "units_wasted": [5, 5, 8, 10, 30],
            "waste_cost": [12.5, 7.5, 20.0, 15.0, 45.0],
        }
    )
