"""Client-side aggregation over warehouse result frames.

Everything here is pure pandas over frames whose columns have already been
lower-cased and coerced by the query layer. Nothing touches the warehouse.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd


IMPROVING = "improving"
DECLINING = "declining"
WORSENING = "worsening"
STABLE = "stable"

REASON_LOW_RATING = "Low rating"
REASON_DECLINING_SALES = "Declining sales"
REASON_HIGH_WASTE = "High waste"

SORT_KEYS = {
    "revenue": "total_revenue",
    "rating": "avg_rating",
    "trend": "trend_percent",
    "name": "name",
    "attention": "attention_count",
}


@dataclass
class TrendResult:
    trend: str
    percent: float
    first_half: float
    second_half: float


@dataclass
class LocationScore:
    location_id: int
    name: str
    city: str
    total_revenue: float
    avg_rating: float
    review_count: int
    trend: str
    trend_percent: float
    attention_reasons: List[str] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return bool(self.attention_reasons)

    @property
    def attention_count(self) -> int:
        return len(self.attention_reasons)


@dataclass
class WasteScore:
    location_id: int
    name: str
    total_waste_units: float
    total_received: float
    waste_cost: float
    waste_rate: float
    waste_trend: str
    above_threshold: bool


@dataclass
class SummaryStats:
    total_revenue: float
    avg_rating: float
    total_waste_cost: float
    locations_needing_attention: int


def _sum(df: pd.DataFrame, column: str) -> float:
    if df.empty or column not in df.columns:
        return 0.0
    return float(pd.to_numeric(df[column], errors="coerce").fillna(0).sum())


def _rows_for(df: pd.DataFrame, location_id: int) -> pd.DataFrame:
    if df.empty or "location_id" not in df.columns:
        return df.iloc[0:0]
    return df[df["location_id"] == location_id]


def pct_change(current: float, previous: float) -> Optional[float]:
    if not previous:
        return None
    return (current - previous) / previous * 100


def half_split_trend(
    df: pd.DataFrame,
    date_col: str,
    value_col: str,
    band_pct: float,
    labels: Tuple[str, str] = (IMPROVING, DECLINING),
) -> TrendResult:
    """Compare the first half of the rows (by date) against the second half.

    Rows are split at floor(n / 2), so with an odd count the extra row lands
    in the second half. With no first-half signal the trend is stable at 0%.
    """
    if df.empty:
        return TrendResult(STABLE, 0.0, 0.0, 0.0)
    ordered = df.sort_values(date_col, kind="mergesort")
    mid = len(ordered) // 2
    first = _sum(ordered.iloc[:mid], value_col)
    second = _sum(ordered.iloc[mid:], value_col)
    if first <= 0:
        return TrendResult(STABLE, 0.0, first, second)
    percent = (second - first) / first * 100
    rising, falling = labels
    if percent > band_pct:
        trend = rising
    elif percent < -band_pct:
        trend = falling
    else:
        trend = STABLE
    return TrendResult(trend, percent, first, second)


def compute_location_scores(
    locations: pd.DataFrame,
    sales: pd.DataFrame,
    reviews: pd.DataFrame,
    inventory: pd.DataFrame,
    settings,
) -> List[LocationScore]:
    scores: List[LocationScore] = []
    for loc in locations.itertuples(index=False):
        location_id = int(loc.location_id)
        loc_sales = _rows_for(sales, location_id)
        loc_reviews = _rows_for(reviews, location_id)
        loc_inventory = _rows_for(inventory, location_id)

        total_revenue = _sum(loc_sales, "revenue")
        review_count = int(len(loc_reviews))
        avg_rating = _sum(loc_reviews, "rating") / review_count if review_count else 0.0
        trend = half_split_trend(
            loc_sales, "sale_date", "revenue", settings.trend_stable_band_pct
        )

        reasons: List[str] = []
        if 0 < avg_rating < settings.low_rating_threshold:
            reasons.append(REASON_LOW_RATING)
        if trend.trend == DECLINING and trend.percent < -settings.decline_attention_pct:
            reasons.append(REASON_DECLINING_SALES)
        received = _sum(loc_inventory, "units_received")
        wasted = _sum(loc_inventory, "units_wasted")
        if received > 0 and wasted / received > settings.waste_rate_threshold:
            reasons.append(REASON_HIGH_WASTE)

        scores.append(
            LocationScore(
                location_id=location_id,
                name=str(loc.name),
                city=str(getattr(loc, "city", "") or ""),
                total_revenue=total_revenue,
                avg_rating=avg_rating,
                review_count=review_count,
                trend=trend.trend,
                trend_percent=trend.percent,
                attention_reasons=reasons,
            )
        )
    return scores


def compute_waste_scores(
    locations: pd.DataFrame,
    inventory: pd.DataFrame,
    settings,
) -> List[WasteScore]:
    results: List[WasteScore] = []
    for loc in locations.itertuples(index=False):
        location_id = int(loc.location_id)
        loc_inventory = _rows_for(inventory, location_id)
        wasted = _sum(loc_inventory, "units_wasted")
        received = _sum(loc_inventory, "units_received")
        waste_rate = wasted / received * 100 if received > 0 else 0.0
        trend = half_split_trend(
            loc_inventory,
            "record_date",
            "units_wasted",
            settings.waste_trend_band_pct,
            labels=(WORSENING, IMPROVING),
        )
        results.append(
            WasteScore(
                location_id=location_id,
                name=str(loc.name),
                total_waste_units=wasted,
                total_received=received,
                waste_cost=_sum(loc_inventory, "waste_cost"),
                waste_rate=waste_rate,
                waste_trend=trend.trend,
                above_threshold=waste_rate > settings.waste_rate_threshold * 100,
            )
        )
    return results


def summary_stats(scores: Sequence[LocationScore], inventory: pd.DataFrame) -> SummaryStats:
    rated = [s.avg_rating for s in scores if s.review_count]
    avg_rating = sum(rated) / len(rated) if rated else 0.0
    return SummaryStats(
        total_revenue=sum(s.total_revenue for s in scores),
        avg_rating=avg_rating,
        total_waste_cost=_sum(inventory, "waste_cost"),
        locations_needing_attention=sum(1 for s in scores if s.needs_attention),
    )


def sort_scorecard(
    scores: Iterable[LocationScore],
    key: str = "revenue",
    descending: bool = True,
) -> List[LocationScore]:
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {key}")
    attr = SORT_KEYS[key]
    by_name = sorted(scores, key=lambda s: s.name.lower())
    if key == "name":
        return list(reversed(by_name)) if descending else by_name
    return sorted(by_name, key=lambda s: getattr(s, attr), reverse=descending)


def scores_frame(scores: Iterable[LocationScore]) -> pd.DataFrame:
    rows = []
    for score in scores:
        row = asdict(score)
        row["needs_attention"] = score.needs_attention
        row["attention_reasons"] = ", ".join(score.attention_reasons)
        rows.append(row)
    columns = [
        "location_id",
        "name",
        "city",
        "total_revenue",
        "avg_rating",
        "review_count",
        "trend",
        "trend_percent",
        "needs_attention",
        "attention_reasons",
    ]
    return pd.DataFrame(rows, columns=columns)


def waste_scores_frame(scores: Iterable[WasteScore]) -> pd.DataFrame:
    columns = [
        "location_id",
        "name",
        "total_waste_units",
        "total_received",
        "waste_cost",
        "waste_rate",
        "waste_trend",
        "above_threshold",
    ]
    return pd.DataFrame([asdict(s) for s in scores], columns=columns)


def order_type_label(order_type: str) -> str:
    text = str(order_type or "")
    return (text[:1].upper() + text[1:]).replace("-", " ")


def category_label(category: str) -> str:
    text = str(category or "")
    return (text[:1].upper() + text[1:]).replace("_", " ")


def sales_by_order_type(sales: pd.DataFrame) -> pd.DataFrame:
    if sales.empty:
        return pd.DataFrame(columns=["order_type", "label", "revenue"])
    totals = sales.groupby("order_type", sort=False)["revenue"].sum().reset_index()
    totals["label"] = totals["order_type"].map(order_type_label)
    totals["revenue"] = totals["revenue"].round().astype(int)
    return totals[["order_type", "label", "revenue"]]


def daily_revenue_trend(sales: pd.DataFrame) -> pd.DataFrame:
    if sales.empty:
        return pd.DataFrame(columns=["date", "revenue"])
    by_date = (
        sales.groupby("sale_date")["revenue"]
        .sum()
        .reset_index()
        .rename(columns={"sale_date": "date"})
        .sort_values("date")
        .reset_index(drop=True)
    )
    by_date["revenue"] = by_date["revenue"].round().astype(int)
    return by_date


def waste_by_category(inventory: pd.DataFrame) -> pd.DataFrame:
    if inventory.empty:
        return pd.DataFrame(columns=["category", "label", "wasted", "cost"])
    grouped = (
        inventory.groupby("category", sort=False)
        .agg(wasted=("units_wasted", "sum"), cost=("waste_cost", "sum"))
        .reset_index()
    )
    grouped["label"] = grouped["category"].map(category_label)
    grouped["cost"] = grouped["cost"].round(2)
    return grouped[["category", "label", "wasted", "cost"]]


def comparison_frame(
    sales: pd.DataFrame,
    location_ids: Sequence[int],
    names: Dict[int, str],
) -> pd.DataFrame:
    """Wide date x location revenue frame; missing days are 0."""
    labels = [names.get(loc_id, str(loc_id)) for loc_id in location_ids]
    if sales.empty:
        return pd.DataFrame(columns=["date", *labels])
    subset = sales[sales["location_id"].isin(list(location_ids))]
    wide = subset.pivot_table(
        index="sale_date",
        columns="location_id",
        values="revenue",
        aggfunc="sum",
        fill_value=0,
    )
    wide = wide.reindex(columns=list(location_ids), fill_value=0).fillna(0)
    wide.columns = labels
    wide = wide.round().astype(int)
    wide.index.name = "date"
    return wide.reset_index().sort_values("date").reset_index(drop=True)


def order_type_comparison(
    sales: pd.DataFrame,
    location_ids: Sequence[int],
    names: Dict[int, str],
    order_types: Sequence[str] = ("dine-in", "takeout", "delivery"),
) -> pd.DataFrame:
    rows = []
    for order_type in order_types:
        row: Dict[str, object] = {"order_type": order_type_label(order_type)}
        for loc_id in location_ids:
            loc_rows = _rows_for(sales, loc_id)
            if not loc_rows.empty:
                loc_rows = loc_rows[loc_rows["order_type"] == order_type]
            row[names.get(loc_id, str(loc_id))] = round(_sum(loc_rows, "revenue"))
        rows.append(row)
    return pd.DataFrame(rows)


def add_moving_average(df: pd.DataFrame, column: str, window: int = 7) -> pd.DataFrame:
    df = df.copy()
    if window < 1:
        raise ValueError("window must be >= 1")
    df[f"{column}_ma"] = df[column].rolling(window=window, min_periods=1).mean()
    return df


def flag_weekly_waste(df: pd.DataFrame, threshold: float) -> pd.DataFrame:
    df = df.copy()
    if df.empty:
        df["above_threshold"] = pd.Series(dtype=bool)
        df["recent_trend"] = pd.Series(dtype=object)
        return df
    last = df["cost_last_1w"].astype(float)
    prev = df["cost_prev_1w"].astype(float)
    df["above_threshold"] = last > threshold
    df["recent_trend"] = STABLE
    df.loc[last < prev, "recent_trend"] = IMPROVING
    df.loc[last > prev, "recent_trend"] = DECLINING
    return df


def briefing_facts(
    scores: Sequence[LocationScore],
    waste_scores: Sequence[WasteScore],
) -> Dict[str, object]:
    """Condensed numbers for the weekly LLM briefing prompt."""
    if not scores:
        return {
            "total_revenue": 0.0,
            "location_count": 0,
            "top_performer": None,
            "most_concerning": None,
            "attention": [],
            "locations": [],
        }
    waste_by_id = {w.location_id: w for w in waste_scores}
    top = max(scores, key=lambda s: s.total_revenue)

    def _concern_key(score: LocationScore) -> Tuple[int, float, float]:
        waste = waste_by_id.get(score.location_id)
        waste_rate = waste.waste_rate if waste else 0.0
        return (score.attention_count, waste_rate, -score.total_revenue)

    concerning = max(scores, key=_concern_key)
    locations = []
    for score in sort_scorecard(scores, "revenue"):
        waste = waste_by_id.get(score.location_id)
        locations.append(
            {
                "name": score.name,
                "revenue": round(score.total_revenue),
                "rating": round(score.avg_rating, 2),
                "trend": score.trend,
                "trend_percent": round(score.trend_percent, 1),
                "waste_cost": round(waste.waste_cost) if waste else 0,
                "waste_rate": round(waste.waste_rate, 1) if waste else 0.0,
            }
        )
    return {
        "total_revenue": sum(s.total_revenue for s in scores),
        "location_count": len(scores),
        "top_performer": top.name,
        "most_concerning": concerning.name if concerning.needs_attention else None,
        "attention": [
            {"name": s.name, "reasons": list(s.attention_reasons)}
            for s in scores
            if s.needs_attention
        ],
        "locations": locations,
    }

