from __future__ import annotations

from typing import Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from snowcone.dates import period_label
from snowcone.metrics import DECLINING, IMPROVING, STABLE, WORSENING, category_label, order_type_label


PALETTE = px.colors.qualitative.Safe + px.colors.qualitative.Plotly
ALERT_COLOR = "#d62728"
OK_COLOR = "#2ca02c"
NEUTRAL_COLOR = "#7f7f7f"

TREND_BADGES = {
    IMPROVING: ("🟢", "Improving", OK_COLOR),
    DECLINING: ("🔴", "Declining", ALERT_COLOR),
    WORSENING: ("🔴", "Worsening", ALERT_COLOR),
    STABLE: ("⚪", "Stable", NEUTRAL_COLOR),
}

_MARGIN = {"r": 10, "t": 30, "l": 10, "b": 10}


def trend_badge(trend: str) -> str:
    icon, label, _ = TREND_BADGES.get(trend, TREND_BADGES[STABLE])
    return f"{icon} {label}"


def trend_color(trend: str) -> str:
    return TREND_BADGES.get(trend, TREND_BADGES[STABLE])[2]


def build_revenue_trend(
    df: pd.DataFrame,
    by_order_type: bool = False,
    company_avg: Optional[float] = None,
    company_trend: Optional[pd.DataFrame] = None,
    avg_label: str = "Company avg",
) -> go.Figure:
    """Revenue over time.

    ``df`` carries ``date`` and ``revenue`` columns, plus ``order_type`` when
    ``by_order_type`` is set and ``revenue_ma`` when smoothing is on.
    ``company_trend`` is the per-day company average (``sale_date`` or
    ``date`` plus ``avg_daily_revenue``) drawn as a dashed line.
    """
    if df.empty:
        return go.Figure()
    df = df.copy()
    df["date"] = pd.to_datetime(df["date"])
    if by_order_type and "order_type" in df.columns:
        df["order_type"] = df["order_type"].map(order_type_label)
        fig = px.area(
            df.sort_values("date"),
            x="date",
            y="revenue",
            color="order_type",
            color_discrete_sequence=PALETTE,
            labels={"date": "Date", "revenue": "Revenue ($)", "order_type": "Order type"},
        )
    else:
        fig = go.Figure()
        fig.add_trace(
            go.Scatter(
                x=df["date"],
                y=df["revenue"],
                mode="lines+markers",
                name="Revenue",
                line={"color": PALETTE[0], "width": 2},
                hovertemplate="%{x|%b %d, %Y}<br>$%{y:,.0f}<extra></extra>",
            )
        )
    if "revenue_ma" in df.columns and not by_order_type:
        fig.add_trace(
            go.Scatter(
                x=df["date"],
                y=df["revenue_ma"],
                mode="lines",
                name="7-day average",
                line={"color": PALETTE[1], "dash": "dot"},
            )
        )
    if company_avg is not None:
        fig.add_hline(
            y=float(company_avg),
            line_dash="dash",
            line_color=NEUTRAL_COLOR,
            annotation_text=f"{avg_label} ${float(company_avg):,.0f}",
            annotation_position="top left",
        )
    if company_trend is not None and not company_trend.empty:
        avg_df = company_trend.rename(columns={"sale_date": "date"})
        fig.add_trace(
            go.Scatter(
                x=pd.to_datetime(avg_df["date"]),
                y=avg_df["avg_daily_revenue"],
                mode="lines",
                name="Company average",
                line={"color": NEUTRAL_COLOR, "dash": "dash"},
                hovertemplate="%{x|%b %d, %Y}<br>Company avg $%{y:,.0f}<extra></extra>",
            )
        )
    fig.update_layout(
        margin=_MARGIN,
        yaxis_title="Revenue ($)",
        xaxis_title="Date",
        legend_title_text="",
    )
    return fig


def build_order_type_pie(df: pd.DataFrame) -> go.Figure:
    if df.empty:
        return go.Figure()
    fig = px.pie(
        df,
        names="label",
        values="revenue",
        hole=0.45,
        color_discrete_sequence=PALETTE,
    )
    fig.update_traces(hovertemplate="%{label}<br>$%{value:,.0f} (%{percent})<extra></extra>")
    fig.update_layout(margin=_MARGIN, legend_title_text="Order type")
    return fig


def build_scorecard_bar(scores: pd.DataFrame, metric: str = "total_revenue") -> go.Figure:
    if scores.empty:
        return go.Figure()
    df = scores.sort_values(metric, ascending=False)
    colors = [
        ALERT_COLOR if flagged else PALETTE[0] for flagged in df["needs_attention"].tolist()
    ]
    titles = {
        "total_revenue": "Revenue ($)",
        "avg_rating": "Avg rating",
        "trend_percent": "Trend (%)",
    }
    fig = go.Figure(
        go.Bar(
            x=df["name"],
            y=df[metric],
            marker={"color": colors},
            customdata=df[["location_id", "attention_reasons"]].values.tolist(),
            hovertemplate=(
                "%{x}<br>%{y:,.2f}<br>%{customdata[1]}<extra></extra>"
            ),
        )
    )
    fig.update_layout(
        margin=_MARGIN,
        yaxis_title=titles.get(metric, metric),
        xaxis_title="",
        clickmode="event+select",
    )
    return fig


def build_waste_by_location(df: pd.DataFrame, threshold: float) -> go.Figure:
    """Waste rate per location; ``threshold`` is in percent like ``waste_rate``."""
    if df.empty:
        return go.Figure()
    df = df.sort_values("waste_rate", ascending=False)
    colors = [ALERT_COLOR if flag else OK_COLOR for flag in df["above_threshold"].tolist()]
    fig = go.Figure(
        go.Bar(
            x=df["name"],
            y=df["waste_rate"],
            marker={"color": colors},
            customdata=df[["location_id", "waste_cost"]].values.tolist(),
            hovertemplate="%{x}<br>Waste rate %{y:.1f}%<br>Cost $%{customdata[1]:,.0f}<extra></extra>",
        )
    )
    fig.add_hline(
        y=threshold,
        line_dash="dash",
        line_color=ALERT_COLOR,
        annotation_text=f"Threshold {threshold:.0f}%",
        annotation_position="top right",
    )
    fig.update_layout(margin=_MARGIN, yaxis_title="Waste rate (%)", xaxis_title="")
    return fig


def build_waste_by_category(df: pd.DataFrame) -> go.Figure:
    if df.empty:
        return go.Figure()
    df = df.sort_values("cost", ascending=True)
    fig = px.bar(
        df,
        x="cost",
        y="label",
        orientation="h",
        color="label",
        color_discrete_sequence=PALETTE,
        hover_data={"wasted": True, "cost": ":$,.2f", "label": False},
        labels={"cost": "Waste cost ($)", "label": "Category", "wasted": "Units wasted"},
    )
    fig.update_layout(margin=_MARGIN, showlegend=False)
    return fig


def build_waste_timeseries(df: pd.DataFrame, grain: str) -> go.Figure:
    """Stacked waste cost per period and category."""
    if df.empty:
        return go.Figure()
    df = df.copy()
    df["period_start"] = pd.to_datetime(df["period_start"])
    df = df.sort_values("period_start")
    df["period_label"] = df["period_start"].map(lambda value: period_label(value, grain))
    df["category"] = df["category"].map(category_label)
    fig = px.bar(
        df,
        x="period_label",
        y="waste_cost",
        color="category",
        color_discrete_sequence=PALETTE,
        labels={"period_label": "", "waste_cost": "Waste cost ($)", "category": "Category"},
    )
    fig.update_layout(margin=_MARGIN, barmode="stack")
    fig.update_xaxes(categoryorder="array", categoryarray=list(dict.fromkeys(df["period_label"])))
    return fig


def build_comparison_lines(frame: pd.DataFrame) -> go.Figure:
    if frame.empty or len(frame.columns) < 2:
        return go.Figure()
    long = frame.melt(id_vars="date", var_name="location", value_name="revenue")
    long["date"] = pd.to_datetime(long["date"])
    fig = px.line(
        long,
        x="date",
        y="revenue",
        color="location",
        color_discrete_sequence=PALETTE,
        labels={"date": "Date", "revenue": "Revenue ($)", "location": "Location"},
    )
    fig.update_layout(margin=_MARGIN, hovermode="x unified")
    return fig


def build_rating_distribution(reviews: pd.DataFrame) -> go.Figure:
    if reviews.empty or "rating" not in reviews.columns:
        return go.Figure()
    stars = pd.to_numeric(reviews["rating"], errors="coerce").dropna().round().clip(1, 5)
    counts = stars.astype(int).value_counts().reindex(range(1, 6), fill_value=0)
    colors = [ALERT_COLOR if star < 3 else PALETTE[0] for star in counts.index]
    fig = go.Figure(
        go.Bar(
            x=[f"{star}★" for star in counts.index],
            y=counts.values,
            marker={"color": colors},
            hovertemplate="%{x}: %{y} reviews<extra></extra>",
        )
    )
    fig.update_layout(margin=_MARGIN, yaxis_title="Reviews", xaxis_title="")
    return fig
