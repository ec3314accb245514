from __future__ import annotations

from typing import Any, Dict

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

BRAND_COLOR = "#810e56"
HIGHLIGHT_COLOR = "#ff637e"


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def score_bar_chart(df: pd.DataFrame, *, label: str, score: str, title: str, highlight: str = "") -> Dict[str, Any]:
    """Horizontal bars ordered by score; rows with a truthy ``highlight`` column stand out."""
    color: Any = alt.value(BRAND_COLOR)
    if highlight and highlight in df.columns:
        color = alt.condition(f"datum.{highlight}", alt.value(HIGHLIGHT_COLOR), alt.value(BRAND_COLOR))
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y(f"{label}:N", sort="-x", title=None),
            x=alt.X(f"{score}:Q", title=title, axis=alt.Axis(format=".2f", gridDash=[4, 4])),
            color=color,
            tooltip=[alt.Tooltip(f"{label}:N"), alt.Tooltip(f"{score}:Q", format=".4f")],
        )
        .properties(height=max(120, 24 * len(df)))
    )
    return to_vega_spec(chart)


def index_trend_chart(long_df: pd.DataFrame, *, series: str = "series", title: str = "Index") -> Dict[str, Any]:
    """Lines over years from a long frame with ``year``, ``series`` and ``value`` columns."""
    hover = alt.selection_point(fields=[series], on="mouseover", empty=True)
    chart = (
        alt.Chart(long_df)
        .mark_line(point={"filled": True, "size": 60})
        .encode(
            x=alt.X("year:O", title="Year", axis=alt.Axis(grid=False)),
            y=alt.Y("value:Q", title=title, axis=alt.Axis(format=".2f", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color(f"{series}:N", title=None),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
            tooltip=["year", f"{series}", alt.Tooltip("value:Q", format=".3f")],
        )
        .add_params(hover)
        .properties(height=280)
    )
    return to_vega_spec(chart)


def share_donut_chart(df: pd.DataFrame, *, category: str) -> Dict[str, Any]:
    chart = (
        alt.Chart(df)
        .mark_arc(innerRadius=50)
        .encode(
            theta=alt.Theta("count:Q"),
            color=alt.Color(f"{category}:N", title=None),
            tooltip=[alt.Tooltip(f"{category}:N"), alt.Tooltip("count:Q", format=",")],
        )
        .properties(height=260)
    )
    return to_vega_spec(chart)
