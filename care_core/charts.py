from __future__ import annotations

import html
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

import altair as alt
import pandas as pd

from care_core.filters import CareFilters

alt.data_transformers.disable_max_rows()

NO_DATA_MESSAGE = "Aucune donnée ne correspond aux filtres sélectionnés."

# Substring rules are checked in this order against the lower-cased status.
STATUS_COLOR_RULES = (
    ("refus", "#ef4444"),
    ("absent", "#f97316"),
    ("non nécessaire", "#6b7280"),
    ("report", "#eab308"),
)
STATUS_PALETTE = ("#8b5cf6", "#ec4899", "#10b981", "#3b82f6")
TABLET_COLOR = "#10b981"
COMPLETED_COLOR = "#3b82f6"
AVERAGE_COLOR = "#16a34a"
QUALITY_SERIES_COLOR = "#64748b"


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def status_hash(status: str) -> int:
    h = 0
    for ch in status:
        h = ord(ch) + (_to_int32(_to_int32(h) << 5) - h)
    return h


def get_status_color(status: object) -> str:
    label = "" if status is None else str(status)
    lowered = label.lower()
    for needle, color in STATUS_COLOR_RULES:
        if needle in lowered:
            return color
    if not label:
        return STATUS_PALETTE[0]
    return STATUS_PALETTE[abs(status_hash(label)) % len(STATUS_PALETTE)]


# ---------------- Payload helpers ----------------
def series_entry(name: str, values: Sequence[float], color: str) -> Dict[str, Any]:
    return {"name": name, "values": list(values), "color": color}


def view_payload(
    view: str,
    filters: CareFilters,
    *,
    labels: Sequence[str],
    series: List[Dict[str, Any]],
    colors: Sequence[str],
    ranked_list: Sequence[Sequence[Any]],
    charts: Optional[Dict[str, Any]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "view": view,
        "filters": asdict(filters),
        "has_data": True,
        "message": None,
        "labels": list(labels),
        "series": series,
        "colors": list(colors),
        "ranked_list": [[label, value] for label, value in ranked_list],
        "charts": charts or {},
    }
    payload.update(extra)
    return payload


def no_data_payload(view: str, filters: CareFilters, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "view": view,
        "filters": asdict(filters),
        "has_data": False,
        "message": NO_DATA_MESSAGE,
        "labels": [],
        "series": [],
        "colors": [],
        "ranked_list": [],
        "charts": {},
    }
    payload.update(extra)
    return payload


def format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}".replace(".00", "")
    return str(value)


def side_list_html(items: Sequence[Sequence[Any]]) -> str:
    """Render ranked ``[label, value]`` pairs as side-list rows. Labels come from the workbook, so they are escaped."""
    return "".join(
        f"<div class='side-item'><span>{html.escape(str(label))}</span>"
        f"<span class='side-value'>{html.escape(format_value(value))}</span></div>"
        for label, value in items
    )


# ---------------- Altair builders ----------------
def donut_chart(labels: Sequence[str], values: Sequence[float], colors: Sequence[str], title: str) -> alt.Chart:
    df = pd.DataFrame({"label": list(labels), "value": list(values)})
    return (
        alt.Chart(df, title=title)
        .mark_arc(innerRadius=70)
        .encode(
            theta=alt.Theta("value:Q", stack=True),
            color=alt.Color("label:N", title=None, sort=list(labels), scale=alt.Scale(domain=list(labels), range=list(colors)), legend=alt.Legend(orient="bottom")),
            order=alt.Order("value:Q", sort="descending"),
            tooltip=[alt.Tooltip("label:N", title="État"), alt.Tooltip("value:Q", title="Actes", format=",")],
        )
        .properties(height=380)
    )


def stacked_bar_chart(labels: Sequence[str], series: List[Dict[str, Any]], title: str, *, horizontal: bool = False) -> alt.Chart:
    rows = [
        {"label": label, "status": s["name"], "value": value}
        for s in series
        for label, value in zip(labels, s["values"])
    ]
    df = pd.DataFrame(rows, columns=["label", "status", "value"])
    names = [s["name"] for s in series]
    label_axis = alt.Y if horizontal else alt.X
    value_axis = alt.X if horizontal else alt.Y
    return (
        alt.Chart(df, title=title)
        .mark_bar()
        .encode(
            label_axis("label:N", title=None, sort=list(labels)),
            value_axis("value:Q", title="Actes", stack="zero", axis=alt.Axis(format="d", gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("status:N", title="État", scale=alt.Scale(domain=names, range=[s["color"] for s in series])),
            tooltip=["label:N", "status:N", alt.Tooltip("value:Q", format=",")],
        )
        .properties(height=420)
    )


def bar_chart(labels: Sequence[str], values: Sequence[float], title: str, *, color: str, value_title: str, value_format: str = ",") -> alt.Chart:
    df = pd.DataFrame({"label": list(labels), "value": list(values)})
    return (
        alt.Chart(df, title=title)
        .mark_bar(color=color)
        .encode(
            x=alt.X("label:N", title=None, sort=list(labels)),
            y=alt.Y("value:Q", title=value_title, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=["label:N", alt.Tooltip("value:Q", title=value_title, format=value_format)],
        )
        .properties(height=420)
    )
