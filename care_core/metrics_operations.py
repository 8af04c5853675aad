from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pandas as pd

from care_core.charts import TABLET_COLOR, bar_chart, no_data_payload, series_entry, to_vega_spec, view_payload
from care_core.data import CAREGIVER_NAME, TABLET_MARKER, Field
from care_core.filters import TOP_N, CareFilters

VIEW = "operations"


def source_channel(source: object) -> str:
    s = str(source)
    lowered = s.lower()
    if TABLET_MARKER in lowered:
        return "Tablette"
    if "ordi" in lowered:
        return "Ordinateur"
    return s


def tablet_usage(df: pd.DataFrame) -> pd.DataFrame:
    """Per caregiver: total records, tablet records and tablet share in percent."""
    is_tablet = df[Field.SOURCE.value].astype(str).str.lower().str.contains(TABLET_MARKER, regex=False)
    usage = (
        df.assign(_tablet=is_tablet.astype(int))
        .groupby(CAREGIVER_NAME, sort=False)
        .agg(total=("_tablet", "count"), tablet=("_tablet", "sum"))
    )
    usage["percentage"] = [
        (float(tab) / float(tot) * 100.0) if tot > 0 else 0.0
        for tab, tot in zip(usage["tablet"], usage["total"])
    ]
    return usage.sort_values("percentage", ascending=False, kind="stable")


def source_breakdown(df: pd.DataFrame) -> List[Tuple[str, int]]:
    counts = df[Field.SOURCE.value].map(source_channel).value_counts(sort=False).sort_values(ascending=False, kind="stable")
    return [(str(k), int(v)) for k, v in counts.items()]


def compute_operations(filters: CareFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    if df.empty:
        return no_data_payload(VIEW, filters, source_breakdown=[], usage=[])

    usage = tablet_usage(df)
    labels = [str(name) for name in usage.index]
    values = [round(float(v), 1) for v in usage["percentage"].to_list()]
    ranked = list(zip(labels, values))[:TOP_N]

    chart = bar_chart(labels, values, "Utilisation de la tablette par intervenant", color=TABLET_COLOR, value_title="% Utilisation Tablette", value_format=".1f")
    return view_payload(
        VIEW,
        filters,
        labels=labels,
        series=[series_entry("% Utilisation Tablette", values, TABLET_COLOR)],
        colors=[TABLET_COLOR] * len(labels),
        ranked_list=ranked,
        charts={"tablet_usage": to_vega_spec(chart)},
        usage=[
            {"caregiver": str(name), "total": int(row["total"]), "tablet": int(row["tablet"]), "percentage": round(float(row["percentage"]), 1)}
            for name, row in usage.iterrows()
        ],
        source_breakdown=source_breakdown(df),
    )
