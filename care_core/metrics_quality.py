from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from care_core.charts import (
    QUALITY_SERIES_COLOR,
    donut_chart,
    get_status_color,
    no_data_payload,
    series_entry,
    to_vega_spec,
    view_payload,
)
from care_core.data import Field
from care_core.filters import CareFilters

VIEW = "quality"


def compute_quality(filters: CareFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    if df.empty:
        return no_data_payload(VIEW, filters)

    counts = (
        df.groupby(Field.STATUS.value, sort=False)
        .size()
        .sort_values(ascending=False, kind="stable")
    )
    labels = [str(s) for s in counts.index]
    values = [int(v) for v in counts.to_list()]
    colors = [get_status_color(label) for label in labels]

    chart = donut_chart(labels, values, colors, "Répartition globale des actes")
    return view_payload(
        VIEW,
        filters,
        labels=labels,
        series=[series_entry("Actes", values, QUALITY_SERIES_COLOR)],
        colors=colors,
        ranked_list=list(zip(labels, values)),
        charts={"status_distribution": to_vega_spec(chart)},
        total=int(len(df)),
    )
