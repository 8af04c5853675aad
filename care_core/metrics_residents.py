from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from care_core.charts import get_status_color, no_data_payload, series_entry, stacked_bar_chart, to_vega_spec, view_payload
from care_core.data import RESIDENT_NAME, Field, is_completed
from care_core.filters import TOP_N, CareFilters

VIEW = "residents"
ALL_COMPLETED_MESSAGE = "Aucun acte non réalisé pour la sélection."


def compute_residents(filters: CareFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    if df.empty:
        return no_data_payload(VIEW, filters)

    # The "Non défini" sentinel is not a completion, so it is kept here.
    pending = df[~df[Field.STATUS.value].map(is_completed)]
    if pending.empty:
        return no_data_payload(VIEW, filters, message=ALL_COMPLETED_MESSAGE, total_not_done=0)

    statuses = sorted(pending[Field.STATUS.value].astype(str).unique())
    pivot = (
        pending.groupby([RESIDENT_NAME, Field.STATUS.value], sort=False)
        .size()
        .unstack(fill_value=0)
        .reindex(columns=statuses, fill_value=0)
        .astype(int)
    )
    totals = pivot.sum(axis=1).sort_values(ascending=False, kind="stable")
    pivot = pivot.loc[totals.index]

    labels = [str(name) for name in pivot.index]
    series = [series_entry(s, [int(v) for v in pivot[s].to_list()], get_status_color(s)) for s in statuses]
    ranked = [(str(name), int(v)) for name, v in totals.head(TOP_N).items()]

    chart = stacked_bar_chart(labels, series, "Actes non réalisés par résident", horizontal=True)
    return view_payload(
        VIEW,
        filters,
        labels=labels,
        series=series,
        colors=[s["color"] for s in series],
        ranked_list=ranked,
        charts={"not_done_by_resident": to_vega_spec(chart)},
        total_not_done=int(len(pending)),
    )
