from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from care_core.charts import (
    AVERAGE_COLOR,
    COMPLETED_COLOR,
    bar_chart,
    get_status_color,
    no_data_payload,
    series_entry,
    stacked_bar_chart,
    to_vega_spec,
    view_payload,
)
from care_core.data import CAREGIVER_NAME, REFUSAL_MARKER, Field, is_completed
from care_core.filters import TOP_N, CareFilters, normalize_caregiver_mode

VIEW = "caregivers"
TABLE_KEY = "Intervenant"
TOTAL_KEY = "Total"


def status_breakdown(df: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
    """Count per caregiver and status, with a Total column, ranked by Total."""
    statuses = sorted(df[Field.STATUS.value].astype(str).unique())
    pivot = (
        df.groupby([CAREGIVER_NAME, Field.STATUS.value], sort=False)
        .size()
        .unstack(fill_value=0)
        .reindex(columns=statuses, fill_value=0)
        .astype(int)
    )
    pivot[TOTAL_KEY] = pivot[statuses].sum(axis=1)
    pivot = pivot.sort_values(TOTAL_KEY, ascending=False, kind="stable")
    return pivot, statuses


def completed_totals(df: pd.DataFrame) -> List[Tuple[str, int]]:
    done = df[df[Field.STATUS.value].map(is_completed)]
    counts = done.groupby(CAREGIVER_NAME, sort=False).size().sort_values(ascending=False, kind="stable")
    return [(str(name), int(v)) for name, v in counts.items()]


def daily_averages(df: pd.DataFrame) -> List[Tuple[str, float]]:
    """Completed acts per distinct day of activity; caregivers without a dated act score 0."""
    done = df[df[Field.STATUS.value].map(is_completed)]
    if done.empty:
        return []
    days = done[Field.COMPLETED_AT.value].dt.normalize()
    stats = (
        done.assign(_day=days)
        .groupby(CAREGIVER_NAME, sort=False)
        .agg(dated=(Field.COMPLETED_AT.value, "count"), days=("_day", "nunique"))
    )
    stats["average"] = [
        (float(dated) / float(n_days)) if n_days > 0 else 0.0
        for dated, n_days in zip(stats["dated"], stats["days"])
    ]
    stats = stats.sort_values("average", ascending=False, kind="stable")
    return [(str(name), round(float(v), 2)) for name, v in stats["average"].items()]


def refused_care_labels(df: pd.DataFrame, top_n: int = TOP_N) -> List[Tuple[str, int]]:
    refused = df[df[Field.STATUS.value].astype(str).str.lower().str.contains(REFUSAL_MARKER, regex=False)]
    counts = refused.groupby(Field.CARE_LABEL.value, sort=False).size().sort_values(ascending=False, kind="stable")
    return [(str(label), int(v)) for label, v in counts.head(top_n).items()]


def compute_caregivers(filters: CareFilters, ctx: Dict[str, Any], *, mode: Optional[str] = None) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    mode = normalize_caregiver_mode(mode or filters.caregiver_mode)
    if df.empty:
        return no_data_payload(VIEW, filters, mode=mode, activity=None, table=None)

    pivot, statuses = status_breakdown(df)
    labels = [str(name) for name in pivot.index]
    series = [series_entry(s, [int(v) for v in pivot[s].to_list()], get_status_color(s)) for s in statuses]

    table = {
        "headers": [TABLE_KEY, *statuses, TOTAL_KEY],
        "rows": [
            {TABLE_KEY: str(name), **{s: int(row[s]) for s in statuses}, TOTAL_KEY: int(row[TOTAL_KEY])}
            for name, row in pivot.iterrows()
        ],
    }

    if mode == "average":
        ranking: List[Tuple[str, Any]] = daily_averages(df)
        activity_name, activity_color = "Moyenne de soins/jour", AVERAGE_COLOR
        activity_title = "Volume moyen de soins par jour de présence"
        value_format = ".2f"
    else:
        ranking = completed_totals(df)
        activity_name, activity_color = "Soins réalisés", COMPLETED_COLOR
        activity_title = "Volume de soins réalisés par intervenant"
        value_format = ","
    activity_labels = [name for name, _ in ranking]
    activity_values = [value for _, value in ranking]
    activity = {
        "mode": mode,
        "labels": activity_labels,
        "series": [series_entry(activity_name, activity_values, activity_color)],
        "colors": [activity_color] * len(activity_labels),
    }

    charts = {
        "status_by_caregiver": to_vega_spec(stacked_bar_chart(labels, series, "Actes par intervenant et par état")),
        "activity": to_vega_spec(
            bar_chart(activity_labels, activity_values, activity_title, color=activity_color, value_title=activity_name, value_format=value_format)
        ),
    }
    return view_payload(
        VIEW,
        filters,
        labels=labels,
        series=series,
        colors=[s["color"] for s in series],
        ranked_list=refused_care_labels(df),
        charts=charts,
        mode=mode,
        activity=activity,
        table=table,
    )
