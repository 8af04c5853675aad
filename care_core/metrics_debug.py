from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from care_core.data import CAREGIVER_NAME, RESIDENT_NAME, Field
from care_core.filters import CareFilters


def compute_debug(filters: CareFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    dataset: pd.DataFrame = ctx.get("dataset", pd.DataFrame())
    filtered: pd.DataFrame = ctx.get("filtered", pd.DataFrame())
    column_map = ctx.get("column_map") or {}
    unresolved = set(ctx.get("unresolved") or ())
    first, last = ctx.get("date_range") or (None, None)

    payload = {
        "filters": asdict(filters),
        "source_name": ctx.get("source_name", ""),
        "row_counts": {
            "dataset_rows": int(len(dataset)),
            "filtered_rows": int(len(filtered)),
        },
        "columns": [
            {"field": f.value, "header": header, "resolved": f not in unresolved}
            for f, header in column_map.items()
        ],
        "date_range": {
            "min": first.isoformat() if first is not None else None,
            "max": last.isoformat() if last is not None else None,
        },
        "dateless_rows": 0,
        "distinct_counts": {},
    }
    if not dataset.empty:
        payload["dateless_rows"] = int(dataset[Field.COMPLETED_AT.value].isna().sum())
        payload["distinct_counts"] = {
            "residents": int(dataset[RESIDENT_NAME].nunique()),
            "caregivers": int(dataset[CAREGIVER_NAME].nunique()),
            "care_labels": int(dataset[Field.CARE_LABEL.value].nunique()),
            "statuses": int(dataset[Field.STATUS.value].nunique()),
        }
    return payload
