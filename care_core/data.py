from __future__ import annotations

import hashlib
import logging
import math
import os
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from care_core.filters import CareFilters, FilterOptions, normalize_filters

logger = logging.getLogger(__name__)

UNDEFINED_STATUS = "Non défini"
UNSPECIFIED = "Non spécifié"
COMPLETED_STATUS = "Fait"
TABLET_MARKER = "tablette"
REFUSAL_MARKER = "refus"

# Spreadsheet serial dates count days from 1899-12-30 (the 1900 leap-year quirk).
SERIAL_DATE_EPOCH = pd.Timestamp("1899-12-30")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")

SHEET_NAME = os.getenv("CARE_DASHBOARD_SHEET", "").strip() or 0
# Offset-carrying dates are shifted to this wall clock, then stored naive.
LOCAL_TIMEZONE = "Europe/Paris"


class Field(str, Enum):
    RESIDENT = "resident"
    CARE_LABEL = "care_label"
    STATUS = "status"
    CAREGIVER = "caregiver"
    SOURCE = "source"
    COMPLETED_AT = "completed_at"


# First alias is the default header when nothing matches.
COLUMN_ALIASES: Dict[Field, Tuple[str, ...]] = {
    Field.RESIDENT: ("Résident", "Resident", "Résidente", "Nom du résident", "Patient"),
    Field.CARE_LABEL: ("Information", "Soin", "Acte", "Libellé", "Libellé soin"),
    Field.STATUS: ("État", "Etat", "Statut", "Status"),
    Field.CAREGIVER: ("Intervenant", "Intervenante", "Soignant", "Professionnel"),
    Field.SOURCE: ("Source", "Origine", "Mode de saisie", "Saisie"),
    Field.COMPLETED_AT: ("Date fait", "Date réalisation", "Date de réalisation", "Date"),
}

RESIDENT_NAME = "resident_name"
CAREGIVER_NAME = "caregiver_name"
DATASET_COLUMNS = [f.value for f in Field] + [RESIDENT_NAME, CAREGIVER_NAME]

_PARENS_RE = re.compile(r"\s*\(.*\)\s*")
_BIRTH_NAME_RE = re.compile(r"(?<![^\W\d_])n[ée]e\b.*", re.IGNORECASE)


class IngestionError(Exception):
    """Raised when the uploaded workbook cannot be decoded into rows."""


@dataclass(frozen=True)
class CareSession:
    dataset: pd.DataFrame
    column_map: Mapping[Field, str]
    options: FilterOptions
    source_name: str = ""
    unresolved: Tuple[Field, ...] = ()


def is_missing(value: object) -> bool:
    if value is None or value is pd.NaT or value is pd.NA:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def clean_name(value: object) -> str:
    if is_missing(value):
        return UNSPECIFIED
    s = _PARENS_RE.sub(" ", str(value), count=1)
    s = _BIRTH_NAME_RE.sub("", s, count=1).strip()
    return s or UNSPECIFIED


def clean_label(value: object, default: str = UNSPECIFIED) -> str:
    if is_missing(value):
        return default
    return str(value).strip()


def is_completed(status: object) -> bool:
    return str(status).strip().lower() == COMPLETED_STATUS.lower()


# ---------------- Header resolution ----------------
def resolve_columns(headers: Iterable[object]) -> Mapping[Field, str]:
    observed: Dict[str, str] = {}
    for h in headers:
        key = str(h).strip().lower()
        observed.setdefault(key, str(h))

    resolved: Dict[Field, str] = {}
    for fld, aliases in COLUMN_ALIASES.items():
        match = next((observed[a.strip().lower()] for a in aliases if a.strip().lower() in observed), None)
        if match is None:
            logger.warning("No column found for %s (tried %s); values will be treated as absent", fld.value, ", ".join(aliases))
            match = aliases[0]
        resolved[fld] = match
    return MappingProxyType(resolved)


def unresolved_fields(column_map: Mapping[Field, str], headers: Iterable[object]) -> Tuple[Field, ...]:
    present = {str(h) for h in headers}
    return tuple(f for f, h in column_map.items() if h not in present)


# ---------------- Dates ----------------
def parse_date(value: object) -> Optional[pd.Timestamp]:
    if is_missing(value) or isinstance(value, (bool, np.bool_)):
        return None
    try:
        if isinstance(value, (pd.Timestamp, datetime, date, np.datetime64)):
            ts = pd.Timestamp(value)
        elif isinstance(value, (int, float, np.integer, np.floating)):
            ts = SERIAL_DATE_EPOCH + pd.to_timedelta(float(value), unit="D")
        else:
            s = str(value).strip()
            if ISO_DATE_RE.match(s):
                ts = pd.to_datetime(s, format="ISO8601")
            else:
                ts = pd.to_datetime(s, dayfirst=True)
    except (ValueError, TypeError, OverflowError) as exc:
        logger.warning("Unparseable date %r: %s", value, exc)
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(LOCAL_TIMEZONE).tz_localize(None)
    return ts


def get_min_max_dates(dataset: pd.DataFrame) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
    if dataset.empty or Field.COMPLETED_AT.value not in dataset.columns:
        return None, None
    dates = dataset[Field.COMPLETED_AT.value].dropna()
    if dates.empty:
        return None, None
    return dates.min(), dates.max()


# ---------------- Ingestion ----------------
def read_workbook(source: Any, *, sheet_name: Any = SHEET_NAME) -> List[Dict[str, Any]]:
    try:
        df = pd.read_excel(source, sheet_name=sheet_name)
    except Exception as exc:
        raise IngestionError(
            "Impossible de lire le fichier. Assurez-vous qu'il s'agit d'un fichier Excel valide et non corrompu."
        ) from exc
    return df.to_dict(orient="records")


def content_signature(data: bytes) -> str:
    """Identify an upload by its bytes, so a re-export under the same name still reloads."""
    return hashlib.sha1(data).hexdigest()


def build_dataset(rows: Sequence[Mapping[str, Any]], column_map: Mapping[Field, str]) -> pd.DataFrame:
    records: List[Dict[str, Any]] = []
    for idx, row in enumerate(rows):
        if not isinstance(row, Mapping):
            logger.warning("Row %d is not a mapping (%s); treating it as empty", idx, type(row).__name__)
            row = {}
        resident = row.get(column_map[Field.RESIDENT])
        caregiver = row.get(column_map[Field.CAREGIVER])
        records.append(
            {
                Field.RESIDENT.value: None if is_missing(resident) else str(resident),
                Field.CARE_LABEL.value: clean_label(row.get(column_map[Field.CARE_LABEL])),
                Field.STATUS.value: clean_label(row.get(column_map[Field.STATUS]), UNDEFINED_STATUS),
                Field.CAREGIVER.value: None if is_missing(caregiver) else str(caregiver),
                Field.SOURCE.value: clean_label(row.get(column_map[Field.SOURCE])),
                Field.COMPLETED_AT.value: parse_date(row.get(column_map[Field.COMPLETED_AT])),
                RESIDENT_NAME: clean_name(resident),
                CAREGIVER_NAME: clean_name(caregiver),
            }
        )
    df = pd.DataFrame.from_records(records, columns=DATASET_COLUMNS)
    df[Field.COMPLETED_AT.value] = pd.to_datetime(df[Field.COMPLETED_AT.value])
    return df


def distinct_options(dataset: pd.DataFrame) -> FilterOptions:
    def _sorted(col: str) -> Tuple[str, ...]:
        if dataset.empty:
            return ()
        return tuple(sorted(dataset[col].astype(str).unique()))

    return FilterOptions(
        residents=_sorted(RESIDENT_NAME),
        caregivers=_sorted(CAREGIVER_NAME),
        care_labels=_sorted(Field.CARE_LABEL.value),
        statuses=_sorted(Field.STATUS.value),
    )


def load_session(rows: Sequence[Mapping[str, Any]], *, source_name: str = "") -> CareSession:
    first = rows[0] if rows and isinstance(rows[0], Mapping) else {}
    headers = list(first.keys())
    column_map = resolve_columns(headers)
    dataset = build_dataset(rows, column_map)
    session = CareSession(
        dataset=dataset,
        column_map=column_map,
        options=distinct_options(dataset),
        source_name=source_name,
        unresolved=unresolved_fields(column_map, headers),
    )
    logger.info("Loaded %d care records from %s", len(dataset), source_name or "rows")
    return session


def load_workbook_session(source: Any, *, source_name: str = "") -> CareSession:
    return load_session(read_workbook(source), source_name=source_name)


# ---------------- Filtering ----------------
def apply_filters(dataset: pd.DataFrame, filters: CareFilters) -> pd.DataFrame:
    if dataset.empty:
        return dataset.copy()
    mask = (
        dataset[RESIDENT_NAME].isin(list(filters.accepted("residents")))
        & dataset[CAREGIVER_NAME].isin(list(filters.accepted("caregivers")))
        & dataset[Field.CARE_LABEL.value].isin(list(filters.accepted("care_labels")))
        & dataset[Field.STATUS.value].isin(list(filters.accepted("statuses")))
    )
    return dataset[mask].copy()


def prepare_context(filters: dict | CareFilters, session: CareSession) -> Dict[str, object]:
    filt = filters if isinstance(filters, CareFilters) else normalize_filters(filters, options=session.options)
    return {
        "filters": filt,
        "dataset": session.dataset,
        "filtered": apply_filters(session.dataset, filt),
        "column_map": session.column_map,
        "unresolved": session.unresolved,
        "options": session.options,
        "date_range": get_min_max_dates(session.dataset),
        "source_name": session.source_name,
    }
