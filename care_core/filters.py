from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

DIMENSIONS = ("residents", "caregivers", "care_labels", "statuses")
CAREGIVER_MODES = ("total", "average")
TOP_N = 5


@dataclass(frozen=True)
class FilterOptions:
    """Distinct values observed per dimension when the dataset was loaded."""

    residents: Tuple[str, ...] = ()
    caregivers: Tuple[str, ...] = ()
    care_labels: Tuple[str, ...] = ()
    statuses: Tuple[str, ...] = ()

    def values(self, dimension: str) -> Tuple[str, ...]:
        _check_dimension(dimension)
        return getattr(self, dimension)


@dataclass(frozen=True)
class CareFilters:
    residents: Tuple[str, ...] = field(default_factory=tuple)
    caregivers: Tuple[str, ...] = field(default_factory=tuple)
    care_labels: Tuple[str, ...] = field(default_factory=tuple)
    statuses: Tuple[str, ...] = field(default_factory=tuple)
    caregiver_mode: str = "total"

    def accepted(self, dimension: str) -> frozenset:
        _check_dimension(dimension)
        return frozenset(getattr(self, dimension))


def _check_dimension(dimension: str) -> None:
    if dimension not in DIMENSIONS:
        raise ValueError(f"Unknown filter dimension: {dimension!r}")


def _as_str_tuple(values: Optional[Iterable[object]]) -> Tuple[str, ...]:
    if not values:
        return ()
    out: List[str] = []
    seen = set()
    for v in values:
        if v is None:
            continue
        s = str(v)
        if s not in seen:
            seen.add(s)
            out.append(s)
    return tuple(out)


def normalize_caregiver_mode(value: object) -> str:
    mode = str(value or "total").strip().lower()
    return mode if mode in CAREGIVER_MODES else "total"


def default_filters(options: FilterOptions, *, caregiver_mode: str = "total") -> CareFilters:
    return CareFilters(
        residents=options.residents,
        caregivers=options.caregivers,
        care_labels=options.care_labels,
        statuses=options.statuses,
        caregiver_mode=normalize_caregiver_mode(caregiver_mode),
    )


def normalize_filters(raw: dict, *, options: FilterOptions) -> CareFilters:
    # A missing dimension means "everything observed"; an explicit empty list stays empty.
    selections: Dict[str, Tuple[str, ...]] = {}
    for dim in DIMENSIONS:
        value = raw.get(dim)
        selections[dim] = options.values(dim) if value is None else _as_str_tuple(value)
    return CareFilters(caregiver_mode=normalize_caregiver_mode(raw.get("caregiver_mode")), **selections)


def with_selection(filters: CareFilters, dimension: str, values: Iterable[object]) -> CareFilters:
    _check_dimension(dimension)
    return replace(filters, **{dimension: _as_str_tuple(values)})


def select_all(filters: CareFilters, options: FilterOptions, dimension: str) -> CareFilters:
    return with_selection(filters, dimension, options.values(dimension))


def select_none(filters: CareFilters, dimension: str) -> CareFilters:
    return with_selection(filters, dimension, ())


def search_options(values: Iterable[str], term: str) -> List[str]:
    """Case-insensitive substring search used by the filter-list search boxes."""
    q = (term or "").strip().lower()
    if not q:
        return list(values)
    return [v for v in values if q in str(v).lower()]
