"""Core (UI-agnostic) care-visit dashboard logic.

This package contains:
- data loading (XLSX rows -> canonical pandas dataset)
- header resolution, date and name normalization
- filter selection state and filtering
- view compute functions (JSON-serializable payloads)
- chart helpers (status colors, Altair -> Vega-Lite spec dict)
"""
