"""Core (UI-agnostic) IDSS dashboard logic.

This package contains:
- record normalization (raw rows -> OperatorRecord)
- data loading (CSV text/file or remote tabular query)
- filter options, filter state transitions and evaluation
- rankings and aggregates
- view compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
