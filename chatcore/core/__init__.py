"""Core Layer — data model, token budget, error taxonomy, validation and retry math.

Invariants:
    - No module in core/ imports from services/ or infrastructure/
    - No IO: functions are deterministic given their inputs (rng injectable)

Design Decisions:
    - Functional core separated from the async shell in services/
"""
