"""Pydantic Schemas — validation for configuration entering the core.

Invariants:
    - Schemas validate at the system boundary (host-supplied model config)

Design Decisions:
    - Separate from core dataclasses: schemas are input contracts, dataclasses are state
"""
