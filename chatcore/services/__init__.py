"""Services Layer — message pipeline, tool execution, sessions and streaming.

Invariants:
    - Tools are registered explicitly (no auto-discovery)
    - All backend access goes through the ModelAdapter protocol

Design Decisions:
    - One concern per module; the Orchestrator composes them
"""
