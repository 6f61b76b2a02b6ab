"""chatcore — conversation orchestration between a chat surface and pluggable LLM backends.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports only, no star exports
"""
