"""Infrastructure Layer — external service adapters and cross-cutting concerns.

Invariants:
    - Adapters never retry: failures propagate to the pipeline's classifier

Design Decisions:
    - Official SDK clients over hand-written wire protocols
"""
