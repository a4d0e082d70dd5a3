"""API Layer — FastAPI routes, request dependencies and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - Routes resolve the caller (or the webhook token) and commit; services flush

Design Decisions:
    - Thin routes delegate to services (ADR: functional core, imperative shell)
"""
