"""Services Layer — ORM orchestration around the pure core, one module per feature.

Invariants:
    - Services flush, routes commit
    - Every query is scoped by owner_id (or by id + public token for share links)
"""
