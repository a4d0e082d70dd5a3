"""Route Modules — one file per resource; public webhook routers live beside portal ones.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - Routes never contain business logic (delegate to services/)
"""
