"""Database Base — the SQLAlchemy declarative Base shared by every model.

Design Decisions:
    - asyncpg driver for PostgreSQL, aiosqlite in tests (ADR: native async)
"""
