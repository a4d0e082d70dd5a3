"""Core Layer — pure domain logic, no IO, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are deterministic given their inputs (clock and RNG injected
      or isolated in tokens.py)

Design Decisions:
    - Functional core separated from imperative shell: booking selection, call
      status mapping, thread keys and the zip writer are tested without a database
"""
