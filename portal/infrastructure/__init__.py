"""Infrastructure Layer — database sessions, Twilio REST gateway, logging.

Invariants:
    - All external calls wrapped with retry/timeout/error mapping
"""
