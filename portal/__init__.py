"""Business Automation Portal — multi-tenant inbox, receptionist, media and booking API.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
