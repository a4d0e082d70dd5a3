"""Root conftest — shared test configuration."""

import os

# Never reach a real database or Twilio account from tests
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
os.environ.setdefault("PUBLIC_BASE_URL", "https://portal.test")
os.environ.setdefault("TWILIO_VALIDATE_SIGNATURES", "false")
