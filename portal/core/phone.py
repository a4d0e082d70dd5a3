"""Phone Normalization — E.164 conversion for storage, strict validation for user input.

Invariants:
    - Stored numbers are always E.164 (+ followed by 10–15 digits) or None
    - Bare 10-digit numbers are assumed North American (+1 prefix)
    - normalize_phone_strict never raises — returns PhoneResult with error text

Design Decisions:
    - Two entry points: lenient (webhooks — provider data is trusted but messy)
      vs strict (settings forms — the user should see why a number was refused)
"""

import re
from dataclasses import dataclass

_STRICT_ALLOWED = re.compile(r"^[0-9+().\-\s]+$")


@dataclass(frozen=True)
class PhoneResult:
    ok: bool
    e164: str | None = None
    error: str | None = None


def normalize_phone_for_storage(raw: str | None) -> str | None:
    """Best-effort E.164 normalization. Returns None when the number is unusable."""
    text = str(raw or "").strip()
    if not text:
        return None
    has_plus = text.startswith("+")
    digits = re.sub(r"\D", "", text)
    if not digits:
        return None
    if not has_plus:
        if len(digits) == 10:
            return f"+1{digits}"
        if len(digits) == 11 and digits.startswith("1"):
            return f"+{digits}"
    if 10 <= len(digits) <= 15:
        return f"+{digits}"
    return None


def normalize_phone_strict(raw: str | None) -> PhoneResult:
    """Validate user-entered phone input. Empty input is valid (clears the number)."""
    text = str(raw or "").strip()
    if not text:
        return PhoneResult(ok=True, e164=None)

    if not _STRICT_ALLOWED.match(text):
        return PhoneResult(ok=False, error="Phone number contains invalid characters")

    plus_count = text.count("+")
    if plus_count > 1 or (plus_count == 1 and not text.startswith("+")):
        return PhoneResult(ok=False, error="Phone number format is invalid")

    e164 = normalize_phone_for_storage(text)
    if not e164:
        return PhoneResult(ok=False, error="Phone number must be 10–15 digits")
    return PhoneResult(ok=True, e164=e164)


def format_phone_for_display(e164: str | None) -> str:
    """+1 (AAA) BBB-CCCC for NANP numbers; everything else as stored."""
    value = str(e164 or "").strip()
    digits = re.sub(r"\D", "", value)
    if value.startswith("+1") and len(digits) == 11:
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return value
