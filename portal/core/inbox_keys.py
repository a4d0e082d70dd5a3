"""Inbox Keys — deterministic thread keys for email and SMS conversations.

Invariants:
    - Same peer + same subject (ignoring Re:/Fwd: and case) → same thread_key
    - SMS threads are keyed by the peer's E.164 number only
    - All returned strings are length-capped to their column sizes
    - Pure: no IO

Design Decisions:
    - thread_key is a readable string, not a hash: operators can eyeball
      the unique constraint when debugging duplicate threads
"""

import html
import re
from dataclasses import dataclass

from portal.core.phone import normalize_phone_for_storage

NO_SUBJECT = "(no subject)"
SUBJECT_KEY_MAX = 160
THREAD_KEY_MAX = 260
PEER_ADDRESS_MAX = 200
SUBJECT_MAX = 200
PREVIEW_MAX = 240

_REPLY_PREFIX = re.compile(r"^\s*(re|fw|fwd)\s*:\s*", re.IGNORECASE)
_EMAIL = re.compile(r"[A-Z0-9._%+\-]+@[A-Z0-9.\-]+\.[A-Z]{2,}", re.IGNORECASE)
_WS = re.compile(r"\s+")
_TAG = re.compile(r"<[^>]+>")
_SCRIPT_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ThreadKey:
    """Resolved thread identity for one inbound/outbound message."""
    thread_key: str
    peer_address: str
    peer_key: str
    subject: str | None = None
    subject_key: str | None = None


def collapse_whitespace(text: str | None) -> str:
    return _WS.sub(" ", str(text or "")).strip()


def normalize_subject_key(subject: str | None) -> str:
    """Strip up to 8 reply/forward prefixes, collapse whitespace, cap at 160."""
    s = collapse_whitespace(subject)
    for _ in range(8):
        stripped = _REPLY_PREFIX.sub("", s, count=1)
        if stripped == s:
            break
        s = stripped.strip()
    return (s or NO_SUBJECT)[:SUBJECT_KEY_MAX]


def extract_email_address(raw: str | None) -> str | None:
    """First email address in the string — handles 'Name <a@b.co>' forms."""
    match = _EMAIL.search(str(raw or ""))
    return match.group(0) if match else None


def make_email_thread_key(peer_address: str, subject: str | None) -> ThreadKey:
    """Thread identity for an email conversation with peer_address about subject."""
    address = str(peer_address or "").strip()[:PEER_ADDRESS_MAX]
    peer_key = address.lower()
    subject_key = normalize_subject_key(subject)
    thread_key = f"{peer_key}::{subject_key.lower()}"[:THREAD_KEY_MAX]
    return ThreadKey(
        thread_key=thread_key,
        peer_address=address,
        peer_key=peer_key,
        subject=collapse_whitespace(subject)[:SUBJECT_MAX] or None,
        subject_key=subject_key,
    )


def make_sms_thread_key(peer: str | None) -> ThreadKey | None:
    """Thread identity for an SMS conversation. None when peer isn't a usable number."""
    e164 = normalize_phone_for_storage(peer)
    if not e164:
        return None
    return ThreadKey(thread_key=e164, peer_address=e164, peer_key=e164)


def preview_from_body(body: str | None) -> str:
    return collapse_whitespace(body)[:PREVIEW_MAX]


def strip_html(markup: str | None) -> str:
    """Plain-text rendition of an HTML email body."""
    text = _SCRIPT_STYLE.sub(" ", str(markup or ""))
    text = re.sub(r"<br\s*/?>|</p>|</div>", "\n", text, flags=re.IGNORECASE)
    text = _TAG.sub(" ", text)
    return collapse_whitespace(html.unescape(text))
