"""Resilient Twilio Gateway — thin httpx wrapper over the Twilio REST API with retry and error mapping.

Invariants:
    - Credentials are per call (each owner brings its own Twilio account)
    - Rate limits (429) and transient errors (5xx, connection, timeout): retried
      with exponential backoff and ±25% jitter, max_retries extra attempts
    - Client errors (4xx except 429): immediate failure, no retry
    - All failures mapped to TwilioAPIError (core/errors.py)

Design Decisions:
    - httpx over the twilio REST client: the SDK is synchronous; the app is async
      end to end (twilio is still used for TwiML and signature validation)
    - One shared AsyncClient per process: connection reuse across webhooks
    - Media downloads follow redirects: Twilio media URLs 307 to a CDN. httpx
      drops the Authorization header when a redirect leaves the origin
    - Media URLs arrive in webhook forms, so fetch_media only accepts https
      *.twilio.com URLs and streams against the byte cap
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import lru_cache

import httpx

from portal.config import get_settings
from portal.core.errors import TwilioAPIError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TwilioCredentials:
    account_sid: str
    auth_token: str
    from_number_e164: str | None = None


class TwilioGateway:
    """Async Twilio REST calls used by reconciliation, MMS fetch, and SMS send."""

    def __init__(
        self,
        api_base: str,
        timeout_seconds: float = 20.0,
        max_retries: int = 2,
        base_delay_ms: int = 500,
        max_delay_ms: int = 8_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.client = httpx.AsyncClient(timeout=timeout_seconds, transport=transport)

    def _account_url(self, creds: TwilioCredentials, path: str) -> str:
        return f"{self.api_base}/Accounts/{creds.account_sid}/{path}"

    async def fetch_call(self, creds: TwilioCredentials, call_sid: str) -> dict:
        """GET Calls/{sid}.json — status, duration, timestamps."""
        response = await self._request(
            "GET", self._account_url(creds, f"Calls/{call_sid}.json"), creds,
        )
        return response.json()

    async def fetch_latest_recording(
        self, creds: TwilioCredentials, call_sid: str,
    ) -> dict | None:
        """Most recent recording for a call, or None when the call has none."""
        response = await self._request(
            "GET",
            self._account_url(creds, f"Calls/{call_sid}/Recordings.json"),
            creds,
            params={"PageSize": 1},
        )
        recordings = response.json().get("recordings") or []
        return recordings[0] if recordings else None

    async def fetch_media(
        self, creds: TwilioCredentials, url: str, max_bytes: int,
    ) -> tuple[bytes, str]:
        """Download MMS media; raises TwilioAPIError when larger than max_bytes.

        Only https *.twilio.com URLs are requested: the owner's credentials
        never leave for another host. The body is streamed and abandoned as
        soon as it passes max_bytes.
        """
        if not is_twilio_media_url(url):
            logger.warning(
                "Refusing to fetch media from a non-Twilio URL",
                extra={"provider": "TWILIO"},
            )
            raise TwilioAPIError("media URL is not a Twilio host", "untrusted_url")

        response = await self._request("GET", url, creds, follow_redirects=True, stream=True)
        try:
            declared = int(response.headers.get("content-length") or 0)
            if declared > max_bytes:
                raise TwilioAPIError(f"media exceeds {max_bytes} bytes", "media_too_large")
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_bytes:
                    raise TwilioAPIError(f"media exceeds {max_bytes} bytes", "media_too_large")
                chunks.append(chunk)
        finally:
            await response.aclose()
        content_type = response.headers.get("content-type", "application/octet-stream")
        return b"".join(chunks), content_type.split(";")[0].strip()

    async def send_sms(self, creds: TwilioCredentials, to: str, body: str) -> str:
        """POST Messages.json — returns the new message SID."""
        if not creds.from_number_e164:
            raise TwilioAPIError("no sending number configured", "config")
        response = await self._request(
            "POST",
            self._account_url(creds, "Messages.json"),
            creds,
            data={"To": to, "From": creds.from_number_e164, "Body": body},
        )
        return str(response.json().get("sid") or "")

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        creds: TwilioCredentials,
        *,
        follow_redirects: bool = False,
        stream: bool = False,
        **kwargs,
    ) -> httpx.Response:
        """Send with retries. With stream=True the caller must aclose() the response."""
        for attempt in range(self.max_retries + 1):
            request = self.client.build_request(method, url, **kwargs)
            try:
                response = await self.client.send(
                    request,
                    auth=(creds.account_sid, creds.auth_token),
                    follow_redirects=follow_redirects,
                    stream=stream,
                )
            except httpx.TimeoutException as e:
                if attempt >= self.max_retries:
                    raise TwilioAPIError(str(e) or "timeout", "timeout")
                await self._backoff(attempt, "timeout")
                continue
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    raise TwilioAPIError(str(e), "connection")
                await self._backoff(attempt, "connection")
                continue

            if response.status_code < 400:
                return response
            if stream:
                await response.aread()
                await response.aclose()
            if response.status_code in _RETRYABLE_STATUS and attempt < self.max_retries:
                await self._backoff(attempt, f"http_{response.status_code}")
                continue
            raise TwilioAPIError(
                _error_message(response), "http_error", status_code=response.status_code,
            )
        raise TwilioAPIError("retries exhausted", "unknown")

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay_ms = min(self.base_delay_ms * (2 ** attempt), self.max_delay_ms)
        jitter = delay_ms * 0.25 * (2 * random.random() - 1)
        delay = max(0.0, (delay_ms + jitter) / 1000)
        logger.warning(
            f"Twilio {reason}, retrying in {delay:.2f}s",
            extra={"attempt": attempt + 1},
        )
        await asyncio.sleep(delay)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return str(payload.get("message") or f"HTTP {response.status_code}")


@lru_cache
def get_twilio_gateway() -> TwilioGateway:
    """FastAPI dependency — process-wide gateway built from settings."""
    settings = get_settings()
    return TwilioGateway(
        settings.twilio_api_base,
        timeout_seconds=settings.twilio_timeout_seconds,
        max_retries=settings.twilio_max_retries,
        base_delay_ms=settings.twilio_base_delay_ms,
    )


def is_twilio_media_url(url: str) -> bool:
    """True for https URLs on api.twilio.com or another *.twilio.com host."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return False
    host = (parsed.host or "").lower()
    return parsed.scheme == "https" and host.endswith(".twilio.com")
