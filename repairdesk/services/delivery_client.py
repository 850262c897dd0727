import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from repairdesk.config import settings
from repairdesk.logging_config import bind_logger, get_logger

logger = get_logger("delivery_client")

DEFAULT_JID_SUFFIX = "@s.whatsapp.net"
GROUP_JID_SUFFIX = "@g.us"


class DeliveryError(Exception):
    """Raised when the gateway did not accept a message after all attempts."""

    def __init__(self, message: str, attempts: int = 0, last_error: Optional[str] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)


class DeliveryCancelled(DeliveryError):
    """Raised when the caller's cancellation event fires before delivery succeeded."""


@dataclass(frozen=True)
class DeliveryResult:
    message_id: Optional[str] = None
    status: Optional[str] = None
    attempts: int = 1


def normalize_phone_number(raw: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """
    Normalize a phone number or JID to ``+<digits>``.

    Accepts ``+60 12-345 6789``, ``0123456789``, ``60123456789`` and
    ``60123456789:12@s.whatsapp.net``. Applying it twice gives the same value.
    Returns None when no digits remain.
    """
    if not raw:
        return None
    code = country_code if country_code is not None else settings.wa_default_country_code

    value = str(raw).strip()
    if "@" in value:
        value = value.split("@", 1)[0]
    if ":" in value:
        value = value.split(":", 1)[0]

    digits = re.sub(r"\D", "", value)
    if not digits:
        return None

    if digits.startswith("00"):
        digits = digits[2:]
    elif digits.startswith("0") and code:
        digits = f"{code}{digits[1:]}"

    if not digits:
        return None
    return f"+{digits}"


def session_id_for(raw: Optional[str], country_code: Optional[str] = None) -> Optional[str]:
    """Session key for a conversation: the normalized number without the plus."""
    normalized = normalize_phone_number(raw, country_code=country_code)
    return normalized.lstrip("+") if normalized else None


def to_jid(raw: str, suffix: Optional[str] = None, country_code: Optional[str] = None) -> str:
    """Messaging-network address for a phone number. Group JIDs pass through untouched."""
    if not raw:
        raise ValueError("WhatsApp recipient is required")
    if str(raw).endswith(GROUP_JID_SUFFIX):
        return str(raw)

    normalized = normalize_phone_number(raw, country_code=country_code)
    if not normalized:
        raise ValueError("WhatsApp recipient must include a phone number")
    return f"{normalized.lstrip('+')}{suffix or settings.wa_jid_suffix}"


def parse_remote_jid(remote_jid: str) -> dict[str, Any]:
    raw_phone, _, domain = (remote_jid or "").partition("@")
    phone = re.sub(r"\D", "", raw_phone.split(":", 1)[0])
    return {
        "phone_number": phone,
        "jid": remote_jid,
        "is_group": f"@{domain}" == GROUP_JID_SUFFIX,
    }


class WhatsAppGatewayClient:
    """HTTP client for the WhatsApp gateway process (``POST {base_url}/send``)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        attempts: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep_func: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.base_url = (base_url or settings.wa_gateway_url).rstrip("/")
        self.attempts = max(1, attempts if attempts is not None else settings.wa_send_attempts)
        self.base_delay_seconds = (
            base_delay_seconds if base_delay_seconds is not None else settings.wa_send_base_delay_seconds
        )
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.wa_send_timeout_seconds
        self._transport = transport
        self._sleep = sleep_func or asyncio.sleep

    def backoff_delay(self, attempt: int) -> float:
        """Linear backoff: base delay times the attempt that just failed."""
        return self.base_delay_seconds * attempt

    async def _wait(self, delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await self._sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return

    async def _post_once(self, client: httpx.AsyncClient, payload: dict) -> DeliveryResult:
        response = await client.post(f"{self.base_url}/send", json=payload)
        if response.status_code < 200 or response.status_code >= 300:
            raise httpx.HTTPStatusError(
                f"Gateway responded {response.status_code}: {response.text[:200]}",
                request=response.request,
                response=response,
            )
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        return DeliveryResult(message_id=data.get("messageId"), status=data.get("status"))

    async def send(
        self,
        to: str,
        text: str,
        metadata: Optional[dict] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DeliveryResult:
        """
        Send a text message, retrying non-2xx responses and transport errors.

        Raises DeliveryError after the last attempt and DeliveryCancelled as
        soon as ``cancel_event`` is set.
        """
        jid = to_jid(to)
        payload = {"to": jid, "text": text}
        log = bind_logger(logger, to=jid, **{k: v for k, v in (metadata or {}).items() if k in ("command", "stage")})
        last_error = None

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            for attempt in range(1, self.attempts + 1):
                if cancel_event is not None and cancel_event.is_set():
                    raise DeliveryCancelled("WhatsApp delivery cancelled", attempts=attempt - 1, last_error=last_error)

                try:
                    result = await self._post_once(client, payload)
                    log.info(
                        "WhatsApp message delivered",
                        context={"attempt": attempt, "message_id": result.message_id},
                    )
                    return DeliveryResult(message_id=result.message_id, status=result.status, attempts=attempt)
                except httpx.HTTPError as exc:
                    last_error = str(exc)
                    log.warning(
                        "WhatsApp delivery attempt failed",
                        context={"attempt": attempt, "error": last_error},
                    )

                if attempt < self.attempts:
                    await self._wait(self.backoff_delay(attempt), cancel_event)

        log.error(
            "WhatsApp delivery failed",
            context={"attempts": self.attempts, "error": last_error},
        )
        raise DeliveryError(
            f"Failed to send WhatsApp message after {self.attempts} attempts: {last_error}",
            attempts=self.attempts,
            last_error=last_error,
        )


_gateway_client: Optional[WhatsAppGatewayClient] = None


def get_gateway_client() -> WhatsAppGatewayClient:
    global _gateway_client
    if _gateway_client is None:
        _gateway_client = WhatsAppGatewayClient()
    return _gateway_client
