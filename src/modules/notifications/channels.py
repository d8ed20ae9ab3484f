"""Outbound delivery channels (email, SMS, live push).

Each sender returns a ``DeliveryResult`` on success and raises
``DeliveryError`` on failure; the fan-out decides what to do with either.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Protocol

import aiosmtplib
import httpx

from src.core.config import Settings, settings
from src.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)

_PHONE_NOISE = re.compile(r"[\s\-()]")


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    message_id: str | None = None
    detail: str | None = None
    # Set when the provider is switched off; nothing was attempted.
    skipped: bool = False


class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, html: str) -> DeliveryResult: ...


class SmsSender(Protocol):
    async def send_sms(self, to: str, message: str) -> DeliveryResult: ...


class LiveChannel(Protocol):
    async def push_to_user(self, user_id: str, event: str, payload: dict[str, Any]) -> bool: ...


class SmtpEmailSender:
    """Send HTML mail through the configured SMTP relay."""

    def __init__(self, config: Settings = settings):
        self.config = config

    async def send_email(self, to: str, subject: str, html: str) -> DeliveryResult:
        msg = EmailMessage()
        msg["From"] = self.config.email_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            await aiosmtplib.send(
                msg,
                hostname=self.config.smtp_host,
                port=self.config.smtp_port,
                username=self.config.smtp_user,
                password=self.config.smtp_password,
                start_tls=self.config.smtp_start_tls,
                timeout=self.config.email_timeout_seconds,
            )
        except aiosmtplib.SMTPException as exc:
            raise DeliveryError("email", str(exc)) from exc
        except OSError as exc:
            raise DeliveryError("email", f"SMTP connection failed: {exc}") from exc
        logger.info("Email sent to %s: %s", to, subject)
        return DeliveryResult(success=True, message_id=msg.get("Message-ID"))


def normalize_phone_number(phone_number: str, country_code: str = "94") -> str:
    """Normalise local formats to E.164, e.g. ``0771234567`` -> ``+94771234567``."""
    cleaned = _PHONE_NOISE.sub("", phone_number or "")
    if not cleaned:
        raise DeliveryError("sms", "Missing phone number")
    if cleaned.startswith("+"):
        normalized = cleaned
    elif cleaned.startswith(country_code):
        normalized = f"+{cleaned}"
    elif cleaned.startswith("0"):
        normalized = f"+{country_code}{cleaned[1:]}"
    else:
        normalized = f"+{country_code}{cleaned}"
    if not re.fullmatch(r"\+\d{8,15}", normalized):
        raise DeliveryError("sms", f"Invalid phone number: {phone_number!r}")
    return normalized


class HttpSmsSender:
    """POST ``{phoneNumber, message}`` to an HTTP SMS gateway."""

    def __init__(
        self,
        api_url: str | None = None,
        enabled: bool | None = None,
        country_code: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url or settings.sms_api_url
        self.enabled = settings.sms_enabled if enabled is None else enabled
        self.country_code = country_code or settings.sms_country_code
        self.timeout_seconds = timeout_seconds or settings.sms_timeout_seconds
        self.transport = transport

    async def send_sms(self, to: str, message: str) -> DeliveryResult:
        if not self.enabled:
            logger.info("SMS disabled, not sending to %s", to)
            return DeliveryResult(success=False, detail="SMS service is disabled", skipped=True)

        phone = normalize_phone_number(to, self.country_code)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(self.api_url, json={"phoneNumber": phone, "message": message})
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError("sms", f"SMS gateway returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError("sms", f"SMS gateway unreachable: {exc}") from exc

        body = response.json() if response.content else {}
        message_id = body.get("messageId") if isinstance(body, dict) else None
        logger.info("SMS sent to %s", phone)
        return DeliveryResult(success=True, message_id=message_id)
