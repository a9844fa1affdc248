"""
Outbound email.

``EmailSender`` is the seam every workflow talks to. ``send`` enforces the
caller-side timeout and folds timeouts and any provider error into
``EmailDeliveryError`` so compensating logic sees one failure type.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx
import structlog
from fastapi import Request

from app.core.config import Settings

log = structlog.get_logger()

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the provider."""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class EmailSender:
    """Base sender: subclasses implement ``_deliver``."""

    def __init__(self, from_address: str, timeout_seconds: float = 10.0):
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds

    async def send(self, message: EmailMessage) -> None:
        try:
            await asyncio.wait_for(self._deliver(message), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            log.warning("email.timeout", to=message.to, subject=message.subject)
            raise EmailDeliveryError("Email provider timed out") from exc
        except EmailDeliveryError:
            raise
        except Exception as exc:
            # CancelledError is a BaseException and still propagates.
            log.warning("email.transport_error", to=message.to, error=repr(exc))
            raise EmailDeliveryError(f"{type(exc).__name__}: {exc}") from exc

    async def _deliver(self, message: EmailMessage) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class ResendEmailSender(EmailSender):
    """Delivers through the Resend HTTP API."""

    def __init__(self, api_key: str, from_address: str, timeout_seconds: float = 10.0):
        super().__init__(from_address, timeout_seconds)
        self._api_key = api_key
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def _deliver(self, message: EmailMessage) -> None:
        response = await self._client.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "from": self.from_address,
                "to": message.to,
                "subject": message.subject,
                "html": message.html,
            },
        )
        if response.status_code >= 400:
            raise EmailDeliveryError(
                f"Resend rejected message ({response.status_code}): {response.text[:200]}"
            )
        log.info("email.sent", to=message.to, subject=message.subject)

    async def close(self) -> None:
        await self._client.aclose()


class ConsoleEmailSender(EmailSender):
    """Writes messages to the log instead of sending them (local development)."""

    async def _deliver(self, message: EmailMessage) -> None:
        log.info("email.console", to=message.to, subject=message.subject, html=message.html)


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.email_backend == "resend":
        return ResendEmailSender(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
            timeout_seconds=settings.email_timeout_seconds,
        )
    return ConsoleEmailSender(settings.email_from, settings.email_timeout_seconds)


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender
