# -*- coding: utf-8 -*-
"""Outgoing email.

Callers depend on ``EmailSender`` only. ``ResendEmailSender`` talks to the
Resend HTTP API; ``ConsoleEmailSender`` is what runs when no API key is
configured and writes the message to the log instead of sending it.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


class EmailDeliveryError(RuntimeError):
    pass


def mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}" if domain else "***"


def html_to_text(html: str) -> str:
    text = _TAG_RE.sub(" ", html)
    return re.sub(r"\s+", " ", text).strip()


class EmailSender(ABC):
    @abstractmethod
    def send(self, to_address: str, subject: str, html_body: str) -> None:
        """Deliver one message or raise ``EmailDeliveryError``."""


class ConsoleEmailSender(EmailSender):
    """Development stand-in: nothing leaves the process."""

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        logger.warning("Email delivery not configured; message for %s: %s", mask_email(to_address), subject)


class ResendEmailSender(EmailSender):
    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        base_url: str = "https://api.resend.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.from_address = from_address
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        payload = {
            "from": self.from_address,
            "to": [to_address],
            "subject": subject,
            "html": html_body,
            "text": html_to_text(html_body),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(f"{self.base_url}/emails", headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise EmailDeliveryError("Email service timeout") from exc
        except httpx.RequestError as exc:
            raise EmailDeliveryError(f"Failed to connect to email service: {exc}") from exc

        if resp.status_code >= 400:
            raise EmailDeliveryError(f"Email API error: {resp.status_code} - {resp.text[:200]}")
        try:
            body = resp.json()
        except ValueError:
            body = None
        email_id = body.get("id", "unknown") if isinstance(body, dict) else "unknown"
        logger.info("Email sent to %s (id=%s)", mask_email(to_address), email_id)


def build_email_sender(cfg: Settings) -> EmailSender:
    if not cfg.resend_api_key:
        return ConsoleEmailSender()
    return ResendEmailSender(
        api_key=cfg.resend_api_key,
        from_address=cfg.mail_from,
        base_url=cfg.resend_base_url,
        timeout=cfg.mail_timeout,
    )
