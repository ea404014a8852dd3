# -*- coding: utf-8 -*-
"""OTP — code issuance."""

from __future__ import annotations

import logging
import math
import re
import secrets
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from ..clock import Clock, utc_now
from ..mail.sender import EmailDeliveryError, EmailSender, mask_email
from .errors import InternalError, InvalidArgument, RateLimited
from .models import Challenge
from .storage import ChallengeStore

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CODE_LENGTH = 6
CODE_TTL_SEC = 300
RATE_LIMIT_SEC = 60


def normalize_email(email: Optional[str]) -> str:
    email_norm = (email or "").strip().lower()
    if not email_norm or not EMAIL_REGEX.match(email_norm):
        raise InvalidArgument("Please enter a valid email address.")
    return email_norm


def generate_code(length: int = CODE_LENGTH) -> str:
    """Uniform over [10**(length-1), 10**length - 1]; never a leading zero."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(10 ** length - low))


def render_code_email(code: str, ttl_sec: int) -> tuple[str, str]:
    minutes = max(1, ttl_sec // 60)
    subject = f"{code} is your verification code"
    html = (
        "<p>Your verification code is:</p>"
        f"<p style=\"font-size:28px;font-weight:bold;letter-spacing:6px\">{code}</p>"
        f"<p>This code expires in {minutes} minutes. "
        "If you did not request it, you can ignore this email.</p>"
    )
    return subject, html


class ChallengeIssuer:
    def __init__(
        self,
        store: ChallengeStore,
        sender: EmailSender,
        *,
        code_length: int = CODE_LENGTH,
        ttl_sec: int = CODE_TTL_SEC,
        rate_limit_sec: int = RATE_LIMIT_SEC,
        now: Clock = utc_now,
    ) -> None:
        self.store = store
        self.sender = sender
        self.code_length = code_length
        self.ttl_sec = ttl_sec
        self.rate_limit_sec = rate_limit_sec
        self.now = now

    def issue(self, email: str, guest_identity_ref: Optional[str] = None) -> None:
        """Send a fresh code to ``email``. The code is never returned to the caller."""
        email_norm = normalize_email(email)
        now = self.now()

        recent = self.store.find_created_since(email_norm, now - timedelta(seconds=self.rate_limit_sec))
        if recent is not None:
            elapsed = (now - recent.created_at).total_seconds()
            retry_after = max(1, math.ceil(self.rate_limit_sec - elapsed))
            logger.info("Code request for %s rate limited (%ss left)", mask_email(email_norm), retry_after)
            raise RateLimited(retry_after)

        # Delete-then-insert leaves exactly one live challenge per email.
        self.store.delete_for_email(email_norm)

        code = generate_code(self.code_length)
        challenge = Challenge(
            id=str(uuid4()),
            email=email_norm,
            code=code,
            guest_identity_ref=guest_identity_ref or None,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_sec),
        )
        self.store.insert(challenge)
        logger.info("Issued code for %s (expires %s)", mask_email(email_norm), challenge.expires_at.isoformat())

        subject, html = render_code_email(code, self.ttl_sec)
        try:
            self.sender.send(email_norm, subject, html)
        except EmailDeliveryError as exc:
            # Challenge stays stored and usable.
            logger.error("Code delivery to %s failed: %s", mask_email(email_norm), exc)
            raise InternalError("Could not send the verification email. Please try again.") from exc
