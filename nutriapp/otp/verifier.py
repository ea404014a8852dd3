# -*- coding: utf-8 -*-
"""OTP — code verification.

A challenge allows ``max_attempts`` submissions in total, the correct one
included. Each submission is counted before the code is compared, so the
hint after a wrong code is ``max_attempts - attempts``; once the counter is
at the cap the next submission deletes the challenge.
"""

from __future__ import annotations

import hmac
import logging
import re
from typing import Optional

from ..clock import Clock, utc_now
from ..identity.models import DirectoryError, Resolution
from ..identity.resolver import IdentityResolver
from ..mail.sender import mask_email
from .errors import (
    AttemptsExhausted,
    ChallengeExpired,
    ChallengeNotFound,
    InternalError,
    InvalidArgument,
    WrongCode,
)
from .issuer import CODE_LENGTH, normalize_email
from .storage import ChallengeStore

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def normalize_code(code: Optional[str], length: int = CODE_LENGTH) -> str:
    code_norm = re.sub(r"\s+", "", code or "")
    if not re.fullmatch(rf"\d{{{length}}}", code_norm):
        raise InvalidArgument(f"Please enter the {length}-digit code.")
    return code_norm


class ChallengeVerifier:
    def __init__(
        self,
        store: ChallengeStore,
        resolver: IdentityResolver,
        *,
        code_length: int = CODE_LENGTH,
        max_attempts: int = MAX_ATTEMPTS,
        now: Clock = utc_now,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.code_length = code_length
        self.max_attempts = max_attempts
        self.now = now

    def verify(self, email: str, code: str, guest_identity_ref: Optional[str] = None) -> Resolution:
        email_norm = normalize_email(email)
        code_norm = normalize_code(code, self.code_length)

        challenge = self.store.latest_unverified(email_norm)
        if challenge is None:
            raise ChallengeNotFound()

        if self.now() > challenge.expires_at:
            self.store.delete(challenge.id)
            logger.info("Expired code submitted for %s", mask_email(email_norm))
            raise ChallengeExpired()

        if challenge.attempts >= self.max_attempts:
            self.store.delete(challenge.id)
            logger.info("Attempts exhausted for %s", mask_email(email_norm))
            raise AttemptsExhausted()

        attempts = self.store.increment_attempts(challenge.id, self.max_attempts)
        if attempts is None:
            # Lost a race: the challenge was consumed, deleted or capped meanwhile.
            current = self.store.get(challenge.id)
            if current is None or current.verified:
                raise ChallengeNotFound()
            self.store.delete(challenge.id)
            raise AttemptsExhausted()

        if not hmac.compare_digest(code_norm, challenge.code):
            remaining = max(0, self.max_attempts - attempts)
            logger.info("Wrong code for %s (%s attempts remaining)", mask_email(email_norm), remaining)
            raise WrongCode(remaining)

        if not self.store.mark_verified(challenge.id):
            raise ChallengeNotFound()

        try:
            resolution = self.resolver.resolve(email_norm, guest_identity_ref or None)
        except DirectoryError as exc:
            # The challenge stays verified and can no longer be used; the user must request a new code.
            logger.error("Challenge %s verified but sign-in failed for %s: %s", challenge.id, mask_email(email_norm), exc)
            raise InternalError("Could not complete sign-in. Please request a new code.") from exc

        self.store.delete(challenge.id)
        logger.info("Verified %s as identity %s", mask_email(email_norm), resolution.identity_id)
        return resolution
