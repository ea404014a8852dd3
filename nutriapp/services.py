# -*- coding: utf-8 -*-
"""Service wiring shared by the routers.

Each provider builds its object once per process from ``settings``; tests
swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from .config import settings
from .identity.resolver import IdentityResolver
from .identity.storage import IdentityDirectory, ProfileStore
from .mail.sender import EmailSender, build_email_sender
from .otp.issuer import ChallengeIssuer
from .otp.storage import ChallengeStore
from .otp.verifier import ChallengeVerifier


@lru_cache(maxsize=None)
def get_challenge_store() -> ChallengeStore:
    return ChallengeStore(settings.app_db_path, settings.db_timeout)


@lru_cache(maxsize=None)
def get_email_sender() -> EmailSender:
    return build_email_sender(settings)


@lru_cache(maxsize=None)
def get_directory() -> IdentityDirectory:
    return IdentityDirectory(
        settings.app_db_path,
        jwt_secret=settings.jwt_secret,
        token_ttl_days=settings.token_ttl_days,
        timeout=settings.db_timeout,
    )


@lru_cache(maxsize=None)
def get_profiles() -> ProfileStore:
    return ProfileStore(settings.app_db_path, settings.db_timeout)


@lru_cache(maxsize=None)
def get_issuer() -> ChallengeIssuer:
    return ChallengeIssuer(
        get_challenge_store(),
        get_email_sender(),
        code_length=settings.otp_length,
        ttl_sec=settings.otp_ttl_sec,
        rate_limit_sec=settings.otp_rate_limit_sec,
    )


@lru_cache(maxsize=None)
def get_verifier() -> ChallengeVerifier:
    return ChallengeVerifier(
        get_challenge_store(),
        IdentityResolver(get_directory(), get_profiles()),
        code_length=settings.otp_length,
        max_attempts=settings.otp_max_attempts,
    )
