# -*- coding: utf-8 -*-
"""Identity — map a verified email to exactly one durable identity.

With a guest reference the guest identity is upgraded in place when it can
be. If another identity already owns the email, that identity wins and the
guest's profile is folded into it. A reference to a permanent identity is
never rewritten; it is handled like a guest that no longer exists. Without a guest reference this is a plain
sign-in or sign-up by email.

Profile writes after the identity link are best effort: a failure is logged
with both ids and the caller still gets a session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..clock import Clock, to_iso, utc_now
from ..mail.sender import mask_email
from .models import DirectoryError, Identity, Resolution, UpdateStatus
from .storage import IdentityDirectory, ProfileStore

logger = logging.getLogger(__name__)


def verified_fields(email: str) -> Dict[str, Any]:
    return {"email": email, "emailVerified": True, "isAnonymous": False}


def default_profile(email: Optional[str], now: str) -> Dict[str, Any]:
    """Baseline document for an identity that has never been through onboarding."""
    return {
        "email": email,
        "emailVerified": email is not None,
        "isAnonymous": email is None,
        "onboardingCompleted": False,
        "profile": {},
        "goals": {},
        "activity": {},
        "diet": {},
        "preferences": {},
        "createdAt": now,
    }


class IdentityResolver:
    def __init__(self, directory: IdentityDirectory, profiles: ProfileStore, now: Clock = utc_now) -> None:
        self.directory = directory
        self.profiles = profiles
        self.now = now

    def resolve(self, email: str, guest_identity_ref: Optional[str] = None) -> Resolution:
        """Return the durable identity for a verified ``email`` and a fresh session token.

        Raises ``DirectoryError`` when the directory fails in a way that leaves
        no identity to sign in to.
        """
        if guest_identity_ref:
            identity_id = self._resolve_guest(email, guest_identity_ref)
        else:
            identity_id = self._resolve_direct(email)

        self._mark_profile_verified(identity_id, email)
        token = self.directory.issue_session_token(identity_id)
        return Resolution(identity_id=identity_id, email=email, token=token)

    def _resolve_guest(self, email: str, guest_id: str) -> str:
        result = self.directory.update_identity(guest_id, email=email, verified=True)

        if result.status is UpdateStatus.updated:
            logger.info("Upgraded guest %s to %s", guest_id, mask_email(email))
            return guest_id

        if result.status in (UpdateStatus.not_found, UpdateStatus.not_anonymous):
            if result.status is UpdateStatus.not_anonymous:
                logger.warning("Identity %s is not a guest; ignoring it for %s", guest_id, mask_email(email))
            existing = self.directory.find_identity_by_email(email)
            if existing is not None:
                logger.info("No usable guest %s; signing in to %s", guest_id, existing.id)
                return existing.id
            created = self._create_verified(email)
            logger.info("No usable guest %s; created %s", guest_id, created.id)
            return created.id

        if result.status is UpdateStatus.email_taken:
            winner_id = result.conflicting_id
            if not winner_id:
                raise DirectoryError("email already claimed but owner unknown")
            logger.info("Email %s belongs to %s; merging guest %s into it", mask_email(email), winner_id, guest_id)
            self._merge_guest_profile(winner_id, guest_id, email)
            return winner_id

        raise DirectoryError(f"unexpected update status {result.status!r}")

    def _resolve_direct(self, email: str) -> str:
        existing = self.directory.find_identity_by_email(email)
        if existing is not None:
            logger.info("Signed in existing identity %s", existing.id)
            return existing.id
        created = self._create_verified(email)
        logger.info("Created identity %s for %s", created.id, mask_email(email))
        return created.id

    def _create_verified(self, email: str) -> Identity:
        identity = self.directory.create_identity(email, verified=True)
        try:
            self.profiles.put(identity.id, default_profile(email, to_iso(self.now())))
        except Exception:
            logger.exception("Default profile for %s could not be written", identity.id)
        return identity

    def _merge_guest_profile(self, winner_id: str, guest_id: str, email: str) -> None:
        try:
            self.profiles.merge_into(winner_id, guest_id, overrides=verified_fields(email))
        except Exception:
            # Identity link already stands; needs a manual merge.
            logger.exception("Profile merge from guest %s into %s failed", guest_id, winner_id)

    def _mark_profile_verified(self, identity_id: str, email: str) -> None:
        try:
            self.profiles.merge_write(identity_id, verified_fields(email))
        except Exception:
            logger.exception("Could not mark profile %s as verified", identity_id)
