# -*- coding: utf-8 -*-
"""Identity — API endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ..clock import to_iso, utc_now
from ..services import get_directory, get_profiles
from .models import DirectoryError, GuestResponse, Identity, IdentityPublic
from .resolver import default_profile
from .security import decode_token, get_token_from_request
from .storage import IdentityDirectory, ProfileStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def get_current_identity(
    request: Request,
    directory: IdentityDirectory = Depends(get_directory),
) -> Identity:
    token = get_token_from_request(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = decode_token(token, directory.jwt_secret)
    identity_id = str(payload.get("sub") or "")
    if not identity_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    identity = directory.get_identity(identity_id)
    if identity is None:
        raise HTTPException(status_code=401, detail="Identity not found")
    return identity


@router.post("/guest", response_model=GuestResponse, summary="Start as a guest")
def create_guest(
    directory: IdentityDirectory = Depends(get_directory),
    profiles: ProfileStore = Depends(get_profiles),
):
    try:
        identity = directory.create_identity(None, verified=False)
        token = directory.issue_session_token(identity.id)
    except DirectoryError as exc:
        logger.error("Guest identity creation failed: %s", exc)
        raise HTTPException(status_code=500, detail="Could not start a guest session") from exc

    try:
        profiles.put(identity.id, default_profile(None, to_iso(utc_now())))
    except Exception:
        logger.exception("Empty profile for guest %s could not be written", identity.id)
    return GuestResponse(identity_id=identity.id, token=token)


@router.get("/me", response_model=IdentityPublic, summary="Get current identity")
def me(identity: Identity = Depends(get_current_identity)):
    return IdentityPublic(
        id=identity.id,
        email=identity.email,
        is_anonymous=identity.is_anonymous,
        email_verified=identity.email_verified,
    )
