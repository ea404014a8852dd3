# -*- coding: utf-8 -*-
"""OTP — API endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ..identity.security import decode_token, get_token_from_request
from ..identity.storage import IdentityDirectory
from ..services import get_directory, get_issuer, get_verifier
from .errors import GuestSessionMismatch, OtpError, RateLimited
from .issuer import ChallengeIssuer
from .models import SendCodeRequest, SendCodeResponse, VerifyCodeRequest, VerifyCodeResponse
from .verifier import ChallengeVerifier

router = APIRouter(prefix="/api/auth/otp", tags=["Auth"])


def _to_http(exc: OtpError) -> HTTPException:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)


def _bound_guest_id(request: Request, guest_id: Optional[str], directory: IdentityDirectory) -> Optional[str]:
    """``guest_id`` only counts when the bearer token belongs to that guest."""
    if not guest_id:
        return None
    token = get_token_from_request(request)
    if not token:
        raise GuestSessionMismatch()
    payload = decode_token(token, directory.jwt_secret)
    if str(payload.get("sub") or "") != guest_id:
        raise GuestSessionMismatch()
    return guest_id


@router.post("/send", response_model=SendCodeResponse, summary="Email a one-time code")
def send_code(request: SendCodeRequest, issuer: ChallengeIssuer = Depends(get_issuer)):
    try:
        issuer.issue(request.email, request.guest_id)
    except OtpError as exc:
        raise _to_http(exc) from exc
    return SendCodeResponse(message="Verification code sent. Please check your inbox.")


@router.post("/verify", response_model=VerifyCodeResponse, summary="Verify a one-time code and sign in")
def verify_code(
    request: VerifyCodeRequest,
    http_request: Request,
    verifier: ChallengeVerifier = Depends(get_verifier),
    directory: IdentityDirectory = Depends(get_directory),
):
    try:
        guest_id = _bound_guest_id(http_request, request.guest_id, directory)
        resolution = verifier.verify(request.email, request.code, guest_id)
    except OtpError as exc:
        raise _to_http(exc) from exc
    return VerifyCodeResponse(
        token=resolution.token,
        identity_id=resolution.identity_id,
        email=resolution.email,
        message="Signed in.",
    )
