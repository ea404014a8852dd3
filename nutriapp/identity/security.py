# -*- coding: utf-8 -*-
"""Identity — session tokens (HS256 JWT) + request helpers."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from ..clock import Clock, utc_now


def create_access_token(
    *,
    identity_id: str,
    email: Optional[str],
    is_anonymous: bool,
    secret: str,
    ttl_days: int,
    now: Clock = utc_now,
) -> str:
    issued = now()
    exp = issued + timedelta(days=int(ttl_days))
    payload = {
        "sub": identity_id,
        "email": email,
        "anon": bool(is_anonymous),
        "iat": int(issued.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return _jwt_encode(payload, secret)


def decode_token(token: str, secret: str, now: Clock = utc_now) -> Dict[str, Any]:
    try:
        payload = _jwt_decode(token, secret)
        exp = int(payload.get("exp") or 0)
        if exp and exp < int(now().timestamp()):
            raise HTTPException(status_code=401, detail="Token expired")
        return payload
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def _unpadded(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _padded(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _json_segment(obj: Dict[str, Any]) -> str:
    return _unpadded(json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


_SESSION_HEADER = _json_segment({"alg": "HS256", "typ": "JWT"})


def _sign(signed_part: str, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), signed_part.encode("ascii"), hashlib.sha256).digest()


def _jwt_encode(payload: Dict[str, Any], secret: str) -> str:
    signed_part = f"{_SESSION_HEADER}.{_json_segment(payload)}"
    return f"{signed_part}.{_unpadded(_sign(signed_part, secret))}"


def _jwt_decode(token: str, secret: str) -> Dict[str, Any]:
    """Claims of a token minted by ``_jwt_encode``; ``ValueError`` otherwise."""
    signed_part, _, signature = token.rpartition(".")
    header, _, body = signed_part.partition(".")
    if not header or not body or "." in body:
        raise ValueError("malformed session token")
    if json.loads(_padded(header)).get("alg") != "HS256":
        raise ValueError("unsupported token algorithm")
    if not hmac.compare_digest(_sign(signed_part, secret), _padded(signature)):
        raise ValueError("session token signature mismatch")
    claims = json.loads(_padded(body))
    if not isinstance(claims, dict):
        raise ValueError("session token claims are not an object")
    return claims


def get_token_from_request(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        return token or None
    return None
