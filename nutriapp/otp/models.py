# -*- coding: utf-8 -*-
"""OTP — Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Challenge(BaseModel):
    id: str
    email: str
    code: str
    guest_identity_ref: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    verified: bool = False
    attempts: int = Field(0, ge=0)


class SendCodeRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    guest_id: Optional[str] = Field(None, max_length=128)


class SendCodeResponse(BaseModel):
    success: bool = True
    message: str


class VerifyCodeRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    code: str = Field(..., min_length=1, max_length=16)
    guest_id: Optional[str] = Field(None, max_length=128)


class VerifyCodeResponse(BaseModel):
    success: bool = True
    token: str
    identity_id: str
    email: str
    message: str
