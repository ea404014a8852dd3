# -*- coding: utf-8 -*-
"""Identity — models and directory result types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Identity(BaseModel):
    id: str
    email: Optional[str] = None
    is_anonymous: bool
    email_verified: bool
    created_at: str
    updated_at: str


class UpdateStatus(str, Enum):
    updated = "updated"
    not_found = "not_found"
    email_taken = "email_taken"
    not_anonymous = "not_anonymous"


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of ``IdentityDirectory.update_identity``.

    ``identity`` is set for ``updated``; ``conflicting_id`` names the identity
    already holding the email for ``email_taken``. ``not_anonymous`` means the
    target is a permanent identity registered to a different email and was
    left untouched.
    """

    status: UpdateStatus
    identity: Optional[Identity] = None
    conflicting_id: Optional[str] = None


class DirectoryError(RuntimeError):
    """Any directory failure other than the outcomes modelled by ``UpdateStatus``."""


@dataclass(frozen=True)
class Resolution:
    identity_id: str
    email: str
    token: str


class IdentityPublic(BaseModel):
    id: str
    email: Optional[str] = None
    is_anonymous: bool
    email_verified: bool


class GuestResponse(BaseModel):
    identity_id: str
    token: str
    is_anonymous: bool = True
