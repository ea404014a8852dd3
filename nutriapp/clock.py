# -*- coding: utf-8 -*-
"""Server clock.

Every timestamp this service writes or compares (challenge ``created_at`` and
``expires_at``, identity and profile times, token ``iat``/``exp``) comes from
``utc_now``. Services take a ``now`` callable defaulting to it so tests can
pin time.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    # Fixed-width so stored values compare correctly as strings.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
