# -*- coding: utf-8 -*-
"""OTP — challenge store (SQLite)."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from ..app_db import DEFAULT_TIMEOUT, db_conn
from ..clock import from_iso, to_iso
from .errors import InternalError
from .models import Challenge

logger = logging.getLogger(__name__)


def _row_to_challenge(row: Dict[str, Any]) -> Challenge:
    return Challenge(
        id=row["id"],
        email=row["email"],
        code=row["code"],
        guest_identity_ref=row.get("guest_identity_ref"),
        created_at=from_iso(row["created_at"]),
        expires_at=from_iso(row["expires_at"]),
        verified=bool(row["verified"]),
        attempts=int(row["attempts"]),
    )


class ChallengeStore:
    """Outstanding one-time codes keyed by id, queried by normalized email.

    Database failures surface as ``InternalError``.
    """

    def __init__(self, db_path: Path, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.db_path = db_path
        self.timeout = timeout

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            with db_conn(self.db_path, self.timeout) as conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("Challenge store failure: %s", exc)
            raise InternalError("Verification is temporarily unavailable. Please try again.") from exc

    def insert(self, challenge: Challenge) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO otp_challenges (id, email, code, guest_identity_ref, created_at, expires_at, verified, attempts)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    challenge.id,
                    challenge.email,
                    challenge.code,
                    challenge.guest_identity_ref,
                    to_iso(challenge.created_at),
                    to_iso(challenge.expires_at),
                    int(challenge.verified),
                    challenge.attempts,
                ),
            )

    def get(self, challenge_id: str) -> Optional[Challenge]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM otp_challenges WHERE id = ?", (challenge_id,)).fetchone()
            return _row_to_challenge(dict(row)) if row else None

    def find_created_since(self, email: str, since: datetime) -> Optional[Challenge]:
        """Newest challenge for ``email`` created after ``since``, verified or not."""
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT * FROM otp_challenges
                WHERE email = ? AND created_at > ?
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (email, to_iso(since)),
            ).fetchone()
            return _row_to_challenge(dict(row)) if row else None

    def latest_unverified(self, email: str) -> Optional[Challenge]:
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT * FROM otp_challenges
                WHERE email = ? AND verified = 0
                ORDER BY created_at DESC
                LIMIT 1
                """,
                (email,),
            ).fetchone()
            return _row_to_challenge(dict(row)) if row else None

    def list_for_email(self, email: str) -> list[Challenge]:
        """All challenges for ``email``, newest first (inspection and tests)."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM otp_challenges WHERE email = ? ORDER BY created_at DESC",
                (email,),
            ).fetchall()
            return [_row_to_challenge(dict(r)) for r in rows]

    def delete_for_email(self, email: str) -> int:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM otp_challenges WHERE email = ?", (email,))
            return cur.rowcount

    def delete(self, challenge_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM otp_challenges WHERE id = ?", (challenge_id,))
            return cur.rowcount > 0

    def increment_attempts(self, challenge_id: str, cap: int) -> Optional[int]:
        """Count one submission; returns the new count, or None once ``cap`` is reached.

        Check and increment are a single UPDATE so concurrent submissions can
        never push the counter past ``cap``.
        """
        with self._conn() as conn:
            cur = conn.execute(
                """
                UPDATE otp_challenges
                SET attempts = attempts + 1
                WHERE id = ? AND verified = 0 AND attempts < ?
                """,
                (challenge_id, cap),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT attempts FROM otp_challenges WHERE id = ?", (challenge_id,)).fetchone()
            return int(row["attempts"])

    def mark_verified(self, challenge_id: str) -> bool:
        """Flip ``verified`` once; False if another caller already did or the row is gone."""
        with self._conn() as conn:
            cur = conn.execute(
                "UPDATE otp_challenges SET verified = 1 WHERE id = ? AND verified = 0",
                (challenge_id,),
            )
            return cur.rowcount > 0
