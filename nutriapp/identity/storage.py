# -*- coding: utf-8 -*-
"""Identity — directory and profile storage (SQLite)."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional
from uuid import uuid4

from ..app_db import DEFAULT_TIMEOUT, db_conn, db_write_txn
from ..clock import Clock, to_iso, utc_now
from .models import DirectoryError, Identity, UpdateResult, UpdateStatus
from .security import create_access_token


def _row_to_identity(row: Mapping[str, Any]) -> Identity:
    return Identity(
        id=row["id"],
        email=row["email"],
        is_anonymous=bool(row["is_anonymous"]),
        email_verified=bool(row["email_verified"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class IdentityDirectory:
    """Durable identities plus session-token issuance.

    Lookups report absence as ``None`` and ``update_identity`` reports its
    expected failures through ``UpdateResult``; everything else surfaces as
    ``DirectoryError``.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        jwt_secret: str,
        token_ttl_days: int = 30,
        timeout: float = DEFAULT_TIMEOUT,
        now: Clock = utc_now,
    ) -> None:
        self.db_path = db_path
        self.jwt_secret = jwt_secret
        self.token_ttl_days = token_ttl_days
        self.timeout = timeout
        self.now = now

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            with db_conn(self.db_path, self.timeout) as conn:
                yield conn
        except sqlite3.Error as exc:
            raise DirectoryError(f"identity directory unavailable: {exc}") from exc

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM identities WHERE id = ?", (identity_id,)).fetchone()
            return _row_to_identity(row) if row else None

    def find_identity_by_email(self, email: str) -> Optional[Identity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM identities WHERE email = ?", (email.lower().strip(),)
            ).fetchone()
            return _row_to_identity(row) if row else None

    def create_identity(self, email: Optional[str], verified: bool) -> Identity:
        """New identity; anonymous exactly when it has no email."""
        identity_id = str(uuid4())
        now = to_iso(self.now())
        email_norm = email.lower().strip() if email else None
        is_anonymous = email_norm is None
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO identities (id, email, is_anonymous, email_verified, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (identity_id, email_norm, int(is_anonymous), int(bool(verified)), now, now),
            )
        return Identity(
            id=identity_id,
            email=email_norm,
            is_anonymous=is_anonymous,
            email_verified=bool(verified),
            created_at=now,
            updated_at=now,
        )

    def update_identity(self, identity_id: str, *, email: str, verified: bool) -> UpdateResult:
        """Attach ``email`` to a guest identity and make it permanent.

        Only anonymous identities, or a permanent one already registered to
        ``email``, are written.
        """
        email_norm = email.lower().strip()
        now = to_iso(self.now())
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM identities WHERE id = ?", (identity_id,)).fetchone()
            if not row:
                return UpdateResult(UpdateStatus.not_found)
            if not row["is_anonymous"] and row["email"] != email_norm:
                return UpdateResult(UpdateStatus.not_anonymous)
            owner = conn.execute(
                "SELECT id FROM identities WHERE email = ? AND id != ?", (email_norm, identity_id)
            ).fetchone()
            if owner:
                return UpdateResult(UpdateStatus.email_taken, conflicting_id=owner["id"])
            try:
                cur = conn.execute(
                    """
                    UPDATE identities
                    SET email = ?, email_verified = ?, is_anonymous = 0, updated_at = ?
                    WHERE id = ? AND (is_anonymous = 1 OR email = ?)
                    """,
                    (email_norm, int(bool(verified)), now, identity_id, email_norm),
                )
            except sqlite3.IntegrityError:
                # Another identity claimed the email between the check and the write.
                owner = conn.execute("SELECT id FROM identities WHERE email = ?", (email_norm,)).fetchone()
                if owner is None:
                    raise
                return UpdateResult(UpdateStatus.email_taken, conflicting_id=owner["id"])
            if cur.rowcount == 0:
                # Changed since the first read; treated like any non-guest target.
                return UpdateResult(UpdateStatus.not_anonymous)
            updated = conn.execute("SELECT * FROM identities WHERE id = ?", (identity_id,)).fetchone()
        return UpdateResult(UpdateStatus.updated, identity=_row_to_identity(updated))

    def issue_session_token(self, identity_id: str) -> str:
        identity = self.get_identity(identity_id)
        if identity is None:
            raise DirectoryError(f"cannot issue a token for unknown identity {identity_id}")
        return create_access_token(
            identity_id=identity.id,
            email=identity.email,
            is_anonymous=identity.is_anonymous,
            secret=self.jwt_secret,
            ttl_days=self.token_ttl_days,
            now=self.now,
        )


def _load(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    data = json.loads(raw)
    return data if isinstance(data, dict) else {}


def _is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    return isinstance(value, (str, list, dict)) and not value


class ProfileStore:
    """One JSON profile document per identity."""

    def __init__(self, db_path: Path, timeout: float = DEFAULT_TIMEOUT, now: Clock = utc_now) -> None:
        self.db_path = db_path
        self.timeout = timeout
        self.now = now

    def get(self, identity_id: str) -> Optional[Dict[str, Any]]:
        with db_conn(self.db_path, self.timeout) as conn:
            row = conn.execute("SELECT data_json FROM profiles WHERE identity_id = ?", (identity_id,)).fetchone()
            return _load(row["data_json"]) if row else None

    def _write(self, conn: sqlite3.Connection, identity_id: str, data: Dict[str, Any]) -> None:
        conn.execute(
            """
            INSERT INTO profiles (identity_id, data_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(identity_id) DO UPDATE SET data_json = excluded.data_json, updated_at = excluded.updated_at
            """,
            (identity_id, json.dumps(data, ensure_ascii=False), to_iso(self.now())),
        )

    def _read(self, conn: sqlite3.Connection, identity_id: str) -> Optional[Dict[str, Any]]:
        row = conn.execute("SELECT data_json FROM profiles WHERE identity_id = ?", (identity_id,)).fetchone()
        return _load(row["data_json"]) if row else None

    def put(self, identity_id: str, data: Mapping[str, Any]) -> None:
        with db_write_txn(self.db_path, self.timeout) as conn:
            self._write(conn, identity_id, dict(data))

    def merge_write(self, identity_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Set ``fields`` on the document, creating it if needed; other fields are kept."""
        with db_write_txn(self.db_path, self.timeout) as conn:
            data = self._read(conn, identity_id) or {}
            data.update(fields)
            self._write(conn, identity_id, data)
            return data

    def merge_into(
        self,
        destination_id: str,
        source_id: str,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Fold the source document into the destination and delete the source.

        Fields set on the destination win. A field that is absent there, or
        only holds a blank placeholder (``None``, ``False``, an empty string or
        container), takes the source value. ``overrides`` are applied last. A
        missing source leaves the destination as it was apart from
        ``overrides``.
        """
        with db_write_txn(self.db_path, self.timeout) as conn:
            destination = self._read(conn, destination_id) or {}
            source = self._read(conn, source_id) or {}
            for key, value in source.items():
                if _is_blank(destination.get(key)):
                    destination[key] = value
            destination.update(overrides or {})
            self._write(conn, destination_id, destination)
            conn.execute("DELETE FROM profiles WHERE identity_id = ?", (source_id,))
            return destination
