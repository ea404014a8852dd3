# -*- coding: utf-8 -*-
"""App database (challenges/identities/profiles) — SQLite helpers."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

DEFAULT_TIMEOUT = 5.0


def connect(db_path: Path, timeout: float = DEFAULT_TIMEOUT) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_app_db(db_path: Path, timeout: float = DEFAULT_TIMEOUT) -> None:
    conn = connect(db_path, timeout)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS otp_challenges (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                code TEXT NOT NULL,
                guest_identity_ref TEXT,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                verified INTEGER NOT NULL DEFAULT 0,
                attempts INTEGER NOT NULL DEFAULT 0
            );
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_otp_challenges_email_created ON otp_challenges(email, created_at DESC);"
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS identities (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE,
                is_anonymous INTEGER NOT NULL,
                email_verified INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS profiles (
                identity_id TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.commit()
    finally:
        conn.close()


@contextmanager
def db_conn(db_path: Path, timeout: float = DEFAULT_TIMEOUT) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path, timeout)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


@contextmanager
def db_write_txn(db_path: Path, timeout: float = DEFAULT_TIMEOUT) -> Iterator[sqlite3.Connection]:
    """Connection holding the database write lock until the block exits."""
    conn = connect(db_path, timeout)
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()
