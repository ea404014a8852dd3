# -*- coding: utf-8 -*-
"""Shared fixtures for the test suites."""

from __future__ import annotations

import re
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from nutriapp.app_db import init_app_db
from nutriapp.identity.resolver import IdentityResolver
from nutriapp.identity.storage import IdentityDirectory, ProfileStore
from nutriapp.mail.sender import EmailDeliveryError, EmailSender
from nutriapp.otp.issuer import ChallengeIssuer
from nutriapp.otp.storage import ChallengeStore
from nutriapp.otp.verifier import ChallengeVerifier

_CODE_RE = re.compile(r"\b(\d{6})\b")


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


class RecordingEmailSender(EmailSender):
    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = fail

    def send(self, to_address: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.sent.append((to_address, subject, html_body))

    def last_code(self) -> str:
        _, subject, _ = self.sent[-1]
        match = _CODE_RE.search(subject)
        assert match is not None
        return match.group(1)


class TempDb:
    def __init__(self) -> None:
        self.root = Path(tempfile.mkdtemp(prefix="nutriapp-test-"))
        self.path = self.root / "nutriapp.db"
        init_app_db(self.path)

    def cleanup(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)


class Harness:
    """Issuer, verifier and resolver over one temporary database."""

    def __init__(self, sender: Optional[EmailSender] = None) -> None:
        self.db = TempDb()
        self.clock = FakeClock()
        self.sender = sender or RecordingEmailSender()
        self.store = ChallengeStore(self.db.path)
        self.directory = IdentityDirectory(self.db.path, jwt_secret="test-secret", now=self.clock)
        self.profiles = ProfileStore(self.db.path, now=self.clock)
        self.resolver = IdentityResolver(self.directory, self.profiles, now=self.clock)
        self.issuer = ChallengeIssuer(self.store, self.sender, now=self.clock)
        self.verifier = ChallengeVerifier(self.store, self.resolver, now=self.clock)

    def cleanup(self) -> None:
        self.db.cleanup()
