# -*- coding: utf-8 -*-
"""OTP — caller-facing errors.

Every failure a client can observe from the send/verify flow is one of these.
``code`` is the stable machine-readable name, ``status_code`` the HTTP status
the routers answer with, and ``message`` is safe to show to the user.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class OtpError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidArgument(OtpError):
    code = "invalid-argument"
    status_code = 400


class RateLimited(OtpError):
    code = "resource-exhausted"
    status_code = 429

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Please wait {retry_after} seconds before requesting a new code.")
        self.retry_after = retry_after

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["retry_after"] = self.retry_after
        return detail


class ChallengeNotFound(OtpError):
    code = "not-found"
    status_code = 404

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "No active code for this email. Please request a new code.")


class ChallengeExpired(OtpError):
    code = "deadline-exceeded"
    status_code = 410

    def __init__(self) -> None:
        super().__init__("This code has expired. Please request a new code.")


class AttemptsExhausted(OtpError):
    code = "resource-exhausted"
    status_code = 429

    def __init__(self) -> None:
        super().__init__("Too many incorrect attempts. Please request a new code.")


class WrongCode(OtpError):
    code = "permission-denied"
    status_code = 401

    def __init__(self, remaining_attempts: int) -> None:
        super().__init__(f"Incorrect code. {remaining_attempts} attempts remaining.")
        self.remaining_attempts = remaining_attempts

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["remaining_attempts"] = self.remaining_attempts
        return detail


class InternalError(OtpError):
    code = "internal"
    status_code = 500


class GuestSessionMismatch(OtpError):
    code = "permission-denied"
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Sign in to this guest session before linking an email to it.")
