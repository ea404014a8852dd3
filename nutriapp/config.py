from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional


class Settings:
    """Centralized configuration for the sign-in backend."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        data_root_default = base_dir.parent / "data"

        self.data_root: Path = Path(
            os.environ.get("NUTRIAPP_DATA_ROOT") or data_root_default
        ).expanduser()
        self.app_db_path: Path = Path(
            os.environ.get("NUTRIAPP_DB_PATH") or (self.data_root / "nutriapp.db")
        ).expanduser()
        self.db_timeout: float = float(os.environ.get("NUTRIAPP_DB_TIMEOUT") or "5")

        # In production you MUST set NUTRIAPP_JWT_SECRET. The dev secret keeps local demos easy.
        self.jwt_secret: str = os.environ.get("NUTRIAPP_JWT_SECRET") or "dev-secret-change-me"
        self.token_ttl_days: int = int(os.environ.get("NUTRIAPP_TOKEN_TTL_DAYS") or "30")

        # ---- One-time codes ----
        self.otp_length: int = int(os.environ.get("NUTRIAPP_OTP_LENGTH") or "6")
        self.otp_ttl_sec: int = int(os.environ.get("NUTRIAPP_OTP_TTL_SEC") or "300")
        self.otp_rate_limit_sec: int = int(os.environ.get("NUTRIAPP_OTP_RATE_LIMIT_SEC") or "60")
        self.otp_max_attempts: int = int(os.environ.get("NUTRIAPP_OTP_MAX_ATTEMPTS") or "5")

        # ---- Email delivery (unset key = console mode) ----
        self.resend_api_key: Optional[str] = os.environ.get("RESEND_API_KEY") or None
        self.resend_base_url: str = os.environ.get("RESEND_BASE_URL", "https://api.resend.com")
        self.mail_from: str = os.environ.get("NUTRIAPP_MAIL_FROM") or "Nutriapp <no-reply@nutriapp.app>"
        self.mail_timeout: float = float(os.environ.get("NUTRIAPP_MAIL_TIMEOUT") or "10")

        self.log_level: str = (os.environ.get("NUTRIAPP_LOG_LEVEL") or "INFO").upper()

        cors = os.environ.get("NUTRIAPP_CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]


settings = Settings()
