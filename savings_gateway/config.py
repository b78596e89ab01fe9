"""Environment-driven settings, loaded once at process start.

A missing required variable stops the process at import time rather than
failing the first payment request.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

REQUIRED_ENV_VARS = (
    "PAYFAST_MERCHANT_ID",
    "PAYFAST_MERCHANT_KEY",
    "PAYFAST_BASE_URL",
    "APP_BASE_URL",
    "DATABASE_URL",
    "JWT_SECRET",
)


class Settings(BaseModel):
    merchant_id: str
    merchant_key: str
    passphrase: Optional[str] = None
    payfast_base_url: str
    app_base_url: str
    database_url: str
    jwt_secret: str
    log_level: str = "INFO"
    service_name: str = "savings-gateway"
    port: int = 4242

    @property
    def sandbox(self) -> bool:
        return "sandbox" in self.payfast_base_url

    @property
    def return_url(self) -> str:
        return f"{self.app_base_url}/payment/success"

    @property
    def cancel_url(self) -> str:
        return f"{self.app_base_url}/payment/cancel"

    @property
    def notify_url(self) -> str:
        return f"{self.app_base_url}/payfast/notify"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def load_settings() -> Settings:
    """Read settings from the environment, raising if any required value is unset."""

    missing = [name for name in REQUIRED_ENV_VARS if _env(name) is None]
    if missing:
        raise RuntimeError(
            "Missing required environment variables: " + ", ".join(missing) + ". Check your .env file."
        )

    return Settings(
        merchant_id=_env("PAYFAST_MERCHANT_ID"),
        merchant_key=_env("PAYFAST_MERCHANT_KEY"),
        passphrase=_env("PAYFAST_PASSPHRASE"),
        payfast_base_url=_env("PAYFAST_BASE_URL"),
        app_base_url=_env("APP_BASE_URL").rstrip("/"),
        database_url=_env("DATABASE_URL"),
        jwt_secret=_env("JWT_SECRET"),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        service_name=_env("SERVICE_NAME", "savings-gateway"),
        port=int(_env("BACKEND_PORT", "4242")),
    )


settings = load_settings()
