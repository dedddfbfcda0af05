import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        secret_key: str,
        session_ttl_days: int,
        frontend_url: str,
        cors_origins: list[str],
        smtp_host: str,
        smtp_port: int,
        smtp_email: Optional[str],
        smtp_password: Optional[str],
        smtp_timeout_secs: float,
        google_userinfo_url: str,
        google_timeout_secs: float,
        seed_wallets: bool,
    ) -> None:
        self.database_url = database_url
        self.secret_key = secret_key
        self.session_ttl_days = session_ttl_days
        self.frontend_url = frontend_url
        self.cors_origins = cors_origins
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_email = smtp_email
        self.smtp_password = smtp_password
        self.smtp_timeout_secs = smtp_timeout_secs
        self.google_userinfo_url = google_userinfo_url
        self.google_timeout_secs = google_timeout_secs
        self.seed_wallets = seed_wallets


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("SAVINGS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("SAVINGS_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "savings.db"
        database_url = f"sqlite:///{default_db}"
    secret_key = os.getenv(
        "SAVINGS_SECRET_KEY",
        "4f1c0b7e9d3a5f28c6e1b0a7d9f3e5c2a8b6d4f0e2c9a7b5d3f1e8c6a4b2d0f9",
    )
    session_ttl_days = int(os.getenv("SAVINGS_SESSION_TTL_DAYS", "7"))
    frontend_url = os.getenv("SAVINGS_FRONTEND_URL", "http://localhost:3000")
    cors_origins = [
        origin.strip()
        for origin in os.getenv("SAVINGS_CORS_ORIGINS", frontend_url).split(",")
        if origin.strip()
    ]
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        session_ttl_days=session_ttl_days,
        frontend_url=frontend_url.rstrip("/"),
        cors_origins=cors_origins,
        smtp_host=os.getenv("SAVINGS_SMTP_HOST", "smtp.gmail.com"),
        smtp_port=int(os.getenv("SAVINGS_SMTP_PORT", "587")),
        smtp_email=os.getenv("SAVINGS_SMTP_EMAIL") or None,
        smtp_password=os.getenv("SAVINGS_SMTP_PASSWORD") or None,
        smtp_timeout_secs=float(os.getenv("SAVINGS_SMTP_TIMEOUT_SECS", "10")),
        google_userinfo_url=os.getenv(
            "SAVINGS_GOOGLE_USERINFO_URL",
            "https://www.googleapis.com/oauth2/v3/userinfo",
        ),
        google_timeout_secs=float(os.getenv("SAVINGS_GOOGLE_TIMEOUT_SECS", "5")),
        seed_wallets=_env_flag("SAVINGS_SEED_WALLETS", "true"),
    )
