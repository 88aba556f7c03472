import os
from functools import lru_cache
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


class Settings:
    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent.parent.parent
        self.APP_NAME: str = os.getenv("APP_NAME", "QuoteHub API")
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-change-me")
        self.ACCESS_TOKEN_EXPIRE_HOURS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "8"))
        self.ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
        self.SQLALCHEMY_DATABASE_URI: str = os.getenv(
            "SQLALCHEMY_DATABASE_URI",
            f"sqlite:///{(base_dir / 'quotehub.db').as_posix()}",
        )
        self.ENV: str = os.getenv("ENV", "development")
        self.DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "BRL").strip().upper()

        # Break-glass access: a shared secret plus X-Company-Id header.
        # An empty secret disables the path entirely.
        self.ADMIN_OVERRIDE_SECRET: str = os.getenv("ADMIN_OVERRIDE_SECRET", "")
        self.ADMIN_USER_EMAIL: str = os.getenv("ADMIN_USER_EMAIL", "master@system.com").strip().lower()
        # Only used when the administrative account is first created.
        self.ADMIN_USER_PASSWORD: str = os.getenv("ADMIN_USER_PASSWORD", "")

        self.QUOTE_EXPIRY_WARNING_DAYS: int = int(os.getenv("QUOTE_EXPIRY_WARNING_DAYS", "7"))

        default_cors = [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
        cors_origins = os.getenv("BACKEND_CORS_ORIGINS")
        self.BACKEND_CORS_ORIGINS: List[str] = (
            [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
            if cors_origins
            else default_cors
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
