from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    db_dsn: str
    allora_api_key: str = ""
    allora_chain_slug: str = ""
    allora_base_url: str = "https://api.allora.network/v2"
    coingecko_api_key: str = ""
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    cron_secret: str = ""
    qstash_current_signing_key: str = ""
    qstash_next_signing_key: str = ""
    app_env: str = "development"
    http_timeout_seconds: float = 30.0
    allowed_origins: tuple[str, ...] = field(default=("http://localhost:3000",))

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


def load_config() -> AppConfig:
    """Load application config from environment variables.

    Loads .env file if present in the current directory.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    origins = os.environ.get("ALLOWED_ORIGINS", "")
    return AppConfig(
        db_dsn=os.environ.get("DATABASE_URL", ""),
        allora_api_key=os.environ.get("ALLORA_API_KEY", ""),
        allora_chain_slug=os.environ.get("ALLORA_CHAIN_SLUG", "").strip().lower(),
        allora_base_url=os.environ.get("ALLORA_API_BASE_URL", "https://api.allora.network/v2"),
        coingecko_api_key=os.environ.get("COINGECKO_API_KEY", ""),
        coingecko_base_url=os.environ.get(
            "COINGECKO_API_BASE_URL", "https://api.coingecko.com/api/v3"
        ),
        cron_secret=os.environ.get("CRON_SECRET", ""),
        qstash_current_signing_key=os.environ.get("QSTASH_CURRENT_SIGNING_KEY", ""),
        qstash_next_signing_key=os.environ.get("QSTASH_NEXT_SIGNING_KEY", ""),
        app_env=os.environ.get("APP_ENV", "development"),
        http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30")),
        allowed_origins=tuple(
            o.strip() for o in origins.split(",") if o.strip()
        ) or ("http://localhost:3000",),
    )
