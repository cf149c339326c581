import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Database
    database_url: Optional[str] = os.getenv("DATABASE_URL")
    database_name: str = os.getenv("DATABASE_NAME", "library")

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "dev-secret")
    token_ttl_hours: int = int(os.getenv("TOKEN_TTL_HOURS", "24"))
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Server
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8000"))
    cors_origins: List[str] = field(
        default_factory=lambda: [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    )
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    seed_on_start: bool = _flag("SEED_ON_START")


settings = Settings()
