from __future__ import annotations
import os
from decimal import Decimal
from pydantic import BaseModel

class Settings(BaseModel):
    environment: str = os.getenv("ENVIRONMENT", "dev")
    app_name: str = os.getenv("APP_NAME", "commitpact-api")
    app_display_name: str = os.getenv("APP_DISPLAY_NAME", "CommitPact")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    git_sha: str = os.getenv("GIT_SHA", "dev")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    database_url: str = os.getenv("DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/commitpact_dev")
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Platform commission on the losers pot
    commission_rate_public: Decimal = Decimal(os.getenv("COMMISSION_RATE_PUBLIC", "0.05"))
    commission_rate_friends: Decimal = Decimal(os.getenv("COMMISSION_RATE_FRIENDS", "0.03"))

    # Proof windows
    proof_grace_hours: int = int(os.getenv("PROOF_GRACE_HOURS", "24"))
    long_challenge_hours: int = int(os.getenv("LONG_CHALLENGE_HOURS", "24"))

    # Settlement
    finalize_mark_expired: bool = os.getenv("FINALIZE_MARK_EXPIRED", "0") == "1"
    sweep_batch_size: int = int(os.getenv("SWEEP_BATCH_SIZE", "50"))

settings = Settings()
