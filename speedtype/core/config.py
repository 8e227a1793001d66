import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Dict, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database & Cache
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None  # unset = Redis disabled, in-process fallbacks only
    REDIS_SOCKET_TIMEOUT: float = 2.0

    # Admin access (cache rebuild, redis health)
    ADMIN_KEY: Optional[str] = None

    # Rate limiting (sliding 60s windows)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_SUBMISSION_PER_MINUTE: int = 20
    RATE_LIMIT_LEADERBOARD_PER_MINUTE: int = 30
    # Reserved for the chat, sign-in and shop surfaces that share this limiter
    RATE_LIMIT_CHAT_PER_MINUTE: int = 5
    RATE_LIMIT_AUTH_PER_MINUTE: int = 5
    RATE_LIMIT_PURCHASE_PER_MINUTE: int = 10
    RATE_LIMIT_GENERAL_PER_MINUTE: int = 60
    RATE_LIMIT_FALLBACK_MAX_KEYS: int = 10000

    # Replay protection
    IDEMPOTENCY_TTL_SECONDS: int = 86400
    IDEMPOTENCY_FALLBACK_MAX_KEYS: int = 50000

    # Leaderboard cache
    LEADERBOARD_MAX_SIZE: int = 1000
    LEADERBOARD_ENTRY_TTL_SECONDS: int = 3600

    # Streaks
    STREAK_TTL_SECONDS: int = 86400 * 7

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def rate_limit_policies(self) -> Dict[str, int]:
        """Requests allowed per window, keyed by policy name."""
        return {
            "test-submission": self.RATE_LIMIT_SUBMISSION_PER_MINUTE,
            "leaderboard": self.RATE_LIMIT_LEADERBOARD_PER_MINUTE,
            "chat": self.RATE_LIMIT_CHAT_PER_MINUTE,
            "auth": self.RATE_LIMIT_AUTH_PER_MINUTE,
            "purchase": self.RATE_LIMIT_PURCHASE_PER_MINUTE,
            "general": self.RATE_LIMIT_GENERAL_PER_MINUTE,
        }


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("speedtype")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
        "REDIS_URL",
    ]

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
