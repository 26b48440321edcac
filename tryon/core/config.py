"""
Application configuration.
All settings are loaded from environment variables (or .env).
Credentials are not configured here: they come with each GenerationConfig.
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Settings for the generation core.

    Every field has a default so the core can be imported without a .env file.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    app_env: str = "local"

    # ===========================================
    # REDIS (key pool persistence)
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    key_pool_redis_prefix: str = "keypool"
    # Lock around each load-decide-save; expires if a worker dies holding it
    key_pool_lock_timeout: float = 10.0
    key_pool_lock_wait: float = 5.0

    # ===========================================
    # GEMINI (Provider: gemini, synchronous)
    # ===========================================
    gemini_api_endpoint: str = "https://generativelanguage.googleapis.com"
    gemini_image_model: str = "gemini-2.5-flash-image-preview"
    gemini_timeout: float = 120.0

    # ===========================================
    # GRSAI (Provider: grsai, submit + poll)
    # ===========================================
    grsai_api_host: str = "https://grsai.dakka.com.cn"
    grsai_model: str = "nano-banana-fast"
    grsai_timeout: float = 30.0
    grsai_poll_interval: float = 2.0
    grsai_poll_timeout: float = 120.0

    # ===========================================
    # GENERATION DEFAULTS
    # ===========================================
    default_provider: str = "gemini"
    default_temperature: float = 0.7
    default_prompt: str = "一个穿着[服装]的时尚人士的超逼真全身照，背景简洁。"

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("grsai_poll_interval", "grsai_poll_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Polling needs a positive interval and timeout."""
        if v <= 0:
            raise ValueError("poll interval and timeout must be positive")
        return v

    @field_validator("default_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
