"""
Centralized Configuration Settings.

All environment variables are defined here using Pydantic Settings.
Components read configuration through ``get_settings()`` and call
``Settings.require()`` for values they cannot run without, so a missing
variable fails fast with its name in the message.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings with environment variable loading.

    All settings have sensible defaults for development.
    Production deployments should override via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================
    SERVICE_NAME: str = "assistant-service"
    SERVICE_PORT: int = 3001
    LOG_LEVEL: str = "INFO"
    STRUCTURED_LOGGING: bool = False
    BASE_URL: str = "http://localhost:3001"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

    @property
    def allowed_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS into list."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    # =========================================================================
    # Owner (used in prompts)
    # =========================================================================
    OWNER_NAME: str = "Brandon"
    OWNER_FULL_NAME: str = "Brandon Hinrichs"

    # =========================================================================
    # LLM / Transcription Provider
    # =========================================================================
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_TEMPERATURE: float = 0.7
    TRANSCRIPTION_MODEL: str = "whisper-1"
    TRANSCRIPTION_LANGUAGE: str = "en"

    # =========================================================================
    # Hosted Memory Store (Supabase / PostgREST)
    # =========================================================================
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_TABLE: str = "memories"

    # =========================================================================
    # Google Calendar
    # =========================================================================
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = ""
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN: str = ""
    GOOGLE_TOKEN_PATH: str = "token.json"

    # =========================================================================
    # Microsoft Outlook Calendar
    # =========================================================================
    MICROSOFT_CLIENT_ID: str = ""
    MICROSOFT_CLIENT_SECRET: str = ""
    MICROSOFT_TENANT_ID: str = "common"
    MICROSOFT_REDIRECT_URI: str = ""
    MICROSOFT_AUTH_MODE: Literal["delegated", "application"] = "delegated"
    MICROSOFT_USER_EMAIL: str = ""
    MICROSOFT_TOKEN: str = ""
    MICROSOFT_TOKEN_PATH: str = "outlook-token.json"

    CALENDAR_TIMEZONE: str = "America/Chicago"
    DEFAULT_CALENDAR_PROVIDER: Literal["google", "outlook"] = "google"

    # =========================================================================
    # Timeouts (seconds)
    # =========================================================================
    LLM_TIMEOUT_SEC: float = 30.0
    DOCUMENT_BATCH_TIMEOUT_SEC: float = 60.0
    CALENDAR_TIMEOUT_SEC: float = 15.0
    STORE_TIMEOUT_SEC: float = 10.0
    TRANSCRIPTION_TIMEOUT_SEC: float = 120.0

    # =========================================================================
    # File Upload
    # =========================================================================
    DOCUMENT_MAX_MB: int = 10
    DOCUMENT_MAX_CHARS: int = 15000
    AUDIO_MAX_MB: int = 25

    @property
    def document_max_bytes(self) -> int:
        return self.DOCUMENT_MAX_MB * 1024 * 1024

    @property
    def audio_max_bytes(self) -> int:
        return self.AUDIO_MAX_MB * 1024 * 1024

    # =========================================================================
    # Derived values
    # =========================================================================
    @property
    def google_redirect_uri(self) -> str:
        return self.GOOGLE_REDIRECT_URI or f"{self.BASE_URL.rstrip('/')}/api/calendar/oauth-callback"

    @property
    def microsoft_redirect_uri(self) -> str:
        return self.MICROSOFT_REDIRECT_URI or f"{self.BASE_URL.rstrip('/')}/api/calendar/outlook-callback"

    @property
    def google_token_path(self) -> Path:
        return Path(self.GOOGLE_TOKEN_PATH)

    @property
    def microsoft_token_path(self) -> Path:
        return Path(self.MICROSOFT_TOKEN_PATH)

    def require(self, *names: str) -> None:
        """Raise ConfigurationError naming the first unset variable.

        Args:
            names: Setting names that must be non-empty.

        Raises:
            ConfigurationError: If any named setting is empty.
        """
        for name in names:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ConfigurationError(
                    f"Missing required configuration: {name}",
                    details={"variable": name},
                )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use this function instead of creating Settings() directly
    to benefit from caching and ensure a single source of truth.
    """
    return Settings()
