"""
Configuration module - Central access point for environment variables.

CRITICAL: Access ALL environment variables through this module.
NEVER use os.getenv() directly in application code.

Components never call get_settings() themselves: the API wiring builds one
Settings instance and passes it to every gateway and service constructor.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SECRET_PLACEHOLDER = "change-me-webhook-secret"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Webhook authentication
    WEBHOOK_SECRET: str = Field(
        default=SECRET_PLACEHOLDER,
        description="Shared secret expected in the X-Webhook-Token header"
    )

    # Google Calendar API
    CALENDAR_BACKEND: str = Field(
        default="google",
        description="Calendar store: 'google' (Google Calendar API) or 'memory' (local testing)"
    )
    GOOGLE_CALENDAR_ID: str = Field(
        default="",
        description="Google Calendar ID holding every appointment"
    )
    GOOGLE_SERVICE_ACCOUNT_JSON: str = Field(
        default="",
        description="Path to Google service account JSON key file"
    )
    GOOGLE_CLIENT_EMAIL: str = Field(
        default="",
        description="Service account e-mail (alternative to the JSON key file)"
    )
    GOOGLE_PRIVATE_KEY: str = Field(
        default="",
        description="Service account private key, literal \\n sequences allowed"
    )

    # Calendar gateway resilience
    GATEWAY_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    GATEWAY_READ_RETRIES: int = Field(
        default=3, ge=0,
        description="Retries for idempotent reads (list/get). Writes are never retried"
    )

    # Clinic
    TIMEZONE: str = Field(default="America/Sao_Paulo")
    EVENT_TITLE_PREFIX: str = Field(default="Consulta Clínica SaúdeSim")
    CLINIC_ADDRESS: str = Field(
        default="Rua das Flores, 123 - Centro, São Paulo - SP",
        description="Physical address used for in-person appointments"
    )
    ONLINE_LOCATION: str = Field(
        default="Atendimento online (link enviado por e-mail)",
        description="Location placeholder used for online appointments"
    )
    CREATE_MEET_LINKS: bool = Field(
        default=True,
        description="Request a Google Meet conference for online appointments"
    )
    SEND_ATTENDEE_INVITES: bool = Field(default=True)

    # Pricing
    PRICE_BASE_AMOUNT: Decimal = Field(default=Decimal("150.00"))
    PRICE_EVENING_AMOUNT: Decimal = Field(default=Decimal("200.00"))
    PRICE_EVENING_START_HOUR: int = Field(default=18, ge=0, le=23)

    # Availability (start hours, inclusive)
    AVAILABILITY_FIRST_HOUR: int = Field(default=8, ge=0, le=23)
    AVAILABILITY_LAST_HOUR: int = Field(default=22, ge=0, le=23)

    # Reservation lookup
    RESERVATION_SCAN_PAGE_SIZE: int = Field(default=50, ge=1, le=2500)
    RESERVATION_SCAN_MAX_PAGES: int = Field(default=4, ge=1)
    RESERVATION_LOOKBACK_DAYS: int = Field(
        default=30, ge=0,
        description="Scan events starting at most this many days ago (0 = no lower bound)"
    )
    RESERVATION_SCAN_USE_QUERY: bool = Field(
        default=True,
        description="Narrow the scan server-side with the calendar free-text search"
    )
    REJECT_DUPLICATE_RESERVATION_IDS: bool = Field(
        default=False,
        description="Reject create requests whose reservation id already has an event"
    )

    # Slot locking
    SLOT_LOCK_BACKEND: str = Field(
        default="memory",
        description="'memory' (single process) or 'redis' (several workers)"
    )
    SLOT_LOCK_WAIT_SECONDS: float = Field(default=15.0, gt=0)
    SLOT_LOCK_TTL_SECONDS: float = Field(default=60.0, gt=0)
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string (only used by the redis lock backend)"
    )

    # Application Settings
    LOG_LEVEL: str = Field(default="INFO")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)

    @property
    def google_private_key(self) -> str:
        """Private key with escaped newlines restored."""
        return self.GOOGLE_PRIVATE_KEY.replace("\\n", "\n")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()
