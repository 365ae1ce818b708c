from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOCAL_ENVIRONMENTS = frozenset({"development", "dev", "local", "test"})
UPDATE_MODES = frozenset({"polling", "webhook"})
MAX_POLLING_LIMIT = 100


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    app_name: str = Field(default="updatestream", validation_alias="APP_NAME")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    telegram_bot_token: SecretStr | None = Field(
        default=None,
        validation_alias="TELEGRAM_BOT_TOKEN",
    )
    telegram_api_base_url: str = Field(
        default="https://api.telegram.org",
        validation_alias="TELEGRAM_API_BASE_URL",
    )
    telegram_request_timeout_seconds: float = Field(
        default=20.0,
        validation_alias="TELEGRAM_REQUEST_TIMEOUT_SECONDS",
        gt=0,
    )
    update_mode: str = Field(default="polling", validation_alias="UPDATE_MODE")
    polling_offset: int = Field(default=0, validation_alias="POLLING_OFFSET")
    polling_limit: int | None = Field(
        default=None,
        validation_alias="POLLING_LIMIT",
        ge=1,
        le=MAX_POLLING_LIMIT,
    )
    polling_timeout_seconds: float = Field(
        default=10.0,
        validation_alias="POLLING_TIMEOUT_SECONDS",
        ge=0,
    )
    polling_allowed_updates: str = Field(
        default="",
        validation_alias="POLLING_ALLOWED_UPDATES",
    )
    polling_drop_pending_updates: bool = Field(
        default=False,
        validation_alias="POLLING_DROP_PENDING_UPDATES",
    )
    polling_retry_initial_delay_seconds: float = Field(
        default=0.5,
        validation_alias="POLLING_RETRY_INITIAL_DELAY_SECONDS",
        ge=0,
    )
    polling_retry_max_delay_seconds: float = Field(
        default=30.0,
        validation_alias="POLLING_RETRY_MAX_DELAY_SECONDS",
        ge=0,
    )
    polling_retry_jitter_ratio: float = Field(
        default=0.1,
        validation_alias="POLLING_RETRY_JITTER_RATIO",
        ge=0,
        le=1,
    )
    webhook_host: str = Field(default="127.0.0.1", validation_alias="WEBHOOK_HOST")
    webhook_port: int = Field(default=8443, validation_alias="WEBHOOK_PORT", ge=0, le=65535)
    webhook_path: str = Field(default="/", validation_alias="WEBHOOK_PATH")
    telegram_webhook_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("TELEGRAM_WEBHOOK_SECRET", "WEBHOOK_SECRET_TOKEN"),
    )
    max_concurrent_handlers: int | None = Field(
        default=None,
        validation_alias="MAX_CONCURRENT_HANDLERS",
        ge=1,
    )
    shutdown_drain_timeout_seconds: float = Field(
        default=5.0,
        validation_alias="SHUTDOWN_DRAIN_TIMEOUT_SECONDS",
        ge=0,
    )

    @field_validator("update_mode", mode="before")
    @classmethod
    def normalize_update_mode(cls, value: str) -> str:
        """Normalize UPDATE_MODE to lowercase for stable comparisons."""
        return str(value).strip().lower()

    @field_validator("polling_timeout_seconds")
    @classmethod
    def reject_sub_second_poll_timeout(cls, value: float) -> float:
        """getUpdates takes whole seconds, so a fraction below one would mean short polling."""
        if 0 < value < 1:
            raise ValueError("POLLING_TIMEOUT_SECONDS must be 0 or at least 1")
        return value

    @field_validator("webhook_path", mode="before")
    @classmethod
    def normalize_webhook_path(cls, value: str) -> str:
        """Ensure the webhook route always starts with a slash."""
        path = str(value).strip() or "/"
        return path if path.startswith("/") else f"/{path}"

    @property
    def allowed_updates(self) -> list[str] | None:
        """Parsed POLLING_ALLOWED_UPDATES, or None when every type is wanted."""
        names = [name.strip() for name in self.polling_allowed_updates.split(",")]
        names = [name for name in names if name]
        return names or None

    @property
    def webhook_secret_token(self) -> str:
        if self.telegram_webhook_secret is None:
            return ""
        return self.telegram_webhook_secret.get_secret_value()

    @model_validator(mode="after")
    def validate_modes(self) -> "Settings":
        """Validate mode selection and retry bounds."""
        environment = self.environment.strip().lower()
        non_local_environment = environment not in LOCAL_ENVIRONMENTS

        if self.update_mode not in UPDATE_MODES:
            options = ", ".join(sorted(UPDATE_MODES))
            raise ValueError(f"UPDATE_MODE must be one of: {options}")
        if self.polling_retry_max_delay_seconds < self.polling_retry_initial_delay_seconds:
            raise ValueError(
                "POLLING_RETRY_MAX_DELAY_SECONDS must be >= POLLING_RETRY_INITIAL_DELAY_SECONDS"
            )
        if not self.telegram_api_base_url.strip():
            raise ValueError("TELEGRAM_API_BASE_URL must not be blank")
        if non_local_environment and self.update_mode == "webhook":
            if self.telegram_webhook_secret is None:
                raise ValueError(
                    "TELEGRAM_WEBHOOK_SECRET is required for UPDATE_MODE=webhook "
                    "outside development/local/test"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """Build settings from environment variables."""
    return Settings()
