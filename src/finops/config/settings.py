"""Configuration settings for the finops toolkit."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """A required setting is missing."""

    def __init__(self, env_name: str, purpose: str | None = None):
        message = f"Missing env var {env_name}"
        if purpose:
            message = f"{message} ({purpose})"
        super().__init__(message)
        self.env_name = env_name


def require_setting(value: str | SecretStr | None, env_name: str, purpose: str | None = None) -> str:
    """Return a setting's plain value or raise ConfigurationError if it is unset."""
    if isinstance(value, SecretStr):
        value = value.get_secret_value()
    if not value:
        raise ConfigurationError(env_name, purpose)
    return value


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file.

    Vendor credentials are optional at load time; the client that needs one
    raises ConfigurationError when it is first used.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Xero
    xero_client_id: str | None = Field(default=None, validation_alias="XERO_CLIENT_ID")
    xero_client_secret: SecretStr | None = Field(
        default=None, validation_alias="XERO_CLIENT_SECRET"
    )
    xero_refresh_token: SecretStr | None = Field(
        default=None, validation_alias="XERO_REFRESH_TOKEN"
    )
    xero_tenant_id: str | None = Field(default=None, validation_alias="XERO_TENANT_ID")
    xero_nab_account_id: str | None = Field(default=None, validation_alias="XERO_NAB_ACCOUNT_ID")
    xero_clearing_account_id: str | None = Field(
        default=None, validation_alias="XERO_CLEARING_ACCOUNT_ID"
    )
    xero_savings_account_id: str | None = Field(
        default=None, validation_alias="XERO_SAVINGS_ACCOUNT_ID"
    )
    xero_fee_account_code: str | None = Field(
        default=None, validation_alias="XERO_FEE_ACCOUNT_CODE"
    )

    # Halaxy
    halaxy_client_id: str | None = Field(default=None, validation_alias="HALAXY_CLIENT_ID")
    halaxy_client_secret: SecretStr | None = Field(
        default=None, validation_alias="HALAXY_CLIENT_SECRET"
    )

    # Up Bank
    up_api_token: SecretStr | None = Field(default=None, validation_alias="UP_API_TOKEN")

    # Supabase
    supabase_url: str | None = Field(default=None, validation_alias="SUPABASE_URL")
    supabase_service_role_key: SecretStr | None = Field(
        default=None, validation_alias="SUPABASE_SERVICE_ROLE_KEY"
    )
    supabase_anon_key: SecretStr | None = Field(default=None, validation_alias="SUPABASE_ANON_KEY")
    admin_api_token: SecretStr | None = Field(default=None, validation_alias="ADMIN_API_TOKEN")

    # LLM
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_base_url: str | None = Field(default=None, validation_alias="OPENAI_BASE_URL")
    assistant_model: str = Field(default="gpt-4o", validation_alias="ASSISTANT_MODEL")
    llm_max_tokens: int = Field(default=4096, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.2, validation_alias="LLM_TEMPERATURE")
    assistant_max_steps: int = Field(default=5, validation_alias="ASSISTANT_MAX_STEPS")

    # Tax report
    tax_income_pattern: str | None = Field(default=None, validation_alias="TAX_INCOME_PATTERN")
    tax_income_split_cents: int = Field(default=178500, validation_alias="TAX_INCOME_SPLIT_CENTS")

    # HTTP
    http_timeout: float = Field(default=30.0, validation_alias="HTTP_TIMEOUT")
    http_max_retries: int = Field(default=3, validation_alias="HTTP_MAX_RETRIES")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )

    @property
    def is_halaxy_configured(self) -> bool:
        """Both Halaxy credentials are present."""
        secret = self.halaxy_client_secret.get_secret_value() if self.halaxy_client_secret else ""
        return bool(self.halaxy_client_id and secret)


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
