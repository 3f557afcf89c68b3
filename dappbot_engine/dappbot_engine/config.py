"""Lifecycle engine configuration loaded from environment variables.

Variable names match the ones the deployment already provides to the
function (``DAPP_TABLE``, ``COGNITO_USER_POOL``, ...), so no prefix is
applied.
"""

from __future__ import annotations

import logging

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from the process environment."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    aws_region: str = "us-east-1"

    # DynamoDB tables
    dapp_table: str = "dappbot-dapps"
    lapsed_users_table: str = "dappbot-lapsed-users"

    # Cognito user pool holding payment status and quota attributes.
    cognito_user_pool: str = ""

    # Queue consumed by the resource deletion worker.
    sqs_queue: str = ""

    # Bucket the build pipeline writes commit artifacts to.
    artifact_bucket: str = ""

    # Suffix appended to a dapp name to form its public hostname.
    dns_root: str = ".dapp.bot"

    # Billing
    payment_lapsed_grace_period_hrs: float = Field(default=72.0, ge=0.0)

    # Collaborators
    sendgrid_api_key: SecretStr | None = None
    email_from_address: str = "support@dapp.bot"
    github_token: SecretStr | None = None
    segment_write_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("segment_write_key", "segment_nodejs_write_key"),
    )
    api_url: str = ""

    # Retry policy shared by every remote call.
    retry_base_delay: float = Field(default=0.5, gt=0.0)
    retry_max_delay: float = Field(default=20.0, gt=0.0)
    retry_jitter: bool = True

    # Concurrency bounds
    reconcile_concurrency: int = Field(default=1, ge=1)
    cdn_max_concurrency: int = Field(default=10, ge=1)

    # Logging
    structured_logging: bool = True
    log_level: str = "INFO"

    def is_email_configured(self) -> bool:
        return self.sendgrid_api_key is not None and bool(self.sendgrid_api_key.get_secret_value().strip())

    def is_github_configured(self) -> bool:
        return self.github_token is not None and bool(self.github_token.get_secret_value().strip())

    def is_analytics_configured(self) -> bool:
        return self.segment_write_key is not None and bool(self.segment_write_key.get_secret_value().strip())


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]
    logger.debug(
        "Loaded settings: region=%s dapp_table=%s lapsed_users_table=%s grace_period_hrs=%s",
        settings.aws_region,
        settings.dapp_table,
        settings.lapsed_users_table,
        settings.payment_lapsed_grace_period_hrs,
    )
    return settings
