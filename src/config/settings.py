"""Application settings using Pydantic Settings.

Centralized configuration for the Scope of Appointment service.

SECURITY: Production requires the following environment variables:
- AUTH_JWT_SECRET: Agent bearer token signing key (min 32 chars)
- SOA_APP_BASE_URL: Public origin used in signing links (https)

Generate secrets with: python -c "import secrets; print(secrets.token_hex(32))"
"""

import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class AuthSettings(BaseSettings):
    """Agent authentication configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        extra="ignore",
    )

    jwt_secret: str = Field(
        default="development-only-insecure-secret-key-32ch",
        description="Secret used to verify agent bearer tokens",
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")


class SOASettings(BaseSettings):
    """Scope of Appointment workflow configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SOA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Signing links
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Public origin used to build signing and profile links",
    )
    token_ttl_hours: int = Field(
        default=72,
        ge=1,
        le=24 * 30,
        description="Lifetime of a signing link in hours",
    )

    # Document rendering
    template_path: Path = Field(
        default=Path("assets/templates/soa-template.pdf"),
        description="CMS-approved blank SOA template (single page, US Letter)",
    )
    signature_font_path: Path = Field(
        default=Path("assets/fonts/DancingScript-Bold.ttf"),
        description="TrueType font used for typed signatures",
    )
    display_timezone: str = Field(
        default="America/New_York",
        description="Timezone used when printing timestamps on the document",
    )

    # Notifications
    from_email: str = Field(default="soa@example.com", description="Sender address for SOA emails")
    from_name: str = Field(default="Scope of Appointment", description="Default sender display name")

    # Document storage
    storage_backend: str = Field(default="filesystem", description="filesystem or s3")
    storage_root: Path = Field(
        default=Path("data/soa-documents"),
        description="Root directory for the filesystem document store",
    )
    s3_bucket: Optional[str] = Field(default=None, description="Bucket for the s3 document store")
    s3_region: Optional[str] = Field(default=None, description="Region for the s3 document store")
    signed_url_ttl_seconds: int = Field(
        default=3600,
        ge=60,
        description="Lifetime of download links for signed documents",
    )

    @field_validator("app_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("filesystem", "s3"):
            raise ValueError("storage_backend must be 'filesystem' or 's3'")
        return value

    def signing_url(self, token: str) -> str:
        return f"{self.app_base_url}/soa/sign/{token}"

    def client_profile_url(self, client_id: str) -> str:
        return f"{self.app_base_url}/clients/{client_id}?section=soa"


class EmailSettings(BaseSettings):
    """
    Email transport configuration.

    provider "auto" picks SendGrid when an API key is set, then SMTP when a
    host is set, and otherwise falls back to the logging-only null provider.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = Field(default="auto", description="auto, sendgrid, smtp or null")

    sendgrid_api_key: Optional[str] = Field(default=None, description="SendGrid API key")

    smtp_host: Optional[str] = Field(default=None, description="SMTP server hostname")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_username: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_tls: bool = Field(default=True, description="Use STARTTLS")
    smtp_use_ssl: bool = Field(default=False, description="Use implicit TLS (port 465)")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        value = value.lower()
        if value not in ("auto", "sendgrid", "smtp", "null"):
            raise ValueError("provider must be one of: auto, sendgrid, smtp, null")
        return value


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="SOA Service", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON formatted logs")

    # CORS
    cors_origins: list = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins"
    )

    # Nested settings (loaded separately)
    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def soa(self) -> SOASettings:
        return SOASettings()

    @property
    def email(self) -> EmailSettings:
        return EmailSettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")

    def validate_production_security(self) -> List[str]:
        """
        Validate all security requirements for production.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.is_production:
            return errors

        auth = self.auth
        if "insecure" in auth.jwt_secret:
            errors.append(
                "AUTH_JWT_SECRET: Must be set in production. "
                "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        elif len(auth.jwt_secret) < 32:
            errors.append("AUTH_JWT_SECRET: Must be at least 32 characters")

        if not self.soa.app_base_url.startswith("https://"):
            errors.append("SOA_APP_BASE_URL: Signing links must use https in production")

        return errors


# =============================================================================
# STARTUP VALIDATION
# =============================================================================

class StartupSecurityError(Exception):
    """Raised when security validation fails at startup."""
    pass


def validate_startup_security(settings: Settings, exit_on_failure: bool = True) -> bool:
    """
    Validate security settings at application startup.

    In production, fails fast if critical security settings are missing.

    Raises:
        StartupSecurityError: If validation fails and exit_on_failure is False
    """
    errors = settings.validate_production_security()

    if not errors:
        if settings.is_production:
            logger.info("Production security validation PASSED")
        return True

    error_msg = (
        "\n" + "=" * 60 + "\n"
        "CRITICAL SECURITY CONFIGURATION ERROR\n"
        "=" * 60 + "\n\n"
        "The following security settings are missing or invalid:\n\n"
    )
    for i, err in enumerate(errors, 1):
        error_msg += f"  {i}. {err}\n\n"

    logger.critical(error_msg)

    if exit_on_failure:
        print(error_msg, file=sys.stderr)
        sys.exit(1)
    else:
        raise StartupSecurityError(error_msg)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    return Settings()


@lru_cache
def get_soa_settings() -> SOASettings:
    """Get cached SOA workflow settings."""
    return SOASettings()


@lru_cache
def get_auth_settings() -> AuthSettings:
    """Get cached agent authentication settings."""
    return AuthSettings()


@lru_cache
def get_email_settings() -> EmailSettings:
    """Get cached email transport settings."""
    return EmailSettings()
