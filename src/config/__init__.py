"""Configuration module for the SOA service."""

from .database import DatabaseSettings, get_database_settings
from .settings import (
    AuthSettings,
    EmailSettings,
    SOASettings,
    Settings,
    StartupSecurityError,
    get_auth_settings,
    get_email_settings,
    get_settings,
    get_soa_settings,
    validate_startup_security,
)

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "AuthSettings",
    "EmailSettings",
    "SOASettings",
    "Settings",
    "StartupSecurityError",
    "get_auth_settings",
    "get_email_settings",
    "get_settings",
    "get_soa_settings",
    "validate_startup_security",
]
