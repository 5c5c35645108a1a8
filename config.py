"""
Configuration module for the Dental Clinic Messaging service.
Loads settings from environment variables and an optional .env file.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=8000,
        alias="APP_PORT",
        description="Port to bind the application"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    # Data Store Configuration
    document_store: str = Field(
        default="cosmos",
        alias="DOCUMENT_STORE",
        description="Document store backend: 'cosmos' or 'memory' (local development)"
    )
    subscription_poll_interval: float = Field(
        default=1.0,
        alias="SUBSCRIPTION_POLL_INTERVAL",
        description="Seconds between change checks for streaming subscriptions"
    )

    # Mail Relay Configuration
    smtp_host: str = Field(
        default="smtp.gmail.com",
        alias="SMTP_HOST",
        description="SMTP relay host"
    )
    smtp_port: int = Field(
        default=587,
        alias="SMTP_PORT",
        description="SMTP relay port"
    )
    smtp_username: str = Field(
        default="",
        alias="SMTP_USERNAME",
        description="SMTP login user"
    )
    smtp_password: str = Field(
        default="",
        alias="SMTP_PASSWORD",
        description="SMTP login password (app password for Gmail)"
    )
    smtp_use_tls: bool = Field(
        default=True,
        alias="SMTP_USE_TLS",
        description="Upgrade the relay connection with STARTTLS"
    )
    mail_from_address: str = Field(
        default="",
        alias="MAIL_FROM_ADDRESS",
        description="Sender address (defaults to SMTP_USERNAME)"
    )

    # Branding Configuration
    clinic_name: str = Field(
        default="AFDomingo Dental Clinic",
        alias="CLINIC_NAME",
        description="Clinic name used as email sender name and signature"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
