"""SMTP relay used by the email channel.

Tenants never carry SMTP credentials: every outbound email goes through this
platform relay, and the tenant's channel settings may only override the
display name and ``Reply-To``.

Environment variables use the EMAIL_ prefix, e.g. ``EMAIL_SMTP_HOST``.
"""

from __future__ import annotations

from pydantic import EmailStr, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmailSettings(BaseSettings):
    smtp_host: str = Field(default="localhost", min_length=1, max_length=255)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: str | None = Field(default=None, max_length=255)
    smtp_password: SecretStr | None = None
    use_tls: bool = Field(default=True, description="STARTTLS after connecting (port 587)")
    use_ssl: bool = Field(default=False, description="Implicit TLS from the first byte (port 465)")
    validate_certs: bool = True
    default_from_email: EmailStr = Field(
        default="noreply@example.com",
        description="Envelope sender; its domain also seeds generated Message-IDs",
    )
    default_from_name: str = Field(default="Notifications", max_length=100)
    timeout: float = Field(default=30.0, ge=1.0, le=300.0, description="Per-connection timeout in seconds")

    @model_validator(mode="after")
    def check_transport_security(self) -> EmailSettings:
        if self.use_tls and self.use_ssl:
            msg = "EMAIL_USE_TLS and EMAIL_USE_SSL cannot both be enabled"
            raise ValueError(msg)
        return self

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
