"""Process configuration for InvoiceFlow, read from APP_* environment variables.

Settings are loaded once per process by create_app and handed to every
service. The OpenAI client reads OPENAI_API_KEY itself. See
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_DATABASE_PREFIXES = ("sqlite://", "postgresql://", "postgresql+psycopg://")


class Settings(BaseSettings):
    """InvoiceFlow settings.

    Every field maps to an upper-case APP_ variable, e.g. APP_DATABASE_URL or
    APP_STORAGE_BUCKET. A local .env file is read when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    service_name: str = Field(
        default="invoiceflow-api",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )
    app_url: str = Field(
        default="http://localhost:3000",
        description="Public URL of the frontend, used for OAuth redirects",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./invoiceflow.db",
        description="Database connection URL (SQLite or PostgreSQL)",
    )
    database_create_tables: bool = Field(
        default=True,
        description="Create missing tables when the application starts",
    )

    # Model provider configuration
    model_provider: Literal["openai"] = Field(
        default="openai",
        description="Hosted language model used for invoice extraction",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model used for extraction",
    )
    openai_temperature: float = Field(
        default=0.1,
        ge=0,
        le=2,
        description="Sampling temperature for extraction requests",
    )

    # PDF handling
    pdf_text_chunk_size: int = Field(
        default=4000,
        ge=100,
        description="Maximum characters of PDF text per prompt turn",
    )
    pdf_text_max_chunks: int = Field(
        default=5,
        ge=1,
        description="Maximum number of PDF text turns per attachment",
    )
    attachment_download_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for downloading attachments from storage",
    )

    # Attachment storage (S3-compatible, e.g. MinIO)
    storage_enabled: bool = Field(
        default=False,
        description="Enable attachment presign and upload endpoints",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="Object storage endpoint as host:port",
    )
    storage_access_key: str = Field(
        default="",
        description="Object storage access key",
    )
    storage_secret_key: str = Field(
        default="",
        description="Object storage secret key",
    )
    storage_bucket: str = Field(
        default="invoice-attachments",
        description="Bucket holding invoice attachments",
    )
    storage_secure: bool = Field(
        default=False,
        description="Connect to object storage over TLS",
    )
    storage_region: str | None = Field(
        default=None,
        description="Storage region (required by some S3 providers for presigning)",
    )
    presign_upload_ttl_seconds: int = Field(
        default=900,
        ge=1,
        description="Lifetime of presigned upload URLs",
    )
    presign_download_ttl_seconds: int = Field(
        default=600,
        ge=1,
        description="Lifetime of presigned download URLs handed to the model",
    )

    # Authentication
    auth_secret: str = Field(
        default="",
        description="Secret used to sign session tokens and OAuth state",
    )
    session_ttl_seconds: int = Field(
        default=86400,
        ge=60,
        description="Lifetime of issued session tokens",
    )

    # Gmail integration
    google_oauth_client_id: str = Field(default="", description="Google OAuth client ID")
    google_oauth_client_secret: str = Field(default="", description="Google OAuth client secret")
    google_oauth_redirect_uri: str | None = Field(
        default=None,
        description="OAuth redirect URI (defaults to the callback route under app_url)",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        v = v.strip()
        if not v:
            raise ValueError("APP_DATABASE_URL cannot be empty")
        if not v.startswith(SUPPORTED_DATABASE_PREFIXES):
            raise ValueError(
                f"Unsupported database URL format: {v}. "
                "Supported formats: sqlite:///..., postgresql://..., postgresql+psycopg://..."
            )
        return v

    @property
    def gmail_redirect_uri(self) -> str:
        """Resolve the OAuth callback URI registered with Google."""
        if self.google_oauth_redirect_uri:
            return self.google_oauth_redirect_uri
        return f"{self.app_url.rstrip('/')}/integrations/gmail/oauth/callback"


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
