from typing import Optional
from urllib.parse import urlparse

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ALLOWED_JWT_ALGORITHMS = {"HS256", "HS384", "HS512"}


class Settings(BaseSettings):
    # Runtime environment
    environment: str = "development"

    # Database
    database_url: Optional[str] = None
    database_hostname: str = "localhost"
    database_port: int = 5432
    database_password: str = "password123"
    database_name: str = "fedid"
    database_username: str = "postgres"

    # Local session tokens
    secret_key: str = "replace-this-in-production"
    algorithm: str = "HS256"
    token_issuer: str = "fedid"
    token_audience: str = "fedid-api"
    access_token_expire_minutes: int = 60
    remember_me_expire_days: int = 30

    # Signed flow state carried through the provider round trip
    flow_state_expire_seconds: int = 600
    bind_confirmation_expire_seconds: int = 900
    public_base_url: Optional[str] = None

    # Identity provider
    provider_authorize_url: str = "https://www.webasyst.com/id/oauth2/auth/code"
    provider_token_url: str = "https://www.webasyst.com/id/oauth2/auth/token"
    provider_client_id: Optional[str] = None
    provider_client_secret: Optional[str] = None
    provider_scope: str = "profile license:bind"
    provider_token_verify_key: Optional[str] = None
    provider_token_algorithms: list[str] = ["RS256"]
    provider_token_audience: Optional[str] = None
    provider_http_timeout_seconds: float = 10.0

    # Observability
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = 0.0

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.database_username}:{self.database_password}"
            f"@{self.database_hostname}:{self.database_port}/{self.database_name}"
        )

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _ALLOWED_JWT_ALGORITHMS:
            allowed = ", ".join(sorted(_ALLOWED_JWT_ALGORITHMS))
            raise ValueError(f"ALGORITHM must be one of: {allowed}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return normalized

    @field_validator("public_base_url")
    @classmethod
    def validate_public_base_url(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("PUBLIC_BASE_URL must be an absolute http/https URL")
        if parsed.query or parsed.fragment:
            raise ValueError("PUBLIC_BASE_URL must not include a query or fragment")
        return value.rstrip("/")

    @model_validator(mode="after")
    def validate_production_secret(self) -> "Settings":
        if self.environment.lower() in {"prod", "production"}:
            insecure_secrets = {
                "",
                "replace-this-in-production",
                "test-secret-key",
                "changeme",
            }
            if self.secret_key in insecure_secrets or len(self.secret_key) < 32:
                raise ValueError(
                    "SECRET_KEY must be a high-entropy value (>=32 chars) in production"
                )
        return self


settings = Settings()
