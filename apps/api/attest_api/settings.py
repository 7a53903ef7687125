"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_PROVENANCE_SECRET = "dev-provenance-secret-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "attest"
    postgres_password: str = "attest_dev_password"
    postgres_db: str = "attest"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Redis (provenance nonce store)
    redis_url: str = "redis://localhost:6379/0"

    # Storage
    storage_backend: str = "minio"  # minio, local
    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None  # Required in non-dev
    minio_secret_key: Optional[str] = None  # Required in non-dev
    minio_bucket: str = "attested-pdfs"
    minio_use_ssl: bool = False
    local_storage_root: str = "./storage"

    # Provenance tokens
    provenance_secret: str = DEV_PROVENANCE_SECRET
    provenance_token_ttl_seconds: int = 300
    provenance_nonce_backend: str = "redis"  # redis, memory

    # Ledger
    uid_max_attempts: int = 5
    default_page_size: int = 100
    recent_uploads_limit: int = 10

    # Tenant directory (JSON object of tenant id -> display name)
    tenant_labels: dict[int, str] = {}

    # API
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    gateway_key: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in a development or test environment."""
        return self.environment.lower() in ("development", "test", "dev")

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if self.is_development:
            return
        if self.provenance_secret == DEV_PROVENANCE_SECRET:
            raise ValueError(
                "PROVENANCE_SECRET must be set outside development. "
                "Do not use the default provenance secret."
            )
        if not self.gateway_key:
            raise ValueError(
                "GATEWAY_KEY is required outside development so that only the "
                "authenticating gateway can forward principals."
            )
        if self.provenance_nonce_backend == "memory":
            raise ValueError(
                "PROVENANCE_NONCE_BACKEND=memory is not allowed outside development. "
                "Use PROVENANCE_NONCE_BACKEND=redis."
            )
        if self.storage_backend == "minio" and (
            not self.minio_access_key or not self.minio_secret_key
        ):
            raise ValueError(
                "MINIO_ACCESS_KEY and MINIO_SECRET_KEY are required in production. "
                "Do not use default credentials."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
