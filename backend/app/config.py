from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str = "sqlite:///./secrets.db"

    # Identity tokens
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    token_ttl_days: int = 7

    # Argon2id work factors
    password_hash_time_cost: int = 3
    password_hash_memory_cost: int = 65536  # 64MB
    password_hash_parallelism: int = 4

    # Limits
    max_content_length: int = 100_000
    max_title_length: int = 200
    min_password_length: int = 6
    slug_length: int = 12
    slug_max_attempts: int = 5
    default_page_size: int = 10
    max_page_size: int = 100

    # Rate Limiting (fixed windows, per client address)
    rate_limit_general_max: int = 100
    rate_limit_general_window_seconds: int = 15 * 60
    rate_limit_create_max: int = 10
    rate_limit_create_window_seconds: int = 60 * 60
    rate_limit_disclose_max: int = 20
    rate_limit_disclose_window_seconds: int = 5 * 60
    rate_limit_auth_max: int = 5
    rate_limit_auth_window_seconds: int = 15 * 60
    rate_limit_purge_interval_seconds: int = 5 * 60

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"

    # CORS
    cors_origins: list[str] | str = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


settings = Settings()
