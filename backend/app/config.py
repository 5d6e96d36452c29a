from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./document_hub.db"

    # Empty string disables the cache entirely; every read becomes a miss.
    redis_url: str = "redis://localhost:6379/0"
    cache_retries: int = 3
    cache_retry_delay_ms: int = 100

    s3_bucket: str = "document-hub"
    aws_region: str = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    # Set for MinIO / LocalStack style endpoints.
    s3_endpoint_url: str | None = None
    storage_retries: int = 3
    storage_retry_delay_ms: int = 1000
    download_url_ttl_seconds: int = 3600

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7

    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    default_category_color: str = "#3B82F6"

    client_url: str = "http://localhost:3000"
    api_prefix: str = "/api"
    host: str = "127.0.0.1"
    port: int = 8000

    log_level: str = "INFO"
    log_format: str = "plain"

    model_config = {"env_prefix": "DOCHUB_"}


settings = Settings()
