from pydantic import Field
from pydantic_settings import BaseSettings

MIB = 1024 * 1024


class Settings(BaseSettings):
    model_config = {"env_prefix": "HI_", "env_file": ".env", "env_file_encoding": "utf-8"}

    service_base_url: str = Field(default="http://localhost:3001")
    import_path_prefix: str = Field(default="/import")
    health_path: str = Field(default="/api/health")
    service_token: str = Field(default="")
    upload_field_name: str = Field(default="excel")

    chunk_size: int = Field(default=50, gt=0)
    chunk_delay_ms: int = Field(default=500, ge=0)
    status_poll_interval_ms: int = Field(default=2000, gt=0)
    max_file_size_bytes: int = Field(default=20 * MIB, gt=0)
    allowed_extensions: str = Field(default=".xlsx,.xls")
    max_stalled_chunks: int = Field(default=3, ge=1)

    request_timeout_seconds: float = Field(default=30.0, gt=0)
    init_timeout_seconds: float = Field(default=600.0, gt=0)
    health_timeout_seconds: float = Field(default=5.0, gt=0)
    retry_attempts: int = Field(default=3, ge=0)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)

    error_display_limit: int = Field(default=20, ge=1)
    notification_limit: int = Field(default=50, ge=1)

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def extensions(self) -> tuple[str, ...]:
        return tuple(ext.strip().lower() for ext in self.allowed_extensions.split(",") if ext.strip())


settings = Settings()
