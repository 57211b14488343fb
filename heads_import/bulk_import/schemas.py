from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ServiceModel(BaseModel):
    """Wire model for the bulk import service, which speaks camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class ImportSession(ServiceModel):
    session_id: str | None = None
    total_records: int = Field(default=0, ge=0)
    valid_records: int = Field(default=0, ge=0)
    invalid_records: int = Field(default=0, ge=0)
    invalid_rows: list[str] = Field(default_factory=list)
    message: str | None = None


class ChunkRequest(ServiceModel):
    session_id: str
    start_idx: int = Field(ge=0)
    chunk_size: int = Field(gt=0)


class ChunkResult(ServiceModel):
    success: bool
    processed: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    progress: float = 0.0
    done: bool = False
    message: str | None = None


class StatusResult(ServiceModel):
    processed: int = Field(default=0, ge=0)
    total: int | None = None
    progress: float = 0.0
    done: bool | None = None
    success_count: int | None = None
    error_count: int | None = None
    message: str | None = None


class FinalizeRequest(ServiceModel):
    session_id: str


class HealthStatus(BaseModel):
    status: str  # "healthy", "unhealthy", "error"
    timestamp: str
    database: dict | None = None
    error: str | None = None
