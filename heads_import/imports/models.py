from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from heads_import.bulk_import.schemas import ImportSession

EXCEL_CONTENT_TYPES = {
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".xls": "application/vnd.ms-excel",
}


class ImportPhase(StrEnum):
    idle = "idle"
    file_selected = "file_selected"
    initializing = "initializing"
    session_ready = "session_ready"
    processing = "processing"
    completed = "completed"


class Outcome(StrEnum):
    success = "success"
    partial = "partial"
    failed = "failed"


class NotificationLevel(StrEnum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"


class ErrorCategory(StrEnum):
    missing_required = "missing_required"
    duplicate_id = "duplicate_id"
    invalid_format = "invalid_format"
    processing = "processing"


@dataclass(frozen=True)
class SelectedFile:
    name: str
    content: bytes = field(repr=False)
    size: int
    content_type: str = "application/octet-stream"

    @classmethod
    def from_bytes(cls, name: str, content: bytes, content_type: str | None = None) -> "SelectedFile":
        suffix = name[name.rfind(".") :].lower() if "." in name else ""
        return cls(
            name=name,
            content=content,
            size=len(content),
            content_type=content_type or EXCEL_CONTENT_TYPES.get(suffix, "application/octet-stream"),
        )


@dataclass(frozen=True)
class ImportResult:
    success_count: int
    error_count: int
    valid_records: int
    invalid_records: int
    invalid_rows: tuple[str, ...]
    message: str
    outcome: Outcome


@dataclass(frozen=True)
class ImportState:
    phase: ImportPhase = ImportPhase.idle
    file: SelectedFile | None = None
    session: ImportSession | None = None
    processing: bool = False
    processed: int = 0
    resume_from: int = 0
    total: int = 0
    progress: int = 0
    result: ImportResult | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    description: str
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
