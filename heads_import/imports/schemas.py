from pydantic import BaseModel

from heads_import.imports.models import (
    ErrorCategory,
    ImportPhase,
    ImportResult,
    ImportState,
    Notification,
    NotificationLevel,
    Outcome,
)


class SelectedFileResponse(BaseModel):
    name: str
    size: int
    content_type: str


class SessionResponse(BaseModel):
    session_id: str
    total_records: int
    valid_records: int
    invalid_records: int
    invalid_rows: list[str]


class ImportResultResponse(BaseModel):
    success_count: int
    error_count: int
    valid_records: int
    invalid_records: int
    invalid_rows: list[str]
    message: str
    outcome: Outcome

    @classmethod
    def from_result(cls, result: ImportResult) -> "ImportResultResponse":
        return cls(
            success_count=result.success_count,
            error_count=result.error_count,
            valid_records=result.valid_records,
            invalid_records=result.invalid_records,
            invalid_rows=list(result.invalid_rows),
            message=result.message,
            outcome=result.outcome,
        )


class ImportStateResponse(BaseModel):
    phase: ImportPhase
    processing: bool
    processed: int
    total: int
    progress: int
    file: SelectedFileResponse | None = None
    session: SessionResponse | None = None
    result: ImportResultResponse | None = None
    last_error: str | None = None

    @classmethod
    def from_state(cls, state: ImportState) -> "ImportStateResponse":
        file = None
        if state.file is not None:
            file = SelectedFileResponse(
                name=state.file.name,
                size=state.file.size,
                content_type=state.file.content_type,
            )
        session = None
        if state.session is not None and state.session.session_id:
            session = SessionResponse(
                session_id=state.session.session_id,
                total_records=state.session.total_records,
                valid_records=state.session.valid_records,
                invalid_records=state.session.invalid_records,
                invalid_rows=state.session.invalid_rows,
            )
        return cls(
            phase=state.phase,
            processing=state.processing,
            processed=state.processed,
            total=state.total,
            progress=state.progress,
            file=file,
            session=session,
            result=ImportResultResponse.from_result(state.result) if state.result else None,
            last_error=state.last_error,
        )


class NotificationResponse(BaseModel):
    level: NotificationLevel
    title: str
    description: str
    created_at: str

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            level=notification.level,
            title=notification.title,
            description=notification.description,
            created_at=notification.created_at,
        )


class ErrorListResponse(BaseModel):
    category: ErrorCategory | None
    total: int
    truncated: bool
    errors: list[str]
    counts: dict[ErrorCategory, int]
