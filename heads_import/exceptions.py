class AppError(Exception):
    def __init__(self, message: str, code: str = "INTERNAL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AppError):
    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} '{resource_id}' not found", code="NOT_FOUND")


class ValidationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")


class ConflictError(AppError):
    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message, code=code)


class InvalidTransitionError(ConflictError):
    def __init__(self, phase: str, event: str):
        self.phase = phase
        self.event = event
        super().__init__(f"Cannot apply '{event}' while {phase}", code="INVALID_TRANSITION")


class UpstreamError(AppError):
    """The bulk import service answered with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, code="UPSTREAM_ERROR")


class ServiceUnavailableError(UpstreamError):
    """The bulk import service could not be reached."""

    def __init__(self, message: str):
        super().__init__(message)
        self.code = "SERVICE_UNAVAILABLE"


class SessionInitError(AppError):
    def __init__(self, message: str):
        super().__init__(message, code="SESSION_INIT_FAILED")


class ChunkProcessingError(AppError):
    def __init__(self, message: str, processed: int | None = None):
        self.processed = processed
        super().__init__(message, code="CHUNK_PROCESSING_FAILED")
