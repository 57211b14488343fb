from heads_import.exceptions import AppError, ServiceUnavailableError, UpstreamError
from heads_import.imports.models import ImportResult, NotificationLevel, Outcome


def describe_error(exc: AppError) -> str:
    """Translate a transport failure into a message fit for the operator."""
    if isinstance(exc, ServiceUnavailableError):
        return "Connection error. Check the network and that the import service is running"
    if isinstance(exc, UpstreamError) and exc.status_code is not None:
        if exc.status_code == 404:
            return "Import service not available. Make sure the server is running"
        if exc.status_code in (401, 403):
            return "You are not authorised to perform this import"
        if exc.status_code >= 500:
            return f"Server error, please try again later ({exc.message})"
    return exc.message


def outcome_notification(result: ImportResult) -> tuple[NotificationLevel, str, str]:
    match result.outcome:
        case Outcome.success:
            return (
                NotificationLevel.success,
                "Import completed",
                f"{result.success_count} family heads imported successfully",
            )
        case Outcome.failed:
            return (
                NotificationLevel.error,
                "Import failed",
                f"No rows were imported ({result.error_count} errors)",
            )
        case _:
            return NotificationLevel.info, "Partial import", result.message
