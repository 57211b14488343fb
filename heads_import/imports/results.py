from collections.abc import Iterable, Sequence

from heads_import.bulk_import.schemas import ChunkResult, ImportSession, StatusResult
from heads_import.imports.models import ErrorCategory, ImportResult, Outcome

# The service reports row errors in Arabic; English markers cover translated deployments.
CATEGORY_MARKERS: dict[ErrorCategory, tuple[str, ...]] = {
    ErrorCategory.missing_required: (
        "اسم رب الأسرة ورقم الهوية مطلوبان",
        "name and id are required",
        "missing required",
    ),
    ErrorCategory.duplicate_id: (
        "مسجل مسبقاً",
        "already registered",
        "already exists",
    ),
    ErrorCategory.invalid_format: (
        "يجب أن يكون 9 أرقام",
        "must be 9 digits",
    ),
}


def classify_outcome(success_count: int, error_count: int) -> Outcome:
    if error_count == 0:
        return Outcome.success
    if success_count == 0:
        return Outcome.failed
    return Outcome.partial


def build_result(
    session: ImportSession,
    final_chunk: ChunkResult,
    status: StatusResult | None = None,
) -> ImportResult:
    """Compose the terminal result from the last chunk and, if available, the final status."""
    success_count = final_chunk.processed
    error_count = session.invalid_records
    message = final_chunk.message
    if status is not None:
        if status.success_count is not None:
            success_count = status.success_count
        if status.error_count is not None:
            error_count = status.error_count
        message = status.message or message

    if not message:
        message = (
            f"Imported {success_count} of {session.total_records} rows, "
            f"{error_count} rejected"
        )

    return ImportResult(
        success_count=success_count,
        error_count=error_count,
        valid_records=session.valid_records,
        invalid_records=session.invalid_records,
        invalid_rows=tuple(session.invalid_rows),
        message=message,
        outcome=classify_outcome(success_count, error_count),
    )


def categorize_error(message: str) -> ErrorCategory:
    lowered = message.lower()
    for category, markers in CATEGORY_MARKERS.items():
        if any(marker.lower() in lowered for marker in markers):
            return category
    return ErrorCategory.processing


def categorize_errors(messages: Iterable[str]) -> dict[ErrorCategory, list[str]]:
    categories: dict[ErrorCategory, list[str]] = {category: [] for category in ErrorCategory}
    for message in messages:
        categories[categorize_error(message)].append(message)
    return categories


def select_errors(
    messages: Sequence[str],
    category: ErrorCategory | None = None,
    limit: int | None = None,
) -> tuple[list[str], int]:
    """Return the messages to display and the total matching count."""
    matching = list(messages) if category is None else categorize_errors(messages)[category]
    if limit is None:
        return matching, len(matching)
    return matching[:limit], len(matching)
