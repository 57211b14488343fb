from heads_import.exceptions import ValidationError
from heads_import.imports.models import SelectedFile


def require_file(file: SelectedFile | None) -> SelectedFile:
    if file is None:
        raise ValidationError("No file selected. Choose an Excel file (.xlsx or .xls) first")
    return file


def validate_extension(filename: str, allowed: tuple[str, ...]) -> None:
    """Reject anything that is not an Excel workbook by name."""
    if not filename or not filename.lower().endswith(allowed):
        raise ValidationError(
            f"Unsupported file type '{filename}'. Allowed: {', '.join(allowed)}"
        )


def validate_size(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise ValidationError(
            f"File is too large ({size / (1024 * 1024):.1f} MiB). "
            f"Maximum is {max_bytes / (1024 * 1024):.0f} MiB"
        )
