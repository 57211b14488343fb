import sys
from pathlib import Path

import pytest

# Make the repository root importable without an editable install.
ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from heads_import.config import Settings  # noqa: E402

from fakes import FakeBulkImportService  # noqa: E402


@pytest.fixture()
def config() -> Settings:
    """Settings with the protocol defaults but no real waiting."""
    return Settings(
        _env_file=None,
        chunk_delay_ms=0,
        status_poll_interval_ms=10_000,
        retry_base_delay_seconds=0.0,
    )


@pytest.fixture()
def service() -> FakeBulkImportService:
    return FakeBulkImportService(total_records=100, valid_records=97)
