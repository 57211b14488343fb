from typing import Annotated

import structlog
from fastapi import Depends

from heads_import.bulk_import.base import BulkImportService
from heads_import.bulk_import.http_client import HttpBulkImportService
from heads_import.config import settings
from heads_import.imports.coordinator import ImportCoordinator

logger = structlog.get_logger()

_coordinator: ImportCoordinator | None = None


def init_coordinator(service: BulkImportService | None = None) -> ImportCoordinator:
    global _coordinator
    _coordinator = ImportCoordinator(service or HttpBulkImportService(), settings)
    logger.info("import_coordinator_initialized", service_url=settings.service_base_url)
    return _coordinator


async def close_coordinator() -> None:
    global _coordinator
    if _coordinator is not None:
        await _coordinator.close()
        _coordinator = None
        logger.info("import_coordinator_closed")


def get_coordinator() -> ImportCoordinator:
    if _coordinator is None:
        raise RuntimeError("Import coordinator not initialized. Call init_coordinator() first.")
    return _coordinator


CoordinatorDep = Annotated[ImportCoordinator, Depends(get_coordinator)]
