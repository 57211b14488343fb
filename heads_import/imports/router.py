import asyncio

from fastapi import APIRouter, Query, UploadFile
from fastapi.responses import Response

from heads_import.dependencies import CoordinatorDep
from heads_import.imports.models import ErrorCategory, SelectedFile
from heads_import.imports.results import categorize_errors, select_errors
from heads_import.imports.schemas import (
    ErrorListResponse,
    ImportStateResponse,
    NotificationResponse,
)
from heads_import.imports.template import TEMPLATE_FILENAME, build_template_csv

router = APIRouter()


@router.get("/state", response_model=ImportStateResponse)
async def get_state(coordinator: CoordinatorDep) -> ImportStateResponse:
    return ImportStateResponse.from_state(coordinator.state)


@router.post("/file", response_model=ImportStateResponse)
async def select_file(file: UploadFile, coordinator: CoordinatorDep) -> ImportStateResponse:
    content = await file.read()
    selected = SelectedFile.from_bytes(file.filename or "", content, file.content_type)
    return ImportStateResponse.from_state(coordinator.select_file(selected))


@router.post("/init", response_model=ImportStateResponse)
async def initialize(coordinator: CoordinatorDep) -> ImportStateResponse:
    return ImportStateResponse.from_state(await coordinator.initialize())


@router.post("/start", status_code=202, response_model=ImportStateResponse)
async def start_processing(
    coordinator: CoordinatorDep,
    wait: bool = Query(default=False),
) -> ImportStateResponse:
    if wait:
        return ImportStateResponse.from_state(await coordinator.process())
    coordinator.start()
    await asyncio.sleep(0)
    return ImportStateResponse.from_state(coordinator.state)


@router.post("/reset", response_model=ImportStateResponse)
async def reset(coordinator: CoordinatorDep) -> ImportStateResponse:
    return ImportStateResponse.from_state(await coordinator.reset())


@router.get("/errors", response_model=ErrorListResponse)
async def list_errors(
    coordinator: CoordinatorDep,
    category: ErrorCategory | None = None,
    limit: int | None = Query(default=None, ge=1),
) -> ErrorListResponse:
    state = coordinator.state
    if state.result is not None:
        rows = list(state.result.invalid_rows)
    elif state.session is not None:
        rows = state.session.invalid_rows
    else:
        rows = []

    shown_limit = limit or coordinator.config.error_display_limit
    errors, total = select_errors(rows, category, shown_limit)
    counts = {key: len(value) for key, value in categorize_errors(rows).items()}
    return ErrorListResponse(
        category=category,
        total=total,
        truncated=total > len(errors),
        errors=errors,
        counts=counts,
    )


@router.get("/notifications", response_model=list[NotificationResponse])
async def drain_notifications(coordinator: CoordinatorDep) -> list[NotificationResponse]:
    return [NotificationResponse.from_notification(n) for n in coordinator.drain_notifications()]


@router.get("/template")
async def download_template() -> Response:
    return Response(
        content=build_template_csv().encode("utf-8-sig"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )
