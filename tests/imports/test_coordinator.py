import asyncio

import pytest

from heads_import.config import Settings
from heads_import.exceptions import (
    ChunkProcessingError,
    InvalidTransitionError,
    ServiceUnavailableError,
    SessionInitError,
    UpstreamError,
    ValidationError,
)
from heads_import.imports import coordinator as coordinator_module
from heads_import.imports.coordinator import ImportCoordinator
from heads_import.imports.models import ImportPhase, NotificationLevel, Outcome, SelectedFile

MIB = 1024 * 1024


def workbook(name: str = "heads.xlsx", size: int | None = None) -> SelectedFile:
    if size is None:
        return SelectedFile.from_bytes(name, b"PK\x03\x04 workbook")
    return SelectedFile(name=name, content=b"", size=size)


async def ready_coordinator(service, config) -> ImportCoordinator:
    coordinator = ImportCoordinator(service, config)
    coordinator.select_file(workbook())
    await coordinator.initialize()
    return coordinator


# --------------------------
# pre-flight checks
# --------------------------


def test_wrong_extension_is_rejected_without_network(service, config):
    coordinator = ImportCoordinator(service, config)

    with pytest.raises(ValidationError):
        coordinator.select_file(workbook("heads.csv"))

    assert coordinator.state.phase == ImportPhase.idle
    assert service.network_calls == 0
    [notification] = coordinator.drain_notifications()
    assert notification.level == NotificationLevel.error


def test_initialize_without_file_is_rejected(service, config):
    coordinator = ImportCoordinator(service, config)

    with pytest.raises(ValidationError):
        asyncio.run(coordinator.initialize())

    assert service.network_calls == 0


def test_oversized_file_is_rejected_without_network(service, config):
    coordinator = ImportCoordinator(service, config)
    coordinator.select_file(workbook(size=21 * MIB))

    with pytest.raises(ValidationError):
        asyncio.run(coordinator.initialize())

    assert coordinator.state.phase == ImportPhase.file_selected
    assert service.network_calls == 0


def test_file_at_size_ceiling_is_uploaded(service, config):
    coordinator = ImportCoordinator(service, config)
    coordinator.select_file(workbook(size=20 * MIB))

    asyncio.run(coordinator.initialize())

    assert len(service.uploads) == 1
    assert coordinator.state.phase == ImportPhase.session_ready


# --------------------------
# session initialisation
# --------------------------


def test_initialize_exposes_validation_summary(service, config):
    coordinator = asyncio.run(ready_coordinator(service, config))
    state = coordinator.state

    assert state.phase == ImportPhase.session_ready
    assert state.session.invalid_records == 3
    assert len(state.session.invalid_rows) == 3
    assert state.total == 97
    assert state.processed == 0


def test_missing_session_id_keeps_file_selected_and_allows_retry(service, config):
    service.session_id = None
    coordinator = ImportCoordinator(service, config)
    coordinator.select_file(workbook())

    with pytest.raises(SessionInitError):
        asyncio.run(coordinator.initialize())
    assert coordinator.state.phase == ImportPhase.file_selected
    assert coordinator.state.last_error

    service.session_id = "session-2"
    asyncio.run(coordinator.initialize())
    assert coordinator.state.session.session_id == "session-2"


def test_unreachable_service_during_init(service, config):
    service.init_error = ServiceUnavailableError("connection refused")
    coordinator = ImportCoordinator(service, config)
    coordinator.select_file(workbook())

    with pytest.raises(SessionInitError) as ei:
        asyncio.run(coordinator.initialize())

    assert "Connection error" in ei.value.message
    assert coordinator.state.phase == ImportPhase.file_selected


# --------------------------
# chunked processing
# --------------------------


def test_full_import_walks_chunks_and_finalizes(service, config):
    async def scenario():
        coordinator = await ready_coordinator(service, config)
        processed: list[int] = []
        coordinator.feed.subscribe(lambda state: processed.append(state.processed))
        state = await coordinator.process()
        return coordinator, state, processed

    coordinator, state, processed = asyncio.run(scenario())

    assert service.chunk_starts == [0, 50, 97]
    assert all(size == 50 for _, _, size in service.chunk_calls)
    assert processed == sorted(processed)
    assert processed[-1] == 97
    assert service.finalized == ["session-1"]

    assert state.phase == ImportPhase.completed
    assert state.session is None
    assert state.processing is False
    assert state.result.success_count == 97
    assert state.result.error_count == 3
    assert state.result.outcome == Outcome.partial


def test_progress_after_first_chunk(service, config):
    async def scenario():
        coordinator = await ready_coordinator(service, config)
        progress: list[int] = []
        coordinator.feed.subscribe(lambda state: progress.append(state.progress))
        await coordinator.process()
        return progress

    progress = asyncio.run(scenario())

    assert 51 in progress
    assert progress[-1] == 100


def test_rejected_chunk_keeps_session_and_resumes(service, config):
    service.rejected_starts = {50}

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        with pytest.raises(ChunkProcessingError):
            await coordinator.process()
        failed = coordinator.state
        await coordinator.process()
        return coordinator, failed

    coordinator, failed = asyncio.run(scenario())

    assert failed.phase == ImportPhase.session_ready
    assert failed.processing is False
    assert failed.session.session_id == "session-1"
    assert failed.processed == 50
    assert failed.last_error == "database temporarily unavailable"

    assert service.chunk_starts == [0, 50, 50, 97]
    assert set(service.persisted.values()) == {1}
    assert len(service.persisted) == 97
    assert coordinator.state.phase == ImportPhase.completed


def test_transport_error_during_processing_is_wrapped(service, config):
    service.chunk_errors = {50: UpstreamError("Bad gateway", status_code=502)}

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        with pytest.raises(ChunkProcessingError) as ei:
            await coordinator.process()
        return coordinator, ei.value

    coordinator, error = asyncio.run(scenario())

    assert error.processed == 50
    assert "Server error" in error.message
    assert coordinator.state.phase == ImportPhase.session_ready
    notifications = coordinator.drain_notifications()
    assert notifications[-1].title == "Processing failed"


def test_stalled_service_aborts_processing(service, config):
    service.stall = True

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        with pytest.raises(ChunkProcessingError):
            await coordinator.process()
        return coordinator

    coordinator = asyncio.run(scenario())

    assert len(service.chunk_calls) == config.max_stalled_chunks
    assert coordinator.state.phase == ImportPhase.session_ready


def test_finalize_failure_still_completes(service, config):
    service.finalize_error = UpstreamError("session already closed", status_code=409)

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        await coordinator.process()
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase == ImportPhase.completed
    levels = [n.level for n in coordinator.drain_notifications()]
    assert NotificationLevel.warning in levels


def test_final_status_failure_still_completes(service, config):
    service.status_error = ServiceUnavailableError("timeout")

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        return await coordinator.process()

    state = asyncio.run(scenario())

    assert state.phase == ImportPhase.completed
    assert state.result.success_count == 97


def test_terminal_status_counts_feed_the_result(service, config):
    service.status_counts = (96, 4)

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        return await coordinator.process()

    state = asyncio.run(scenario())

    assert state.result.success_count == 96
    assert state.result.error_count == 4


def test_start_requires_a_ready_session(service, config):
    coordinator = ImportCoordinator(service, config)

    with pytest.raises(InvalidTransitionError):
        asyncio.run(coordinator.process())


def test_start_runs_in_background_and_rejects_second_start(service, config):
    service.gate_at = 50

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        task = coordinator.start()
        await service.waiting.wait()
        with pytest.raises(InvalidTransitionError):
            coordinator.start()
        service.gate.set()
        await task
        return coordinator

    coordinator = asyncio.run(scenario())

    assert coordinator.state.phase == ImportPhase.completed


# --------------------------
# status polling and reset
# --------------------------


def test_status_poll_refreshes_display_only(service, config):
    config.status_poll_interval_ms = 1
    service.gate_at = 50
    service.status_processed = 80

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        task = coordinator.start()
        await service.waiting.wait()
        for _ in range(200):
            if coordinator.state.processed == 80:
                break
            await asyncio.sleep(0.005)
        during = coordinator.state
        service.gate.set()
        await task
        return during

    during = asyncio.run(scenario())

    assert during.phase == ImportPhase.processing
    assert during.processed == 80
    assert during.resume_from == 50
    assert during.progress == 82


def test_reset_cancels_processing_and_polling(service, config):
    config.status_poll_interval_ms = 1
    service.gate_at = 50

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        task = coordinator.start()
        await service.waiting.wait()
        state = await coordinator.reset()
        polls = service.status_calls
        await asyncio.sleep(0.05)
        return task, state, polls

    task, state, polls = asyncio.run(scenario())

    assert task.cancelled()
    assert state.phase == ImportPhase.idle
    assert state.session is None
    assert service.status_calls == polls
    assert service.finalized == []


# --------------------------
# concurrent requests during upload
# --------------------------


def test_second_init_during_upload_is_rejected(service, config):
    service.hold_upload = True

    async def scenario():
        coordinator = ImportCoordinator(service, config)
        coordinator.select_file(workbook())
        first = asyncio.create_task(coordinator.initialize())
        await service.uploading.wait()
        during = coordinator.state.phase
        with pytest.raises(InvalidTransitionError):
            await coordinator.initialize()
        service.upload_gate.set()
        return during, await first

    during, state = asyncio.run(scenario())

    assert during == ImportPhase.initializing
    assert len(service.uploads) == 1
    assert state.phase == ImportPhase.session_ready


def test_file_pick_during_upload_is_rejected(service, config):
    service.hold_upload = True

    async def scenario():
        coordinator = ImportCoordinator(service, config)
        coordinator.select_file(workbook("a.xlsx"))
        first = asyncio.create_task(coordinator.initialize())
        await service.uploading.wait()
        with pytest.raises(InvalidTransitionError):
            coordinator.select_file(workbook("b.xlsx"))
        service.upload_gate.set()
        return await first

    state = asyncio.run(scenario())

    assert [file.name for file in service.uploads] == ["a.xlsx"]
    assert state.file.name == "a.xlsx"
    assert state.phase == ImportPhase.session_ready


def test_reset_during_upload_discards_the_session(service, config):
    service.hold_upload = True

    async def scenario():
        coordinator = ImportCoordinator(service, config)
        coordinator.select_file(workbook())
        first = asyncio.create_task(coordinator.initialize())
        await service.uploading.wait()
        await coordinator.reset()
        service.upload_gate.set()
        return coordinator, await first

    coordinator, state = asyncio.run(scenario())

    assert state.phase == ImportPhase.idle
    assert state.session is None
    assert coordinator.state == state


def test_failed_upload_after_reset_is_not_reported(service, config):
    service.hold_upload = True
    service.init_error = ServiceUnavailableError("connection refused")

    async def scenario():
        coordinator = ImportCoordinator(service, config)
        coordinator.select_file(workbook())
        first = asyncio.create_task(coordinator.initialize())
        await service.uploading.wait()
        await coordinator.reset()
        service.upload_gate.set()
        return coordinator, await first

    coordinator, state = asyncio.run(scenario())

    assert state.phase == ImportPhase.idle
    assert coordinator.drain_notifications() == []


# --------------------------
# pacing and unexpected failures
# --------------------------


def test_chunks_are_paced_with_default_delay(service, monkeypatch):
    config = Settings(_env_file=None, retry_base_delay_seconds=0.0)
    chunk_pause = config.chunk_delay_ms / 1000
    poll_interval = config.status_poll_interval_ms / 1000
    pauses: list[float] = []
    real_sleep = asyncio.sleep

    async def recording_sleep(delay, result=None):
        pauses.append(delay)
        await real_sleep(0 if delay == chunk_pause else delay)
        return result

    monkeypatch.setattr(coordinator_module.asyncio, "sleep", recording_sleep)

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        return await coordinator.process()

    state = asyncio.run(scenario())

    assert state.phase == ImportPhase.completed
    assert service.chunk_starts == [0, 50, 97]
    assert [pause for pause in pauses if pause != poll_interval] == [0.5, 0.5]
    assert poll_interval in pauses


def test_unexpected_chunk_error_returns_to_session_ready(service, config):
    service.chunk_errors = {50: RuntimeError("driver bug")}

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        with pytest.raises(RuntimeError):
            await coordinator.process()
        failed = coordinator.state
        await coordinator.process()
        return coordinator, failed

    coordinator, failed = asyncio.run(scenario())

    assert failed.phase == ImportPhase.session_ready
    assert failed.processing is False
    assert failed.processed == 50
    assert failed.last_error
    assert service.chunk_starts == [0, 50, 50, 97]
    assert coordinator.state.phase == ImportPhase.completed


def test_poll_crash_does_not_hide_chunk_outcome(service, config):
    config.status_poll_interval_ms = 1
    service.gate_at = 50
    service.status_error = RuntimeError("poll bug")

    async def scenario():
        coordinator = await ready_coordinator(service, config)
        task = coordinator.start()
        await service.waiting.wait()
        for _ in range(200):
            if service.status_calls:
                break
            await asyncio.sleep(0.005)
        service.status_error = None
        service.gate.set()
        return await task

    state = asyncio.run(scenario())

    assert state.phase == ImportPhase.completed
    assert state.result.success_count == 97
