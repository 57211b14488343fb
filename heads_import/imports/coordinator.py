import asyncio
from collections import deque
from contextlib import suppress

import structlog

from heads_import.bulk_import.base import BulkImportService
from heads_import.bulk_import.schemas import ChunkResult, ImportSession, StatusResult
from heads_import.config import Settings, settings
from heads_import.exceptions import (
    AppError,
    ChunkProcessingError,
    InvalidTransitionError,
    SessionInitError,
    ValidationError,
)
from heads_import.imports.models import (
    ImportPhase,
    ImportState,
    Notification,
    NotificationLevel,
    SelectedFile,
)
from heads_import.imports.notifications import describe_error, outcome_notification
from heads_import.imports.preflight import require_file, validate_extension, validate_size
from heads_import.imports.progress import ProgressFeed
from heads_import.imports.results import build_result
from heads_import.imports.state import (
    ChunkProcessed,
    FileChosen,
    ImportCompleted,
    ImportEvent,
    InitFailed,
    InitStarted,
    ProcessingFailed,
    ProcessingStarted,
    Reset,
    SessionOpened,
    StatusRefreshed,
    transition,
)

logger = structlog.get_logger()


class ImportCoordinator:
    """Drives one family-heads import through init, chunked processing and finalize."""

    def __init__(
        self,
        service: BulkImportService,
        config: Settings | None = None,
        feed: ProgressFeed | None = None,
    ) -> None:
        self._service = service
        self._config = config or settings
        self._feed = feed or ProgressFeed()
        self._notifications: deque[Notification] = deque(maxlen=self._config.notification_limit)
        self._processing_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._init_generation = 0

    @property
    def state(self) -> ImportState:
        return self._feed.current

    @property
    def feed(self) -> ProgressFeed:
        return self._feed

    @property
    def service(self) -> BulkImportService:
        return self._service

    @property
    def config(self) -> Settings:
        return self._config

    # -- notifications -----------------------------------------------------

    def notify(self, level: NotificationLevel, title: str, description: str) -> None:
        self._notifications.append(Notification(level=level, title=title, description=description))

    def drain_notifications(self) -> list[Notification]:
        drained = list(self._notifications)
        self._notifications.clear()
        return drained

    # -- file selection and session init ----------------------------------

    def select_file(self, file: SelectedFile) -> ImportState:
        try:
            validate_extension(file.name, self._config.extensions)
        except ValidationError as exc:
            logger.warning("import_file_rejected", filename=file.name, reason=exc.message)
            self.notify(NotificationLevel.error, "Unsupported file type", exc.message)
            raise

        if self.state.session is not None and self.state.phase == ImportPhase.session_ready:
            logger.info("import_session_abandoned", session_id=self.state.session.session_id)

        state = self._dispatch(FileChosen(file))
        logger.info("import_file_selected", filename=file.name, size=file.size)
        return state

    async def initialize(self) -> ImportState:
        """Upload the selected workbook and open a session for its valid rows.

        Only one upload may be in flight. If the import is reset or another
        file is picked while the upload runs, its session is dropped.
        """
        try:
            file = require_file(self.state.file)
        except ValidationError as exc:
            self.notify(NotificationLevel.error, "No file", exc.message)
            raise

        if self.state.phase != ImportPhase.file_selected:
            raise InvalidTransitionError(self.state.phase, "initialize")

        try:
            validate_size(file.size, self._config.max_file_size_bytes)
        except ValidationError as exc:
            logger.warning("import_file_too_large", filename=file.name, size=file.size)
            self.notify(NotificationLevel.error, "File too large", exc.message)
            raise

        self._dispatch(InitStarted())
        self._init_generation += 1
        generation = self._init_generation

        try:
            session = await self._service.init_session(file)
        except AppError as exc:
            if self._init_superseded(generation):
                logger.info("import_session_init_discarded", filename=file.name, error=exc.message)
                return self.state
            message = describe_error(exc)
            logger.error("import_session_init_failed", filename=file.name, error=exc.message)
            self._dispatch(InitFailed(message))
            self.notify(NotificationLevel.error, "Initialization failed", message)
            raise SessionInitError(message) from exc
        except BaseException:
            if not self._init_superseded(generation):
                self._dispatch(InitFailed("Initialization was interrupted"))
            raise

        if self._init_superseded(generation):
            logger.info(
                "import_session_init_discarded",
                filename=file.name,
                session_id=session.session_id,
            )
            return self.state

        if not session.session_id:
            message = session.message or "The import service did not return a session id"
            logger.error("import_session_missing_id", filename=file.name, message=message)
            self._dispatch(InitFailed(message))
            self.notify(NotificationLevel.error, "Initialization failed", message)
            raise SessionInitError(message)

        state = self._dispatch(SessionOpened(session))
        logger.info(
            "import_session_initialized",
            session_id=session.session_id,
            total=session.total_records,
            valid=session.valid_records,
            invalid=session.invalid_records,
        )
        self.notify(
            NotificationLevel.info,
            "File analysed",
            f"{session.total_records} rows: {session.valid_records} valid, "
            f"{session.invalid_records} invalid",
        )
        return state

    def _init_superseded(self, generation: int) -> bool:
        return generation != self._init_generation or self.state.phase != ImportPhase.initializing

    # -- processing ---------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Run ``process`` in the background and return its task."""
        if self.state.phase != ImportPhase.session_ready:
            raise InvalidTransitionError(self.state.phase, "start")
        task = asyncio.create_task(self.process())
        task.add_done_callback(self._on_processing_done)
        self._processing_task = task
        return task

    async def process(self) -> ImportState:
        """Process the session in chunks until the service reports ``done``.

        Resumes from the last offset a chunk call reported, so calling this
        again after a failure never re-sends rows already persisted.
        """
        session = self.state.session
        if self.state.phase != ImportPhase.session_ready or session is None:
            raise InvalidTransitionError(self.state.phase, "start")

        self._processing_task = asyncio.current_task()
        self._dispatch(ProcessingStarted())
        logger.info(
            "import_processing_started",
            session_id=session.session_id,
            start_idx=self.state.resume_from,
            total=self.state.total,
        )
        self._start_polling(session.session_id)
        try:
            final_chunk = await self._run_chunks(session)
        except AppError as exc:
            self._fail_processing(session, exc)
            if isinstance(exc, ChunkProcessingError):
                raise
            raise ChunkProcessingError(describe_error(exc), processed=self.state.resume_from) from exc
        except Exception as exc:
            self._fail_processing(session, exc)
            raise
        finally:
            await self._stop_polling()

        return await self._complete(session, final_chunk)

    async def _run_chunks(self, session: ImportSession) -> ChunkResult:
        session_id = session.session_id
        chunk_size = self._config.chunk_size
        delay = self._config.chunk_delay_ms / 1000
        start_idx = self.state.resume_from
        stalled = 0

        while True:
            chunk = await self._service.process_chunk(session_id, start_idx, chunk_size)
            if not chunk.success:
                raise ChunkProcessingError(
                    chunk.message or "The import service rejected the chunk",
                    processed=start_idx,
                )
            self._check_chunk(chunk, start_idx, session)
            self._dispatch(ChunkProcessed(chunk))
            logger.info(
                "import_chunk_processed",
                session_id=session_id,
                start_idx=start_idx,
                processed=chunk.processed,
                total=self.state.total,
                progress=self.state.progress,
                done=chunk.done,
            )
            if chunk.done:
                return chunk

            if chunk.processed == start_idx:
                stalled += 1
                if stalled >= self._config.max_stalled_chunks:
                    raise ChunkProcessingError(
                        f"Import stalled at {start_idx} records", processed=start_idx
                    )
            else:
                stalled = 0
            start_idx = chunk.processed
            await asyncio.sleep(delay)

    def _check_chunk(self, chunk: ChunkResult, start_idx: int, session: ImportSession) -> None:
        total = chunk.total or session.valid_records
        if chunk.processed < start_idx:
            raise ChunkProcessingError(
                f"Processed count went backwards ({chunk.processed} < {start_idx})",
                processed=start_idx,
            )
        if chunk.processed > total:
            raise ChunkProcessingError(
                f"Processed count {chunk.processed} exceeds total {total}",
                processed=start_idx,
            )

    def _fail_processing(self, session: ImportSession, exc: Exception) -> None:
        if isinstance(exc, ChunkProcessingError):
            message = exc.message
        elif isinstance(exc, AppError):
            message = describe_error(exc)
        else:
            message = "Unexpected error while processing the import"
        self._dispatch(ProcessingFailed(message))
        logger.error(
            "import_processing_failed",
            session_id=session.session_id,
            processed=self.state.resume_from,
            error=exc.message if isinstance(exc, AppError) else repr(exc),
        )
        self.notify(
            NotificationLevel.error,
            "Processing failed",
            f"{message}. {self.state.resume_from} of {self.state.total} records saved; "
            "start again to resume",
        )

    async def _complete(self, session: ImportSession, final_chunk: ChunkResult) -> ImportState:
        session_id = session.session_id
        status: StatusResult | None = None
        try:
            status = await self._service.get_status(session_id)
        except AppError as exc:
            logger.warning("import_final_status_failed", session_id=session_id, error=exc.message)

        result = build_result(session, final_chunk, status)

        try:
            await self._service.finalize(session_id)
        except AppError as exc:
            logger.warning("import_finalize_failed", session_id=session_id, error=exc.message)
            self.notify(
                NotificationLevel.warning,
                "Session not closed",
                f"Records were imported but the session could not be finalized: "
                f"{describe_error(exc)}",
            )

        state = self._dispatch(ImportCompleted(result))
        logger.info(
            "import_completed",
            session_id=session_id,
            success=result.success_count,
            errors=result.error_count,
            outcome=result.outcome,
        )
        self.notify(*outcome_notification(result))
        return state

    # -- status polling -----------------------------------------------------

    def _start_polling(self, session_id: str) -> None:
        self._poll_task = asyncio.create_task(self._poll_status(session_id))

    async def _poll_status(self, session_id: str) -> None:
        interval = self._config.status_poll_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                status = await self._service.get_status(session_id)
            except AppError as exc:
                logger.warning("import_status_poll_failed", session_id=session_id, error=exc.message)
                continue
            self._dispatch(StatusRefreshed(status))
            logger.debug("import_status_polled", session_id=session_id, processed=status.processed)

    async def _stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.error("import_status_poll_crashed", error=repr(exc))

    # -- reset and shutdown -------------------------------------------------

    async def reset(self) -> ImportState:
        """Abandon whatever is in flight and return to idle."""
        self._init_generation += 1
        task, self._processing_task = self._processing_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError, AppError):
                await task
        await self._stop_polling()

        session = self.state.session
        state = self._dispatch(Reset())
        logger.info("import_reset", session_id=session.session_id if session else None)
        return state

    async def close(self) -> None:
        await self.reset()
        await self._service.close()

    def _on_processing_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, AppError):
            logger.error("import_processing_crashed", error=repr(exc))

    def _dispatch(self, event: ImportEvent) -> ImportState:
        new_state = transition(self.state, event)
        self._feed.publish(new_state)
        return new_state
