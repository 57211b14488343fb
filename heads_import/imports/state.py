"""Import state machine.

Every transition is a pure function of the current state and an event; the
coordinator owns the resulting state and publishes it. Illegal events raise
``InvalidTransitionError`` and leave the caller's state untouched.

  idle -> file_selected -> initializing -> session_ready -> processing -> completed
                 ^               |                ^               |
                 +-- failure ----+                +-- failure ----+
"""

from dataclasses import dataclass, replace

from heads_import.bulk_import.schemas import ChunkResult, ImportSession, StatusResult
from heads_import.exceptions import InvalidTransitionError
from heads_import.imports.models import ImportPhase, ImportResult, ImportState, SelectedFile
from heads_import.imports.progress import compute_progress


@dataclass(frozen=True)
class FileChosen:
    file: SelectedFile


@dataclass(frozen=True)
class InitStarted:
    pass


@dataclass(frozen=True)
class SessionOpened:
    session: ImportSession


@dataclass(frozen=True)
class InitFailed:
    error: str


@dataclass(frozen=True)
class ProcessingStarted:
    pass


@dataclass(frozen=True)
class ChunkProcessed:
    chunk: ChunkResult


@dataclass(frozen=True)
class StatusRefreshed:
    status: StatusResult


@dataclass(frozen=True)
class ProcessingFailed:
    error: str


@dataclass(frozen=True)
class ImportCompleted:
    result: ImportResult


@dataclass(frozen=True)
class Reset:
    pass


ImportEvent = (
    FileChosen
    | InitStarted
    | SessionOpened
    | InitFailed
    | ProcessingStarted
    | ChunkProcessed
    | StatusRefreshed
    | ProcessingFailed
    | ImportCompleted
    | Reset
)


def _require(state: ImportState, event: ImportEvent, *phases: ImportPhase) -> None:
    if state.phase not in phases:
        raise InvalidTransitionError(state.phase, type(event).__name__)


def transition(state: ImportState, event: ImportEvent) -> ImportState:
    match event:
        case FileChosen(file=file):
            _require(
                state,
                event,
                ImportPhase.idle,
                ImportPhase.file_selected,
                ImportPhase.session_ready,
                ImportPhase.completed,
            )
            return ImportState(phase=ImportPhase.file_selected, file=file)

        case InitStarted():
            _require(state, event, ImportPhase.file_selected)
            return replace(state, phase=ImportPhase.initializing, last_error=None)

        case SessionOpened(session=session):
            _require(state, event, ImportPhase.initializing)
            return replace(
                state,
                phase=ImportPhase.session_ready,
                session=session,
                processed=0,
                resume_from=0,
                total=session.valid_records,
                progress=compute_progress(0, session.valid_records),
                last_error=None,
            )

        case InitFailed(error=error):
            _require(state, event, ImportPhase.initializing)
            return replace(state, phase=ImportPhase.file_selected, last_error=error)

        case ProcessingStarted():
            _require(state, event, ImportPhase.session_ready)
            return replace(state, phase=ImportPhase.processing, processing=True, last_error=None)

        case ChunkProcessed(chunk=chunk):
            _require(state, event, ImportPhase.processing)
            total = chunk.total or state.total
            return replace(
                state,
                processed=chunk.processed,
                resume_from=chunk.processed,
                total=total,
                progress=compute_progress(chunk.processed, total, chunk.done),
            )

        case StatusRefreshed(status=status):
            # Late poll answers after processing stopped are dropped.
            if state.phase != ImportPhase.processing:
                return state
            processed = max(state.processed, status.processed)
            return replace(
                state,
                processed=processed,
                progress=max(state.progress, compute_progress(processed, state.total)),
            )

        case ProcessingFailed(error=error):
            _require(state, event, ImportPhase.processing)
            return replace(
                state,
                phase=ImportPhase.session_ready,
                processing=False,
                processed=state.resume_from,
                progress=compute_progress(state.resume_from, state.total),
                last_error=error,
            )

        case ImportCompleted(result=result):
            _require(state, event, ImportPhase.processing)
            return replace(
                state,
                phase=ImportPhase.completed,
                session=None,
                processing=False,
                progress=100,
                result=result,
                last_error=None,
            )

        case Reset():
            return ImportState()

    raise TypeError(f"Unknown import event: {event!r}")
