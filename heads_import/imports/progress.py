from collections.abc import Callable

import structlog

from heads_import.imports.models import ImportState

logger = structlog.get_logger()

Subscriber = Callable[[ImportState], None]


def compute_progress(processed: int, total: int, done: bool = False) -> int:
    """Whole percentage of ``processed`` over ``total``, rounded down."""
    if total <= 0:
        return 100 if done else 0
    return min(100, max(0, processed * 100 // total))


class ProgressFeed:
    """Holds the current import state and pushes every change to subscribers.

    The coordinator is the only writer. Subscribers (the HTTP layer, tests,
    a terminal renderer) only read what they are handed.
    """

    def __init__(self, initial: ImportState | None = None) -> None:
        self._current = initial or ImportState()
        self._subscribers: list[Subscriber] = []

    @property
    def current(self) -> ImportState:
        return self._current

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, state: ImportState) -> None:
        self._current = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception as exc:
                logger.error("progress_subscriber_failed", error=str(exc))
