"""
Concurrency Manager - Bounded parallelism for embedding requests.

Runs exactly one async unit of work per item with a sliding admission
window: at most max_concurrency items are in flight, and every
completion (success or failure) admits the next pending item.

All bookkeeping happens on the event loop between awaits, so counters
and state need no locks.

Usage:
    handle = start(notes, embed_and_store, max_concurrency=5, notify=print)
    await handle.done()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, Set, TypeVar

from .errors import ErrorAction, handle_error
from .models import TaskState


logger = logging.getLogger(__name__)

T = TypeVar("T")

Worker = Callable[[T], Awaitable[Any]]
ProgressCallback = Callable[[int], None]


class ConcurrencyHandle(Generic[T]):
    """
    Handle for one scheduling run.

    Created by start(); exists only for the duration of one indexing run.
    """

    def __init__(
        self,
        items: Sequence[T],
        worker: Worker,
        max_concurrency: int,
        notify: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
        label: Optional[Callable[[T], str]] = None,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

        self._items: List[T] = list(items)
        self._worker = worker
        self._max_concurrency = max_concurrency
        self._notify = notify
        self._timeout = timeout
        self._label = label or str

        self.states: List[TaskState] = [TaskState.PENDING] * len(self._items)
        self.results: Dict[int, Any] = {}
        self.errors: Dict[int, BaseException] = {}
        self.completed = 0
        self.in_flight = 0

        self._next = 0
        self._stopped = False
        self._tasks: Set[asyncio.Task] = set()
        self._drained = asyncio.Event()

    @property
    def total(self) -> int:
        return len(self._items)

    @property
    def succeeded(self) -> List[T]:
        return [self._items[i] for i, s in enumerate(self.states) if s is TaskState.SUCCEEDED]

    @property
    def failed(self) -> List[T]:
        return [self._items[i] for i, s in enumerate(self.states) if s is TaskState.FAILED]

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def drained(self) -> bool:
        return self._drained.is_set()

    def _launch(self) -> None:
        self._admit()
        self._check_drained()

    def _admit(self) -> None:
        """Fill the admission window from the pending items."""
        while (
            not self._stopped
            and self.in_flight < self._max_concurrency
            and self._next < len(self._items)
        ):
            index = self._next
            self._next += 1
            self.in_flight += 1
            self.states[index] = TaskState.IN_FLIGHT

            task = asyncio.ensure_future(self._run(index, self._items[index]))
            self._tasks.add(task)
            # Completion bookkeeping runs even if the task is cancelled before its first step
            task.add_done_callback(lambda t, i=index: self._on_complete(i, t))

    async def _run(self, index: int, item: T) -> None:
        try:
            if self._timeout is not None:
                outcome = await asyncio.wait_for(self._worker(item), self._timeout)
            else:
                outcome = await self._worker(item)
        except Exception as e:
            # Failures stay local to this item
            self.states[index] = TaskState.FAILED
            self.errors[index] = e
            if handle_error(e, self._label(item), "embed") is ErrorAction.ABORT:
                self.stop()
        else:
            self.states[index] = TaskState.SUCCEEDED
            self.results[index] = outcome

    def _on_complete(self, index: int, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled() and not self.states[index].is_terminal:
            self.states[index] = TaskState.FAILED
            self.errors[index] = asyncio.CancelledError()
            logger.debug(f"Cancelled task for {self._label(self._items[index])}")

        self.in_flight -= 1
        self.completed += 1
        self._emit_progress()
        self._admit()
        self._check_drained()

    def _emit_progress(self) -> None:
        if self._notify is None:
            return
        try:
            self._notify(self.completed)
        except Exception:
            logger.warning("Progress callback raised; continuing", exc_info=True)

    def _check_drained(self) -> None:
        if self.in_flight == 0 and (self._stopped or self._next >= len(self._items)):
            self._drained.set()

    def stop(self, cancel: bool = False) -> None:
        """
        Stop admitting new items.

        Items that never started stay PENDING. With cancel=True the
        in-flight calls are cancelled as well and recorded as FAILED.
        """
        if not self._stopped:
            logger.info(
                f"Stopping scheduler: {self.in_flight} in flight, "
                f"{len(self._items) - self._next} never started"
            )
        self._stopped = True
        if cancel:
            for task in list(self._tasks):
                task.cancel()
        self._check_drained()

    async def done(self) -> None:
        """
        Wait until every admitted item reached a terminal state.

        Never raises because individual items failed. Resolves immediately
        when there was nothing to do.
        """
        await self._drained.wait()


def start(
    items: Sequence[T],
    worker: Worker,
    max_concurrency: int,
    notify: Optional[ProgressCallback] = None,
    timeout: Optional[float] = None,
    label: Optional[Callable[[T], str]] = None,
) -> ConcurrencyHandle[T]:
    """
    Launch bounded-concurrency processing of items. Does not block.

    Must be called with a running event loop.

    Args:
        items: Work items, admitted in order
        worker: Async function run once per item
        max_concurrency: Maximum simultaneously in-flight workers (>= 1)
        notify: Called with the cumulative completed count after each completion
        timeout: Per-item timeout in seconds; a timeout counts as a failure
        label: Renders an item for log messages

    Returns:
        Handle to observe state and wait for drain
    """
    handle = ConcurrencyHandle(items, worker, max_concurrency, notify, timeout, label)
    handle._launch()
    return handle
