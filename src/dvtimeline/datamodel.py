from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, NamedTuple, Optional

from dvtimeline.errors import NotPopulatedError
from dvtimeline.index import TimelineIndex, check_channel
from dvtimeline.io.source import ByteSource
from dvtimeline.models import DvTimelineConfig, ModelStatus, VideoInfo
from dvtimeline.population import Completed, Failed, Outcome, PopulationTask

logger = logging.getLogger(__name__)

Dispatcher = Callable[[Callable[[], None]], None]
PopulatedListener = Callable[[], None]
ErrorListener = Callable[[str], None]


class _Snapshot(NamedTuple):
    status: ModelStatus
    index: Optional[TimelineIndex]
    error: Optional[str]


class DataModel:
    """Facade holding the current timeline index for a scrubbing UI.

    ``populate`` returns immediately; listeners registered with
    :meth:`connect_populated` / :meth:`connect_error` are told when the
    latest population settles. Queries must only be issued after the
    ``populated`` notification for the relevant call.

    ``dispatcher`` receives a zero-argument callable and must run it on the
    owner's execution context (for example ``loop.call_soon_threadsafe``).
    Without one, completions are applied on the worker thread.
    """

    def __init__(
        self,
        config: DvTimelineConfig | None = None,
        dispatcher: Dispatcher | None = None,
    ):
        self.config = config or DvTimelineConfig()
        self._dispatcher = dispatcher
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.population.max_workers,
            thread_name_prefix="dvtimeline-populate",
        )
        self._lock = threading.Lock()
        self._snapshot = _Snapshot(ModelStatus.EMPTY, None, None)
        self._generation = 0
        self._settled = threading.Event()
        self._settled.set()
        self._populated_listeners: list[PopulatedListener] = []
        self._error_listeners: list[ErrorListener] = []

    def __enter__(self) -> DataModel:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @property
    def status(self) -> ModelStatus:
        return self._snapshot.status

    @property
    def index(self) -> Optional[TimelineIndex]:
        return self._snapshot.index

    @property
    def last_error(self) -> Optional[str]:
        return self._snapshot.error

    def connect_populated(self, listener: PopulatedListener) -> None:
        self._populated_listeners.append(listener)

    def connect_error(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def populate(self, source: ByteSource) -> PopulationTask:
        with self._lock:
            self._generation += 1
            generation = self._generation
            previous = self._snapshot
            self._snapshot = _Snapshot(ModelStatus.POPULATING, previous.index, None)
            self._settled.clear()
        if previous.status == ModelStatus.POPULATING:
            logger.info("Population %d supersedes an in-flight population", generation)
        try:
            return PopulationTask.start(
                source,
                self._executor,
                on_complete=self._on_task_complete,
                config=self.config,
                generation=generation,
            )
        except Exception:
            with self._lock:
                if self._generation == generation:
                    self._generation -= 1
                    self._snapshot = previous
                    if previous.status != ModelStatus.POPULATING:
                        self._settled.set()
            raise

    def wait_until_settled(self, timeout: float | None = None) -> bool:
        """Block until the most recent ``populate`` call has been applied."""
        return self._settled.wait(timeout)

    def get_video_info(self, timestamp: int, channel: int) -> VideoInfo:
        snapshot = self._snapshot
        if snapshot.status != ModelStatus.READY or snapshot.index is None:
            raise NotPopulatedError(f"Timeline is not ready (status={snapshot.status.value}).")
        check_channel(channel)
        record = snapshot.index.nearest_frame(timestamp)
        return VideoInfo(record.frame_number, record.odd_value, record.even_value)

    def get_video_infos(self, timestamps: Iterable[int], channel: int) -> list[VideoInfo]:
        snapshot = self._snapshot
        if snapshot.status != ModelStatus.READY or snapshot.index is None:
            raise NotPopulatedError(f"Timeline is not ready (status={snapshot.status.value}).")
        check_channel(channel)
        return [
            VideoInfo(rec.frame_number, rec.odd_value, rec.even_value)
            for rec in snapshot.index.nearest_frames(timestamps)
        ]

    def _on_task_complete(self, task: PopulationTask, outcome: Outcome) -> None:
        if self._dispatcher is None:
            self._apply(outcome)
        else:
            try:
                self._dispatcher(lambda: self._apply(outcome))
            except Exception as exc:
                logger.exception("Dispatcher rejected completion of population %d", outcome.generation)
                self._apply(Failed(outcome.generation, f"Completion dispatch failed: {exc}", exc))

    def _apply(self, outcome: Outcome) -> None:
        with self._lock:
            if outcome.generation != self._generation:
                logger.debug(
                    "Dropping result of superseded population %d (current=%d)",
                    outcome.generation,
                    self._generation,
                )
                return
            if isinstance(outcome, Completed):
                self._snapshot = _Snapshot(ModelStatus.READY, outcome.index, None)
            else:
                self._snapshot = _Snapshot(ModelStatus.FAILED, None, outcome.reason)
        try:
            if isinstance(outcome, Completed):
                self._notify(self._populated_listeners)
            else:
                self._notify(self._error_listeners, outcome.reason)
        finally:
            with self._lock:
                if outcome.generation == self._generation:
                    self._settled.set()

    def _notify(self, listeners: list, *args: object) -> None:
        for listener in list(listeners):
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener %r raised", listener)
