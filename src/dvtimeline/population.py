"""Background parse + index build with a single terminal outcome."""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Optional, Union

from dvtimeline import report_parser
from dvtimeline.errors import DvTimelineError
from dvtimeline.index import TimelineIndex
from dvtimeline.io.source import ByteSource, describe_source
from dvtimeline.models import DvTimelineConfig

logger = logging.getLogger(__name__)

_generations = itertools.count(1)


@dataclass(frozen=True)
class Completed:
    generation: int
    index: TimelineIndex


@dataclass(frozen=True)
class Failed:
    generation: int
    reason: str
    error: BaseException


Outcome = Union[Completed, Failed]
CompletionCallback = Callable[["PopulationTask", Outcome], None]


class PopulationTask:
    """One report ingestion running on an executor.

    The completion callback is invoked exactly once, from the worker, with
    either :class:`Completed` or :class:`Failed`. Errors never propagate
    through the returned future.
    """

    def __init__(
        self,
        source: ByteSource,
        config: DvTimelineConfig | None = None,
        on_complete: CompletionCallback | None = None,
        generation: int | None = None,
    ):
        self.source = source
        self.config = config or DvTimelineConfig()
        self.generation = generation if generation is not None else next(_generations)
        self._on_complete = on_complete
        self._outcome: Optional[Outcome] = None
        self._delivered = threading.Event()
        self._lock = threading.Lock()
        self._future: Future | None = None

    @classmethod
    def start(
        cls,
        source: ByteSource,
        executor: Executor,
        on_complete: CompletionCallback | None = None,
        config: DvTimelineConfig | None = None,
        generation: int | None = None,
    ) -> PopulationTask:
        task = cls(source, config=config, on_complete=on_complete, generation=generation)
        task._future = executor.submit(task.run)
        return task

    @property
    def outcome(self) -> Optional[Outcome]:
        return self._outcome

    def done(self) -> bool:
        return self._delivered.is_set()

    def wait(self, timeout: float | None = None) -> Optional[Outcome]:
        self._delivered.wait(timeout)
        return self._outcome

    def run(self) -> Outcome:
        label = describe_source(self.source)
        logger.info("[population=%d] Loading report %s", self.generation, label)
        start = perf_counter()
        outcome: Outcome
        try:
            records = report_parser.parse(self.source, self.config.parser)
            index = TimelineIndex.build(records, self.config.index)
        except DvTimelineError as exc:
            logger.warning("[population=%d] Report %s rejected: %s", self.generation, label, exc)
            outcome = Failed(self.generation, str(exc), exc)
        except Exception as exc:
            logger.exception("[population=%d] Unexpected failure loading %s", self.generation, label)
            outcome = Failed(self.generation, f"{type(exc).__name__}: {exc}", exc)
        else:
            logger.info(
                "[population=%d] Indexed %d frames from %s in %.3fs",
                self.generation,
                len(index),
                label,
                perf_counter() - start,
            )
            outcome = Completed(self.generation, index)
        self._deliver(outcome)
        return outcome

    def _deliver(self, outcome: Outcome) -> None:
        with self._lock:
            if self._outcome is not None:
                return
            self._outcome = outcome
        try:
            if self._on_complete is not None:
                self._on_complete(self, outcome)
        except Exception:
            logger.exception("[population=%d] Completion callback raised", self.generation)
        finally:
            self._delivered.set()
