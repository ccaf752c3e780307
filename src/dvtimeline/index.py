from __future__ import annotations

import logging
import numbers
from typing import Iterable, Iterator, Sequence

import numpy as np

from dvtimeline.errors import DuplicateTimestampError, EmptyDatasetError, InvalidChannelError
from dvtimeline.models import CHANNELS, ODD_CHANNEL, FrameRecord, IndexConfig

logger = logging.getLogger(__name__)


class TimelineIndex:
    """Frame records sorted by capture timestamp, answering nearest-frame queries.

    Instances are immutable; build one with :meth:`build`.
    """

    def __init__(
        self,
        records: Sequence[FrameRecord],
        tie_break: str = "later",
        duplicates_dropped: int = 0,
    ):
        if len(records) == 0:
            raise EmptyDatasetError()
        self._records = tuple(records)
        self._tie_break = tie_break
        self.duplicates_dropped = int(duplicates_dropped)
        self._timestamps = _frozen(np.fromiter(
            (r.timestamp for r in self._records), dtype=np.int64, count=len(self._records)
        ))
        if np.any(self._timestamps[1:] < self._timestamps[:-1]):
            raise ValueError("TimelineIndex records must be sorted by timestamp")
        self._values = (
            _frozen(np.fromiter((r.odd_value for r in self._records), dtype=np.float64, count=len(self._records))),
            _frozen(np.fromiter((r.even_value for r in self._records), dtype=np.float64, count=len(self._records))),
        )
        self._position_by_frame: dict[int, int] = {}
        for pos, rec in enumerate(self._records):
            self._position_by_frame[rec.frame_number] = pos

    @classmethod
    def build(
        cls, records: Iterable[FrameRecord], config: IndexConfig | None = None
    ) -> TimelineIndex:
        cfg = config or IndexConfig()
        items = list(records)
        if not items:
            raise EmptyDatasetError()
        ts = np.fromiter((r.timestamp for r in items), dtype=np.int64, count=len(items))
        order = np.argsort(ts, kind="stable")
        sorted_ts = ts[order]
        repeated = sorted_ts[1:] == sorted_ts[:-1]
        dropped = int(np.count_nonzero(repeated))
        if dropped:
            if cfg.duplicate_policy == "error":
                first_dup = int(sorted_ts[1:][repeated][0])
                raise DuplicateTimestampError(first_dup, int(np.count_nonzero(sorted_ts == first_dup)))
            keep = np.ones(len(order), dtype=bool)
            if cfg.duplicate_policy == "first":
                keep[1:] = ~repeated
            else:
                keep[:-1] = ~repeated
            order = order[keep]
            logger.warning(
                "Collapsed %d records with duplicate timestamps (policy=%s)",
                dropped,
                cfg.duplicate_policy,
            )
        ordered = [items[i] for i in order.tolist()]
        return cls(ordered, tie_break=cfg.tie_break, duplicates_dropped=dropped)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[FrameRecord]:
        return iter(self._records)

    @property
    def records(self) -> tuple[FrameRecord, ...]:
        return self._records

    @property
    def first(self) -> FrameRecord:
        return self._records[0]

    @property
    def last(self) -> FrameRecord:
        return self._records[-1]

    @property
    def time_span(self) -> tuple[int, int]:
        return self.first.timestamp, self.last.timestamp

    @property
    def timestamps(self) -> np.ndarray:
        return self._timestamps

    def nearest_position(self, query: int) -> int:
        ts = self._timestamps
        last = len(ts) - 1
        if query <= ts[0]:
            return 0
        if query >= ts[last]:
            return last
        # ts[i - 1] < query <= ts[i]
        i = int(np.searchsorted(ts, query, side="left"))
        before = query - int(ts[i - 1])
        after = int(ts[i]) - query
        return i if self._prefers_later(before, after) else i - 1

    def nearest_frame(self, query: int) -> FrameRecord:
        return self._records[self.nearest_position(query)]

    def nearest_frames(self, queries: Iterable[int]) -> list[FrameRecord]:
        ts = self._timestamps
        lo, hi = int(ts[0]), int(ts[-1])
        try:
            # clamped values always fit int64
            clamped = [min(max(query, lo), hi) for query in queries]
        except TypeError as exc:
            raise TypeError("Timestamp queries must be numeric") from exc
        q = np.asarray(clamped)
        if q.size == 0:
            return []
        if q.dtype.kind not in "iuf":
            raise TypeError("Timestamp queries must be numeric")
        pos = np.searchsorted(ts, q, side="left")
        right_idx = np.clip(pos, 0, len(ts) - 1)
        left_idx = np.clip(pos - 1, 0, len(ts) - 1)
        right_delta = np.abs(ts[right_idx] - q)
        left_delta = np.abs(ts[left_idx] - q)
        choose_right = self._prefers_later(left_delta, right_delta)
        nearest = np.where(choose_right, right_idx, left_idx)
        return [self._records[i] for i in nearest.tolist()]

    def _prefers_later(self, before, after):
        if self._tie_break == "earlier":
            return after < before
        return after <= before

    def frame_by_number(self, frame_number: int) -> FrameRecord | None:
        pos = self._position_by_frame.get(frame_number)
        if pos is None:
            return None
        return self._records[pos]

    def channel_values(self, channel: int) -> np.ndarray:
        check_channel(channel)
        return self._values[channel]

    @staticmethod
    def value_at(record: FrameRecord, channel: int) -> float:
        check_channel(channel)
        if channel == ODD_CHANNEL:
            return record.odd_value
        return record.even_value


def check_channel(channel: object) -> None:
    if isinstance(channel, bool) or not isinstance(channel, numbers.Integral):
        raise InvalidChannelError(channel)
    if channel not in CHANNELS:
        raise InvalidChannelError(channel)


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.setflags(write=False)
    return arr
