from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple


ODD_CHANNEL = 0
EVEN_CHANNEL = 1
CHANNELS = (ODD_CHANNEL, EVEN_CHANNEL)


@dataclass(frozen=True)
class FrameRecord:
    frame_number: int
    timestamp: int
    odd_value: float
    even_value: float


class VideoInfo(NamedTuple):
    frame_number: int
    odd_value: float
    even_value: float


class ModelStatus(str, Enum):
    EMPTY = "empty"
    POPULATING = "populating"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ParserConfig:
    frame_tag: str = "frame"
    frame_number_attr: str = "n"
    timestamp_attr: str = "abst"
    odd_attr: str = "odd"
    even_attr: str = "even"


@dataclass
class IndexConfig:
    # "last" keeps the last record of a run of equal timestamps in stable order.
    duplicate_policy: str = "last"
    # Equidistant neighbours resolve to the later record unless set to "earlier".
    tie_break: str = "later"


@dataclass
class PopulationConfig:
    max_workers: int = 2


@dataclass
class DvTimelineConfig:
    parser: ParserConfig = field(default_factory=ParserConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    population: PopulationConfig = field(default_factory=PopulationConfig)
