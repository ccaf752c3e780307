from __future__ import annotations

import logging
import math
from typing import Iterator
from xml.etree import ElementTree as ET

from dvtimeline.errors import ParseError
from dvtimeline.io.source import ByteSource, describe_source, open_byte_source
from dvtimeline.models import FrameRecord, ParserConfig

logger = logging.getLogger(__name__)


def parse(source: ByteSource, config: ParserConfig | None = None) -> list[FrameRecord]:
    return list(iter_frames(source, config))


def iter_frames(source: ByteSource, config: ParserConfig | None = None) -> Iterator[FrameRecord]:
    """Yield frame records from a report in document order.

    Frame elements are detached from the tree as soon as they are decoded, so
    only the open element path is held in memory regardless of report length.
    """
    cfg = config or ParserConfig()
    label = describe_source(source)
    with open_byte_source(source) as stream:
        open_elements: list[ET.Element] = []
        position = 0
        try:
            for event, elem in ET.iterparse(stream, events=("start", "end")):
                if event == "start":
                    open_elements.append(elem)
                    continue
                open_elements.pop()
                if _local_name(elem.tag) != cfg.frame_tag:
                    continue
                record = _frame_from_element(elem, cfg, position)
                position += 1
                elem.clear()
                if open_elements:
                    open_elements[-1].remove(elem)
                yield record
        except ET.ParseError as exc:
            raise ParseError(f"Malformed report {label}: {exc}") from exc
        except OSError as exc:
            raise ParseError(f"Report is not readable: {label} ({exc})") from exc
        logger.debug("Decoded %d frames from %s", position, label)


def _local_name(tag: object) -> str:
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _frame_from_element(elem: ET.Element, cfg: ParserConfig, position: int) -> FrameRecord:
    frame_number = _int_attr(elem, cfg.frame_number_attr, position)
    if frame_number < 0:
        raise ParseError(
            f"Frame #{position}: attribute '{cfg.frame_number_attr}' must be >= 0, got {frame_number}."
        )
    return FrameRecord(
        frame_number=frame_number,
        timestamp=_int_attr(elem, cfg.timestamp_attr, position),
        odd_value=_float_attr(elem, cfg.odd_attr, position),
        even_value=_float_attr(elem, cfg.even_attr, position),
    )


def _required_attr(elem: ET.Element, name: str, position: int) -> str:
    raw = elem.get(name)
    if raw is None or not raw.strip():
        raise ParseError(f"Frame #{position}: missing required attribute '{name}'.")
    return raw.strip()


def _int_attr(elem: ET.Element, name: str, position: int) -> int:
    raw = _required_attr(elem, name, position)
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        value = float(raw)
    except ValueError:
        value = math.nan
    if not math.isfinite(value) or not value.is_integer():
        raise ParseError(f"Frame #{position}: attribute '{name}' is not an integer: {raw!r}.")
    return int(value)


def _float_attr(elem: ET.Element, name: str, position: int) -> float:
    raw = _required_attr(elem, name, position)
    try:
        value = float(raw)
    except ValueError as exc:
        raise ParseError(f"Frame #{position}: attribute '{name}' is not a number: {raw!r}.") from exc
    if not math.isfinite(value):
        raise ParseError(f"Frame #{position}: attribute '{name}' is not finite: {raw!r}.")
    return value
