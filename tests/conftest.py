from __future__ import annotations

import io
import threading
from pathlib import Path

from dvtimeline.models import FrameRecord


DATA_DIR = Path(__file__).parent / "data"
REFERENCE_REPORT = DATA_DIR / "reference_report.xml"
DVRESCUE_NS = "https://mediaarea.net/dvrescue"


def make_frame(frame_number: int, timestamp: int | None = None, odd: float = 0.0, even: float = 0.0) -> FrameRecord:
    return FrameRecord(
        frame_number=frame_number,
        timestamp=frame_number if timestamp is None else timestamp,
        odd_value=odd,
        even_value=even,
    )


def make_report_xml(frames: list[FrameRecord], namespace: str | None = DVRESCUE_NS) -> bytes:
    xmlns = f' xmlns="{namespace}"' if namespace else ""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<dvrescue{xmlns} version="1.2">',
        ' <media ref="tape.dv" format="DV">',
        f'  <frames count="{len(frames)}">',
    ]
    for rec in frames:
        lines.append(
            f'   <frame n="{rec.frame_number}" abst="{rec.timestamp}"'
            f' odd="{rec.odd_value}" even="{rec.even_value}"/>'
        )
    lines += ["  </frames>", " </media>", "</dvrescue>"]
    return "\n".join(lines).encode("utf-8")


class GatedStream(io.RawIOBase):
    """Binary stream that blocks its first read until ``release`` is called."""

    def __init__(self, payload: bytes):
        self._inner = io.BytesIO(payload)
        self._gate = threading.Event()
        self.reading = threading.Event()

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        self.reading.set()
        self._gate.wait(timeout=10)
        data = self._inner.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def release(self) -> None:
        self._gate.set()
