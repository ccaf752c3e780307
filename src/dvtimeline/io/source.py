from __future__ import annotations

import io
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from dvtimeline.errors import ParseError


ByteSource = Union[str, Path, bytes, bytearray, BinaryIO]


@contextmanager
def open_byte_source(source: ByteSource) -> Iterator[BinaryIO]:
    """Yield a readable binary stream for a path, an in-memory report or a file object.

    Streams passed in by the caller are left open; paths are opened and closed here.
    """
    if isinstance(source, (bytes, bytearray)):
        yield io.BytesIO(bytes(source))
        return
    if isinstance(source, (str, Path)):
        path = Path(source).expanduser()
        ok, reason = is_readable_file(path)
        if not ok:
            raise ParseError(reason or f"Report is not readable: {path}")
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise ParseError(f"Report is not readable: {path} ({exc})") from exc
        with handle:
            yield handle
        return
    if hasattr(source, "read"):
        if getattr(source, "closed", False):
            raise ParseError(f"Report stream is closed: {describe_source(source)}")
        readable = getattr(source, "readable", None)
        if readable is not None and not readable():
            raise ParseError(f"Report stream is not readable: {describe_source(source)}")
        yield source
        return
    raise ParseError(f"Unsupported report source type: {type(source).__name__}")


def is_readable_file(path: str | Path) -> tuple[bool, str | None]:
    file_path = Path(path).expanduser()
    if not file_path.exists():
        return False, f"File not found: {file_path}"
    if not file_path.is_file():
        return False, f"Path is not a file: {file_path}"
    try:
        with file_path.open("rb") as handle:
            handle.read(1)
    except OSError as exc:
        return False, f"File is not readable: {file_path} ({exc})"
    return True, None


def describe_source(source: ByteSource) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    if isinstance(source, (str, Path)):
        return str(source)
    name = getattr(source, "name", None)
    if isinstance(name, str):
        return name
    return f"<{type(source).__name__}>"
