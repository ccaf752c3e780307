from __future__ import annotations


class DvTimelineError(Exception):
    """Base class for report ingestion and lookup failures."""


class ParseError(DvTimelineError):
    """Raised when a report is malformed or cannot be read."""

    def __init__(self, reason: str):
        self.reason = str(reason)
        super().__init__(self.reason)


class DuplicateTimestampError(ParseError):
    """Raised when duplicate timestamps are found and the policy forbids them."""

    def __init__(self, timestamp: int, count: int):
        self.timestamp = int(timestamp)
        self.count = int(count)
        super().__init__(
            f"Timestamp {self.timestamp} appears {self.count} times in report."
        )


class EmptyDatasetError(DvTimelineError):
    """Raised when a report decodes to zero frames."""

    def __init__(self, reason: str = "Report contains no frames."):
        self.reason = reason
        super().__init__(reason)


class NotPopulatedError(DvTimelineError):
    """Raised when a query is issued before the model is ready."""


class InvalidChannelError(DvTimelineError, ValueError):
    def __init__(self, channel: object):
        self.channel = channel
        super().__init__(f"Channel must be 0 (odd field) or 1 (even field), got {channel!r}.")
