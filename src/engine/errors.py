"""
Error taxonomy for the synchronization engine.

Only decoding and project import raise out of the engine. The other errors are
built and logged so diagnostics carry a consistent shape.
"""

from typing import Iterable, Optional


class TrackSyncError(Exception):
    """Base class for all engine errors."""


class UnknownSegmentReference(TrackSyncError):
    """An edit targeted a segment id that is not in the transcript."""

    def __init__(self, segment_id: Optional[str]):
        self.segment_id = segment_id
        super().__init__(f"Unknown segment reference: {segment_id!r}")


class DegenerateInterval(TrackSyncError):
    """An edit would leave a segment with end <= start or a negative time."""

    def __init__(self, segment_id: str, start: float, end: float):
        self.segment_id = segment_id
        self.start = start
        self.end = end
        super().__init__(
            f"Degenerate interval for segment {segment_id!r}: [{start}, {end}]"
        )


class DecodeFailure(TrackSyncError):
    """An uploaded audio file could not be decoded to obtain its duration."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Could not decode {name!r}: {reason}")


class MirrorDesync(TrackSyncError):
    """Region overlay and transcript disagree."""

    def __init__(self, orphans: Iterable[str] = (), mismatched: Iterable[str] = ()):
        self.orphans = sorted(orphans)
        self.mismatched = sorted(mismatched)
        super().__init__(
            f"Region mirror out of sync (orphans={self.orphans}, "
            f"mismatched={self.mismatched})"
        )


class ProjectFormatError(TrackSyncError):
    """A transcript project file does not have the expected shape."""
