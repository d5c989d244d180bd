"""
Transcript segments and the immutable Segment Store.

A Transcript is a snapshot: every mutation returns a new Transcript and leaves
the receiver untouched, so listeners can detect changes with ``is``.
Segments are always kept sorted by start time (stable on ties).
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from src.engine.errors import ProjectFormatError
from src.utils.json_logger import get_logger

_logger = get_logger("subtitle")


def new_segment_id() -> str:
    return uuid.uuid4().hex


class SegmentSource(Enum):
    """Where a segment came from. Display/policy only."""

    CAPTURED = "captured"
    USER = "user"


@dataclass(frozen=True)
class Segment:
    """A transcript block spanning [start, end] in absolute seconds."""

    id: str
    start: float
    end: float
    text: str = ""
    source: SegmentSource = SegmentSource.CAPTURED
    speaker_id: Optional[int] = None

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class SegmentPatch:
    """Partial update for one segment. ``None`` fields are left unchanged."""

    id: str
    start: Optional[float] = None
    end: Optional[float] = None
    text: Optional[str] = None
    speaker_id: Optional[int] = None

    def changes(self) -> Dict[str, Any]:
        values = {
            "start": self.start,
            "end": self.end,
            "text": self.text,
            "speaker_id": self.speaker_id,
        }
        return {k: v for k, v in values.items() if v is not None}


def _sorted(segments: Iterable[Segment]) -> Tuple[Segment, ...]:
    # sorted() is stable: equal starts keep insertion order
    return tuple(sorted(segments, key=lambda s: s.start))


@dataclass(frozen=True)
class Transcript:
    """Ordered segments plus the transcript's time origin and horizon."""

    time_origin: float = 0.0
    time_horizon: float = 0.0
    segments: Tuple[Segment, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any iterable at construction, always store a sorted tuple
        object.__setattr__(self, "segments", _sorted(self.segments))

    @classmethod
    def empty(cls, time_horizon: float = 0.0, time_origin: float = 0.0) -> "Transcript":
        return cls(time_origin=time_origin, time_horizon=time_horizon, segments=())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_segment(self, segment_id: Optional[str]) -> Optional[Segment]:
        if segment_id is None:
            return None
        for seg in self.segments:
            if seg.id == segment_id:
                return seg
        return None

    def segment_ids(self) -> List[str]:
        return [seg.id for seg in self.segments]

    def has_segments(self) -> bool:
        return len(self.segments) > 0

    # ------------------------------------------------------------------
    # Mutations (pure)
    # ------------------------------------------------------------------
    def upsert(self, patch: SegmentPatch) -> "Transcript":
        """Apply ``patch`` to the matching segment and re-sort.

        Unknown ids return ``self`` unchanged.
        """
        target = self.get_segment(patch.id)
        if target is None:
            return self

        changes = patch.changes()
        if not changes:
            return self

        updated = replace(target, **changes)
        if updated == target:
            return self

        segments = [updated if seg.id == patch.id else seg for seg in self.segments]
        return replace(self, segments=_sorted(segments))

    def insert(self, segment: Segment) -> "Transcript":
        """Append ``segment`` and re-sort. Duplicate ids are ignored."""
        if self.get_segment(segment.id) is not None:
            _logger.warning(
                "Duplicate segment id on insert",
                extra={"data": {"segment_id": segment.id}},
            )
            return self
        return replace(self, segments=_sorted(self.segments + (segment,)))

    def remove(self, segment_id: str) -> "Transcript":
        if self.get_segment(segment_id) is None:
            return self
        # Removing keeps the remaining order intact
        segments = tuple(seg for seg in self.segments if seg.id != segment_id)
        return replace(self, segments=segments)

    def with_horizon(self, duration: float) -> "Transcript":
        """Extend the time horizon to cover ``duration``; never shrinks it."""
        if duration <= self.time_horizon:
            return self
        return replace(self, time_horizon=duration)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "startTime": self.time_origin,
            "endTime": self.time_horizon,
            "blocks": [
                {
                    "id": seg.id,
                    "from": seg.start,
                    "to": seg.end,
                    "text": seg.text,
                    "source": seg.source.value,
                    "speaker_id": seg.speaker_id,
                }
                for seg in self.segments
            ],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Transcript":
        """Build a Transcript from the exported block layout.

        Blocks without an id get a fresh one. Raises ProjectFormatError on
        malformed input.
        """
        if not isinstance(data, dict):
            raise ProjectFormatError("transcript root must be an object")

        time_origin = _require_time(data.get("startTime", 0.0), "startTime")
        time_horizon = _require_time(data.get("endTime", 0.0), "endTime")

        blocks = data.get("blocks", [])
        if not isinstance(blocks, list):
            raise ProjectFormatError("'blocks' must be a list")

        segments: List[Segment] = []
        seen: set = set()
        for idx, block in enumerate(blocks):
            path = f"blocks[{idx}]"
            if not isinstance(block, dict):
                raise ProjectFormatError(f"{path} must be an object")

            seg_id = block.get("id") or new_segment_id()
            if not isinstance(seg_id, str):
                raise ProjectFormatError(f"{path}.id must be a string")
            if seg_id in seen:
                raise ProjectFormatError(f"{path}.id {seg_id!r} is duplicated")
            seen.add(seg_id)

            text = block.get("text", "")
            if not isinstance(text, str):
                raise ProjectFormatError(f"{path}.text must be a string")

            try:
                source = SegmentSource(block.get("source", SegmentSource.CAPTURED.value))
            except ValueError:
                raise ProjectFormatError(
                    f"{path}.source {block.get('source')!r} is not a known source"
                ) from None

            speaker_id = block.get("speaker_id")
            if speaker_id is not None and (
                isinstance(speaker_id, bool) or not isinstance(speaker_id, int)
            ):
                raise ProjectFormatError(f"{path}.speaker_id must be an integer")

            segments.append(
                Segment(
                    id=seg_id,
                    start=_require_time(block.get("from"), f"{path}.from"),
                    end=_require_time(block.get("to"), f"{path}.to"),
                    text=text,
                    source=source,
                    speaker_id=speaker_id,
                )
            )

        return cls(time_origin=time_origin, time_horizon=time_horizon, segments=segments)


def _require_time(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProjectFormatError(f"{path} must be numeric")
    if not math.isfinite(value):
        raise ProjectFormatError(f"{path} must be finite")
    return float(value)
