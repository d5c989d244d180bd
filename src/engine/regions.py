"""
Region overlay port and the Region Mirror.

The overlay (waveform region layer) works in waveform-relative seconds. The
mirror keeps one region per materialized segment and translates between the
transcript's absolute times and region times using the transcript's
time origin.
"""

import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Optional, Protocol, Set, Tuple

from PySide6.QtCore import QObject, Signal

from src.engine.errors import MirrorDesync
from src.engine.subtitle import Segment, SegmentPatch, Transcript
from src.utils.json_logger import get_logger


@dataclass(frozen=True)
class Region:
    """Waveform-relative interval keyed by the mirrored segment id."""

    id: str
    start: float
    end: float
    drag: bool = True
    resize: bool = True


class EnsureResult(Enum):
    CREATED = "created"
    UPDATED = "updated"


class RegionOverlay(Protocol):
    """
    Commands accepted by a region overlay.

    Implementations also expose the Qt signals ``region_entered(str)``,
    ``region_exited(str)`` and ``region_update_committed(str, float, float)``.
    """

    def create_region(
        self,
        region_id: Optional[str],
        start: float,
        end: float,
        drag: bool = True,
        resize: bool = True,
    ) -> Region: ...

    def update_region(self, region_id: str, start: float, end: float) -> Region: ...

    def delete_region(self, region_id: str) -> None: ...

    def list_regions(self) -> List[Region]: ...

    def get_region(self, region_id: str) -> Optional[Region]: ...


class HeadlessRegionOverlay(QObject):
    """
    In-memory region overlay.

    Enter/exit events are derived from ``set_playback_time``: a region contains
    the cursor when ``start <= t <= end``. Exits are emitted before enters and
    enters follow region start order, matching how a waveform region layer
    reports a cursor that crosses adjacent regions.
    """

    region_entered = Signal(str)
    region_exited = Signal(str)
    region_update_committed = Signal(str, float, float)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._regions: Dict[str, Region] = {}
        self._inside: Set[str] = set()
        self._playback_time: Optional[float] = None

    def create_region(
        self,
        region_id: Optional[str],
        start: float,
        end: float,
        drag: bool = True,
        resize: bool = True,
    ) -> Region:
        if region_id is None:
            region_id = f"region-{uuid.uuid4().hex[:12]}"
        if region_id in self._regions:
            raise ValueError(f"Region {region_id!r} already exists")
        region = Region(region_id, start, end, drag, resize)
        self._regions[region_id] = region
        return region

    def update_region(self, region_id: str, start: float, end: float) -> Region:
        region = replace(self._regions[region_id], start=start, end=end)
        self._regions[region_id] = region
        return region

    def delete_region(self, region_id: str) -> None:
        self._regions.pop(region_id, None)
        self._inside.discard(region_id)

    def list_regions(self) -> List[Region]:
        return list(self._regions.values())

    def get_region(self, region_id: str) -> Optional[Region]:
        return self._regions.get(region_id)

    @property
    def playback_time(self) -> Optional[float]:
        return self._playback_time

    def set_playback_time(self, time: float):
        """Move the cursor and emit enter/exit events for crossed regions."""
        self._playback_time = time
        containing = {
            r.id for r in self._regions.values() if r.start <= time <= r.end
        }

        exited = [rid for rid in self._inside if rid not in containing]
        entered = sorted(
            (rid for rid in containing if rid not in self._inside),
            key=lambda rid: (self._regions[rid].start, rid),
        )
        self._inside = containing

        for rid in sorted(exited):
            self.region_exited.emit(rid)
        for rid in entered:
            self.region_entered.emit(rid)

    def commit_drag(self, region_id: str, start: float, end: float):
        """Simulate the end of a pointer drag/resize on ``region_id``."""
        region = self.update_region(region_id, start, end)
        self.region_update_committed.emit(region.id, region.start, region.end)


class RegionMirror:
    """
    Segment <-> region translation over a RegionOverlay.

    The mirror remembers the absolute bounds behind every relative value it
    pushed or received, so translating an unchanged region bound back returns
    the segment's own value bit for bit.
    """

    def __init__(self, overlay: RegionOverlay):
        self._overlay = overlay
        self._logger = get_logger("regions")
        # region id -> (rel_start, rel_end, abs_start, abs_end)
        self._known: Dict[str, Tuple[float, float, float, float]] = {}

    @property
    def overlay(self) -> RegionOverlay:
        return self._overlay

    def has_region(self, segment_id: str) -> bool:
        return self._overlay.get_region(segment_id) is not None

    def region_ids(self) -> Set[str]:
        return {r.id for r in self._overlay.list_regions()}

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------
    def _remember(self, region: Region, abs_start: float, abs_end: float):
        self._known[region.id] = (region.start, region.end, abs_start, abs_end)

    def _to_absolute(
        self, region_id: str, rel_start: float, rel_end: float, time_origin: float
    ) -> Tuple[float, float]:
        known = self._known.get(region_id)
        abs_start = rel_start + time_origin
        abs_end = rel_end + time_origin
        if known is not None:
            if known[0] == rel_start:
                abs_start = known[2]
            if known[1] == rel_end:
                abs_end = known[3]
        return abs_start, abs_end

    # ------------------------------------------------------------------
    # Segment -> region
    # ------------------------------------------------------------------
    def materialize_all(self, transcript: Transcript) -> int:
        """Create a region for every segment that lacks one. Returns the count."""
        created = 0
        for seg in transcript.segments:
            if self.has_region(seg.id):
                continue
            region = self._overlay.create_region(
                seg.id,
                seg.start - transcript.time_origin,
                seg.end - transcript.time_origin,
            )
            self._remember(region, seg.start, seg.end)
            created += 1

        self._logger.info(
            "Regions materialized",
            extra={"data": {"created": created, "segments": len(transcript.segments)}},
        )
        return created

    def ensure_region(
        self, segment_id: str, start: float, end: float, time_origin: float
    ) -> EnsureResult:
        """Create or update the region for ``segment_id`` at absolute [start, end]."""
        rel_start = start - time_origin
        rel_end = end - time_origin

        if self.has_region(segment_id):
            region = self._overlay.update_region(segment_id, rel_start, rel_end)
            result = EnsureResult.UPDATED
        else:
            region = self._overlay.create_region(segment_id, rel_start, rel_end)
            result = EnsureResult.CREATED

        self._remember(region, start, end)
        self._logger.debug(
            "Region ensured",
            extra={
                "data": {
                    "segment_id": segment_id,
                    "result": result.value,
                    "start": rel_start,
                    "end": rel_end,
                }
            },
        )
        return result

    def ensure_start(
        self, segment: Segment, value: float, time_origin: float
    ) -> EnsureResult:
        """Reflect a start edit. A missing region pairs ``value`` with the
        segment's existing end."""
        region = self._overlay.get_region(segment.id)
        if region is None:
            return self.ensure_region(segment.id, value, segment.end, time_origin)
        _, abs_end = self._to_absolute(region.id, region.start, region.end, time_origin)
        return self.ensure_region(segment.id, value, abs_end, time_origin)

    def ensure_end(self, segment: Segment, value: float, time_origin: float) -> EnsureResult:
        """Reflect an end edit. A missing region pairs ``value`` with the
        segment's existing start."""
        region = self._overlay.get_region(segment.id)
        if region is None:
            return self.ensure_region(segment.id, segment.start, value, time_origin)
        abs_start, _ = self._to_absolute(region.id, region.start, region.end, time_origin)
        return self.ensure_region(segment.id, abs_start, value, time_origin)

    def create_region(self, start: float, end: float) -> Region:
        """Create a draggable region with an overlay-assigned id (relative times)."""
        region = self._overlay.create_region(None, start, end, drag=True, resize=True)
        self._logger.debug(
            "Region created",
            extra={"data": {"region_id": region.id, "start": start, "end": end}},
        )
        return region

    def remove_region(self, segment_id: str) -> bool:
        self._known.pop(segment_id, None)
        if not self.has_region(segment_id):
            return False
        self._overlay.delete_region(segment_id)
        return True

    def clear(self):
        for region in self._overlay.list_regions():
            self._overlay.delete_region(region.id)
        self._known.clear()

    # ------------------------------------------------------------------
    # Region -> segment
    # ------------------------------------------------------------------
    def on_region_updated(
        self, region_id: str, new_start: float, new_end: float, time_origin: float
    ) -> SegmentPatch:
        """Translate a committed region change into a Segment Store patch."""
        abs_start, abs_end = self._to_absolute(region_id, new_start, new_end, time_origin)
        self._known[region_id] = (new_start, new_end, abs_start, abs_end)
        return SegmentPatch(id=region_id, start=abs_start, end=abs_end)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def verify(self, transcript: Transcript):
        """Raise MirrorDesync if any region lacks a segment or disagrees with it."""
        orphans: List[str] = []
        mismatched: List[str] = []
        for region in self._overlay.list_regions():
            seg = transcript.get_segment(region.id)
            if seg is None:
                orphans.append(region.id)
                continue
            abs_start, abs_end = self._to_absolute(
                region.id, region.start, region.end, transcript.time_origin
            )
            if abs_start != seg.start or abs_end != seg.end:
                mismatched.append(region.id)

        if orphans or mismatched:
            raise MirrorDesync(orphans, mismatched)
