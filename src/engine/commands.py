"""
Edit commands for the Edit Reconciler.

Each command performs one user-facing mutation against both the transcript
snapshot and the region mirror. ``execute`` returns the new transcript (or
None when nothing changed); the reconciler publishes it.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, Tuple

from src.engine.audio import Track
from src.engine.errors import DegenerateInterval, UnknownSegmentReference
from src.engine.subtitle import Segment, SegmentPatch, SegmentSource, Transcript
from src.utils.settings import EngineSettings

if TYPE_CHECKING:
    from src.engine.reconciler import EditReconciler


def resolve_interval(
    segment_id: str,
    start: float,
    end: float,
    edited: str,
    settings: EngineSettings,
    logger: logging.Logger,
) -> Optional[Tuple[float, float]]:
    """
    Apply the configured interval policy to [start, end].

    ``edited`` is "start", "end" or "both" and decides which bound moves when
    clamping. Returns None when the edit must be dropped.
    """
    policy = settings.interval_policy
    if policy == "accept":
        return start, end

    degenerate = start < 0 or end < 0 or end <= start
    if not degenerate:
        return start, end

    error = DegenerateInterval(segment_id, start, end)
    if policy == "reject":
        logger.warning(
            "Edit rejected",
            extra={"data": {"error": str(error), "policy": policy}},
        )
        return None

    # clamp
    min_len = settings.min_segment_length
    start = max(start, 0.0)
    end = max(end, 0.0)
    if end - start < min_len or end <= start:
        if edited == "start":
            start = max(end - min_len, 0.0)
            if end - start < min_len or end <= start:
                end = start + min_len
        else:
            end = start + min_len
    logger.info(
        "Edit clamped",
        extra={"data": {"error": str(error), "start": start, "end": end}},
    )
    return start, end


class Command(ABC):
    """Abstract base class for reconciler commands."""

    def __init__(self, reconciler: "EditReconciler"):
        self.reconciler = reconciler

    @property
    def transcript(self) -> Transcript:
        return self.reconciler.transcript

    @property
    def logger(self) -> logging.Logger:
        return self.reconciler.logger

    @abstractmethod
    def execute(self) -> Optional[Transcript]:
        """Run the command. Returns the new snapshot, or None for a no-op."""

    def _lookup(self, segment_id: Optional[str]) -> Optional[Segment]:
        seg = self.transcript.get_segment(segment_id)
        if seg is None:
            error = UnknownSegmentReference(segment_id)
            self.logger.warning(
                "Edit ignored",
                extra={"data": {"command": type(self).__name__, "error": str(error)}},
            )
        return seg


class EditTextCommand(Command):
    def __init__(self, reconciler: "EditReconciler", segment_id: str, text: str):
        super().__init__(reconciler)
        self.segment_id = segment_id
        self.text = text

    def execute(self) -> Optional[Transcript]:
        if self._lookup(self.segment_id) is None:
            return None
        return self.transcript.upsert(SegmentPatch(id=self.segment_id, text=self.text))


class _EditBoundCommand(Command):
    """Shared logic for the from/to time fields."""

    EDITED = ""

    def __init__(
        self,
        reconciler: "EditReconciler",
        value: float,
        segment_id: Optional[str] = None,
    ):
        super().__init__(reconciler)
        self.value = value
        # Time fields belong to the active segment unless told otherwise
        self.segment_id = segment_id if segment_id is not None else reconciler.tracker.active_id

    def execute(self) -> Optional[Transcript]:
        if self.segment_id is None:
            self.logger.debug(
                "Time edit without active segment",
                extra={"data": {"command": type(self).__name__}},
            )
            return None
        seg = self._lookup(self.segment_id)
        if seg is None:
            return None

        if self.EDITED == "start":
            start, end = self.value, seg.end
        else:
            start, end = seg.start, self.value

        resolved = resolve_interval(
            seg.id, start, end, self.EDITED, self.reconciler.settings, self.logger
        )
        if resolved is None:
            return None
        start, end = resolved

        mirror = self.reconciler.mirror
        origin = self.transcript.time_origin
        if self.EDITED == "start" and end == seg.end:
            mirror.ensure_start(seg, start, origin)
        elif self.EDITED == "end" and start == seg.start:
            mirror.ensure_end(seg, end, origin)
        else:
            # Clamping moved the other bound too
            mirror.ensure_region(seg.id, start, end, origin)

        return self.transcript.upsert(SegmentPatch(id=seg.id, start=start, end=end))


class EditStartCommand(_EditBoundCommand):
    EDITED = "start"


class EditEndCommand(_EditBoundCommand):
    EDITED = "end"


class CommitRegionCommand(Command):
    """A region drag/resize finished on the overlay."""

    def __init__(self, reconciler: "EditReconciler", region_id: str, start: float, end: float):
        super().__init__(reconciler)
        self.region_id = region_id
        self.start = start
        self.end = end

    def execute(self) -> Optional[Transcript]:
        seg = self._lookup(self.region_id)
        if seg is None:
            return None

        settings = self.reconciler.settings
        mirror = self.reconciler.mirror
        origin = self.transcript.time_origin

        patch = mirror.on_region_updated(self.region_id, self.start, self.end, origin)
        start, end = patch.start, patch.end

        if settings.snap_step > 0:
            step = settings.snap_step
            start = round(start / step) * step
            end = round(end / step) * step

        resolved = resolve_interval(seg.id, start, end, "both", settings, self.logger)
        if resolved is None:
            # Put the region back where the segment still is
            mirror.ensure_region(seg.id, seg.start, seg.end, origin)
            return None

        if resolved != (patch.start, patch.end):
            mirror.ensure_region(seg.id, resolved[0], resolved[1], origin)

        return self.transcript.upsert(
            SegmentPatch(id=seg.id, start=resolved[0], end=resolved[1])
        )


class AddSegmentCommand(Command):
    """Create a region at the playback time, then a matching empty segment."""

    def __init__(self, reconciler: "EditReconciler", playback_time: float):
        super().__init__(reconciler)
        self.playback_time = playback_time
        self.segment_id: Optional[str] = None

    def execute(self) -> Optional[Transcript]:
        length = self.reconciler.settings.new_segment_length
        mirror = self.reconciler.mirror
        origin = self.transcript.time_origin

        region = mirror.create_region(self.playback_time, self.playback_time + length)
        patch = mirror.on_region_updated(region.id, region.start, region.end, origin)

        self.segment_id = region.id
        return self.transcript.insert(
            Segment(
                id=region.id,
                start=patch.start,
                end=patch.end,
                text="",
                source=SegmentSource.USER,
            )
        )


class DeleteSegmentCommand(Command):
    def __init__(self, reconciler: "EditReconciler", segment_id: str):
        super().__init__(reconciler)
        self.segment_id = segment_id

    def execute(self) -> Optional[Transcript]:
        if self._lookup(self.segment_id) is None:
            return None
        self.reconciler.mirror.remove_region(self.segment_id)
        self.reconciler.tracker.forget(self.segment_id)
        return self.transcript.remove(self.segment_id)


class AudioLoadedCommand(Command):
    """Reset or extend the transcript for a freshly decoded track."""

    def __init__(self, reconciler: "EditReconciler", track: Track):
        super().__init__(reconciler)
        self.track = track

    def execute(self) -> Optional[Transcript]:
        prior = self.transcript
        self.reconciler.tracker.reset()

        if prior.has_segments():
            return prior.with_horizon(self.track.duration)

        # Nothing to keep: regions from an earlier track go with it
        self.reconciler.mirror.clear()
        return Transcript.empty(
            time_horizon=max(prior.time_horizon, self.track.duration)
        )


class ReplaceTranscriptCommand(Command):
    """Swap in an imported transcript and rebuild its regions."""

    def __init__(self, reconciler: "EditReconciler", transcript: Transcript):
        super().__init__(reconciler)
        self.replacement = transcript

    def execute(self) -> Optional[Transcript]:
        self.reconciler.tracker.reset()
        self.reconciler.mirror.clear()
        if self.reconciler.state.audio_ready:
            self.reconciler.mirror.materialize_all(self.replacement)
        return self.replacement
