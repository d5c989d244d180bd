"""
Alignment session: wires playback, region overlay, tracker and reconciler.
"""

from typing import Any, Mapping, Optional, Tuple

from PySide6.QtCore import QObject

from src.engine.audio import AudioDecoder, AudioSource, Track
from src.engine.playback import HeadlessTransport, PlaybackEngine
from src.engine.reconciler import EditReconciler
from src.engine.regions import HeadlessRegionOverlay, RegionMirror
from src.engine.subtitle import Segment, Transcript
from src.engine.tracker import ActiveSegmentTracker
from src.utils.json_logger import get_logger
from src.utils.settings import EngineSettings, load_settings


class AlignmentSession(QObject):
    """
    One transcript being aligned against one audio track.

    Signal flow:
        playback.time_changed -> overlay.set_playback_time
        overlay.region_entered/exited -> tracker
        overlay.region_update_committed -> reconciler.commit_region
        playback.ready -> reconciler.on_audio_ready
    """

    def __init__(
        self,
        playback: Optional[PlaybackEngine] = None,
        overlay: Optional[HeadlessRegionOverlay] = None,
        settings: Optional[EngineSettings] = None,
        decoder: Optional[AudioDecoder] = None,
        parent=None,
    ):
        super().__init__(parent)
        self._logger = get_logger("session")
        self.playback = playback if playback is not None else HeadlessTransport(self)
        self.overlay = overlay if overlay is not None else HeadlessRegionOverlay(self)
        self.tracker = ActiveSegmentTracker(self)
        self.mirror = RegionMirror(self.overlay)
        if settings is None:
            settings = load_settings()
        self.reconciler = EditReconciler(
            self.mirror,
            tracker=self.tracker,
            settings=settings,
            decoder=decoder,
            parent=self,
        )
        self._setup_connections()

    def _setup_connections(self):
        self.playback.time_changed.connect(self.overlay.set_playback_time)
        self.playback.ready.connect(self.reconciler.on_audio_ready)

        self.overlay.region_entered.connect(self.tracker.on_region_enter)
        self.overlay.region_exited.connect(self.tracker.on_region_exit)
        self.overlay.region_update_committed.connect(self.reconciler.commit_region)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def transcript(self) -> Transcript:
        return self.reconciler.transcript

    @property
    def track(self) -> Optional[Track]:
        return self.reconciler.track

    @property
    def active_id(self) -> Optional[str]:
        return self.tracker.active_id

    def active_segment(self) -> Optional[Segment]:
        return self.reconciler.active_segment()

    def active_bounds(self) -> Optional[Tuple[float, float]]:
        """from/to values shown in the segment side panel."""
        seg = self.active_segment()
        if seg is None:
            return None
        return seg.start, seg.end

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------
    async def open_audio(self, source: AudioSource, name: Optional[str] = None) -> Optional[Track]:
        """Decode, reset the transcript and hand the track to playback."""
        track = await self.reconciler.load_audio(source, name)
        if track is not None:
            self.playback.load(track)
        return track

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------
    def add_segment(self) -> Optional[str]:
        return self.reconciler.add_segment(self.playback.current_time)

    def edit_text(self, segment_id: str, text: str) -> bool:
        return self.reconciler.edit_text(segment_id, text)

    def edit_start(self, value) -> bool:
        return self.reconciler.edit_start(value)

    def edit_end(self, value) -> bool:
        return self.reconciler.edit_end(value)

    def delete_segment(self, segment_id: str) -> bool:
        return self.reconciler.delete_segment(segment_id)

    def load_transcript(self, transcript: Transcript) -> bool:
        return self.reconciler.load_transcript(transcript)

    # ------------------------------------------------------------------
    # Transport controls
    # ------------------------------------------------------------------
    def play_pause(self):
        self.playback.play_pause()

    def seek(self, time: float):
        self.playback.seek(time)

    def set_rate(self, rate: float):
        self.playback.set_rate(rate)

    def zoom(self, level: float):
        self.playback.zoom(level)

    def skip(self, delta: float):
        self.playback.skip(delta)

    def apply_controls(self, values: Mapping[str, Any]):
        """Apply a control-bar change set (playbackSpeed / time / zoom)."""
        if values.get("playbackSpeed"):
            self.set_rate(float(values["playbackSpeed"]))
        if "time" in values and values["time"] is not None:
            self.seek(float(values["time"]))
        if values.get("zoom"):
            self.zoom(float(values["zoom"]))
        self._logger.debug("Controls applied", extra={"data": dict(values)})
