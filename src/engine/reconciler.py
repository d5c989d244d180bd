"""
Edit Reconciler: the single entry point for every transcript mutation.

All edits run as commands that update the transcript snapshot and the region
mirror together. Readers only ever see the published, sorted snapshot.
"""

import asyncio
import math
import os
from dataclasses import dataclass, field
from typing import Optional, Union

from PySide6.QtCore import QObject, Signal

from src.engine.audio import AudioDecoder, AudioSource, Track
from src.engine.commands import (
    AddSegmentCommand,
    AudioLoadedCommand,
    Command,
    CommitRegionCommand,
    DeleteSegmentCommand,
    EditEndCommand,
    EditStartCommand,
    EditTextCommand,
    ReplaceTranscriptCommand,
)
from src.engine.regions import RegionMirror
from src.engine.subtitle import Segment, Transcript
from src.engine.tracker import ActiveSegmentTracker
from src.utils.json_logger import RequestContext, configure_logging, get_logger
from src.utils.settings import EngineSettings

TimeInput = Union[float, int, str]


def parse_time_input(raw: TimeInput) -> Optional[float]:
    """Parse a from/to field value. Blank, non-numeric or non-finite -> None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value


@dataclass
class AppState:
    transcript: Transcript = field(default_factory=Transcript.empty)
    track: Optional[Track] = None
    audio_ready: bool = False


class EditReconciler(QObject):
    """
    Applies user edits atomically to the Segment Store and the Region Mirror.
    """

    transcript_changed = Signal(object)  # Transcript
    track_changed = Signal(object)  # Track

    def __init__(
        self,
        mirror: RegionMirror,
        tracker: Optional[ActiveSegmentTracker] = None,
        settings: Optional[EngineSettings] = None,
        decoder: Optional[AudioDecoder] = None,
        parent=None,
    ):
        super().__init__(parent)
        self._mirror = mirror
        self._tracker = tracker if tracker is not None else ActiveSegmentTracker(self)
        self._settings = settings if settings is not None else EngineSettings()
        self._decoder = decoder if decoder is not None else AudioDecoder()
        self._state = AppState()
        self._decode_task: Optional[asyncio.Future] = None
        configure_logging(
            log_level=os.getenv("LOG_LEVEL") or self._settings.log_level,
            log_file=self._settings.log_file or None,
        )
        self._logger = get_logger("reconciler")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> AppState:
        return self._state

    @property
    def transcript(self) -> Transcript:
        return self._state.transcript

    @property
    def track(self) -> Optional[Track]:
        return self._state.track

    @property
    def mirror(self) -> RegionMirror:
        return self._mirror

    @property
    def tracker(self) -> ActiveSegmentTracker:
        return self._tracker

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def logger(self):
        return self._logger

    def active_segment(self) -> Optional[Segment]:
        return self.transcript.get_segment(self._tracker.active_id)

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------
    def apply(self, command: Command) -> bool:
        """Execute ``command`` and publish its snapshot. Returns True on change."""
        new = command.execute()
        if new is None or new is self._state.transcript:
            return False

        self._state.transcript = new
        self._logger.debug(
            "Edit applied",
            extra={
                "data": {
                    "command": type(command).__name__,
                    "segments": len(new.segments),
                }
            },
        )
        self.transcript_changed.emit(new)
        return True

    def edit_text(self, segment_id: str, text: str) -> bool:
        return self.apply(EditTextCommand(self, segment_id, text))

    def edit_start(self, value: TimeInput, segment_id: Optional[str] = None) -> bool:
        parsed = parse_time_input(value)
        if parsed is None:
            return False
        return self.apply(EditStartCommand(self, parsed, segment_id))

    def edit_end(self, value: TimeInput, segment_id: Optional[str] = None) -> bool:
        parsed = parse_time_input(value)
        if parsed is None:
            return False
        return self.apply(EditEndCommand(self, parsed, segment_id))

    def commit_region(self, region_id: str, start: float, end: float) -> bool:
        return self.apply(CommitRegionCommand(self, region_id, start, end))

    def add_segment(self, playback_time: float) -> Optional[str]:
        """Add an empty user segment at ``playback_time`` (waveform seconds)."""
        command = AddSegmentCommand(self, playback_time)
        if not self.apply(command):
            return None
        self._logger.info(
            "Segment added",
            extra={"data": {"segment_id": command.segment_id, "time": playback_time}},
        )
        return command.segment_id

    def delete_segment(self, segment_id: str) -> bool:
        return self.apply(DeleteSegmentCommand(self, segment_id))

    def load_transcript(self, transcript: Transcript) -> bool:
        return self.apply(ReplaceTranscriptCommand(self, transcript))

    # ------------------------------------------------------------------
    # Audio
    # ------------------------------------------------------------------
    async def load_audio(
        self, source: AudioSource, name: Optional[str] = None
    ) -> Optional[Track]:
        """
        Decode ``source`` and reset the transcript for it.

        A newer call supersedes any older call that has not applied its track
        yet; the superseded call returns None without touching state and its
        spooled file is released. The track being replaced is released too.
        Raises DecodeFailure, leaving the state as it was.
        """
        previous = self._decode_task
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.ensure_future(self._decoder.decode_async(source, name))
        self._decode_task = task

        if name is not None:
            label = name
        elif isinstance(source, (bytes, bytearray)):
            label = f"<{len(source)} bytes>"
        else:
            label = str(source)

        with RequestContext(self._logger) as ctx:
            ctx.info("Decoding audio", data={"name": label})
            try:
                track = await task
            except asyncio.CancelledError:
                if self._decode_task is not task:
                    ctx.info("Audio decode superseded", data={"name": label})
                    return None
                raise
            finally:
                current = self._decode_task is task
                if current:
                    self._decode_task = None

            # The decode may finish just before a newer load starts
            if not current:
                self._decoder.release(track)
                ctx.info("Audio decode superseded", data={"name": label})
                return None

            previous_track = self._state.track
            self.apply(AudioLoadedCommand(self, track))
            self._state.track = track
            self._state.audio_ready = False
            if previous_track is not None and previous_track != track:
                self._decoder.release(previous_track)
            ctx.info(
                "Audio loaded",
                data={
                    "name": track.name,
                    "duration": track.duration,
                    "segments": len(self.transcript.segments),
                },
            )

        self.track_changed.emit(track)
        return track

    def on_audio_ready(self, duration: Optional[float] = None) -> int:
        """Playback engine reported ready: materialize regions for all segments."""
        self._state.audio_ready = True
        if duration is not None:
            # The engine's duration wins over the decoder's estimate
            extended = self.transcript.with_horizon(duration)
            if extended is not self.transcript:
                self._state.transcript = extended
                self.transcript_changed.emit(extended)
        return self._mirror.materialize_all(self.transcript)

    def verify(self):
        """Raise MirrorDesync if the overlay disagrees with the transcript."""
        self._mirror.verify(self.transcript)
