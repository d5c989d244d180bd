"""
Playback transport port and a headless transport.

The real waveform/playback engine lives outside the engine. HeadlessTransport
keeps the same command surface and signals so sessions can run without an
audio device; the host advances its clock explicitly.
"""

from typing import Optional, Protocol

from PySide6.QtCore import QObject, Signal

from src.engine.audio import Track
from src.utils.json_logger import get_logger


class PlaybackEngine(Protocol):
    """
    Commands accepted by a waveform/playback engine.

    Implementations also expose the Qt signals ``ready(float)``,
    ``time_changed(float)`` and ``play_state_changed(bool)``.
    """

    @property
    def current_time(self) -> float: ...

    @property
    def duration(self) -> float: ...

    def load(self, track: Track) -> None: ...

    def play_pause(self) -> None: ...

    def seek(self, time: float) -> None: ...

    def set_rate(self, rate: float) -> None: ...

    def zoom(self, level: float) -> None: ...

    def skip(self, delta: float) -> None: ...


class HeadlessTransport(QObject):
    """In-memory playback clock with the PlaybackEngine command surface."""

    ready = Signal(float)
    time_changed = Signal(float)
    play_state_changed = Signal(bool)

    DEFAULT_ZOOM = 10.0  # px per second

    def __init__(self, parent=None):
        super().__init__(parent)
        self._logger = get_logger("playback")
        self._track: Optional[Track] = None
        self._time = 0.0
        self._rate = 1.0
        self._zoom = self.DEFAULT_ZOOM
        self._playing = False

    @property
    def track(self) -> Optional[Track]:
        return self._track

    @property
    def current_time(self) -> float:
        return self._time

    @property
    def duration(self) -> float:
        return self._track.duration if self._track else 0.0

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def zoom_level(self) -> float:
        return self._zoom

    def is_playing(self) -> bool:
        return self._playing

    def load(self, track: Track):
        self._set_playing(False)
        self._track = track
        self._time = 0.0
        self._logger.info(
            "Track loaded",
            extra={"data": {"name": track.name, "duration": track.duration}},
        )
        self.ready.emit(track.duration)

    def play_pause(self):
        if self._track is None:
            return
        # Restart from the top when playback already reached the end
        if not self._playing and self._time >= self.duration:
            self.seek(0.0)
        self._set_playing(not self._playing)

    def seek(self, time: float):
        time = min(max(time, 0.0), self.duration)
        if time == self._time:
            return
        self._time = time
        self.time_changed.emit(time)

    def set_rate(self, rate: float):
        if rate <= 0:
            raise ValueError(f"Playback rate must be positive, got {rate}")
        self._rate = rate

    def zoom(self, level: float):
        if level < 0:
            raise ValueError(f"Zoom level must not be negative, got {level}")
        self._zoom = level

    def skip(self, delta: float):
        self.seek(self._time + delta)

    def advance(self, elapsed: float):
        """Move the clock by ``elapsed`` wall seconds while playing."""
        if not self._playing:
            return
        self.seek(self._time + elapsed * self._rate)
        if self._time >= self.duration:
            self._set_playing(False)

    def _set_playing(self, playing: bool):
        if playing == self._playing:
            return
        self._playing = playing
        self.play_state_changed.emit(playing)
