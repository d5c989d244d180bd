"""
Audio file decoding for TrackSync.
Decoding only needs the duration; it runs off the event loop thread because
large WAV files take a while to open. Uploads arrive as bytes and are spooled
to temporary files that the decoder deletes again on release.
"""

import asyncio
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Set, Union

import numpy as np
from scipy.io import wavfile

from src.engine.errors import DecodeFailure
from src.utils.json_logger import get_logger

AudioSource = Union[str, os.PathLike, bytes]


@dataclass(frozen=True)
class Track:
    """A decoded audio file ready to hand to the playback engine."""

    name: str
    audio: str  # path of the playable file
    duration: float
    offset: float = 0.0


class AudioDecoder:
    """
    Reads WAV files (path or raw bytes) and reports their duration.
    Raw bytes are spooled to a temporary file so the playback engine can open
    them by path.
    """

    SUFFIX = ".wav"

    def __init__(self, spool_dir: Optional[str] = None):
        self._spool_dir = spool_dir
        self._spooled: Set[str] = set()
        self._logger = get_logger("audio")

    def decode(self, source: AudioSource, name: Optional[str] = None) -> Track:
        """Decode ``source`` synchronously. Raises DecodeFailure."""
        spooled = False
        if isinstance(source, (bytes, bytearray)):
            if name is None:
                name = "upload" + self.SUFFIX
            path = self._spool(bytes(source))
            spooled = True
        else:
            path = str(source)
            if name is None:
                name = Path(path).name

        try:
            duration = self._read_duration(path, name)
        except DecodeFailure:
            if spooled:
                self._spooled.discard(path)
                os.unlink(path)
            raise

        self._logger.info(
            "Audio decoded",
            extra={"data": {"name": name, "duration": duration, "path": path}},
        )
        return Track(name=name, audio=path, duration=duration)

    async def decode_async(self, source: AudioSource, name: Optional[str] = None) -> Track:
        future = asyncio.ensure_future(asyncio.to_thread(self.decode, source, name))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            # The worker thread cannot be stopped; drop its spool once it ends
            future.add_done_callback(self._release_abandoned)
            raise

    def release(self, track: Track):
        """Delete the temporary file behind ``track`` if this decoder spooled it."""
        if track.audio not in self._spooled:
            return
        self._spooled.discard(track.audio)
        try:
            os.unlink(track.audio)
        except FileNotFoundError:
            return
        self._logger.debug("Spool released", extra={"data": {"path": track.audio}})

    def _release_abandoned(self, future: asyncio.Future):
        if future.cancelled() or future.exception() is not None:
            return
        self.release(future.result())

    def _spool(self, data: bytes) -> str:
        fd, path = tempfile.mkstemp(suffix=self.SUFFIX, dir=self._spool_dir)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        self._spooled.add(path)
        return path

    def _read_duration(self, path: str, name: str) -> float:
        try:
            sample_rate, data = self._read_wav(path)
        except FileNotFoundError:
            raise DecodeFailure(name, "file not found") from None
        except (ValueError, OSError, EOFError) as e:
            raise DecodeFailure(name, str(e) or type(e).__name__) from e

        if sample_rate <= 0:
            raise DecodeFailure(name, f"invalid sample rate {sample_rate}")

        frames = np.shape(data)[0] if np.ndim(data) > 0 else 0
        # Release the memory map before the caller may delete the file
        del data
        return frames / float(sample_rate)

    def _read_wav(self, path: str):
        try:
            return wavfile.read(path, mmap=True)
        except ValueError as e:
            # scipy cannot memory-map 24-bit PCM; read it into memory instead
            if "mmap" not in str(e):
                raise
            self._logger.debug(
                "Memory map refused, reading into memory",
                extra={"data": {"path": path, "reason": str(e)}},
            )
            return wavfile.read(path)
