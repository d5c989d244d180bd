"""
Active-segment tracking from region enter/exit events.
"""

from typing import Optional

from PySide6.QtCore import QObject, Signal

from src.utils.json_logger import get_logger


class ActiveSegmentTracker(QObject):
    """
    Two-state machine: Idle (no active id) or Active(id).

    Overlapping regions resolve as last-enter-wins. An exit only clears the
    state when it belongs to the active id; exits of regions that were already
    superseded are ignored.
    """

    active_changed = Signal(object)  # str | None

    def __init__(self, parent=None):
        super().__init__(parent)
        self._active_id: Optional[str] = None
        self._logger = get_logger("tracker")

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def is_active(self) -> bool:
        return self._active_id is not None

    def is_editable(self, segment_id: str) -> bool:
        """Only the active segment's text field accepts input."""
        return segment_id is not None and segment_id == self._active_id

    def on_region_enter(self, segment_id: str):
        if segment_id == self._active_id:
            return
        previous = self._active_id
        self._set_active(segment_id)
        if previous is not None:
            self._logger.debug(
                "Active segment superseded",
                extra={"data": {"previous": previous, "active": segment_id}},
            )

    def on_region_exit(self, segment_id: str):
        if segment_id != self._active_id:
            return
        self._set_active(None)

    def forget(self, segment_id: str):
        """Drop ``segment_id`` if it is active (e.g. the segment was deleted)."""
        if segment_id == self._active_id:
            self._set_active(None)

    def reset(self):
        self._set_active(None)

    def _set_active(self, segment_id: Optional[str]):
        if segment_id == self._active_id:
            return
        self._active_id = segment_id
        self.active_changed.emit(segment_id)
