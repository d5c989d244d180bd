"""
Transcript project files: JSON export and import.
"""

import json
from pathlib import Path
from typing import Union

from src.engine.errors import ProjectFormatError
from src.engine.subtitle import Transcript
from src.utils.json_logger import get_logger

_logger = get_logger("project")

PathLike = Union[str, Path]


def export_transcript(transcript: Transcript, file_path: PathLike) -> Path:
    """Write ``transcript`` as {startTime, endTime, blocks[]} JSON."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(transcript.to_dict(), f, ensure_ascii=False, indent=2)

    _logger.info(
        "Transcript exported",
        extra={"data": {"path": str(path), "blocks": len(transcript.segments)}},
    )
    return path


def import_transcript(file_path: PathLike) -> Transcript:
    """Read a transcript JSON file. Raises ProjectFormatError if malformed."""
    path = Path(file_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ProjectFormatError(f"{path.name}: invalid JSON ({e.msg})") from e

    transcript = Transcript.from_dict(data)
    _logger.info(
        "Transcript imported",
        extra={"data": {"path": str(path), "blocks": len(transcript.segments)}},
    )
    return transcript
