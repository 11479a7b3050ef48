from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from mml2mp3.errors import InputError, NotationError, RangeError
from mml2mp3.io.midi import midifile_to_bytes, score_to_midifile
from mml2mp3.notation.parse import parse_notation
from mml2mp3.util.limits import MAX_PROGRAM, program_in_range

logger = logging.getLogger(__name__)

_COMMAND_CHARS = set("abcdefgrltvnoABCDEFGRLTVNO0123456789")


class MmlTranslator:
    """Notation text -> standard MIDI bytes."""

    def translate(self, text: str, *, instrument: int = 0) -> bytes:
        if not program_in_range(instrument):
            raise RangeError(f"instrument must be between 0-{MAX_PROGRAM} (got {instrument})")
        score = parse_notation(text)
        if not any(t.notes for t in score.tracks):
            raise NotationError("notation contains no audible notes")
        mf = score_to_midifile(score, program=instrument)
        data = midifile_to_bytes(mf)
        logger.debug(
            "translated %d track(s), %.2fs, %d MIDI bytes",
            sum(1 for t in score.tracks if t.notes),
            score.duration_seconds,
            len(data),
        )
        return data


def validate_notation(text: str) -> None:
    """Cheap content check followed by a full parse. Raises NotationError."""
    if not text.strip():
        raise NotationError("notation is empty")
    if not any(c in _COMMAND_CHARS for c in text):
        raise NotationError("invalid notation: no recognizable commands found")
    parse_notation(text)


@dataclass(frozen=True)
class NotationInfo:
    path: Path
    size_bytes: int
    lines: int
    chars: int
    tracks: int
    duration_seconds: float

    @property
    def complexity(self) -> str:
        if self.chars > 1000:
            return "High"
        if self.chars > 500:
            return "Medium"
        return "Low"

    def summary(self) -> str:
        return (
            "Notation file info:\n"
            f"- file size: {self.size_bytes} bytes\n"
            f"- lines: {self.lines}\n"
            f"- characters: {self.chars}\n"
            f"- tracks: {self.tracks}\n"
            f"- estimated length: {self.duration_seconds:.2f}s\n"
            f"- estimated complexity: {self.complexity}"
        )


def read_notation(path: str | Path) -> str:
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise InputError(f"notation file not found: {p}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise InputError(f"failed to read notation file {p}: {e}") from e


def describe_notation(path: str | Path) -> NotationInfo:
    p = Path(path)
    text = read_notation(p)
    score = parse_notation(text)
    return NotationInfo(
        path=p,
        size_bytes=p.stat().st_size,
        lines=len(text.splitlines()),
        chars=len(text),
        tracks=sum(1 for t in score.tracks if t.notes),
        duration_seconds=score.duration_seconds,
    )
