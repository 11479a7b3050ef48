"""Three-track MML notation support.

- parse_notation(text) -> Score (absolute-tick notes + global tempo map)
- MmlTranslator().translate(text, instrument=...) -> standard MIDI bytes
- validate_notation / describe_notation for pre-flight checks
"""

from .parse import parse_notation, split_tracks
from .translator import MmlTranslator, NotationInfo, describe_notation, read_notation, validate_notation
from .types import Score, ScoreNote, ScoreTrack, TempoChange

__all__ = [
    "MmlTranslator",
    "NotationInfo",
    "Score",
    "ScoreNote",
    "ScoreTrack",
    "TempoChange",
    "describe_notation",
    "parse_notation",
    "read_notation",
    "split_tracks",
    "validate_notation",
]
