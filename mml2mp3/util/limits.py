from __future__ import annotations

"""Hard limits of the notation dialect and the MIDI program space."""

MIN_PROGRAM = 0
MAX_PROGRAM = 127
PERCUSSION_CHANNEL = 9

MAX_TRACKS = 3

MIN_TEMPO = 32
MAX_TEMPO = 255
DEFAULT_TEMPO = 120

MIN_LENGTH = 1
MAX_LENGTH = 64
DEFAULT_LENGTH = 4

MIN_OCTAVE = 0
MAX_OCTAVE = 8
DEFAULT_OCTAVE = 4

MAX_VOLUME = 15
DEFAULT_VOLUME = 8

MAX_NOTE_NUMBER = 96

PPQ = 480


def program_in_range(n: object) -> bool:
    if isinstance(n, bool) or not isinstance(n, int):
        return False
    return MIN_PROGRAM <= n <= MAX_PROGRAM
