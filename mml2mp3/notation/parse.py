from __future__ import annotations

from mml2mp3.errors import NotationError
from mml2mp3.notation.types import Score, ScoreNote, ScoreTrack, TempoChange
from mml2mp3.util.limits import (
    DEFAULT_LENGTH,
    DEFAULT_OCTAVE,
    DEFAULT_TEMPO,
    DEFAULT_VOLUME,
    MAX_LENGTH,
    MAX_NOTE_NUMBER,
    MAX_OCTAVE,
    MAX_TEMPO,
    MAX_TRACKS,
    MAX_VOLUME,
    MIN_LENGTH,
    MIN_OCTAVE,
    MIN_TEMPO,
    PPQ,
)

PREFIX = "MML@"
END_MARKER = ";"

_NOTE_OFFSETS = {"c": 0, "d": 2, "e": 4, "f": 5, "g": 7, "a": 9, "b": 11}
_ACCIDENTALS = {"+": 1, "#": 1, "-": -1}


def split_tracks(text: str) -> list[str]:
    """Strip the `MML@` envelope and end marker, return the raw track bodies."""
    s = text.strip()
    if not s:
        raise NotationError("notation is empty")
    if s[: len(PREFIX)].upper() == PREFIX:
        s = s[len(PREFIX) :]

    end = s.find(END_MARKER)
    if end < 0:
        raise NotationError(f"unterminated notation: missing end marker '{END_MARKER}'")
    if s[end + 1 :].strip():
        raise NotationError(f"unexpected text after end marker '{END_MARKER}'")

    parts = s[:end].split(",")
    if len(parts) > MAX_TRACKS:
        raise NotationError(f"too many tracks: {len(parts)} (max {MAX_TRACKS})")
    return parts


def length_to_ticks(length: int, dots: int = 0, *, ppq: int = PPQ) -> int:
    base = ppq * 4 / length
    total = base
    add = base
    for _ in range(dots):
        add /= 2
        total += add
    return max(1, round(total))


class _TrackParser:
    def __init__(self, body: str, index: int) -> None:
        self.src = "".join(body.split()).lower()
        self.index = index
        self.pos = 0
        self.tick = 0
        self.octave = DEFAULT_OCTAVE
        self.length = DEFAULT_LENGTH
        self.length_dots = 0
        self.volume = DEFAULT_VOLUME
        self.tie = False
        self.notes: list[ScoreNote] = []
        self.tempos: list[TempoChange] = []

    def _error(self, msg: str) -> NotationError:
        return NotationError(f"track {self.index + 1}, column {self.pos + 1}: {msg}")

    def _peek(self) -> str:
        return self.src[self.pos] if self.pos < len(self.src) else ""

    def _number(self) -> int | None:
        start = self.pos
        while self._peek().isdigit():
            self.pos += 1
        if start == self.pos:
            return None
        return int(self.src[start : self.pos])

    def _required(self, cmd: str, lo: int, hi: int, what: str) -> int:
        n = self._number()
        if n is None:
            raise self._error(f"'{cmd}' needs a number")
        if not (lo <= n <= hi):
            raise self._error(f"invalid {what} {n} (expected {lo}..{hi})")
        return n

    def _dots(self) -> int:
        n = 0
        while self._peek() == ".":
            self.pos += 1
            n += 1
        return n

    def _duration(self) -> int:
        n = self._number()
        if n is None:
            return length_to_ticks(self.length, self.length_dots + self._dots())
        if not (MIN_LENGTH <= n <= MAX_LENGTH):
            raise self._error(f"invalid length {n} (expected {MIN_LENGTH}..{MAX_LENGTH})")
        return length_to_ticks(n, self._dots())

    def _velocity(self) -> int:
        return round(self.volume * 127 / MAX_VOLUME)

    def _emit(self, pitch: int, duration: int) -> None:
        prev = self.notes[-1] if self.notes else None
        if self.tie and prev is not None and prev.pitch == pitch and prev.end == self.tick:
            prev.duration += duration
        elif self.volume > 0:
            self.notes.append(ScoreNote(start=self.tick, duration=duration, pitch=pitch, velocity=self._velocity()))
        self.tie = False
        self.tick += duration

    def parse(self) -> ScoreTrack:
        while self.pos < len(self.src):
            ch = self.src[self.pos]
            self.pos += 1

            if ch in _NOTE_OFFSETS:
                semitone = _NOTE_OFFSETS[ch]
                while self._peek() in _ACCIDENTALS:
                    semitone += _ACCIDENTALS[self._peek()]
                    self.pos += 1
                pitch = 12 * (self.octave + 1) + semitone
                if not (0 <= pitch <= 127):
                    raise self._error(f"note out of MIDI range: {pitch}")
                self._emit(pitch, self._duration())
            elif ch == "r":
                self.tick += self._duration()
                self.tie = False
            elif ch == "n":
                k = self._required("n", 0, MAX_NOTE_NUMBER, "note number")
                self._emit(k + 12, length_to_ticks(self.length, self.length_dots))
            elif ch == "t":
                bpm = self._required("t", MIN_TEMPO, MAX_TEMPO, "tempo")
                self.tempos.append(TempoChange(tick=self.tick, bpm=bpm))
            elif ch == "l":
                self.length = self._required("l", MIN_LENGTH, MAX_LENGTH, "length")
                self.length_dots = self._dots()
            elif ch == "o":
                self.octave = self._required("o", MIN_OCTAVE, MAX_OCTAVE, "octave")
            elif ch == "v":
                self.volume = self._required("v", 0, MAX_VOLUME, "volume")
            elif ch == ">":
                if self.octave >= MAX_OCTAVE:
                    raise self._error(f"octave above {MAX_OCTAVE}")
                self.octave += 1
            elif ch == "<":
                if self.octave <= MIN_OCTAVE:
                    raise self._error(f"octave below {MIN_OCTAVE}")
                self.octave -= 1
            elif ch == "&":
                self.tie = True
            else:
                self.pos -= 1
                raise self._error(f"invalid token {ch!r}")

        return ScoreTrack(index=self.index, notes=self.notes, end_tick=self.tick)


def _merge_tempos(changes: list[TempoChange]) -> list[TempoChange]:
    # Tempo is global; for the same tick the later track wins.
    by_tick: dict[int, TempoChange] = {}
    for tc in changes:
        by_tick[tc.tick] = tc
    merged = [by_tick[t] for t in sorted(by_tick)]
    if not merged or merged[0].tick != 0:
        merged.insert(0, TempoChange(tick=0, bpm=DEFAULT_TEMPO))
    return merged


def parse_notation(text: str) -> Score:
    tracks: list[ScoreTrack] = []
    tempos: list[TempoChange] = []
    for i, body in enumerate(split_tracks(text)):
        p = _TrackParser(body, i)
        tracks.append(p.parse())
        tempos.extend(p.tempos)
    return Score(tracks=tracks, tempos=_merge_tempos(tempos), ppq=PPQ)
