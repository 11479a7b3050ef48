from __future__ import annotations

from dataclasses import dataclass, field

from mml2mp3.util.limits import DEFAULT_TEMPO, PPQ


@dataclass
class ScoreNote:
    """A note in absolute ticks (PPQ ticks per quarter note)."""

    start: int
    duration: int
    pitch: int
    velocity: int

    @property
    def end(self) -> int:
        return self.start + self.duration


@dataclass(frozen=True)
class TempoChange:
    tick: int
    bpm: int


@dataclass
class ScoreTrack:
    index: int
    notes: list[ScoreNote] = field(default_factory=list)
    end_tick: int = 0


@dataclass
class Score:
    tracks: list[ScoreTrack]
    tempos: list[TempoChange]
    ppq: int = PPQ

    @property
    def end_tick(self) -> int:
        return max((t.end_tick for t in self.tracks), default=0)

    def tick_to_seconds(self, tick: int) -> float:
        seconds = 0.0
        last_tick = 0
        bpm = DEFAULT_TEMPO
        for tc in self.tempos:
            if tc.tick >= tick:
                break
            seconds += (tc.tick - last_tick) * 60.0 / (bpm * self.ppq)
            last_tick = tc.tick
            bpm = tc.bpm
        return seconds + (tick - last_tick) * 60.0 / (bpm * self.ppq)

    @property
    def duration_seconds(self) -> float:
        return self.tick_to_seconds(self.end_tick)
