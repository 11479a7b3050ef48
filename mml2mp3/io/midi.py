from __future__ import annotations

import io
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    import mido

    from mml2mp3.notation.types import Score, ScoreTrack

from mml2mp3.util.limits import PERCUSSION_CHANNEL


def _iter_track_events(track: ScoreTrack, *, channel: int, program: int) -> list[tuple[int, Any]]:
    import mido  # type: ignore

    events: list[tuple[int, Any]] = [(0, mido.Message("program_change", program=program, channel=channel))]
    for n in track.notes:
        events.append((n.start, mido.Message("note_on", note=n.pitch, velocity=n.velocity, channel=channel)))
        events.append((n.end, mido.Message("note_off", note=n.pitch, velocity=0, channel=channel)))

    # note_off before note_on on the same tick so repeated pitches retrigger.
    events.sort(key=lambda x: (x[0], 0 if x[1].type == "note_off" else 1))
    return events


def _append_delta(mt: Any, events: list[tuple[int, Any]]) -> None:
    last_t = 0
    for t, msg in events:
        msg.time = t - last_t
        last_t = t
        mt.append(msg)


def score_to_midifile(score: Score, *, program: int = 0, name: str = "mml2mp3") -> Any:
    """Build a type 1 MIDI file: a conductor track plus one track per notation track."""
    import mido  # type: ignore

    mf = mido.MidiFile(type=1, ticks_per_beat=score.ppq)

    conductor = mido.MidiTrack()
    conductor.append(mido.MetaMessage("track_name", name=name, time=0))
    _append_delta(
        conductor,
        [(tc.tick, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(tc.bpm))) for tc in score.tempos],
    )
    mf.tracks.append(conductor)

    for track in score.tracks:
        if not track.notes:
            continue
        mt = mido.MidiTrack()
        mt.append(mido.MetaMessage("track_name", name=f"Track {track.index + 1}", time=0))
        _append_delta(mt, _iter_track_events(track, channel=track.index, program=program))
        mf.tracks.append(mt)

    return mf


def midifile_to_bytes(mf: Any) -> bytes:
    buf = io.BytesIO()
    mf.save(file=buf)
    return buf.getvalue()


def load_midi_bytes(data: bytes) -> "mido.MidiFile":
    """Parse a standard MIDI byte stream. Raises ValueError on malformed input."""
    import mido  # type: ignore

    if data[:4] != b"MThd":
        raise ValueError("not a standard MIDI file (missing MThd header)")
    try:
        return mido.MidiFile(file=io.BytesIO(data))
    except (OSError, EOFError, KeyError, IndexError, ValueError) as e:
        raise ValueError(f"malformed MIDI data: {e}") from e


def channels_missing_program(mf: Any) -> list[int]:
    """Melodic channels that play notes but never receive a program change."""
    with_notes: set[int] = set()
    with_program: set[int] = set()
    for track in mf.tracks:
        for msg in track:
            if msg.type == "note_on":
                with_notes.add(msg.channel)
            elif msg.type == "program_change":
                with_program.add(msg.channel)
    return sorted(with_notes - with_program - {PERCUSSION_CHANNEL})


def apply_default_program(mf: Any, program: int) -> list[int]:
    """Insert `program` at tick 0 for every channel without its own program.

    Returns the channels that were patched (empty when the file is untouched).
    """
    import mido  # type: ignore

    missing = channels_missing_program(mf)
    if not missing or not mf.tracks:
        return []
    first = mf.tracks[0]
    for ch in reversed(missing):
        first.insert(0, mido.Message("program_change", program=program, channel=ch, time=0))
    return missing
