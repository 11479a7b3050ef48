from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from conftest import write_sf2
from mml2mp3.audio.runtime import EngineRuntime
from mml2mp3.audio.synth import FluidSynthSynthesizer
from mml2mp3.audio.wav import PcmBuffer, write_wav
from mml2mp3.errors import InputError, RangeError, SequenceError, SynthesisError
from mml2mp3.io.midi import load_midi_bytes
from mml2mp3.model.types import EffectsFlags
from mml2mp3.notation import MmlTranslator


class _FakeFluidSynth:
    def __init__(self, *, frames: int = 22050, rate: int = 44100, returncode: int = 0) -> None:
        self.frames = frames
        self.rate = rate
        self.returncode = returncode
        self.calls: list[list[str]] = []
        self.midi_seen: list[bytes] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        self.midi_seen.append(Path(cmd[-1]).read_bytes())
        if self.returncode:
            raise subprocess.CalledProcessError(self.returncode, cmd, output="", stderr="fluidsynth: error: bad sfont")
        wav = Path(cmd[cmd.index("-F") + 1])
        write_wav(wav, PcmBuffer(frames=b"\x01\x00" * 2 * self.frames, sample_rate=self.rate))
        return subprocess.CompletedProcess(cmd, 0, "", "")


@pytest.fixture
def engine(monkeypatch) -> _FakeFluidSynth:
    fake = _FakeFluidSynth()
    monkeypatch.setattr("mml2mp3.audio.runtime.shutil.which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr("mml2mp3.audio.synth.subprocess.run", fake)
    return fake


def _synth(tmp_path: Path, **kw) -> FluidSynthSynthesizer:
    s = FluidSynthSynthesizer(EngineRuntime(), **kw)
    s.load_soundfont(write_sf2(tmp_path / "gm.sf2"))
    s.set_instrument(0)
    return s


def test_load_soundfont_validates_signature(tmp_path: Path) -> None:
    s = FluidSynthSynthesizer()
    with pytest.raises(InputError):
        s.load_soundfont(tmp_path / "missing.sf2")

    bogus = tmp_path / "bogus.sf2"
    bogus.write_bytes(b"RIFF\x00\x00\x00\x00WAVEfmt ")
    with pytest.raises(InputError, match="signature"):
        s.load_soundfont(bogus)
    assert s.soundfont is None

    good = s.load_soundfont(write_sf2(tmp_path / "ok.sf2"))
    assert good == (tmp_path / "ok.sf2").resolve()


def test_set_instrument_range() -> None:
    s = FluidSynthSynthesizer()
    for bad in (128, "5", 3.7, True, None):
        with pytest.raises(RangeError):
            s.set_instrument(bad)  # type: ignore[arg-type]
    assert s.instrument is None
    s.set_instrument(127)
    assert s.instrument == 127


def test_render_requires_configuration(tmp_path: Path) -> None:
    s = FluidSynthSynthesizer()
    with pytest.raises(SequenceError):
        s.render(b"MThd")
    s.load_soundfont(write_sf2(tmp_path / "gm.sf2"))
    with pytest.raises(SequenceError):
        s.render(b"MThd")


def test_render_builds_command_and_returns_pcm(tmp_path: Path, engine: _FakeFluidSynth) -> None:
    s = _synth(tmp_path, effects=EffectsFlags(reverb=False, chorus=True), gain=0.5)
    pcm = s.render(MmlTranslator().translate("t120l4cdefgab>c;"))

    assert pcm.frame_count == 22050
    assert pcm.duration_seconds == pytest.approx(0.5)

    cmd = engine.calls[0]
    assert cmd[0] == "/usr/bin/fluidsynth"
    assert cmd[cmd.index("-r") + 1] == "44100"
    assert cmd[cmd.index("-R") + 1] == "0"
    assert cmd[cmd.index("-C") + 1] == "1"
    assert cmd[cmd.index("-g") + 1] == "0.5"
    assert cmd[-2] == str(s.soundfont)


def test_render_keeps_original_bytes_when_programs_declared(tmp_path: Path, engine: _FakeFluidSynth) -> None:
    s = _synth(tmp_path)
    s.set_instrument(54)
    data = MmlTranslator().translate("cde;", instrument=3)
    s.render(data)
    assert engine.midi_seen[0] == data


def test_render_applies_instrument_to_undeclared_channels(tmp_path: Path, engine: _FakeFluidSynth) -> None:
    import mido

    mf = mido.MidiFile(ticks_per_beat=480)
    tr = mido.MidiTrack()
    tr.append(mido.Message("note_on", note=60, velocity=90, channel=0, time=0))
    tr.append(mido.Message("note_off", note=60, velocity=0, channel=0, time=480))
    mf.tracks.append(tr)
    path = tmp_path / "bare.mid"
    mf.save(path)

    s = _synth(tmp_path)
    s.set_instrument(54)
    s.render(path.read_bytes())

    sent = load_midi_bytes(engine.midi_seen[0])
    assert [(m.channel, m.program) for m in sent.tracks[0] if m.type == "program_change"] == [(0, 54)]


def test_render_rejects_malformed_midi(tmp_path: Path, engine: _FakeFluidSynth) -> None:
    s = _synth(tmp_path)
    with pytest.raises(SynthesisError):
        s.render(b"garbage")
    assert engine.calls == []


def test_engine_failure_keeps_diagnostic_as_cause(tmp_path: Path, engine: _FakeFluidSynth) -> None:
    engine.returncode = 1
    s = _synth(tmp_path)
    with pytest.raises(SynthesisError, match="bad sfont") as ei:
        s.render(MmlTranslator().translate("c;"))
    assert isinstance(ei.value.__cause__, subprocess.CalledProcessError)


def test_wrong_output_format_is_rejected(tmp_path: Path, engine: _FakeFluidSynth) -> None:
    engine.rate = 22050
    s = _synth(tmp_path)
    with pytest.raises(SynthesisError, match="unexpected PCM format"):
        s.render(MmlTranslator().translate("c;"))


def test_missing_engine_is_synthesis_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("mml2mp3.audio.runtime.shutil.which", lambda name: None)
    s = _synth(tmp_path)
    with pytest.raises(SynthesisError, match="not found"):
        s.render(MmlTranslator().translate("c;"))
