from __future__ import annotations

from pathlib import Path

import pytest

from mml2mp3.audio.wav import PcmBuffer
from mml2mp3.errors import InputError
from mml2mp3.model.types import EffectsFlags

# MPEG-1 Layer III, 192 kbps, 44.1 kHz, stereo.
MP3_FRAME = b"\xff\xfb\xb0\x00" + b"\x00" * 620


def write_sf2(path: Path) -> Path:
    path.write_bytes(b"RIFF" + (64).to_bytes(4, "little") + b"sfbk" + b"\x00" * 64)
    return path


class FakeSynth:
    def __init__(self, *, frames: int = 4410, fail: Exception | None = None) -> None:
        self.frames = frames
        self.fail = fail
        self.soundfont: Path | None = None
        self.instrument: int | None = None
        self.effects: EffectsFlags | None = None
        self.rendered: list[bytes] = []
        self.on_render = None

    def load_soundfont(self, path):
        p = Path(path)
        if not p.is_file():
            raise InputError(f"soundfont not found: {p}")
        self.soundfont = p
        return p

    def set_instrument(self, program: int) -> None:
        self.instrument = program

    def set_effects(self, effects: EffectsFlags) -> None:
        self.effects = effects

    def render(self, midi_bytes: bytes) -> PcmBuffer:
        self.rendered.append(midi_bytes)
        if self.on_render is not None:
            self.on_render()
        if self.fail is not None:
            raise self.fail
        return PcmBuffer(frames=b"\x00\x00" * 2 * self.frames)


class FakeEncoder:
    def __init__(self, *, fail: Exception | None = None) -> None:
        self.fail = fail
        self.inputs: list[Path] = []

    def encode(self, pcm_wav, out_path):
        self.inputs.append(Path(pcm_wav))
        assert Path(pcm_wav).exists()
        if self.fail is not None:
            raise self.fail
        out = Path(out_path)
        out.write_bytes(MP3_FRAME * 4)
        return out


@pytest.fixture
def soundfont(tmp_path: Path) -> Path:
    return write_sf2(tmp_path / "piano.sf2")


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    d = tmp_path / "work"
    d.mkdir()
    return d
