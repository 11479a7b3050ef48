from __future__ import annotations

from pathlib import Path
from typing import Protocol

from mml2mp3.audio.wav import PcmBuffer
from mml2mp3.model.types import EffectsFlags


class NotationTranslator(Protocol):
    def translate(self, text: str, *, instrument: int = 0) -> bytes:
        ...


class Synthesizer(Protocol):
    def load_soundfont(self, path: str | Path) -> Path:
        ...

    def set_instrument(self, program: int) -> None:
        ...

    def set_effects(self, effects: EffectsFlags) -> None:
        ...

    def render(self, midi_bytes: bytes) -> PcmBuffer:
        ...


class Encoder(Protocol):
    def encode(self, pcm_wav: str | Path, out_path: str | Path) -> Path:
        ...
