from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path

from mml2mp3.errors import ArtifactIOError, ConversionError, Stage


NOTATION_SUFFIXES = frozenset({".mml"})
MIDI_SUFFIXES = frozenset({".mid", ".midi"})


class InputKind(str, Enum):
    NOTATION = "notation"
    MIDI = "midi"


class ArtifactKind(str, Enum):
    MIDI_INTERMEDIATE = "midi"
    PCM_INTERMEDIATE = "pcm"

    @property
    def suffix(self) -> str:
        return ".mid" if self is ArtifactKind.MIDI_INTERMEDIATE else ".wav"


@dataclass(frozen=True)
class AudioFormatSpec:
    """Fixed output format shared by the synthesizer and the encoder."""

    sample_rate: int = 44100
    sample_width: int = 2  # bytes (16-bit)
    channels: int = 2
    bitrate_kbps: int = 192
    quality: int = 0  # LAME: 0 = highest quality
    buffer_frames: int = 4096

    @property
    def block_align(self) -> int:
        return self.sample_width * self.channels

    @property
    def bitrate(self) -> str:
        return f"{self.bitrate_kbps}k"


AUDIO_FORMAT = AudioFormatSpec()


@dataclass(frozen=True)
class EffectsFlags:
    reverb: bool = True
    chorus: bool = True


@dataclass(frozen=True)
class ConversionRequest:
    input_path: Path
    input_kind: InputKind
    soundfont_path: Path
    output_path: Path
    instrument: int
    effects: EffectsFlags = EffectsFlags()


@dataclass(frozen=True)
class TempArtifact:
    path: Path
    kind: ArtifactKind


class StateKind(IntEnum):
    IDLE = 0
    SOUNDFONT_LOADED = 1
    INSTRUMENT_SET = 2
    CONVERTING = 3
    COMPLETED = 4
    FAILED = 5


@dataclass(frozen=True)
class PipelineState:
    kind: StateKind
    stage: Stage | None = None
    cause: ConversionError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StateKind.COMPLETED, StateKind.FAILED)

    def __str__(self) -> str:
        if self.kind is StateKind.FAILED:
            stage = self.stage.value if self.stage else "?"
            return f"Failed({stage}, {self.cause})"
        return self.kind.name.title().replace("_", "")


@dataclass
class ConversionResult:
    output_path: Path
    input_kind: InputKind
    duration_seconds: float
    output_bytes: int
    cleanup_errors: list[ArtifactIOError] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.cleanup_errors
