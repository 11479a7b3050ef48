from __future__ import annotations

import wave
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from mml2mp3.model.types import AUDIO_FORMAT, AudioFormatSpec


@dataclass(frozen=True)
class PcmBuffer:
    """Interleaved little-endian PCM samples plus their format."""

    frames: bytes
    sample_rate: int = AUDIO_FORMAT.sample_rate
    channels: int = AUDIO_FORMAT.channels
    sample_width: int = AUDIO_FORMAT.sample_width

    @property
    def block_align(self) -> int:
        return self.channels * self.sample_width

    @property
    def whole_frames(self) -> bool:
        return len(self.frames) % self.block_align == 0

    @property
    def frame_count(self) -> int:
        return len(self.frames) // self.block_align

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / float(self.sample_rate)

    def matches(self, fmt: AudioFormatSpec = AUDIO_FORMAT) -> bool:
        return (
            self.sample_rate == fmt.sample_rate
            and self.channels == fmt.channels
            and self.sample_width == fmt.sample_width
        )

    def chunks(self, frames_per_chunk: int) -> Iterator[bytes]:
        step = frames_per_chunk * self.block_align
        for i in range(0, len(self.frames), step):
            yield self.frames[i : i + step]


def read_wav(path: str | Path) -> PcmBuffer:
    with wave.open(str(path), "rb") as wf:
        return PcmBuffer(
            frames=wf.readframes(wf.getnframes()),
            sample_rate=wf.getframerate(),
            channels=wf.getnchannels(),
            sample_width=wf.getsampwidth(),
        )


def write_wav(path: str | Path, pcm: PcmBuffer) -> None:
    if not pcm.whole_frames:
        raise ValueError(f"PCM length {len(pcm.frames)} is not a multiple of the frame size {pcm.block_align}")
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(pcm.channels)
        wf.setsampwidth(pcm.sample_width)
        wf.setframerate(int(pcm.sample_rate))
        wf.writeframes(pcm.frames)


def wav_format(path: str | Path) -> AudioFormatSpec:
    with wave.open(str(path), "rb") as wf:
        return AudioFormatSpec(
            sample_rate=wf.getframerate(),
            sample_width=wf.getsampwidth(),
            channels=wf.getnchannels(),
        )


def iter_wav_chunks(path: str | Path, frames_per_chunk: int) -> Iterator[bytes]:
    """Yield raw frame data in fixed-size chunks; the last one may be short."""
    with wave.open(str(path), "rb") as wf:
        while True:
            data = wf.readframes(frames_per_chunk)
            if not data:
                return
            yield data
