from __future__ import annotations

import io
import subprocess
from pathlib import Path

import pytest

from conftest import MP3_FRAME
from mml2mp3.audio.encode import FfmpegMp3Encoder
from mml2mp3.audio.runtime import EngineRuntime
from mml2mp3.audio.wav import PcmBuffer, write_wav
from mml2mp3.errors import EncodingError


class _Sink(io.BytesIO):
    def __init__(self) -> None:
        super().__init__()
        self.writes: list[int] = []
        self.data = b""

    def write(self, b) -> int:  # type: ignore[override]
        self.writes.append(len(b))
        return super().write(b)

    def close(self) -> None:
        if not self.closed:
            self.data = self.getvalue()
        super().close()


class _FakeFfmpeg:
    def __init__(self, *, returncode: int = 0, payload: bytes = MP3_FRAME * 3) -> None:
        self.returncode = returncode
        self.payload = payload
        self.diagnostics = b"Unknown encoder 'libmp3lame'"
        self.procs: list[_FakeProc] = []

    def __call__(self, cmd, **kwargs):
        proc = _FakeProc(cmd, self, kwargs["stderr"])
        self.procs.append(proc)
        return proc


class _FakeProc:
    def __init__(self, cmd: list[str], owner: _FakeFfmpeg, errlog) -> None:
        self.cmd = list(cmd)
        self.owner = owner
        self.errlog = errlog
        self.stdin = _Sink()
        self.killed = False

    def wait(self) -> int:
        if self.owner.returncode == 0:
            Path(self.cmd[-1]).write_bytes(self.owner.payload)
        else:
            self.errlog.write(self.owner.diagnostics)
        return self.owner.returncode

    def kill(self) -> None:
        self.killed = True


@pytest.fixture
def ffmpeg(monkeypatch) -> _FakeFfmpeg:
    fake = _FakeFfmpeg()
    monkeypatch.setattr("mml2mp3.audio.runtime.shutil.which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr("mml2mp3.audio.encode.subprocess.Popen", fake)
    return fake


def _wav(path: Path, frames: int, **kw) -> Path:
    write_wav(path, PcmBuffer(frames=b"\x00\x00" * 2 * frames, **kw))
    return path


def test_encode_streams_fixed_chunks(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    src = _wav(tmp_path / "in.wav", 4096 * 2 + 100)
    out = tmp_path / "out.mp3"

    res = FfmpegMp3Encoder(EngineRuntime()).encode(src, out)

    assert res == out and out.exists()
    assert not (tmp_path / "out.mp3.part").exists()
    proc = ffmpeg.procs[0]
    assert proc.stdin.writes == [4096 * 4, 4096 * 4, 100 * 4]
    assert len(proc.stdin.data) == (4096 * 2 + 100) * 4

    cmd = proc.cmd
    assert cmd[cmd.index("-b:a") + 1] == "192k"
    assert cmd[cmd.index("-compression_level") + 1] == "0"
    assert cmd[cmd.index("-codec:a") + 1] == "libmp3lame"
    assert cmd[cmd.index("-ar") + 1] == "44100"
    assert cmd[cmd.index("-ac") + 1] == "2"
    assert cmd[-1].endswith("out.mp3.part")


def test_encode_buffer_rejects_partial_frames(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    pcm = PcmBuffer(frames=b"\x00" * 4097)
    with pytest.raises(EncodingError, match="whole number"):
        FfmpegMp3Encoder(EngineRuntime()).encode_buffer(pcm, tmp_path / "x.mp3")
    assert ffmpeg.procs == []
    assert not (tmp_path / "x.mp3").exists()


def test_encode_buffer_happy_path(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    out = FfmpegMp3Encoder(EngineRuntime()).encode_buffer(PcmBuffer(frames=b"\x00" * 4 * 10), tmp_path / "b.mp3")
    assert out.read_bytes().startswith(b"\xff\xfb")


def test_encode_rejects_wrong_format(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    src = _wav(tmp_path / "mono.wav", 100, channels=1)
    with pytest.raises(EncodingError, match="does not match"):
        FfmpegMp3Encoder(EngineRuntime()).encode(src, tmp_path / "x.mp3")


def test_encoder_failure_leaves_no_output(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    ffmpeg.returncode = 1
    out = tmp_path / "x.mp3"
    out.write_bytes(b"previous")

    with pytest.raises(EncodingError, match="libmp3lame"):
        FfmpegMp3Encoder(EngineRuntime()).encode(_wav(tmp_path / "in.wav", 10), out)

    assert out.read_bytes() == b"previous"
    assert not (tmp_path / "x.mp3.part").exists()


def test_output_without_frame_header_is_rejected(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    ffmpeg.payload = b"RIFF....not an mp3"
    out = tmp_path / "x.mp3"
    with pytest.raises(EncodingError, match="frame header"):
        FfmpegMp3Encoder(EngineRuntime()).encode(_wav(tmp_path / "in.wav", 10), out)
    assert not out.exists()
    assert not (tmp_path / "x.mp3.part").exists()


def test_missing_ffmpeg_is_initialization_failure(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("mml2mp3.audio.runtime.shutil.which", lambda name: None)
    with pytest.raises(EncodingError, match="initialization"):
        FfmpegMp3Encoder(EngineRuntime()).encode(_wav(tmp_path / "in.wav", 10), tmp_path / "x.mp3")


def test_encoder_diagnostics_go_to_a_file_not_a_pipe(tmp_path: Path, ffmpeg: _FakeFfmpeg) -> None:
    ffmpeg.returncode = 1
    ffmpeg.diagnostics = b"x" * (1 << 20) + b"\nfinal: conversion failed"

    with pytest.raises(EncodingError, match="conversion failed") as ei:
        FfmpegMp3Encoder(EngineRuntime()).encode(_wav(tmp_path / "in.wav", 10), tmp_path / "x.mp3")

    errlog = ffmpeg.procs[0].errlog
    assert errlog is not subprocess.PIPE
    assert errlog.closed
    assert isinstance(ei.value.__cause__, subprocess.CalledProcessError)
