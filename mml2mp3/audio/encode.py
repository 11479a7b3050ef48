from __future__ import annotations

import contextlib
import logging
import os
import subprocess
import tempfile
import wave
from collections.abc import Iterable
from pathlib import Path

from mml2mp3.audio.runtime import EngineRuntime, EngineUnavailable
from mml2mp3.audio.sanity import first_frame_header
from mml2mp3.audio.wav import PcmBuffer, iter_wav_chunks, wav_format
from mml2mp3.errors import EncodingError
from mml2mp3.model.types import AUDIO_FORMAT, AudioFormatSpec

logger = logging.getLogger(__name__)


class FfmpegMp3Encoder:
    """PCM -> MP3 through ffmpeg/libmp3lame at the fixed bitrate and quality.

    PCM is streamed to ffmpeg's stdin in `buffer_frames`-sized chunks so peak
    memory does not depend on the song length. Output goes to `<out>.part`
    and is renamed into place only after the first frame header checks out.
    """

    def __init__(self, runtime: EngineRuntime | None = None, *, audio_format: AudioFormatSpec = AUDIO_FORMAT) -> None:
        self.runtime = runtime or EngineRuntime()
        self.audio_format = audio_format

    def _command(self, exe: str, staging: Path) -> list[str]:
        fmt = self.audio_format
        return [
            exe,
            "-y",
            "-hide_banner",
            "-loglevel",
            "error",
            "-f",
            f"s{fmt.sample_width * 8}le",
            "-ar",
            str(int(fmt.sample_rate)),
            "-ac",
            str(int(fmt.channels)),
            "-i",
            "pipe:0",
            "-codec:a",
            "libmp3lame",
            "-b:a",
            fmt.bitrate,
            "-compression_level",
            str(int(fmt.quality)),
            "-f",
            "mp3",
            str(staging),
        ]

    def _check_format(self, rate: int, width: int, channels: int) -> None:
        fmt = self.audio_format
        if (rate, width, channels) != (fmt.sample_rate, fmt.sample_width, fmt.channels):
            raise EncodingError(
                f"PCM format {rate} Hz / {width * 8}-bit / {channels}ch does not match "
                f"{fmt.sample_rate} Hz / {fmt.sample_width * 8}-bit / {fmt.channels}ch"
            )

    def encode(self, pcm_wav: str | Path, out_path: str | Path) -> Path:
        try:
            src = wav_format(pcm_wav)
        except (wave.Error, EOFError, OSError) as e:
            raise EncodingError(f"cannot read PCM input {pcm_wav}: {e}") from e
        self._check_format(src.sample_rate, src.sample_width, src.channels)
        return self._encode_chunks(iter_wav_chunks(pcm_wav, self.audio_format.buffer_frames), Path(out_path))

    def encode_buffer(self, pcm: PcmBuffer, out_path: str | Path) -> Path:
        self._check_format(pcm.sample_rate, pcm.sample_width, pcm.channels)
        if not pcm.whole_frames:
            raise EncodingError(f"PCM length {len(pcm.frames)} is not a whole number of {pcm.block_align}-byte frames")
        return self._encode_chunks(pcm.chunks(self.audio_format.buffer_frames), Path(out_path))

    def _encode_chunks(self, chunks: Iterable[bytes], out: Path) -> Path:
        try:
            exe = self.runtime.require("ffmpeg")
        except EngineUnavailable as e:
            raise EncodingError(f"encoder initialization failed: {e}") from e

        out.parent.mkdir(parents=True, exist_ok=True)
        staging = out.with_name(out.name + ".part")
        try:
            self._stream(exe, chunks, staging)
            info = first_frame_header(staging)
            if info is None or info.layer != 3 or info.sample_rate != self.audio_format.sample_rate:
                raise EncodingError(f"encoder output has no valid MP3 frame header: {info}")
            os.replace(staging, out)
        except BaseException:
            staging.unlink(missing_ok=True)
            raise

        logger.info("encoded %s (%d bytes)", out, out.stat().st_size)
        return out

    def _stream(self, exe: str, chunks: Iterable[bytes], staging: Path) -> None:
        cmd = self._command(exe, staging)
        logger.debug("running: %s", " ".join(cmd))
        # stderr to a file: nothing reads it until ffmpeg exits
        with tempfile.TemporaryFile(prefix="mml2mp3_ffmpeg_") as errlog:
            try:
                proc = subprocess.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=errlog)
            except OSError as e:
                raise EncodingError(f"encoder initialization failed: {e}") from e

            assert proc.stdin is not None
            block = self.audio_format.block_align
            frames = 0
            try:
                for chunk in chunks:
                    if len(chunk) % block:
                        raise EncodingError(
                            f"PCM chunk of {len(chunk)} bytes is not a whole number of {block}-byte frames"
                        )
                    try:
                        proc.stdin.write(chunk)
                    except BrokenPipeError:
                        break
                    frames += len(chunk) // block
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    pass
                rc = proc.wait()
            except BaseException:
                proc.kill()
                with contextlib.suppress(OSError):
                    proc.stdin.close()
                proc.wait()
                raise

            errlog.seek(0)
            stderr = errlog.read().decode("utf-8", errors="replace").strip()

        if rc != 0:
            err = subprocess.CalledProcessError(rc, cmd, stderr=stderr)
            raise EncodingError(f"ffmpeg exited with {rc}: {stderr or 'no output'}") from err
        if frames == 0:
            raise EncodingError("no PCM frames to encode")
