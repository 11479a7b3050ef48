from __future__ import annotations

import logging
import subprocess
import tempfile
import wave
from pathlib import Path

from mml2mp3.audio.runtime import EngineRuntime, EngineUnavailable
from mml2mp3.audio.wav import PcmBuffer, read_wav
from mml2mp3.errors import InputError, RangeError, SequenceError, SynthesisError
from mml2mp3.io.midi import apply_default_program, load_midi_bytes, midifile_to_bytes
from mml2mp3.model.types import AUDIO_FORMAT, AudioFormatSpec, EffectsFlags
from mml2mp3.util.limits import MAX_PROGRAM, program_in_range
from mml2mp3.util.soundfont import check_soundfont

logger = logging.getLogger(__name__)


class FluidSynthSynthesizer:
    """MIDI bytes -> PCM via the fluidsynth command line renderer.

    The soundfont is only validated on load (existence + RIFF/sfbk signature);
    fluidsynth reads the sample data itself when rendering. The selected
    instrument is applied at render time to channels that never choose a
    program of their own.
    """

    def __init__(
        self,
        runtime: EngineRuntime | None = None,
        *,
        effects: EffectsFlags | None = None,
        gain: float = 0.6,
        polyphony: int = 256,
        audio_format: AudioFormatSpec = AUDIO_FORMAT,
    ) -> None:
        self.runtime = runtime or EngineRuntime()
        self.effects = effects or EffectsFlags()
        self.gain = float(gain)
        self.polyphony = int(polyphony)
        self.audio_format = audio_format
        self.soundfont: Path | None = None
        self.instrument: int | None = None

    def load_soundfont(self, path: str | Path) -> Path:
        try:
            sf2 = check_soundfont(path)
        except (FileNotFoundError, ValueError) as e:
            raise InputError(str(e)) from e
        except OSError as e:
            raise InputError(f"soundfont unreadable: {path} ({e})") from e
        self.soundfont = sf2
        logger.info("soundfont loaded: %s", sf2)
        return sf2

    def set_instrument(self, program: int) -> None:
        if not program_in_range(program):
            raise RangeError(f"instrument must be an integer between 0-{MAX_PROGRAM} (got {program!r})")
        self.instrument = int(program)

    def set_effects(self, effects: EffectsFlags) -> None:
        self.effects = effects

    def _command(self, exe: str, midi_path: Path, wav_path: Path) -> list[str]:
        assert self.soundfont is not None
        return [
            exe,
            "-ni",
            "-F",
            str(wav_path),
            "-T",
            "wav",
            "-O",
            "s16",
            "-r",
            str(int(self.audio_format.sample_rate)),
            "-R",
            "1" if self.effects.reverb else "0",
            "-C",
            "1" if self.effects.chorus else "0",
            "-g",
            f"{self.gain:g}",
            "-o",
            f"synth.polyphony={self.polyphony}",
            str(self.soundfont),
            str(midi_path),
        ]

    def prepare_midi(self, midi_bytes: bytes) -> bytes:
        """Validate the MIDI stream and apply the selected instrument where needed."""
        try:
            mf = load_midi_bytes(midi_bytes)
        except ValueError as e:
            raise SynthesisError(str(e)) from e
        patched = apply_default_program(mf, self.instrument or 0)
        if not patched:
            return midi_bytes
        logger.debug("applied program %s to channel(s) %s", self.instrument, patched)
        return midifile_to_bytes(mf)

    def render(self, midi_bytes: bytes) -> PcmBuffer:
        if self.soundfont is None:
            raise SequenceError("soundfont must be loaded before rendering")
        if self.instrument is None:
            raise SequenceError("instrument must be set before rendering")
        if not self.soundfont.is_file():
            raise SynthesisError(f"soundfont is no longer readable: {self.soundfont}")

        data = self.prepare_midi(midi_bytes)

        try:
            exe = self.runtime.require("fluidsynth")
        except EngineUnavailable as e:
            raise SynthesisError(str(e)) from e

        with tempfile.TemporaryDirectory(prefix="mml2mp3_synth_") as td:
            tdir = Path(td)
            midi_path = tdir / "input.mid"
            wav_path = tdir / "render.wav"
            midi_path.write_bytes(data)

            cmd = self._command(exe, midi_path, wav_path)
            logger.debug("running: %s", " ".join(cmd))
            try:
                subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
            except subprocess.CalledProcessError as e:
                diag = (e.stderr or e.stdout or "").strip()
                raise SynthesisError(f"fluidsynth exited with {e.returncode}: {diag or 'no output'}") from e
            except OSError as e:
                raise SynthesisError(f"could not run fluidsynth: {e}") from e

            if not wav_path.exists() or wav_path.stat().st_size == 0:
                raise SynthesisError("fluidsynth produced no audio (check the soundfont and MIDI input)")
            try:
                pcm = read_wav(wav_path)
            except (wave.Error, EOFError) as e:
                raise SynthesisError(f"fluidsynth wrote an unreadable WAV: {e}") from e

        if not pcm.matches(self.audio_format):
            raise SynthesisError(
                f"unexpected PCM format {pcm.sample_rate} Hz / {pcm.sample_width * 8}-bit / {pcm.channels}ch"
            )
        if pcm.frame_count == 0:
            raise SynthesisError("rendered audio is empty")
        logger.info("synthesized %.2fs of audio", pcm.duration_seconds)
        return pcm
