from __future__ import annotations

import logging
from pathlib import Path

from mml2mp3.artifacts import TempArtifactManager
from mml2mp3.audio.encode import FfmpegMp3Encoder
from mml2mp3.audio.runtime import EngineRuntime
from mml2mp3.audio.synth import FluidSynthSynthesizer
from mml2mp3.audio.wav import PcmBuffer, write_wav
from mml2mp3.errors import (
    STAGE_ERRORS,
    ArtifactIOError,
    ConversionError,
    InputError,
    RangeError,
    SequenceError,
    Stage,
)
from mml2mp3.model.types import (
    MIDI_SUFFIXES,
    NOTATION_SUFFIXES,
    ArtifactKind,
    ConversionRequest,
    ConversionResult,
    EffectsFlags,
    InputKind,
    PipelineState,
    StateKind,
    TempArtifact,
)
from mml2mp3.notation.translator import MmlTranslator, read_notation
from mml2mp3.stages import Encoder, NotationTranslator, Synthesizer
from mml2mp3.util.config import AppConfig
from mml2mp3.util.limits import MAX_PROGRAM, program_in_range

logger = logging.getLogger(__name__)


def detect_input_kind(path: str | Path) -> InputKind:
    suffix = Path(path).suffix.lower()
    if suffix in NOTATION_SUFFIXES:
        return InputKind.NOTATION
    if suffix in MIDI_SUFFIXES:
        return InputKind.MIDI
    supported = ", ".join(sorted(NOTATION_SUFFIXES | MIDI_SUFFIXES))
    raise InputError(f"unsupported file format '{suffix or '(none)'}' (supported: {supported})")


class PipelineController:
    """Runs notation/MIDI -> PCM -> MP3 and owns the intermediate files.

    Order of use::

        with PipelineController() as ctl:
            ctl.load_soundfont("piano.sf2")
            ctl.set_instrument(0)
            ctl.convert("song.mml", "song.mp3")

    The soundfont and instrument stay configured after a conversion, so the
    same controller accepts further `convert` calls. Only one conversion can
    be in flight at a time. Every temp artifact created by a call is released
    before that call returns or raises.
    """

    def __init__(
        self,
        *,
        translator: NotationTranslator | None = None,
        synthesizer: Synthesizer | None = None,
        encoder: Encoder | None = None,
        artifacts: TempArtifactManager | None = None,
        runtime: EngineRuntime | None = None,
        config: AppConfig | None = None,
    ) -> None:
        cfg = config or AppConfig()
        self.config = cfg
        self.runtime = runtime or EngineRuntime(fluidsynth=cfg.fluidsynth_bin, ffmpeg=cfg.ffmpeg_bin)
        self.translator: NotationTranslator = translator or MmlTranslator()
        self.synthesizer: Synthesizer = synthesizer or FluidSynthSynthesizer(
            self.runtime, effects=cfg.effects, gain=cfg.gain, polyphony=cfg.polyphony
        )
        self.encoder: Encoder = encoder or FfmpegMp3Encoder(self.runtime)
        self.artifacts = artifacts or TempArtifactManager(cfg.workdir)

        self._state = PipelineState(StateKind.IDLE)
        self._soundfont: Path | None = None
        self._instrument: int | None = None
        self._effects = cfg.effects
        self._request: ConversionRequest | None = None
        self.synthesizer.set_effects(self._effects)

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def soundfont(self) -> Path | None:
        return self._soundfont

    @property
    def instrument(self) -> int | None:
        return self._instrument

    @property
    def effects(self) -> EffectsFlags:
        return self._effects

    @property
    def request(self) -> ConversionRequest | None:
        return self._request

    def _configured_state(self) -> PipelineState:
        if self._instrument is not None:
            return PipelineState(StateKind.INSTRUMENT_SET)
        return PipelineState(StateKind.SOUNDFONT_LOADED)

    def _reject_in_flight(self, op: str) -> None:
        if self._state.kind is StateKind.CONVERTING:
            raise SequenceError(f"{op}: a conversion is already in progress")

    # -- configuration -------------------------------------------------------

    def load_soundfont(self, path: str | Path) -> Path:
        self._reject_in_flight("load_soundfont")
        sf2 = self.synthesizer.load_soundfont(path)
        self._soundfont = Path(sf2)
        self._state = self._configured_state()
        return self._soundfont

    def set_instrument(self, program: int) -> None:
        if not program_in_range(program):
            raise RangeError(f"instrument must be an integer between 0-{MAX_PROGRAM} (got {program!r})")
        self._reject_in_flight("set_instrument")
        if self._soundfont is None:
            raise SequenceError("set_instrument: a soundfont must be loaded first")
        self.synthesizer.set_instrument(program)
        self._instrument = int(program)
        self._state = PipelineState(StateKind.INSTRUMENT_SET)

    def set_effects(self, effects: EffectsFlags) -> None:
        self._reject_in_flight("set_effects")
        self.synthesizer.set_effects(effects)
        self._effects = effects

    # -- conversion ----------------------------------------------------------

    def _require_ready(self, op: str) -> None:
        self._reject_in_flight(op)
        if self._state.kind < StateKind.INSTRUMENT_SET or self._soundfont is None or self._instrument is None:
            raise SequenceError(f"{op}: load a soundfont and set an instrument first (state: {self._state})")

    def convert(self, input_path: str | Path, output_path: str | Path) -> ConversionResult:
        self._require_ready("convert")
        src = Path(input_path)
        kind = detect_input_kind(src)
        if not src.is_file():
            raise InputError(f"input file not found: {src}")
        return self._run(self._new_request(src, kind, output_path), text=None)

    def convert_text(self, text: str, output_path: str | Path, *, name: str = "<text>") -> ConversionResult:
        """Convert notation text directly; translation always runs."""
        self._require_ready("convert_text")
        return self._run(self._new_request(Path(name), InputKind.NOTATION, output_path), text=text)

    def _new_request(self, src: Path, kind: InputKind, output_path: str | Path) -> ConversionRequest:
        assert self._soundfont is not None and self._instrument is not None
        return ConversionRequest(
            input_path=src,
            input_kind=kind,
            soundfont_path=self._soundfont,
            output_path=Path(output_path),
            instrument=self._instrument,
            effects=self._effects,
        )

    def _run(self, request: ConversionRequest, *, text: str | None) -> ConversionResult:
        self._request = request
        self._state = PipelineState(StateKind.CONVERTING)
        logger.info("converting %s (%s) -> %s", request.input_path, request.input_kind.value, request.output_path)

        stage = Stage.TRANSLATE if request.input_kind is InputKind.NOTATION else Stage.SYNTHESIZE
        failure: ConversionError | None = None
        result: ConversionResult | None = None
        try:
            if request.input_kind is InputKind.NOTATION:
                midi_bytes = self._translate(request, text)
            else:
                midi_bytes = self._read_midi(request)

            stage = Stage.SYNTHESIZE
            pcm_artifact, pcm = self._synthesize(midi_bytes)

            stage = Stage.ENCODE
            out = self._encode(pcm_artifact.path, request.output_path)
            result = ConversionResult(
                output_path=out,
                input_kind=request.input_kind,
                duration_seconds=pcm.duration_seconds,
                output_bytes=out.stat().st_size,
            )
        except ConversionError as e:
            if e.stage is None:
                e.stage = stage
            failure = e
        except Exception as e:
            failure = STAGE_ERRORS[stage](f"unexpected error: {e}", stage=stage)
            failure.__cause__ = e
        finally:
            problems = self.artifacts.release_all()
            if failure is None and result is None:
                # interrupted (KeyboardInterrupt and friends)
                self._state = PipelineState(StateKind.FAILED, stage=stage)

        if failure is not None:
            failure.cleanup_errors.extend(problems)
            self._state = PipelineState(StateKind.FAILED, stage=failure.stage, cause=failure)
            logger.error("%s", failure.describe())
            raise failure

        assert result is not None
        result.cleanup_errors.extend(problems)
        self._state = PipelineState(StateKind.COMPLETED)
        logger.info("completed %s (%.2fs, %d bytes)", result.output_path, result.duration_seconds, result.output_bytes)
        return result

    def _translate(self, request: ConversionRequest, text: str | None) -> bytes:
        if text is None:
            text = read_notation(request.input_path)
        logger.info("translating notation to MIDI")
        try:
            midi_bytes = self.translator.translate(text, instrument=request.instrument)
        except ConversionError:
            raise
        except Exception as e:
            raise STAGE_ERRORS[Stage.TRANSLATE](f"translator failed: {e}") from e

        artifact = self.artifacts.create(ArtifactKind.MIDI_INTERMEDIATE)
        self.artifacts.write(artifact, midi_bytes)
        try:
            return artifact.path.read_bytes()
        except OSError as e:
            raise ArtifactIOError(f"cannot read back {artifact.path}: {e}", stage=Stage.TRANSLATE) from e

    def _read_midi(self, request: ConversionRequest) -> bytes:
        try:
            return request.input_path.read_bytes()
        except OSError as e:
            raise InputError(f"failed to read MIDI file {request.input_path}: {e}") from e

    def _synthesize(self, midi_bytes: bytes) -> tuple[TempArtifact, PcmBuffer]:
        logger.info("synthesizing MIDI to PCM")
        try:
            pcm = self.synthesizer.render(midi_bytes)
        except ConversionError:
            raise
        except Exception as e:
            raise STAGE_ERRORS[Stage.SYNTHESIZE](f"synthesizer failed: {e}") from e

        artifact = self.artifacts.create(ArtifactKind.PCM_INTERMEDIATE)
        try:
            write_wav(artifact.path, pcm)
        except ValueError as e:
            raise STAGE_ERRORS[Stage.SYNTHESIZE](str(e)) from e
        except OSError as e:
            raise ArtifactIOError(f"cannot write {artifact.path}: {e}", stage=Stage.SYNTHESIZE) from e
        return artifact, pcm

    def _encode(self, pcm_path: Path, output_path: Path) -> Path:
        logger.info("encoding PCM to MP3")
        try:
            return Path(self.encoder.encode(pcm_path, output_path))
        except ConversionError:
            raise
        except Exception as e:
            raise STAGE_ERRORS[Stage.ENCODE](f"encoder failed: {e}") from e

    # -- lifecycle -----------------------------------------------------------

    def close(self) -> list[ArtifactIOError]:
        problems = self.artifacts.release_all()
        self.runtime.close()
        return problems

    def __enter__(self) -> "PipelineController":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
