from __future__ import annotations

from enum import Enum


class Stage(str, Enum):
    TRANSLATE = "translate"
    SYNTHESIZE = "synthesize"
    ENCODE = "encode"


class ConversionError(Exception):
    """Base class for every failure the conversion pipeline reports.

    `stage` is set when the failure happened inside a pipeline stage.
    `cleanup_errors` collects temp artifacts that could not be released on the
    way out; they never replace the primary error.
    """

    default_stage: Stage | None = None

    def __init__(self, message: str, *, stage: Stage | None = None) -> None:
        super().__init__(message)
        self.stage = stage if stage is not None else self.default_stage
        self.cleanup_errors: list[ArtifactIOError] = []

    def describe(self) -> str:
        if self.stage is None:
            return str(self)
        return f"{self.stage.value} failed: {self}"


class InputError(ConversionError):
    """Missing/unreadable file, wrong signature or unsupported extension."""


class RangeError(InputError, ValueError):
    """A numeric argument (instrument number) is out of range."""


class SequenceError(ConversionError):
    """An operation was invoked out of its required order."""


class NotationError(ConversionError):
    default_stage = Stage.TRANSLATE


class SynthesisError(ConversionError):
    default_stage = Stage.SYNTHESIZE


class EncodingError(ConversionError):
    default_stage = Stage.ENCODE


class ArtifactIOError(ConversionError):
    """Temp artifact could not be created, written or removed."""


STAGE_ERRORS: dict[Stage, type[ConversionError]] = {
    Stage.TRANSLATE: NotationError,
    Stage.SYNTHESIZE: SynthesisError,
    Stage.ENCODE: EncodingError,
}
