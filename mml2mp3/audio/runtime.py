from __future__ import annotations

import logging
import shutil
import sys
from dataclasses import dataclass

from mml2mp3.util.soundfont import find_default_soundfont

logger = logging.getLogger(__name__)


class EngineUnavailable(RuntimeError):
    pass


class EngineRuntime:
    """Lazily resolved external engines (fluidsynth, ffmpeg).

    Nothing is looked up until a stage first asks for its engine. `close()`
    drops the resolved state; the next `require` resolves again.
    """

    def __init__(self, *, fluidsynth: str = "fluidsynth", ffmpeg: str = "ffmpeg") -> None:
        self._names = {"fluidsynth": fluidsynth, "ffmpeg": ffmpeg}
        self._resolved: dict[str, str] = {}

    @property
    def active(self) -> bool:
        return bool(self._resolved)

    def require(self, engine: str) -> str:
        if engine in self._resolved:
            return self._resolved[engine]
        name = self._names.get(engine)
        if name is None:
            raise KeyError(f"unknown engine: {engine}")
        path = shutil.which(name)
        if path is None:
            raise EngineUnavailable(f"{engine} not found on PATH (looked for '{name}')")
        logger.debug("resolved %s -> %s", engine, path)
        self._resolved[engine] = path
        return path

    def close(self) -> None:
        if self._resolved:
            logger.debug("releasing engines: %s", ", ".join(sorted(self._resolved)))
        self._resolved.clear()


@dataclass
class DoctorResult:
    ok: bool
    notes: list[str]


def doctor(runtime: EngineRuntime | None = None, soundfont: str | None = None) -> DoctorResult:
    rt = runtime or EngineRuntime()
    notes: list[str] = []
    ok = True

    for engine, purpose in (("fluidsynth", "MIDI -> PCM synthesis"), ("ffmpeg", "MP3 encoding")):
        try:
            notes.append(f"{engine}: OK ({rt.require(engine)})")
        except EngineUnavailable:
            ok = False
            notes.append(f"{engine}: MISSING (needed for {purpose})")

    sf2 = soundfont or find_default_soundfont()
    if sf2:
        notes.append(f"soundfont: OK ({sf2})")
    else:
        notes.append("soundfont: none found in default locations (pass one explicitly)")

    notes.append(f"python: {sys.version.split()[0]}")
    notes.append(f"platform: {sys.platform}")
    return DoctorResult(ok=ok, notes=notes)
