from __future__ import annotations

import itertools
import logging
import os
from pathlib import Path

from mml2mp3.errors import ArtifactIOError
from mml2mp3.model.types import ArtifactKind, TempArtifact

logger = logging.getLogger(__name__)

_instance_ids = itertools.count(1)


class TempArtifactManager:
    """Allocates intermediate files and guarantees their removal.

    Paths are predictable (`temp_conversion_<pid>_<instance>_<seq>.<ext>` in
    the work directory) but unique per manager, so two controllers in the same
    directory never share a file. Every `create` must be paired with a
    `release`; `release_all` releases whatever is still live, newest first.
    """

    def __init__(self, workdir: str | Path | None = None, *, prefix: str = "temp_conversion") -> None:
        self.workdir = Path(workdir) if workdir is not None else Path.cwd()
        self.prefix = prefix
        self._token = f"{os.getpid()}_{next(_instance_ids)}"
        self._seq = 0
        self._live: list[TempArtifact] = []

    @property
    def live(self) -> list[TempArtifact]:
        return list(self._live)

    def _next_path(self, kind: ArtifactKind) -> Path:
        self._seq += 1
        return self.workdir / f"{self.prefix}_{self._token}_{self._seq}{kind.suffix}"

    def create(self, kind: ArtifactKind) -> TempArtifact:
        try:
            self.workdir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ArtifactIOError(f"cannot create work directory {self.workdir}: {e}") from e

        # Reserve the name exclusively; skip names left behind by a killed process.
        while True:
            path = self._next_path(kind)
            try:
                with path.open("xb"):
                    pass
            except FileExistsError:
                continue
            except OSError as e:
                raise ArtifactIOError(f"cannot create temp artifact {path}: {e}") from e
            break

        artifact = TempArtifact(path=path, kind=kind)
        self._live.append(artifact)
        logger.debug("created %s artifact %s", kind.value, path)
        return artifact

    def write(self, artifact: TempArtifact, data: bytes) -> None:
        try:
            artifact.path.write_bytes(data)
        except OSError as e:
            raise ArtifactIOError(f"cannot write temp artifact {artifact.path}: {e}") from e

    def release(self, artifact: TempArtifact) -> None:
        """Delete the artifact's file. Releasing twice is a no-op."""
        if artifact not in self._live:
            return
        try:
            artifact.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ArtifactIOError(f"cannot remove temp artifact {artifact.path}: {e}") from e
        self._live.remove(artifact)
        logger.debug("released %s artifact %s", artifact.kind.value, artifact.path)

    def release_all(self) -> list[ArtifactIOError]:
        """Release every live artifact in reverse creation order.

        Failures are collected and returned, never raised; a failed artifact
        stays tracked so a later call can retry it.
        """
        problems: list[ArtifactIOError] = []
        for artifact in reversed(self._live[:]):
            try:
                self.release(artifact)
            except ArtifactIOError as e:
                logger.warning("%s", e)
                problems.append(e)
        return problems
