from __future__ import annotations

import os
import sys
from pathlib import Path


def app_data_dir() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or (Path.home() / "AppData" / "Local")
        return Path(base) / "mml2mp3"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "mml2mp3"
    base = os.environ.get("XDG_DATA_HOME") or (Path.home() / ".local" / "share")
    return Path(base) / "mml2mp3"


def default_soundfont_paths() -> list[str]:
    paths: list[str] = []

    env_sf = os.environ.get("MML2MP3_SOUNDFONT")
    if env_sf:
        paths.append(env_sf)

    paths.append(str(app_data_dir() / "soundfonts" / "FluidR3_GM.sf2"))

    if sys.platform == "win32":
        local_app = os.environ.get("LOCALAPPDATA") or (Path.home() / "AppData" / "Local")
        paths.append(str(Path(local_app) / "Sounds" / "Banks" / "default.sf2"))
        return paths

    if sys.platform == "darwin":
        paths.extend(
            [
                str(Path.home() / "Library" / "Audio" / "Sounds" / "Banks" / "default.sf2"),
                "/Library/Audio/Sounds/Banks/default.sf2",
            ]
        )
        return paths

    paths.extend(
        [
            "/usr/share/sounds/sf2/default-GM.sf2",
            "/usr/share/sounds/sf2/FluidR3_GM.sf2",
            "/usr/share/soundfonts/FluidR3_GM.sf2",
            "/usr/share/soundfonts/default.sf2",
        ]
    )
    return paths


def find_default_soundfont() -> str | None:
    for p in default_soundfont_paths():
        if Path(p).expanduser().exists():
            return str(Path(p).expanduser())
    return None


def has_sf2_signature(head: bytes) -> bool:
    """SoundFont 2 files are RIFF containers with form type `sfbk`."""
    return len(head) >= 12 and head[:4] == b"RIFF" and head[8:12] == b"sfbk"


def check_soundfont(path: str | Path) -> Path:
    """Return the resolved path of a readable SF2 file.

    Raises FileNotFoundError / PermissionError from the filesystem and
    ValueError when the container signature is wrong.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        raise FileNotFoundError(f"soundfont not found: {p}")
    with p.open("rb") as fh:
        head = fh.read(12)
    if not has_sf2_signature(head):
        raise ValueError(f"not a SoundFont 2 file (bad RIFF/sfbk signature): {p}")
    return p.resolve()
