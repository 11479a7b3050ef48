from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from mml2mp3.model.types import EffectsFlags


def default_config_dir() -> Path:
    return Path.home() / ".config" / "mml2mp3"


def default_config_path() -> Path:
    env = os.environ.get("MML2MP3_CONFIG")
    if env:
        return Path(env).expanduser()
    return default_config_dir() / "config.json"


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, str):
        return v.strip().lower() in {"1", "true", "yes", "on"}
    return bool(v)


@dataclass
class AppConfig:
    soundfont_path: str | None = None
    reverb: bool = True
    chorus: bool = True
    gain: float = 0.6
    polyphony: int = 256
    workdir: str | None = None  # temp artifacts; None = current directory
    fluidsynth_bin: str = "fluidsynth"
    ffmpeg_bin: str = "ffmpeg"

    @property
    def effects(self) -> EffectsFlags:
        return EffectsFlags(reverb=self.reverb, chorus=self.chorus)

    def to_dict(self) -> dict[str, Any]:
        return {
            "soundfont_path": self.soundfont_path,
            "reverb": self.reverb,
            "chorus": self.chorus,
            "gain": self.gain,
            "polyphony": self.polyphony,
            "workdir": self.workdir,
            "fluidsynth_bin": self.fluidsynth_bin,
            "ffmpeg_bin": self.ffmpeg_bin,
        }

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "AppConfig":
        gain = float(d.get("gain", 0.6))
        if not (0.0 <= gain <= 10.0):
            raise ValueError(f"gain must be within 0..10 (got {gain})")
        polyphony = int(d.get("polyphony", 256))
        if polyphony < 1:
            raise ValueError(f"polyphony must be >= 1 (got {polyphony})")
        return AppConfig(
            soundfont_path=d.get("soundfont_path") or None,
            reverb=_as_bool(d.get("reverb"), True),
            chorus=_as_bool(d.get("chorus"), True),
            gain=gain,
            polyphony=polyphony,
            workdir=d.get("workdir") or None,
            fluidsynth_bin=str(d.get("fluidsynth_bin") or "fluidsynth"),
            ffmpeg_bin=str(d.get("ffmpeg_bin") or "ffmpeg"),
        )


def load_config(path: Path | None = None) -> AppConfig:
    p = path or default_config_path()
    if not p.exists():
        return AppConfig()
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"config must be a mapping/object: {p}")
    return AppConfig.from_dict(data)


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    p = path or default_config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix.lower() in {".yaml", ".yml"}:
        p.write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=True), encoding="utf-8")
    else:
        p.write_text(json.dumps(cfg.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return p
