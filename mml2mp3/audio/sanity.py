from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

_MPEG1_L3_KBPS = (0, 32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320, 0)
_MPEG1_RATES = (44100, 48000, 32000, 0)
_VERSIONS = {0: "2.5", 2: "2", 3: "1"}


@dataclass(frozen=True)
class Mp3FrameInfo:
    """Fields of the first MPEG audio frame header in a file."""

    offset: int
    version: str
    layer: int
    bitrate_kbps: int
    sample_rate: int
    stereo: bool


def id3v2_size(head: bytes) -> int:
    """Total byte size of a leading ID3v2 tag (0 when there is none)."""
    if len(head) < 10 or head[:3] != b"ID3":
        return 0
    size = 0
    for b in head[6:10]:
        size = (size << 7) | (b & 0x7F)
    footer = 10 if head[5] & 0x10 else 0
    return 10 + size + footer


def parse_frame_header(b: bytes, offset: int = 0) -> Mp3FrameInfo | None:
    if len(b) < 4 or b[0] != 0xFF or (b[1] & 0xE0) != 0xE0:
        return None
    version = _VERSIONS.get((b[1] >> 3) & 0x03)
    layer = 4 - ((b[1] >> 1) & 0x03)
    if version is None or layer == 4:
        return None
    bitrate_idx = b[2] >> 4
    rate_idx = (b[2] >> 2) & 0x03
    if bitrate_idx == 0x0F or rate_idx == 0x03:
        return None
    rate = _MPEG1_RATES[rate_idx]
    if version == "2":
        rate //= 2
    elif version == "2.5":
        rate //= 4
    kbps = _MPEG1_L3_KBPS[bitrate_idx] if (version == "1" and layer == 3) else 0
    return Mp3FrameInfo(
        offset=offset,
        version=version,
        layer=layer,
        bitrate_kbps=kbps,
        sample_rate=rate,
        stereo=(b[3] >> 6) != 0x03,
    )


def first_frame_header(path: str | Path) -> Mp3FrameInfo | None:
    """Skip a leading ID3v2 tag and parse the first frame header."""
    with Path(path).open("rb") as fh:
        head = fh.read(10)
        offset = id3v2_size(head)
        fh.seek(offset)
        return parse_frame_header(fh.read(4), offset)
