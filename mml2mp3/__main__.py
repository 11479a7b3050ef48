from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from mml2mp3.errors import ConversionError, NotationError
from mml2mp3.model.types import InputKind
from mml2mp3.util.limits import MAX_PROGRAM, MIN_PROGRAM


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mml2mp3",
        formatter_class=argparse.RawTextHelpFormatter,
        description=(
            "mml2mp3: convert MML notation (.mml) or MIDI (.mid/.midi) to MP3\n\n"
            "Pipeline: MML -> MIDI -> PCM (FluidSynth + SoundFont) -> MP3 (ffmpeg/LAME, 192 kbps)\n"
        ),
        epilog=(
            "examples:\n"
            "  mml2mp3 song.mml soundfont.sf2 output.mp3\n"
            "  mml2mp3 song.mml soundfont.sf2 output.mp3 25   # instrument 25\n"
            "  mml2mp3 song.mid soundfont.sf2 output.mp3 40\n"
            "  mml2mp3 song.mml output.mp3      # soundfont from config or default locations\n"
        ),
    )
    p.add_argument("input_file", nargs="?", help="Input MML file (.mml) or MIDI file (.mid, .midi)")
    p.add_argument("soundfont_file", nargs="?", help="SoundFont file (.sf2); optional when one is configured or installed")
    p.add_argument("output_mp3", nargs="?", help="Output MP3 file")
    p.add_argument("instrument_number", nargs="?", default="0", help="MIDI instrument number (0-127, default: 0)")

    p.add_argument("--no-reverb", action="store_true", help="Disable synthesizer reverb.")
    p.add_argument("--no-chorus", action="store_true", help="Disable synthesizer chorus.")
    p.add_argument("--gain", type=float, default=None, help="Synthesizer master gain (default from config: 0.6).")
    p.add_argument("--config", default=None, help="Config file (.json/.yaml). Default: ~/.config/mml2mp3/config.json")
    p.add_argument("--workdir", default=None, help="Directory for intermediate files (default: current directory).")
    p.add_argument("--check", action="store_true", help="Only validate the notation input; do not convert.")
    p.add_argument("--doctor", action="store_true", help="Check for required tools (fluidsynth/ffmpeg/soundfont).")
    p.add_argument("--version", action="store_true", help="Print version and exit.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="More log output (-v info, -vv debug).")
    return p


def parse_instrument(raw: str) -> int:
    try:
        n = int(str(raw).strip())
    except ValueError:
        raise SystemExit(f"ERROR: invalid instrument number: {raw}")
    if not (MIN_PROGRAM <= n <= MAX_PROGRAM):
        raise SystemExit(f"ERROR: instrument number must be between {MIN_PROGRAM}-{MAX_PROGRAM} (got {n})")
    return n


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> None:
    argv = list(sys.argv[1:] if argv is None else argv)

    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.version:
        try:
            from importlib.metadata import version

            v = version("mml2mp3")
        except Exception:
            v = "0.0.0"
        print(f"mml2mp3 {v}")
        return

    from mml2mp3.util.config import load_config

    try:
        cfg = load_config(Path(args.config).expanduser() if args.config else None)
    except (OSError, ValueError) as e:
        raise SystemExit(f"ERROR: could not load config: {e}")

    if args.doctor:
        from mml2mp3.audio.runtime import EngineRuntime, doctor

        res = doctor(EngineRuntime(fluidsynth=cfg.fluidsynth_bin, ffmpeg=cfg.ffmpeg_bin), cfg.soundfont_path)
        print(f"mml2mp3 doctor: {'OK' if res.ok else 'MISSING_DEPS'}")
        for n in res.notes:
            print(f"- {n}")
        if not res.ok:
            print("\nLinux (Debian/Ubuntu): sudo apt-get install fluidsynth ffmpeg fluid-soundfont-gm")
            print("macOS: brew install fluidsynth ffmpeg")
            raise SystemExit(1)
        return

    if not args.input_file:
        parser.print_help()
        raise SystemExit(1)

    from mml2mp3.notation.translator import describe_notation, read_notation, validate_notation
    from mml2mp3.pipeline import PipelineController, detect_input_kind
    from mml2mp3.util.soundfont import find_default_soundfont

    try:
        kind = detect_input_kind(args.input_file)
    except ConversionError as e:
        raise SystemExit(f"ERROR: {e}")

    if args.check:
        if kind is not InputKind.NOTATION:
            raise SystemExit("ERROR: --check only applies to notation (.mml) input")
        try:
            validate_notation(read_notation(args.input_file))
        except ConversionError as e:
            raise SystemExit(f"ERROR: {e}")
        print(f"OK: {args.input_file}")
        return

    # `mml2mp3 song.mml song.mp3 [instrument]` uses the configured/default soundfont
    if args.soundfont_file and Path(args.soundfont_file).suffix.lower() == ".mp3":
        if args.output_mp3 is not None:
            args.instrument_number = args.output_mp3
        args.output_mp3 = args.soundfont_file
        args.soundfont_file = None
    if not args.output_mp3:
        parser.error("input_file and output_mp3 are required")

    instrument = parse_instrument(args.instrument_number)

    soundfont = args.soundfont_file or cfg.soundfont_path or find_default_soundfont()
    if not soundfont:
        raise SystemExit("ERROR: no soundfont given and none configured or found (see --doctor)")


    if args.gain is not None:
        cfg.gain = float(args.gain)
    if args.workdir:
        cfg.workdir = args.workdir
    cfg.reverb = cfg.reverb and not args.no_reverb
    cfg.chorus = cfg.chorus and not args.no_chorus

    print(f"mml2mp3: {kind.value} -> mp3")
    print(f"- input: {args.input_file}")
    print(f"- soundfont: {soundfont}")
    print(f"- instrument: {instrument}")
    print(f"- effects: reverb={'on' if cfg.reverb else 'off'} chorus={'on' if cfg.chorus else 'off'}")
    print(f"- output: {args.output_mp3}")

    if kind is InputKind.NOTATION:
        try:
            print(describe_notation(args.input_file).summary())
        except NotationError as e:
            raise SystemExit(f"ERROR: translate failed: {e}")
        except ConversionError as e:
            raise SystemExit(f"ERROR: {e}")

    with PipelineController(config=cfg) as ctl:
        try:
            ctl.load_soundfont(soundfont)
            ctl.set_instrument(instrument)
            result = ctl.convert(args.input_file, args.output_mp3)
        except ConversionError as e:
            for problem in e.cleanup_errors:
                print(f"WARNING: {problem}", file=sys.stderr)
            raise SystemExit(f"ERROR: {e.describe()}")

    for problem in result.cleanup_errors:
        print(f"WARNING: {problem}", file=sys.stderr)
    print(f"done: {result.output_path} ({result.duration_seconds:.2f}s, {result.output_bytes} bytes)")


if __name__ == "__main__":
    main()
