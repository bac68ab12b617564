"""Command line interface for Harmony Fitness.

``run_cli`` reads a melody from a MIDI file, derives harmony lines within the
requested pitch ranges, prints the fitness of the result and writes the melody
together with its harmonies to a new MIDI file.  Defaults for most options can
be stored in the JSON settings file (see :func:`harmony_fitness.load_settings`);
``--save-settings`` writes the options of the current run back to it.

Example
-------
Running ``python -m harmony_fitness melody.mid --range 48-60 --range 36-48 \
    --seed 7 --output out/harmonised.mid`` adds two harmony lines below the
melody, reports their average fitness and saves all three lines.

With ``--candidates K`` the tool scores ``K`` independently generated
populations and reports each score.  It does not pick the best one; the
first candidate is the one written to disk.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from . import DEFAULT_OUTPUT_DIR, DEFAULT_SETTINGS_FILE, load_settings, save_settings
from .midi_io import PAIRING_MODES, read_line, save_lines
from .note import validate_pitch_bounds
from .population import NORMALIZATIONS
from .batch_scoring import score_candidates
from .utils import parse_pitch_range

__all__ = ["build_parser", "validate_settings", "resolve_bounds", "run_cli", "main"]

DEFAULT_RANGE = (48, 60)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser used by :func:`run_cli`."""

    parser = argparse.ArgumentParser(
        prog="harmony-fitness",
        description="Derive random harmony lines for a MIDI melody and score their consonance.",
    )
    parser.add_argument("input", type=str, help="Input MIDI file (.mid or .midi).")
    parser.add_argument("--track", type=int, help="Decode only this track index (default: all tracks).")
    parser.add_argument("--harmony-lines", type=int, metavar="N", help="Number of harmony lines to derive.")
    parser.add_argument(
        "--range",
        dest="ranges",
        action="append",
        metavar="MIN-MAX",
        help="Pitch range of a harmony line, e.g. 48-60. Repeat once per line.",
    )
    parser.add_argument("--pairing", choices=PAIRING_MODES, help="Note-on/note-off pairing strategy.")
    parser.add_argument("--normalization", choices=NORMALIZATIONS, help="Fitness normalisation.")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible output.")
    parser.add_argument("--candidates", type=int, default=1, metavar="K", help="Number of populations to generate and score.")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes used when scoring several candidates.")
    parser.add_argument("--output", type=str, help="Output MIDI path (default: timestamped file in the output directory).")
    parser.add_argument("--output-dir", type=str, help=f"Directory for timestamped output files (default: {DEFAULT_OUTPUT_DIR}).")
    parser.add_argument("--no-write", dest="write", action="store_false", help="Only report scores; do not write a MIDI file.")
    parser.add_argument("--report", action="store_true", help="Print the fitness of every harmony note.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--settings-file",
        type=str,
        help=f"Path to the JSON settings file (default: {DEFAULT_SETTINGS_FILE}).",
    )
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Store the options of this run in the settings file.",
    )
    return parser


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_settings(settings: dict) -> None:
    """Check the types and values of recognised settings keys.

    Unknown keys are left alone so settings files can be shared with newer
    versions.

    Raises
    ------
    ValueError
        If a recognised key holds a value of the wrong type or outside its
        allowed choices.
    """

    if "output_dir" in settings and not isinstance(settings["output_dir"], str):
        raise ValueError(f"Setting 'output_dir' must be a string, got {settings['output_dir']!r}")
    if "harmony_lines" in settings:
        lines = settings["harmony_lines"]
        if not _is_int(lines) or lines <= 0:
            raise ValueError(f"Setting 'harmony_lines' must be a positive integer, got {lines!r}")
    for key in ("min_pitch", "max_pitch"):
        if key in settings and not _is_int(settings[key]):
            raise ValueError(f"Setting '{key}' must be an integer, got {settings[key]!r}")
    if ("min_pitch" in settings) != ("max_pitch" in settings):
        raise ValueError("Settings 'min_pitch' and 'max_pitch' must be given together")
    if "pairing" in settings and settings["pairing"] not in PAIRING_MODES:
        raise ValueError(
            f"Setting 'pairing' must be one of {', '.join(PAIRING_MODES)}, got {settings['pairing']!r}"
        )
    if "normalization" in settings and settings["normalization"] not in NORMALIZATIONS:
        raise ValueError(
            f"Setting 'normalization' must be one of {', '.join(NORMALIZATIONS)}, "
            f"got {settings['normalization']!r}"
        )


def resolve_bounds(
    ranges: Optional[Sequence[str]],
    harmony_lines: Optional[int],
    settings: dict,
) -> List[Tuple[int, int]]:
    """Combine ``--range``/``--harmony-lines`` and settings into pitch bounds.

    A single range is reused for every harmony line.  Several ranges define
    one line each, in which case ``harmony_lines`` must be omitted or match.
    ``settings`` is expected to have passed :func:`validate_settings`.

    Raises
    ------
    ValueError
        If a range is malformed or the counts disagree.
    """

    if ranges:
        parsed = [parse_pitch_range(text) for text in ranges]
    elif "min_pitch" in settings and "max_pitch" in settings:
        validate_pitch_bounds(settings["min_pitch"], settings["max_pitch"])
        parsed = [(settings["min_pitch"], settings["max_pitch"])]
    else:
        parsed = [DEFAULT_RANGE]

    if harmony_lines is None:
        harmony_lines = len(parsed) if len(parsed) > 1 else settings.get("harmony_lines", 1)
    if harmony_lines <= 0:
        raise ValueError("Harmony lines must be a positive integer.")
    if len(parsed) == 1:
        return parsed * harmony_lines
    if len(parsed) != harmony_lines:
        raise ValueError(
            f"{len(parsed)} pitch ranges given for {harmony_lines} harmony lines."
        )
    return parsed


def run_cli(argv: Optional[Sequence[str]] = None) -> None:
    """Parse arguments, score the harmonised melody and write the result.

    Validation failures and I/O errors are logged and terminate the process
    with exit status ``1``.
    """

    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    settings_path = (
        Path(args.settings_file).expanduser() if args.settings_file else DEFAULT_SETTINGS_FILE
    )
    settings = load_settings(settings_path)
    try:
        validate_settings(settings)
    except ValueError as exc:
        logging.error("Invalid settings in %s: %s", settings_path, exc)
        sys.exit(1)

    pairing = args.pairing or settings.get("pairing", "queue")
    normalization = args.normalization or settings.get("normalization", "lines")
    output_dir = Path(args.output_dir or settings.get("output_dir") or DEFAULT_OUTPUT_DIR)

    if args.candidates <= 0:
        logging.error("Number of candidates must be a positive integer.")
        sys.exit(1)
    if args.workers <= 0:
        logging.error("Number of workers must be a positive integer.")
        sys.exit(1)

    try:
        bounds = resolve_bounds(args.ranges, args.harmony_lines, settings)
    except ValueError as exc:
        logging.error(str(exc))
        sys.exit(1)

    if args.save_settings:
        updated = dict(settings)
        updated.update(
            output_dir=str(output_dir),
            harmony_lines=len(bounds),
            pairing=pairing,
            normalization=normalization,
        )
        if len(set(bounds)) == 1:
            updated["min_pitch"], updated["max_pitch"] = bounds[0]
        save_settings(updated, settings_path)
        logging.info("Settings saved to %s", settings_path)

    try:
        melody = read_line(args.input, track=args.track, pairing=pairing)
    except (ValueError, IndexError) as exc:
        logging.error("Could not read melody: %s", exc)
        sys.exit(1)
    except OSError as exc:
        logging.error("Could not open %s: %s", args.input, exc)
        sys.exit(1)

    try:
        results = score_candidates(
            melody,
            bounds,
            args.candidates,
            seed=args.seed,
            workers=args.workers,
            normalization=normalization,
        )
    except ValueError as exc:
        logging.error(str(exc))
        sys.exit(1)

    for result in results:
        print(f"Candidate {result.index}: average fitness {result.average_fitness:.4f}")

    chosen = results[0].population
    if args.report:
        for line_index in range(1, len(chosen)):
            for note_index, score in enumerate(chosen.line_fitness(line_index)):
                note = chosen.harmony_line(line_index).note_at(note_index)
                print(
                    f"line {line_index} note {note_index} tick {note.timestamp} "
                    f"pitch {note.pitch}: {score:.4f}"
                )

    if args.write:
        try:
            save_lines(chosen.lines, args.output, output_dir=output_dir)
        except ValueError as exc:
            logging.error(str(exc))
            sys.exit(1)
        except OSError as exc:
            logging.error("Could not write MIDI file: %s", exc)
            sys.exit(1)
    logging.info("Harmony scoring complete.")


def main() -> None:
    """Console entry point: configure logging and run the CLI."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    run_cli()
