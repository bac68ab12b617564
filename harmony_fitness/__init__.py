#!/usr/bin/env python3
"""Harmony Fitness library.

This package reads a melody from a MIDI file, derives randomised harmony
lines that share the melody's rhythm, and scores how consonant the
simultaneous lines sound.  A typical workflow is to load a :class:`Line`
with :func:`read_line`, wrap it in a :class:`LinePopulation`, call
:meth:`LinePopulation.add_harmony_line` once per voice and finally inspect
:meth:`LinePopulation.average_fitness` or write every line back out with
:func:`save_lines`.

Scoring Algorithm
-----------------
Every harmony note is compared against each note of every *other* line that
sounds at the same time.  The semitone distance between the two pitches is
classified into one of four consonance tiers (unison 0.25, perfect 1.0,
imperfect 0.75, dissonant 0.0) and weighted by how many ticks the two notes
overlap::

    for line in other_lines:
        for note in line.overlapping(target):
            total += consonance(target, note) * overlap(target, note)
    fitness = total / (target.duration * len(other_lines))

Only one-shot generation and scoring is provided; there is no search loop.
"""

__version__ = "0.1.0"

import json
import logging
import os
from pathlib import Path

# Default path for storing user preferences.  The environment variable lets
# test runs and CI jobs point at a throwaway file.
env_path = os.environ.get("HARMONY_FITNESS_SETTINGS_FILE")
if env_path:
    DEFAULT_SETTINGS_FILE = Path(env_path).expanduser()
else:
    DEFAULT_SETTINGS_FILE = Path.home() / ".harmony_fitness_settings.json"

# Inclusive bounds of MIDI note numbers and velocities.
MIN_PITCH = 0
MAX_PITCH = 127
MIN_VELOCITY = 0
MAX_VELOCITY = 127

# Value reserved for "not yet resolved" while pairing events; a constructed
# Note never carries it.
UNRESOLVED = -1

# Directory used for generated files when no explicit output path is given.
DEFAULT_OUTPUT_DIR = Path("output")


def load_settings(path: Path = DEFAULT_SETTINGS_FILE) -> dict:
    """Load saved user settings from ``path`` if it exists.

    @param path (Path): Location of the settings file.
    @returns dict: Loaded settings or an empty dictionary when unavailable.
    """
    path = Path(path)
    if path.is_file():
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logging.error("Could not load settings: %s", exc)
            return {}
        if not isinstance(data, dict):
            logging.error("Settings file %s does not contain a JSON object", path)
            return {}
        return data
    return {}


def save_settings(settings: dict, path: Path = DEFAULT_SETTINGS_FILE) -> None:
    """Save user ``settings`` to ``path`` as JSON.

    @param settings (dict): Options to be persisted.
    @param path (Path): Destination file. Parent folders are created.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(settings, fh, indent=2)
    except OSError as exc:
        logging.error("Could not save settings: %s", exc)


from .note import Note, consonance_scores  # noqa: E402
from .line import DivisionType, Line  # noqa: E402
from .population import LineAccess, LinePopulation  # noqa: E402
from .midi_io import (  # noqa: E402
    REFERENCE_PROGRAM,
    TRAILING_PAD,
    UnmatchedNoteError,
    build_midi_file,
    decode_track,
    encode_line,
    read_line,
    read_lines,
    save_lines,
)
from .batch_scoring import CandidateScore, score_candidates  # noqa: E402
from .utils import default_output_path, parse_pitch_range, validate_midi_path  # noqa: E402

__all__ = [
    "__version__",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_SETTINGS_FILE",
    "MAX_PITCH",
    "MAX_VELOCITY",
    "MIN_PITCH",
    "MIN_VELOCITY",
    "UNRESOLVED",
    "CandidateScore",
    "DivisionType",
    "Line",
    "LineAccess",
    "LinePopulation",
    "Note",
    "REFERENCE_PROGRAM",
    "TRAILING_PAD",
    "UnmatchedNoteError",
    "build_midi_file",
    "consonance_scores",
    "decode_track",
    "default_output_path",
    "encode_line",
    "load_settings",
    "main",
    "parse_pitch_range",
    "read_line",
    "read_lines",
    "save_lines",
    "save_settings",
    "score_candidates",
    "validate_midi_path",
]


def main():
    """Entry point delegating to :func:`harmony_fitness.cli.main`."""
    from .cli import main as _main

    _main()
