"""Utility helpers shared by the library and the command line.

Usage Example
-------------
>>> from harmony_fitness.utils import parse_pitch_range
>>> parse_pitch_range("48-60")
(48, 60)
"""

from __future__ import annotations

import datetime
from pathlib import Path
from typing import Optional, Tuple, Union

from . import DEFAULT_OUTPUT_DIR
from .note import validate_pitch_bounds

__all__ = ["MIDI_SUFFIXES", "validate_midi_path", "default_output_path", "parse_pitch_range"]

MIDI_SUFFIXES = (".mid", ".midi")


def validate_midi_path(path: Union[str, Path]) -> Path:
    """Return ``path`` as a :class:`Path` after checking its extension.

    Only the suffix is inspected; the file does not need to exist, which lets
    the same check guard both input and output paths.

    Raises
    ------
    ValueError
        If the path does not end in ``.mid`` or ``.midi`` (case-insensitive).
    """

    candidate = Path(path)
    if candidate.suffix.lower() not in MIDI_SUFFIXES:
        raise ValueError(f"The path must point to a MIDI file (.mid or .midi): {path}")
    return candidate


def default_output_path(
    output_dir: Optional[Union[str, Path]] = None,
    *,
    now: Optional[datetime.datetime] = None,
) -> Path:
    """Return a timestamped ``.mid`` path inside ``output_dir``.

    The directory defaults to :data:`harmony_fitness.DEFAULT_OUTPUT_DIR` and
    is not created here; :func:`harmony_fitness.midi_io.save_lines` creates it
    when writing.
    """

    directory = Path(output_dir).expanduser() if output_dir else DEFAULT_OUTPUT_DIR
    stamp = (now or datetime.datetime.now()).strftime("%Y%m%d-%H%M%S")
    return directory / f"harmony-{stamp}.mid"


def parse_pitch_range(text: str) -> Tuple[int, int]:
    """Parse ``"MIN-MAX"`` into a validated ``(min_pitch, max_pitch)`` tuple.

    Whitespace around either number is ignored.

    Raises
    ------
    ValueError
        If ``text`` is malformed or the bounds are invalid MIDI pitches.
    """

    parts = text.strip().split("-")
    if len(parts) != 2:
        raise ValueError("Pitch range must be in the form 'min-max', e.g. '48-60'.")
    try:
        min_pitch = int(parts[0])
        max_pitch = int(parts[1])
    except ValueError as exc:
        raise ValueError("Pitch range must contain integer bounds.") from exc
    validate_pitch_bounds(min_pitch, max_pitch)
    return min_pitch, max_pitch
