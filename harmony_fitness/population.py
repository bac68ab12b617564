"""Line populations and the harmonic fitness engine.

A :class:`LinePopulation` owns one melody line (always index ``0``) and any
number of harmony lines derived from it.  The fitness of a harmony note
measures how consonant it is with every note of the *other* lines that sounds
at the same time, weighted by the number of ticks the two notes overlap.

Normalisation
-------------
The weighted sum is divided either by ``duration * (lines - 1)``
(``normalization="lines"``, the default) or by the total overlap actually
observed (``normalization="overlap"``).  The first matches the classic
behaviour and stays within ``[0, 1]`` as long as each other line contributes
at most one overlapping note; several short notes of one line under a long
target can push it above ``1``.  The second is always within ``[0, 1]``.

Example
-------
>>> pop = LinePopulation(melody)
>>> pop.add_harmony_line(48, 60)
>>> pop.average_fitness()
0.62
"""

from __future__ import annotations

import random
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from .line import Line
from .note import Note, consonance_scores, validate_pitch_bounds

__all__ = ["NORMALIZATIONS", "LineAccess", "LinePopulation"]

NORMALIZATIONS = ("lines", "overlap")

_Arrays = Tuple[np.ndarray, np.ndarray, np.ndarray]


class LineAccess(NamedTuple):
    """A line returned by :meth:`LinePopulation.line_at` with its role."""

    line: Line
    is_melody: bool


class LinePopulation:
    """A melody together with the harmony lines derived from it.

    Parameters
    ----------
    melody:
        Reference line without pitch bounds.
    normalization:
        ``"lines"`` or ``"overlap"``; see the module docstring.

    Raises
    ------
    ValueError
        If ``melody`` carries pitch bounds or ``normalization`` is unknown.
    """

    def __init__(self, melody: Line, *, normalization: str = "lines") -> None:
        if melody.is_harmony:
            raise ValueError("The melody line must not carry pitch bounds")
        if normalization not in NORMALIZATIONS:
            raise ValueError(f"normalization must be one of {', '.join(NORMALIZATIONS)}")
        self._lines: List[Line] = [melody]
        self.normalization = normalization
        self._frozen = False

    @property
    def melody(self) -> Line:
        return self._lines[0]

    @property
    def lines(self) -> Tuple[Line, ...]:
        """All lines, melody first."""
        return tuple(self._lines)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Prevent further harmony lines from being added."""
        self._frozen = True

    def __len__(self) -> int:
        return len(self._lines)

    def add_harmony_line(
        self, min_pitch: int, max_pitch: int, rng: Optional[random.Random] = None
    ) -> Line:
        """Derive a harmony line from the melody and append it.

        The new line copies the melody's rhythm and velocities and draws a
        random pitch in ``[min_pitch, max_pitch]`` for each note.  The melody
        is not modified.

        Raises
        ------
        ValueError
            If the bounds are outside ``0-127`` or inverted.
        RuntimeError
            If the population has been frozen.
        """

        if self._frozen:
            raise RuntimeError("Cannot add a harmony line to a frozen population")
        validate_pitch_bounds(min_pitch, max_pitch)
        line = Line.from_template(self.melody, min_pitch, max_pitch, rng)
        self._lines.append(line)
        return line

    def harmony_line(self, index: int) -> Line:
        """Return the harmony line at ``index`` (``1`` or above)."""
        self._check_line_index(index)
        return self._lines[index]

    def line_at(self, index: int) -> LineAccess:
        """Return the line at ``index`` tagged with whether it is the melody.

        Unlike :meth:`harmony_line` this accepts index ``0``; callers decide
        what to do with the melody based on ``is_melody``.
        """

        if not 0 <= index < len(self._lines):
            raise IndexError(f"Line index {index} out of range for {len(self._lines)} lines")
        return LineAccess(self._lines[index], index == 0)

    def _check_line_index(self, line_index: int) -> None:
        if not 1 <= line_index < len(self._lines):
            raise ValueError(
                f"{line_index} is not a valid line index. It must address a harmony "
                f"line, i.e. 1 <= line_index <= {len(self._lines) - 1}"
            )

    def _check_indices(self, line_index: int, note_index: int) -> None:
        self._check_line_index(line_index)
        length = len(self._lines[line_index])
        if not 0 <= note_index < length:
            raise ValueError(
                f"{note_index} is not a valid note index. The line has {length} "
                f"notes, so 0 <= note_index <= {length - 1}"
            )

    def _score(self, line_index: int, target: Note, arrays: List[_Arrays]) -> float:
        if target.duration == 0:
            return 0.0

        total = 0.0
        observed = 0
        for i, (starts, ends, pitches) in enumerate(arrays):
            if i == line_index:
                continue
            mask = (starts < target.end) & (ends > target.timestamp)
            if not mask.any():
                continue
            overlap = np.minimum(ends[mask], target.end) - np.maximum(starts[mask], target.timestamp)
            total += float(np.dot(consonance_scores(target.pitch, pitches[mask]), overlap))
            observed += int(overlap.sum())

        if self.normalization == "overlap":
            return total / observed if observed else 0.0
        return total / (target.duration * (len(self._lines) - 1))

    def _arrays(self) -> List[_Arrays]:
        return [line.as_arrays() for line in self._lines]

    def pitch_fitness(self, line_index: int, note_index: int) -> float:
        """Return the harmonic fitness of one harmony note.

        Parameters
        ----------
        line_index:
            Index of a harmony line (the melody at ``0`` is not scored).
        note_index:
            Index of the note within that line.

        Returns
        -------
        float
            Overlap-weighted consonance against all other lines, normalised as
            configured. A zero-length note scores ``0.0``.

        Raises
        ------
        ValueError
            If either index is invalid.
        """

        self._check_indices(line_index, note_index)
        target = self._lines[line_index].notes[note_index]
        return self._score(line_index, target, self._arrays())

    def line_fitness(self, line_index: int) -> List[float]:
        """Return :meth:`pitch_fitness` for every note of a harmony line."""

        self._check_line_index(line_index)
        arrays = self._arrays()
        return [self._score(line_index, note, arrays) for note in self._lines[line_index]]

    def average_fitness(self) -> float:
        """Return the mean :meth:`pitch_fitness` over all harmony notes.

        Melody notes only contribute as overlap partners.

        Raises
        ------
        ValueError
            If the harmony lines contain no notes at all.
        """

        arrays = self._arrays()
        scores = [
            self._score(line_index, note, arrays)
            for line_index in range(1, len(self._lines))
            for note in self._lines[line_index]
        ]
        if not scores:
            raise ValueError("The population has no harmony notes to score")
        return float(np.mean(scores))
