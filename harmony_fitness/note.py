"""Note value type and interval consonance scoring.

A :class:`Note` is one resolved MIDI note: where it starts, how long it lasts
(both in ticks), its pitch and its velocity.  Notes are the building blocks of
:class:`~harmony_fitness.line.Line` objects.

Consonance is approximated by a four-tier heuristic over the absolute
semitone distance between two pitches.  The tiers are checked in order and
the first match wins:

======================================  =====
Distance                                Score
======================================  =====
``0`` (same pitch)                      0.25
multiple of 12 or 7 (octave / fifth)    1.0
multiple of 3, 4, 8 or 9 (3rds / 6ths)  0.75
anything else                           0.0
======================================  =====

Unisons are deliberately scored below the perfect intervals because two
voices on the same pitch add nothing harmonically.

Example
-------
>>> Note(0, 480, 60, 80).consonance_score(Note(0, 480, 67, 80))
1.0
"""

from __future__ import annotations

import random
from typing import Optional, Sequence, Union

import numpy as np

from . import MAX_PITCH, MAX_VELOCITY, MIN_PITCH, MIN_VELOCITY, UNRESOLVED

__all__ = [
    "Note",
    "UNISON_SCORE",
    "PERFECT_SCORE",
    "IMPERFECT_SCORE",
    "DISSONANT_SCORE",
    "interval_score",
    "consonance_scores",
    "validate_pitch_bounds",
]

UNISON_SCORE = 0.25
PERFECT_SCORE = 1.0
IMPERFECT_SCORE = 0.75
DISSONANT_SCORE = 0.0

_PERFECT_MODULI = (12, 7)
_IMPERFECT_MODULI = (3, 4, 8, 9)


def interval_score(steps: int) -> float:
    """Return the consonance score for a distance of ``steps`` semitones."""

    steps = abs(steps)
    if steps == 0:
        return UNISON_SCORE
    if any(steps % m == 0 for m in _PERFECT_MODULI):
        return PERFECT_SCORE
    if any(steps % m == 0 for m in _IMPERFECT_MODULI):
        return IMPERFECT_SCORE
    return DISSONANT_SCORE


def consonance_scores(pitch: int, pitches: Union[Sequence[int], np.ndarray]) -> np.ndarray:
    """Return consonance scores between ``pitch`` and each entry of ``pitches``.

    This is the vectorised counterpart of :func:`interval_score`.
    ``np.select`` evaluates the conditions in order, which reproduces the
    first-match-wins priority of the scalar version.

    Parameters
    ----------
    pitch:
        Reference MIDI pitch.
    pitches:
        Pitches to compare against.

    Returns
    -------
    numpy.ndarray
        ``float64`` array with the same length as ``pitches``.
    """

    steps = np.abs(np.asarray(pitches, dtype=np.int64) - int(pitch))
    perfect = np.zeros(steps.shape, dtype=bool)
    for m in _PERFECT_MODULI:
        perfect |= steps % m == 0
    imperfect = np.zeros(steps.shape, dtype=bool)
    for m in _IMPERFECT_MODULI:
        imperfect |= steps % m == 0
    return np.select(
        [steps == 0, perfect, imperfect],
        [UNISON_SCORE, PERFECT_SCORE, IMPERFECT_SCORE],
        default=DISSONANT_SCORE,
    ).astype(np.float64)


def validate_pitch_bounds(min_pitch: int, max_pitch: int) -> None:
    """Raise ``ValueError`` unless ``0 <= min_pitch <= max_pitch <= 127``."""

    if not MIN_PITCH <= min_pitch <= MAX_PITCH:
        raise ValueError(
            f"min_pitch {min_pitch} out of range {MIN_PITCH}-{MAX_PITCH}"
        )
    if not MIN_PITCH <= max_pitch <= MAX_PITCH:
        raise ValueError(
            f"max_pitch {max_pitch} out of range {MIN_PITCH}-{MAX_PITCH}"
        )
    if min_pitch > max_pitch:
        raise ValueError(
            f"min_pitch {min_pitch} must not exceed max_pitch {max_pitch}"
        )


class Note:
    """A single resolved note.

    Parameters
    ----------
    timestamp:
        Tick offset of the note start from the beginning of the sequence.
    duration:
        Length of the note in ticks.
    pitch:
        MIDI note number ``0-127``.
    velocity:
        MIDI velocity ``0-127``.

    Raises
    ------
    ValueError
        If any field equals the unresolved sentinel ``-1`` or lies outside
        its valid range.
    """

    __slots__ = ("_timestamp", "_duration", "_pitch", "_velocity")

    def __init__(self, timestamp: int, duration: int, pitch: int, velocity: int) -> None:
        fields = {
            "timestamp": timestamp,
            "duration": duration,
            "pitch": pitch,
            "velocity": velocity,
        }
        for name, value in fields.items():
            if value == UNRESOLVED:
                raise ValueError(f"{name} must not be the unresolved sentinel {UNRESOLVED}")
        if timestamp < 0:
            raise ValueError(f"timestamp must be non-negative, got {timestamp}")
        if duration < 0:
            raise ValueError(f"duration must be non-negative, got {duration}")
        if not MIN_PITCH <= pitch <= MAX_PITCH:
            raise ValueError(f"pitch {pitch} out of range {MIN_PITCH}-{MAX_PITCH}")
        if not MIN_VELOCITY <= velocity <= MAX_VELOCITY:
            raise ValueError(
                f"velocity {velocity} out of range {MIN_VELOCITY}-{MAX_VELOCITY}"
            )

        self._timestamp = int(timestamp)
        self._duration = int(duration)
        self._pitch = int(pitch)
        self._velocity = int(velocity)

    @property
    def timestamp(self) -> int:
        return self._timestamp

    @property
    def duration(self) -> int:
        return self._duration

    @property
    def pitch(self) -> int:
        return self._pitch

    @property
    def velocity(self) -> int:
        return self._velocity

    @property
    def end(self) -> int:
        """Tick at which the note stops sounding."""
        return self._timestamp + self._duration

    def consonance_score(self, other: "Note") -> float:
        """Return how consonant this note sounds against ``other``.

        The result is one of ``0.0``, ``0.25``, ``0.75`` or ``1.0`` and is
        symmetric in its two operands.
        """

        return interval_score(self._pitch - other.pitch)

    def overlap(self, other: "Note") -> int:
        """Return the number of ticks during which both notes sound.

        Scalar form of the overlap rule that
        :meth:`~harmony_fitness.population.LinePopulation.pitch_fitness` applies
        to whole lines with numpy masks.
        """

        return max(0, min(self.end, other.end) - max(self._timestamp, other.timestamp))

    def mutate_pitch(
        self, min_pitch: int, max_pitch: int, rng: Optional[random.Random] = None
    ) -> int:
        """Replace the pitch with a uniform random value in ``[min_pitch, max_pitch]``.

        Parameters
        ----------
        min_pitch, max_pitch:
            Inclusive bounds for the new pitch.
        rng:
            Random source. The module level :mod:`random` functions are used
            when omitted; pass a seeded :class:`random.Random` for
            reproducible results.

        Returns
        -------
        int
            The newly assigned pitch.

        Raises
        ------
        ValueError
            If either bound is outside ``0-127`` or ``min_pitch > max_pitch``.
        """

        validate_pitch_bounds(min_pitch, max_pitch)
        source = rng if rng is not None else random
        self._pitch = source.randint(min_pitch, max_pitch)
        return self._pitch

    def copy(self) -> "Note":
        return Note(self._timestamp, self._duration, self._pitch, self._velocity)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Note):
            return NotImplemented
        return (
            self._timestamp == other._timestamp
            and self._duration == other._duration
            and self._pitch == other._pitch
            and self._velocity == other._velocity
        )

    __hash__ = None  # pitch is mutable

    def __repr__(self) -> str:
        return (
            f"Note(timestamp={self._timestamp}, duration={self._duration}, "
            f"pitch={self._pitch}, velocity={self._velocity})"
        )

    def __getstate__(self):
        return (self._timestamp, self._duration, self._pitch, self._velocity)

    def __setstate__(self, state) -> None:
        self._timestamp, self._duration, self._pitch, self._velocity = state
