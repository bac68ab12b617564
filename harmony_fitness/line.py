"""Ordered note containers with tempo metadata.

A :class:`Line` holds the notes of one voice together with the timing
information needed to write it back to MIDI (``ticks_per_beat`` and the
``division_type`` of the source file).  Harmony lines additionally carry the
pitch range their notes were drawn from.

Example
-------
>>> melody = Line(480)
>>> melody.add_note(0, 480, 60, 80)
>>> harmony = Line.from_template(melody, 55, 65)
>>> harmony.timestamp_at(0), harmony.duration_at(0)
(0, 480)
"""

from __future__ import annotations

import random
from enum import Enum
from typing import Iterator, List, Optional, Tuple

import numpy as np

from . import UNRESOLVED
from .note import Note, validate_pitch_bounds

__all__ = ["DivisionType", "Line"]


class DivisionType(Enum):
    """Timing base of a sequence.

    ``PPQ`` sequences count ticks per quarter note; the SMPTE variants count
    ticks per video frame at the given frame rate.
    """

    PPQ = 0.0
    SMPTE_24 = 24.0
    SMPTE_25 = 25.0
    SMPTE_30DROP = 29.97
    SMPTE_30 = 30.0

    @property
    def is_smpte(self) -> bool:
        return self is not DivisionType.PPQ

    @property
    def frames_per_second(self) -> int:
        """Frame rate as stored in a MIDI file header (``0`` for PPQ)."""
        return {
            DivisionType.PPQ: 0,
            DivisionType.SMPTE_24: 24,
            DivisionType.SMPTE_25: 25,
            DivisionType.SMPTE_30DROP: 29,
            DivisionType.SMPTE_30: 30,
        }[self]

    @classmethod
    def from_frames_per_second(cls, fps: int) -> "DivisionType":
        for member in cls:
            if member.is_smpte and member.frames_per_second == fps:
                return member
        raise ValueError(f"Unsupported SMPTE frame rate: {fps}")


class Line:
    """Ordered sequence of :class:`Note` objects for one voice.

    Parameters
    ----------
    ticks_per_beat:
        Positive timing resolution, usually taken from a MIDI file header or
        from another line so lines stay in sync.
    division_type:
        Timing base of ``ticks_per_beat``.
    min_pitch, max_pitch:
        Pitch bounds of a harmony line. Both must be given or both omitted;
        melody lines have no bounds.
    notes:
        Initial notes. The list is copied but the notes are not.
    """

    def __init__(
        self,
        ticks_per_beat: int,
        division_type: DivisionType = DivisionType.PPQ,
        *,
        min_pitch: Optional[int] = None,
        max_pitch: Optional[int] = None,
        notes: Optional[List[Note]] = None,
    ) -> None:
        if ticks_per_beat <= 0:
            raise ValueError(f"ticks_per_beat must be positive, got {ticks_per_beat}")
        if not isinstance(division_type, DivisionType):
            raise ValueError(f"division_type must be a DivisionType, got {division_type!r}")
        if (min_pitch is None) != (max_pitch is None):
            raise ValueError("min_pitch and max_pitch must be supplied together")
        if min_pitch is not None:
            validate_pitch_bounds(min_pitch, max_pitch)

        self.ticks_per_beat = ticks_per_beat
        self.division_type = division_type
        self.min_pitch = min_pitch
        self.max_pitch = max_pitch
        self._notes: List[Note] = list(notes) if notes else []

    @classmethod
    def from_template(
        cls,
        template: "Line",
        min_pitch: int,
        max_pitch: int,
        rng: Optional[random.Random] = None,
    ) -> "Line":
        """Derive a harmony line from ``template``.

        Each template note is copied so the new line keeps the template's
        timestamps, durations and velocities, then every copy receives an
        independent random pitch in ``[min_pitch, max_pitch]``.  The template
        itself is left untouched.

        Raises
        ------
        ValueError
            If the bounds are outside ``0-127`` or inverted.
        """

        validate_pitch_bounds(min_pitch, max_pitch)
        line = cls(
            template.ticks_per_beat,
            template.division_type,
            min_pitch=min_pitch,
            max_pitch=max_pitch,
            notes=[note.copy() for note in template],
        )
        for note in line:
            note.mutate_pitch(min_pitch, max_pitch, rng)
        return line

    @classmethod
    def from_file(cls, path: str, *, track: Optional[int] = None, pairing: str = "queue") -> "Line":
        """Load a melody line from the MIDI file at ``path``.

        Thin wrapper around :func:`harmony_fitness.midi_io.read_line`.
        """

        from .midi_io import read_line  # local import avoids circular dependency

        return read_line(path, track=track, pairing=pairing)

    @property
    def is_harmony(self) -> bool:
        """``True`` when the line carries pitch bounds."""
        return self.min_pitch is not None

    @property
    def notes(self) -> List[Note]:
        """The notes of this line in insertion order."""
        return self._notes

    @property
    def end_tick(self) -> int:
        """Latest tick at which any note of the line is still sounding."""
        return max((note.end for note in self._notes), default=0)

    def add_note(self, timestamp: int, duration: int, pitch: int, velocity: int) -> Note:
        """Append a new note built from the four values and return it.

        Raises
        ------
        ValueError
            If any argument is the unresolved sentinel ``-1`` or otherwise
            invalid for a :class:`Note`.
        """

        if UNRESOLVED in (timestamp, duration, pitch, velocity):
            raise ValueError(f"Input should not be {UNRESOLVED}")
        note = Note(timestamp, duration, pitch, velocity)
        self._notes.append(note)
        return note

    def append(self, note: Note) -> None:
        self._notes.append(note)

    def _check_index(self, i: int) -> None:
        if i < 0:
            raise IndexError("Index should not be negative")
        if i >= len(self._notes):
            raise IndexError(f"Index {i} out of bounds for line of {len(self._notes)} notes")

    def note_at(self, i: int) -> Note:
        """Return the note at position ``i`` (negative indices are rejected)."""
        self._check_index(i)
        return self._notes[i]

    def timestamp_at(self, i: int) -> int:
        return self.note_at(i).timestamp

    def duration_at(self, i: int) -> int:
        return self.note_at(i).duration

    def pitch_at(self, i: int) -> int:
        return self.note_at(i).pitch

    def velocity_at(self, i: int) -> int:
        return self.note_at(i).velocity

    def notes_within_time_frame(self, start: int, duration: int) -> List[Tuple[Note, int]]:
        """Return ``(note, overlap)`` pairs for notes sounding in a window.

        The window is the half-open interval ``[start, start + duration)``.
        A note overlaps when it starts before the window ends and ends after
        the window starts; ``overlap`` is the number of shared ticks.  Notes
        are returned in line order.

        This is the per-note reference for the vectorised overlap used by
        :class:`~harmony_fitness.population.LinePopulation`.
        """

        if start < 0 or duration < 0:
            raise ValueError("start and duration must be non-negative")
        window_end = start + duration
        result: List[Tuple[Note, int]] = []
        for note in self._notes:
            if note.timestamp < window_end and note.end > start:
                result.append((note, min(note.end, window_end) - max(note.timestamp, start)))
        return result

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(starts, ends, pitches)`` as ``int64`` arrays."""

        starts = np.fromiter((n.timestamp for n in self._notes), dtype=np.int64, count=len(self._notes))
        ends = np.fromiter((n.end for n in self._notes), dtype=np.int64, count=len(self._notes))
        pitches = np.fromiter((n.pitch for n in self._notes), dtype=np.int64, count=len(self._notes))
        return starts, ends, pitches

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(self._notes)

    def __repr__(self) -> str:
        bounds = ""
        if self.is_harmony:
            bounds = f", min_pitch={self.min_pitch}, max_pitch={self.max_pitch}"
        return (
            f"Line({len(self._notes)} notes, ticks_per_beat={self.ticks_per_beat}, "
            f"division_type={self.division_type.name}{bounds})"
        )
