"""Shared fixtures for the Harmony Fitness test-suite.

MIDI fixtures are assembled in memory with :mod:`mido` and written to
``tmp_path`` so no binary files need to live in the repository.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
from mido import Message, MetaMessage, MidiFile, MidiTrack

# Ensure the package is importable regardless of the current working directory
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from harmony_fitness import Line  # noqa: E402  # isort:skip


def make_track(events):
    """Return a ``MidiTrack`` from ``(absolute_tick, type, pitch, velocity)`` tuples.

    Events must already be sorted by tick.  ``type`` may also be ``"meta"``
    to insert a harmless marker message.
    """

    track = MidiTrack()
    last = 0
    for tick, kind, pitch, velocity in events:
        delta = tick - last
        last = tick
        if kind == "meta":
            track.append(MetaMessage("marker", text="m", time=delta))
        else:
            track.append(Message(kind, note=pitch, velocity=velocity, time=delta))
    return track


# Four quarter notes C-E-G-C at 480 ticks per beat, back to back.
SIMPLE_MELODY = [
    (0, "note_on", 60, 80),
    (480, "note_off", 60, 0),
    (480, "note_on", 64, 81),
    (960, "note_off", 64, 0),
    (960, "note_on", 67, 82),
    (1440, "note_off", 67, 0),
    (1440, "note_on", 72, 83),
    (1920, "note_off", 72, 0),
]


@pytest.fixture()
def melody_file(tmp_path):
    """Path to a single-track MIDI file containing :data:`SIMPLE_MELODY`."""

    mid = MidiFile(type=1, ticks_per_beat=480)
    mid.tracks.append(make_track(SIMPLE_MELODY))
    path = tmp_path / "melody.mid"
    mid.save(str(path))
    return path


@pytest.fixture()
def melody_line():
    """Melody line with the same notes as :data:`SIMPLE_MELODY`."""

    line = Line(480)
    line.add_note(0, 480, 60, 80)
    line.add_note(480, 480, 64, 81)
    line.add_note(960, 480, 67, 82)
    line.add_note(1440, 480, 72, 83)
    return line
