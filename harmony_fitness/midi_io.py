"""Conversion between MIDI files and :class:`~harmony_fitness.line.Line` objects.

Decoding
--------
A MIDI track is a stream of messages whose ``time`` fields hold delta ticks.
:func:`decode_track` accumulates those deltas into absolute ticks and pairs
every note-start with a note-stop of the same pitch.  Two pairing strategies
are available:

``"queue"``
    Pending starts are kept in one FIFO per pitch and each stop closes the
    oldest pending start of its pitch.  Overlapping notes of the same pitch
    are therefore split correctly.
``"lookahead"``
    Legacy behaviour: from each start, scan forward for the first stop of the
    same pitch.  A single stop may close several overlapping starts.

Either way the resulting notes are ordered by their start events and a start
that is never closed raises :class:`UnmatchedNoteError`.

Encoding
--------
:func:`encode_line` emits a fixed set-up preamble, one note-on/note-off pair
per note and an end-of-track marker :data:`TRAILING_PAD` ticks after the last
note ends.  Events are sorted by absolute tick before being converted back to
delta times so the writer always receives a monotonic stream.

Example
-------
>>> line = read_line("melody.mid")
>>> save_lines([line], "copy.mid")
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import mido
from mido import Message, MetaMessage, MidiFile, MidiTrack

from .line import DivisionType, Line
from .note import Note
from .utils import default_output_path, validate_midi_path

__all__ = [
    "REFERENCE_PROGRAM",
    "TRAILING_PAD",
    "PAIRING_MODES",
    "UnmatchedNoteError",
    "absolute_ticks",
    "division_from_header",
    "header_from_division",
    "decode_track",
    "read_line",
    "read_lines",
    "encode_line",
    "build_midi_file",
    "save_lines",
]

# Ticks appended after the final note-off so the end-of-track marker never
# truncates the last note.
TRAILING_PAD = 20

# Acoustic Grand Piano. Every exported track uses the same instrument.
REFERENCE_PROGRAM = 0

# General MIDI "System On" message without the F0/F7 framing bytes, which
# mido adds itself.
GM_SYSTEM_ON = (0x7E, 0x7F, 0x09, 0x01)

# Channel mode controllers.
OMNI_ON_CONTROL = 125
POLY_ON_CONTROL = 127

PAIRING_MODES = ("queue", "lookahead")

_START = "start"
_STOP = "stop"


class UnmatchedNoteError(ValueError):
    """A note-start has no matching note-stop before the end of its track."""

    def __init__(self, pitch: int, tick: int, track_index: Optional[int] = None) -> None:
        self.pitch = pitch
        self.tick = tick
        self.track_index = track_index
        where = f" in track {track_index}" if track_index is not None else ""
        super().__init__(
            f"Reached the end of the track{where} without finding the note-off "
            f"for pitch {pitch} started at tick {tick}"
        )


def division_from_header(value: int) -> Tuple[int, DivisionType]:
    """Translate the signed header division word into ``(ticks, DivisionType)``.

    Non-negative values count ticks per quarter note.  Negative values encode
    an SMPTE frame rate in the high byte (two's complement) and ticks per
    frame in the low byte.
    """

    if value >= 0:
        return value, DivisionType.PPQ
    fps = -(value >> 8)
    ticks_per_frame = value & 0xFF
    return ticks_per_frame, DivisionType.from_frames_per_second(fps)


def header_from_division(ticks: int, division_type: DivisionType) -> int:
    """Inverse of :func:`division_from_header`."""

    if not division_type.is_smpte:
        if not 0 < ticks <= 0x7FFF:
            raise ValueError(f"ticks_per_beat must be between 1 and 32767, got {ticks}")
        return ticks
    if not 0 < ticks <= 0xFF:
        raise ValueError(f"SMPTE ticks per frame must be between 1 and 255, got {ticks}")
    return (-division_type.frames_per_second << 8) | ticks


def _classify(msg, velocity_zero_is_stop: bool) -> Optional[str]:
    """Return ``"start"``, ``"stop"`` or ``None`` for a MIDI message."""

    kind = getattr(msg, "type", None)
    if kind == "note_on":
        if velocity_zero_is_stop and msg.velocity == 0:
            return _STOP
        return _START
    if kind == "note_off":
        return _STOP
    return None


def absolute_ticks(track: Iterable) -> Iterator[Tuple[int, "mido.Message"]]:
    """Yield ``(absolute_tick, message)`` pairs for a delta-timed ``track``."""

    tick = 0
    for msg in track:
        tick += msg.time
        yield tick, msg


def _absolute_events(
    track: Iterable, velocity_zero_is_stop: bool
) -> List[Tuple[int, Optional[str], int, int]]:
    """Return ``(tick, kind, pitch, velocity)`` for every message in ``track``."""

    events = []
    for tick, msg in absolute_ticks(track):
        kind = _classify(msg, velocity_zero_is_stop)
        if kind is None:
            events.append((tick, None, -1, -1))
        else:
            events.append((tick, kind, msg.note, msg.velocity))
    return events


def _pair_with_queue(events, track_index: Optional[int]) -> List[Note]:
    slots: List[List[int]] = []
    pending: Dict[int, Deque[int]] = {}
    for tick, kind, pitch, velocity in events:
        if kind == _START:
            pending.setdefault(pitch, deque()).append(len(slots))
            slots.append([tick, -1, pitch, velocity])
        elif kind == _STOP:
            queue = pending.get(pitch)
            if not queue:
                logging.debug("Ignoring note-off for pitch %d at tick %d with no pending note-on", pitch, tick)
                continue
            slot = slots[queue.popleft()]
            slot[1] = tick - slot[0]

    for slot in slots:
        if slot[1] == -1:
            raise UnmatchedNoteError(slot[2], slot[0], track_index)
    return [Note(*slot) for slot in slots]


def _pair_with_lookahead(events, track_index: Optional[int]) -> List[Note]:
    notes: List[Note] = []
    for i, (tick, kind, pitch, velocity) in enumerate(events):
        if kind != _START:
            continue
        for j in range(i + 1, len(events)):
            stop_tick, stop_kind, stop_pitch, _ = events[j]
            if stop_kind == _STOP and stop_pitch == pitch:
                notes.append(Note(tick, stop_tick - tick, pitch, velocity))
                break
        else:
            raise UnmatchedNoteError(pitch, tick, track_index)
    return notes


def decode_track(
    track: Iterable,
    *,
    pairing: str = "queue",
    velocity_zero_is_stop: bool = True,
    track_index: Optional[int] = None,
) -> List[Note]:
    """Convert one track's message stream into notes.

    Parameters
    ----------
    track:
        Iterable of mido messages (typically a :class:`mido.MidiTrack`) whose
        ``time`` attribute holds delta ticks.
    pairing:
        ``"queue"`` (default) or ``"lookahead"``; see the module docstring.
    velocity_zero_is_stop:
        Treat ``note_on`` messages with velocity ``0`` as note-stops, as most
        sequencers write them.
    track_index:
        Optional index reported in :class:`UnmatchedNoteError` messages.

    Returns
    -------
    List[Note]
        Notes ordered by the position of their start events.

    Raises
    ------
    UnmatchedNoteError
        If a note-start has no matching note-stop.
    ValueError
        If ``pairing`` is unknown.
    """

    if pairing not in PAIRING_MODES:
        raise ValueError(f"pairing must be one of {', '.join(PAIRING_MODES)}")
    events = _absolute_events(track, velocity_zero_is_stop)
    if pairing == "queue":
        return _pair_with_queue(events, track_index)
    return _pair_with_lookahead(events, track_index)


def _open(path: Union[str, Path]) -> MidiFile:
    midi_path = validate_midi_path(path)
    return MidiFile(str(midi_path))


def read_line(
    path: Union[str, Path],
    *,
    track: Optional[int] = None,
    pairing: str = "queue",
    velocity_zero_is_stop: bool = True,
) -> Line:
    """Read a melody :class:`Line` from the MIDI file at ``path``.

    Timing metadata is taken once from the file header.  When ``track`` is
    ``None`` the notes of every track are appended in track order; otherwise
    only the selected track is decoded.

    Raises
    ------
    ValueError
        If ``path`` lacks a ``.mid``/``.midi`` suffix (checked before the file
        is opened).
    IndexError
        If ``track`` does not address a track of the file.
    UnmatchedNoteError
        If any decoded track contains an unterminated note.
    """

    mid = _open(path)
    ticks, division = division_from_header(mid.ticks_per_beat)
    line = Line(ticks, division)

    if track is None:
        selected = list(enumerate(mid.tracks))
    else:
        if not 0 <= track < len(mid.tracks):
            raise IndexError(f"Track {track} out of range; file has {len(mid.tracks)} tracks")
        selected = [(track, mid.tracks[track])]

    for index, midi_track in selected:
        for note in decode_track(
            midi_track,
            pairing=pairing,
            velocity_zero_is_stop=velocity_zero_is_stop,
            track_index=index,
        ):
            line.append(note)
    logging.info("Read %d notes from %s", len(line), path)
    return line


def read_lines(
    path: Union[str, Path],
    *,
    pairing: str = "queue",
    velocity_zero_is_stop: bool = True,
) -> List[Line]:
    """Read one :class:`Line` per track of ``path`` that contains notes."""

    mid = _open(path)
    ticks, division = division_from_header(mid.ticks_per_beat)
    lines: List[Line] = []
    for index, midi_track in enumerate(mid.tracks):
        notes = decode_track(
            midi_track,
            pairing=pairing,
            velocity_zero_is_stop=velocity_zero_is_stop,
            track_index=index,
        )
        if notes:
            lines.append(Line(ticks, division, notes=notes))
    logging.info("Read %d note-bearing tracks from %s", len(lines), path)
    return lines


def encode_line(
    line: Line,
    *,
    name: Optional[str] = None,
    program: int = REFERENCE_PROGRAM,
    channel: int = 0,
) -> MidiTrack:
    """Return a :class:`mido.MidiTrack` playing the notes of ``line``.

    The track starts with a General MIDI reset, a track name, omni-on and
    poly-on channel mode messages and a program change.  The notes follow as
    note-on/note-off pairs (note-offs carry velocity ``0``) and the track
    closes with an end-of-track marker :data:`TRAILING_PAD` ticks after the
    latest note end.
    """

    track = MidiTrack()
    track.append(Message("sysex", data=GM_SYSTEM_ON, time=0))
    track.append(MetaMessage("track_name", name=name or "Line", time=0))
    track.append(Message("control_change", channel=channel, control=OMNI_ON_CONTROL, value=0, time=0))
    track.append(Message("control_change", channel=channel, control=POLY_ON_CONTROL, value=0, time=0))
    track.append(Message("program_change", channel=channel, program=program, time=0))

    # (tick, order, sequence, message). At equal ticks note-offs precede
    # note-ons, except the off of a zero-length note which must follow its
    # own on.
    events: List[Tuple[int, int, int, Message]] = []
    for note in line:
        on = Message("note_on", channel=channel, note=note.pitch, velocity=note.velocity)
        off = Message("note_off", channel=channel, note=note.pitch, velocity=0)
        events.append((note.timestamp, 1, len(events), on))
        events.append((note.end, 0 if note.duration > 0 else 1, len(events), off))
    events.sort(key=lambda e: (e[0], e[1], e[2]))

    last = 0
    for tick, _order, _seq, msg in events:
        track.append(msg.copy(time=tick - last))
        last = tick

    end_of_track = line.end_tick + TRAILING_PAD
    track.append(MetaMessage("end_of_track", time=end_of_track - last))
    return track


def _track_name(index: int, line: Line) -> str:
    if index == 0 and not line.is_harmony:
        return "Melody"
    return f"Harmony {index}"


def build_midi_file(lines: Sequence[Line], *, program: int = REFERENCE_PROGRAM) -> MidiFile:
    """Return a type 1 :class:`mido.MidiFile` with one track per line.

    The header timing is taken from the first line.  Later lines are assumed
    to share it; this is not checked.

    Raises
    ------
    ValueError
        If ``lines`` is empty.
    """

    if not lines:
        raise ValueError("At least one line is required to build a MIDI file")
    first = lines[0]
    mid = MidiFile(
        type=1,
        ticks_per_beat=header_from_division(first.ticks_per_beat, first.division_type),
    )
    for index, line in enumerate(lines):
        if (line.ticks_per_beat, line.division_type) != (first.ticks_per_beat, first.division_type):
            logging.debug("Line %d timing differs from the first line; using the first line's header", index)
        mid.tracks.append(encode_line(line, name=_track_name(index, line), program=program))
    return mid


def save_lines(
    lines: Sequence[Line],
    path: Optional[Union[str, Path]] = None,
    *,
    output_dir: Optional[Union[str, Path]] = None,
    program: int = REFERENCE_PROGRAM,
) -> MidiFile:
    """Write ``lines`` to ``path`` and return the in-memory ``MidiFile``.

    When ``path`` is ``None`` a timestamped file name is generated inside
    ``output_dir`` (default :data:`harmony_fitness.DEFAULT_OUTPUT_DIR`).  The
    parent directory is created automatically.

    Raises
    ------
    ValueError
        If ``lines`` is empty or ``path`` lacks a MIDI suffix.
    OSError
        If the file cannot be written.
    """

    if path is None:
        path = default_output_path(output_dir)
    out = validate_midi_path(path).expanduser()
    mid = build_midi_file(lines, program=program)
    out.parent.mkdir(parents=True, exist_ok=True)
    mid.save(str(out))
    logging.info("MIDI file saved to %s", out)
    return mid
