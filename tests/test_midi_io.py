"""Tests for MIDI decoding and encoding in :mod:`harmony_fitness.midi_io`.

The suite verifies:

* note pairing for both strategies, including overlapping notes of the same
  pitch, stray note-offs and unterminated note-ons;
* header translation for PPQ and SMPTE divisions;
* the layout of encoded tracks (preamble, monotonic events, trailing pad);
* that decoding, encoding and decoding again preserves every note.
"""

from __future__ import annotations

import logging

import pytest
from mido import MidiFile

from conftest import SIMPLE_MELODY, make_track
from harmony_fitness import DivisionType, Line, Note
from harmony_fitness.midi_io import (
    OMNI_ON_CONTROL,
    POLY_ON_CONTROL,
    REFERENCE_PROGRAM,
    TRAILING_PAD,
    UnmatchedNoteError,
    absolute_ticks,
    build_midi_file,
    decode_track,
    division_from_header,
    encode_line,
    header_from_division,
    read_line,
    read_lines,
    save_lines,
)


def _fields(notes):
    return [(n.timestamp, n.duration, n.pitch, n.velocity) for n in notes]


def test_decode_simple_track():
    """Sequential notes decode to matching timestamps and durations."""

    notes = decode_track(make_track(SIMPLE_MELODY))
    assert _fields(notes) == [
        (0, 480, 60, 80),
        (480, 480, 64, 81),
        (960, 480, 67, 82),
        (1440, 480, 72, 83),
    ]


def test_decode_skips_other_pitches_and_messages():
    """Interleaved notes and non-note messages do not disturb pairing."""

    track = make_track(
        [
            (0, "note_on", 60, 90),
            (0, "meta", 0, 0),
            (100, "note_on", 64, 70),
            (200, "note_off", 64, 0),
            (300, "note_off", 60, 0),
        ]
    )
    for pairing in ("queue", "lookahead"):
        assert _fields(decode_track(track, pairing=pairing)) == [
            (0, 300, 60, 90),
            (100, 100, 64, 70),
        ]


def test_queue_pairing_splits_overlapping_same_pitch():
    """Each note-off closes the oldest pending note-on of its pitch."""

    track = make_track(
        [
            (0, "note_on", 60, 100),
            (100, "note_on", 60, 50),
            (200, "note_off", 60, 0),
            (400, "note_off", 60, 0),
        ]
    )
    assert _fields(decode_track(track)) == [(0, 200, 60, 100), (100, 300, 60, 50)]


def test_lookahead_pairing_reproduces_legacy_result():
    """Both overlapping starts close on the first following note-off."""

    track = make_track(
        [
            (0, "note_on", 60, 100),
            (100, "note_on", 60, 50),
            (200, "note_off", 60, 0),
            (400, "note_off", 60, 0),
        ]
    )
    assert _fields(decode_track(track, pairing="lookahead")) == [
        (0, 200, 60, 100),
        (100, 100, 60, 50),
    ]


@pytest.mark.parametrize("pairing", ["queue", "lookahead"])
def test_unmatched_note_on_raises(pairing):
    """A start without a stop aborts decoding instead of inventing a duration."""

    track = make_track(
        [
            (0, "note_on", 60, 100),
            (480, "note_off", 60, 0),
            (480, "note_on", 62, 100),
            (960, "note_off", 61, 0),
        ]
    )
    with pytest.raises(UnmatchedNoteError) as info:
        decode_track(track, pairing=pairing, track_index=3)
    assert info.value.pitch == 62
    assert info.value.tick == 480
    assert info.value.track_index == 3
    assert isinstance(info.value, ValueError)


def test_stray_note_off_is_ignored():
    """A stop with no pending start produces no note."""

    track = make_track([(0, "note_off", 50, 0), (10, "note_on", 60, 80), (20, "note_off", 60, 0)])
    assert _fields(decode_track(track)) == [(10, 10, 60, 80)]


def test_velocity_zero_note_on():
    """``note_on`` with velocity 0 is a stop unless configured otherwise."""

    track = make_track([(0, "note_on", 60, 80), (240, "note_on", 60, 0)])
    assert _fields(decode_track(track)) == [(0, 240, 60, 80)]
    with pytest.raises(UnmatchedNoteError):
        decode_track(track, velocity_zero_is_stop=False)


def test_unknown_pairing_mode():
    with pytest.raises(ValueError):
        decode_track(make_track(SIMPLE_MELODY), pairing="nearest")


@pytest.mark.parametrize(
    "ticks, division",
    [
        (480, DivisionType.PPQ),
        (96, DivisionType.PPQ),
        (40, DivisionType.SMPTE_25),
        (80, DivisionType.SMPTE_24),
        (4, DivisionType.SMPTE_30DROP),
        (100, DivisionType.SMPTE_30),
    ],
)
def test_header_division_roundtrip(ticks, division):
    """Header words translate back to the same resolution and division."""

    word = header_from_division(ticks, division)
    assert division_from_header(word) == (ticks, division)
    assert (word < 0) == division.is_smpte


def test_header_rejects_oversized_resolution():
    with pytest.raises(ValueError):
        header_from_division(256, DivisionType.SMPTE_25)
    with pytest.raises(ValueError):
        header_from_division(40000, DivisionType.PPQ)


def test_encode_line_layout(melody_line):
    """Encoded tracks carry the preamble, note pairs and padded end marker."""

    track = encode_line(melody_line, name="Melody")
    types = [msg.type for msg in track]
    assert types[:5] == [
        "sysex",
        "track_name",
        "control_change",
        "control_change",
        "program_change",
    ]
    assert track[1].name == "Melody"
    assert [track[2].control, track[3].control] == [OMNI_ON_CONTROL, POLY_ON_CONTROL]
    assert track[4].program == REFERENCE_PROGRAM
    assert types.count("note_on") == types.count("note_off") == 4
    assert types[-1] == "end_of_track"

    timed = list(absolute_ticks(track))
    assert timed[-1][0] == melody_line.end_tick + TRAILING_PAD
    assert all(msg.time >= 0 for msg in track)
    offs = [msg for msg in track if msg.type == "note_off"]
    assert all(msg.velocity == 0 for msg in offs)


def test_encode_sorts_unordered_notes():
    """Notes appended out of order still produce a monotonic event stream."""

    line = Line(480, notes=[Note(960, 480, 67, 80), Note(0, 480, 60, 80), Note(480, 0, 64, 80)])
    track = encode_line(line)
    assert all(msg.time >= 0 for msg in track)
    decoded = decode_track(track)
    assert _fields(decoded) == [(0, 480, 60, 80), (480, 0, 64, 80), (960, 480, 67, 80)]


def test_back_to_back_same_pitch_notes_roundtrip():
    """A note ending where the next same-pitch note starts stays separate."""

    line = Line(480, notes=[Note(0, 480, 60, 80), Note(480, 480, 60, 90)])
    for pairing in ("queue", "lookahead"):
        assert _fields(decode_track(encode_line(line), pairing=pairing)) == _fields(line)


def test_read_line(melody_file):
    """Reading a file yields a melody line with the header's resolution."""

    line = read_line(melody_file)
    assert line.ticks_per_beat == 480
    assert line.division_type is DivisionType.PPQ
    assert not line.is_harmony
    assert [n.pitch for n in line] == [60, 64, 67, 72]


@pytest.mark.parametrize("name", ["melody.txt", "melody", "melody.mid.bak"])
def test_read_line_rejects_suffix(tmp_path, name):
    """The suffix is validated before the file is touched."""

    with pytest.raises(ValueError, match="MIDI file"):
        read_line(tmp_path / name)


def test_read_line_track_selection(tmp_path):
    """All tracks are appended in order unless one is selected."""

    mid = MidiFile(type=1, ticks_per_beat=96)
    mid.tracks.append(make_track([(0, "note_on", 60, 80), (96, "note_off", 60, 0)]))
    mid.tracks.append(make_track([(0, "note_on", 48, 70), (192, "note_off", 48, 0)]))
    path = tmp_path / "two.midi"
    mid.save(str(path))

    assert [n.pitch for n in read_line(path)] == [60, 48]
    assert [n.pitch for n in read_line(path, track=1)] == [48]
    with pytest.raises(IndexError):
        read_line(path, track=2)

    lines = read_lines(path)
    assert [len(line) for line in lines] == [1, 1]
    assert lines[1].duration_at(0) == 192


def test_read_line_unmatched_aborts(tmp_path):
    """An unterminated note in any track fails the whole read."""

    mid = MidiFile(type=1, ticks_per_beat=480)
    mid.tracks.append(make_track(SIMPLE_MELODY))
    mid.tracks.append(make_track([(0, "note_on", 50, 80)]))
    path = tmp_path / "broken.mid"
    mid.save(str(path))

    with pytest.raises(UnmatchedNoteError) as info:
        read_line(path)
    assert info.value.track_index == 1


def test_roundtrip_preserves_notes(melody_file, tmp_path):
    """Decode, encode and decode again keeps every note unchanged."""

    original = read_line(melody_file)
    out = tmp_path / "nested" / "copy.mid"
    save_lines([original], out)

    again = read_line(out)
    assert len(again) == len(original)
    assert _fields(again) == _fields(original)
    assert again.ticks_per_beat == original.ticks_per_beat


def test_roundtrip_smpte_header(tmp_path):
    """SMPTE timing survives a write and read through mido."""

    line = Line(40, DivisionType.SMPTE_25, notes=[Note(0, 40, 60, 80)])
    out = tmp_path / "smpte.mid"
    save_lines([line], out)
    again = read_line(out)
    assert (again.ticks_per_beat, again.division_type) == (40, DivisionType.SMPTE_25)
    assert _fields(again) == [(0, 40, 60, 80)]


def test_build_midi_file_uses_first_line_metadata(melody_line):
    """One track per line; header timing comes from the first line."""

    other = Line(96, notes=[Note(0, 96, 40, 80)])
    mid = build_midi_file([melody_line, other])
    assert mid.ticks_per_beat == 480
    assert len(mid.tracks) == 2
    assert mid.tracks[0][1].name == "Melody"
    with pytest.raises(ValueError):
        build_midi_file([])


def test_save_lines_default_path(melody_line, tmp_path, caplog):
    """Without a path, a timestamped file is written to ``output_dir``."""

    caplog.set_level(logging.INFO)
    save_lines([melody_line], output_dir=tmp_path / "out")
    written = list((tmp_path / "out").glob("harmony-*.mid"))
    assert len(written) == 1
    assert "MIDI file saved" in caplog.text


def test_save_lines_defaults_to_output_dir(melody_line, tmp_path, monkeypatch):
    """Without a path or directory, files land in the relative ``output`` folder."""

    monkeypatch.chdir(tmp_path)
    save_lines([melody_line])
    assert len(list((tmp_path / "output").glob("harmony-*.mid"))) == 1


def test_save_lines_rejects_suffix(melody_line, tmp_path):
    with pytest.raises(ValueError):
        save_lines([melody_line], tmp_path / "out.wav")


def test_lookahead_pairing_scans_past_other_pitches():
    """A start is closed by the first later stop of its pitch, however far away."""

    events = [(0, "note_on", 60, 90)]
    for k in range(50):
        events.append((k + 1, "note_on", 30 + k % 20, 60))
        events.append((k + 1, "note_off", 30 + k % 20, 0))
    events.append((100, "note_off", 60, 0))
    notes = decode_track(make_track(events), pairing="lookahead")
    assert (notes[0].timestamp, notes[0].duration, notes[0].pitch) == (0, 100, 60)
    assert len(notes) == 51
