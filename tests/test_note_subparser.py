"""Testes da leitura de notas, pausas e acordes."""

import pytest

from staccato.domain.errors import ParserError
from staccato.domain.models import NoteSettings
from staccato.domain.note_subparser import NoteSubparser
from staccato.domain.theory import Chord, Note


def _values(chord: Chord) -> list[int]:
    return [note.value for note in chord.get_notes()]


def test_note_default_octave() -> None:
    note = NoteSubparser().create_note('C')
    assert note.value == 60
    assert not note.octave_explicitly_set
    assert not note.duration_explicitly_set
    assert note.duration == pytest.approx(0.25)


def test_note_accidentals_and_octave() -> None:
    subparser = NoteSubparser()
    assert subparser.create_note('C#4').value == 49
    assert subparser.create_note('Eb5').value == 63
    assert subparser.create_note('BB3').value == 46


def test_numeric_and_rest_notes() -> None:
    subparser = NoteSubparser()
    assert subparser.create_note('[60]').value == 60
    assert subparser.create_note('72').value == 72
    rest = subparser.create_note('Rh')
    assert rest.is_rest
    assert rest.duration == pytest.approx(0.5)


def test_percussion_name_sets_flag() -> None:
    note = NoteSubparser().create_note('[BASS_DRUM]')
    assert note.is_percussion_note
    assert note.value == 36


def test_durations() -> None:
    subparser = NoteSubparser()
    assert subparser.duration_for_string('W') == pytest.approx(1.0)
    assert subparser.duration_for_string('HQ') == pytest.approx(0.75)
    assert subparser.duration_for_string('Q.') == pytest.approx(0.375)
    assert subparser.duration_for_string('W2') == pytest.approx(2.0)
    assert subparser.duration_for_string('/0.125') == pytest.approx(0.125)
    assert subparser.duration_for_string('Q*') == pytest.approx(0.25 * 2 / 3)
    assert subparser.duration_for_string('Q*5:4') == pytest.approx(0.25 * 4 / 5)


def test_invalid_duration() -> None:
    with pytest.raises(ParserError):
        NoteSubparser().duration_for_string('Z')


def test_ties() -> None:
    subparser = NoteSubparser()
    start = subparser.create_note('C5H-')
    end = subparser.create_note('C5-Q')
    assert start.is_start_of_tie and not start.is_end_of_tie
    assert end.is_end_of_tie and not end.is_start_of_tie
    assert end.duration == pytest.approx(0.25)


def test_velocities() -> None:
    note = NoteSubparser().create_note('C5QA100D20')
    assert note.on_velocity == 100
    assert note.off_velocity == 20


def test_velocity_out_of_range() -> None:
    with pytest.raises(ParserError):
        NoteSubparser().create_note('C5QA200')


def test_chord_uses_bass_octave() -> None:
    chord = NoteSubparser().create_chord('CMAJ')
    assert _values(chord) == [48, 52, 55]


def test_chord_inversions() -> None:
    subparser = NoteSubparser()
    assert _values(subparser.create_chord('C4MAJ^')) == [52, 55, 60]
    assert _values(subparser.create_chord('C4MAJ^^')) == [55, 60, 64]


def test_chord_bass_note_inversion() -> None:
    assert _values(NoteSubparser().create_chord('C4MAJ^E')) == [52, 55, 60]


def test_chord_bass_note_outside_chord_is_ignored() -> None:
    assert _values(NoteSubparser().create_chord('C4MAJ^D')) == [48, 52, 55]


def test_longest_chord_name_wins() -> None:
    chord = NoteSubparser().create_chord('C4MAJ7')
    assert chord.chord_type == 'MAJ7'


def test_too_many_inversions() -> None:
    with pytest.raises(ParserError):
        NoteSubparser().create_chord('C4MAJ^^^')


def test_custom_settings() -> None:
    subparser = NoteSubparser(NoteSettings(default_octave=4, default_duration=0.5))
    note = subparser.create_note('D')
    assert note.value == 50
    assert note.duration == pytest.approx(0.5)


def test_matches_rejects_garbage() -> None:
    subparser = NoteSubparser()
    assert subparser.matches('C5Q')
    assert subparser.matches('C+E_G')
    assert not subparser.matches('CZZ')
    assert not subparser.matches('V1')


def test_create_note_rejects_sequences() -> None:
    with pytest.raises(ParserError):
        NoteSubparser().create_note('C+E')


def test_note_from_string_uses_default_provider() -> None:
    assert Note.from_string('g') == Note(
        value=67, original_string='G', duration=0.25, is_first_note=True
    )


@pytest.mark.parametrize('text', ['G10MAJ', 'C10MAJ^^', 'G10MAJ^D'])
def test_chord_notes_above_range_are_rejected(text: str) -> None:
    with pytest.raises(ParserError) as info:
        NoteSubparser().create_chord(text)
    assert info.value.errant_string == text
