"""Testes dos cursores de tempo por faixa e camada."""

import pytest

from staccato.domain.errors import SymbolLookupError
from staccato.domain.listeners import TrackDurationListener
from staccato.domain.parser import StaccatoParser
from staccato.domain.theory import Note
from staccato.domain.timing import TrackTimeManager


def _durations(text: str) -> dict[int, float]:
    parser = StaccatoParser()
    listener = TrackDurationListener()
    parser.subscribe(listener)
    parser.parse(text)
    return listener.durations


def test_tracks_are_created_in_order() -> None:
    created: list[int] = []
    manager = TrackTimeManager(on_track_created=created.append)
    manager.set_current_track(3)
    manager.set_current_track(1)
    assert created == [0, 1, 2, 3]
    assert manager.last_created_track == 3


def test_invalid_track_and_layer() -> None:
    manager = TrackTimeManager()
    with pytest.raises(ValueError):
        manager.set_current_track(16)
    with pytest.raises(ValueError):
        manager.set_current_layer(-1)


def test_layers_have_independent_cursors() -> None:
    manager = TrackTimeManager()
    manager.advance_track_beat_time(1.0)
    manager.set_current_layer(1)
    assert manager.track_beat_time == 0.0
    manager.advance_track_beat_time(0.5)
    assert manager.latest_track_beat_time(0) == 1.0


def test_layer_is_remembered_per_track() -> None:
    manager = TrackTimeManager()
    manager.set_current_layer(2)
    manager.set_current_track(1)
    assert manager.current_layer == 0
    manager.set_current_track(0)
    assert manager.current_layer == 2


def test_set_all_track_beat_time_only_moves_forward() -> None:
    manager = TrackTimeManager()
    manager.advance_track_beat_time(5.0)
    manager.set_all_track_beat_time(2.0)
    assert manager.track_beat_time == 5.0
    manager.set_current_track(4)
    assert manager.track_beat_time == 2.0


def test_bookmarks() -> None:
    manager = TrackTimeManager()
    manager.advance_track_beat_time(0.75)
    manager.add_track_beat_time_bookmark('A')
    manager.set_current_track(2)
    assert manager.get_track_beat_time_bookmark('A') == 0.75
    with pytest.raises(SymbolLookupError):
        manager.get_track_beat_time_bookmark('B')


def test_place_note_with_default_duration_and_units() -> None:
    manager = TrackTimeManager()
    placement = manager.place_note(Note(value=60), 0.25, lambda beats: beats * 1000)
    assert placement == (0.0, 250.0, 250.0)


def test_harmonic_notes_share_start() -> None:
    assert _durations('Eq+Cq Eq+Gq') == {0: 0.5}


def test_cursor_follows_last_harmonic_note() -> None:
    assert _durations('Ch+Eq') == {0: 0.25}


def test_melodic_notes_follow_each_other() -> None:
    assert _durations('Cq_Eq_Gq') == {0: 0.75}


def test_rests_and_chords_advance_time() -> None:
    assert _durations('Rh C4MAJw') == {0: 1.5}


def test_durations_per_track() -> None:
    assert _durations('V0 Cw V2 Ch') == {0: 1.0, 1: 0.0, 2: 0.5}


def test_bookmark_request_moves_cursor() -> None:
    assert _durations('Cq #A Cq @#A Cw') == {0: 1.25}


def test_time_request_moves_cursor() -> None:
    assert _durations('@2 Cq') == {0: 2.25}


def test_durations_reset_between_parses() -> None:
    parser = StaccatoParser()
    listener = TrackDurationListener()
    parser.subscribe(listener)
    parser.parse('Cw Cw')
    parser.parse('Cq')
    assert listener.durations == {0: 0.25}
