"""Testes dos ouvintes de diagnóstico e de duração."""

import logging

import pytest

from staccato.application.controller import Player
from staccato.domain.listeners import DiagnosticParserListener
from staccato.domain.parser import StaccatoParser


def test_diagnostic_listener_logs_every_event(caplog: pytest.LogCaptureFixture) -> None:
    parser = StaccatoParser()
    parser.subscribe(DiagnosticParserListener())
    with caplog.at_level(logging.INFO, logger='staccato.domain.listeners'):
        parser.parse('T100 C')
    assert len(caplog.records) == 4
    assert 'TempoChanged(bpm=100)' in caplog.records[1].getMessage()


def test_parser_logs_skipped_fragments(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger='staccato.domain.parser'):
        StaccatoParser().parse('C ???')
    assert any('???' in record.getMessage() for record in caplog.records)


def test_player_track_durations() -> None:
    assert Player().track_durations('V0 Cw V1 Ch_Ch V2') == {0: 1.0, 1: 1.0, 2: 0.0}
