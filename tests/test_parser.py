"""Testes do parser Staccato: despacho de fragmentos e eventos publicados."""

from typing_extensions import override

import pytest

from staccato.domain.bus import ParserListener
from staccato.domain.errors import ParserError, SymbolLookupError, UnknownTokenError
from staccato.domain.events import (
    AfterParsingFinished,
    BarLineParsed,
    BeforeParsingStarted,
    ChordParsed,
    ControllerEventParsed,
    FunctionParsed,
    InstrumentParsed,
    KeySignatureParsed,
    LayerChanged,
    LyricParsed,
    MarkerParsed,
    NoteParsed,
    ParserEvent,
    PitchWheelParsed,
    PolyphonicPressureParsed,
    SystemExclusiveParsed,
    TempoChanged,
    TimeSignatureParsed,
    TrackBeatTimeBookmarked,
    TrackBeatTimeBookmarkRequested,
    TrackBeatTimeRequested,
    TrackChanged,
)
from staccato.domain.models import ParserConfiguration
from staccato.domain.parser import StaccatoParser
from staccato.domain.tokens import TokenType


class _Recorder(ParserListener):
    def __init__(self) -> None:
        self.events: list[ParserEvent] = []

    @override
    def handle(self, event: ParserEvent) -> None:
        self.events.append(event)

    def body(self) -> list[ParserEvent]:
        return [
            event
            for event in self.events
            if not isinstance(event, BeforeParsingStarted | AfterParsingFinished)
        ]


def _parse(text: str, configuration: ParserConfiguration | None = None) -> list[ParserEvent]:
    parser = StaccatoParser(configuration)
    recorder = _Recorder()
    parser.subscribe(recorder)
    parser.parse(text)
    return recorder.body()


def _note_values(events: list[ParserEvent]) -> list[int]:
    return [event.note.value for event in events if isinstance(event, NoteParsed)]


def test_parse_fires_start_and_finish_once() -> None:
    parser = StaccatoParser()
    recorder = _Recorder()
    parser.subscribe(recorder)
    parser.parse('C D')
    assert isinstance(recorder.events[0], BeforeParsingStarted)
    assert isinstance(recorder.events[-1], AfterParsingFinished)
    assert len(recorder.events) == 4


def test_empty_text_fires_only_start_and_finish() -> None:
    parser = StaccatoParser()
    recorder = _Recorder()
    parser.subscribe(recorder)
    parser.parse('   ')
    assert len(recorder.events) == 2


def test_voice_layer_instrument() -> None:
    events = _parse('V3 L1 I[FLUTE] IVIOLIN I0')
    assert events == [
        TrackChanged(3),
        LayerChanged(1),
        InstrumentParsed(73),
        InstrumentParsed(40),
        InstrumentParsed(0),
    ]


def test_voice_out_of_range() -> None:
    with pytest.raises(ParserError):
        _parse('V16')


def test_unknown_instrument_name() -> None:
    with pytest.raises(SymbolLookupError):
        _parse('I[NOT_AN_INSTRUMENT]')


def test_tempo() -> None:
    assert _parse('T90 T[ALLEGRO]') == [TempoChanged(90), TempoChanged(120)]


def test_key_signatures() -> None:
    events = _parse('KEY:GMAJ KEY:AMIN K### KEY:KBB')
    assert events == [
        KeySignatureParsed(1, 1),
        KeySignatureParsed(0, -1),
        KeySignatureParsed(3, 1),
        KeySignatureParsed(-2, 1),
    ]


def test_key_signature_adjusts_unmarked_notes() -> None:
    assert _note_values(_parse('KEY:GMAJ F FN F#')) == [66, 65, 66]
    assert _note_values(_parse('K## C')) == [61]


def test_key_adjustment_can_be_disabled() -> None:
    events = _parse(':DEFAULT(ADJUST_BY_KEY=FALSE) KEY:GMAJ F')
    assert _note_values(events) == [65]


def test_time_signature() -> None:
    assert _parse('TIME:3/4 TIME:6/8') == [TimeSignatureParsed(3, 2), TimeSignatureParsed(6, 3)]


def test_invalid_time_signature() -> None:
    with pytest.raises(ParserError):
        _parse('TIME:3/5')


def test_bar_lines() -> None:
    assert _parse('| |12') == [BarLineParsed(-1), BarLineParsed(12)]


def test_beat_time_requests() -> None:
    assert _parse('#INTRO @#INTRO @1.5') == [
        TrackBeatTimeBookmarked('INTRO'),
        TrackBeatTimeBookmarkRequested('INTRO'),
        TrackBeatTimeRequested(1.5),
    ]


def test_lyrics_and_markers_keep_case() -> None:
    assert _parse('&Hello &(two words) !Chorus') == [
        LyricParsed('Hello'),
        LyricParsed('two words'),
        MarkerParsed('Chorus'),
    ]


def test_pitch_wheel_function() -> None:
    events = _parse(':PW(1000) :PitchWheel(4,8)')
    assert events == [PitchWheelParsed(104, 7), PitchWheelParsed(4, 8)]
    assert events[0].value == 1000


def test_combined_controller_fires_fine_then_coarse() -> None:
    assert _parse(':CE(935,1000)') == [
        ControllerEventParsed(39, 104),
        ControllerEventParsed(7, 7),
    ]


def test_controller_with_names() -> None:
    assert _parse(':CE(HOLD_PEDAL,ON)') == [ControllerEventParsed(64, 127)]


def test_poly_pressure_and_sysex() -> None:
    assert _parse(':PP(60,90) :SX(240,67,247)') == [
        PolyphonicPressureParsed(60, 90),
        SystemExclusiveParsed(bytes([240, 67, 247])),
    ]


def test_unknown_function_is_forwarded() -> None:
    assert _parse(':Swing(light_touch)') == [FunctionParsed('SWING', 'light touch')]


def test_default_note_settings_function() -> None:
    events = _parse(':DEFAULT(OCTAVE=4,DURATION=H) C')
    note = events[0].note
    assert note.value == 48
    assert note.duration == pytest.approx(0.5)
    assert not note.duration_explicitly_set


def test_default_settings_do_not_leak_between_parses() -> None:
    parser = StaccatoParser()
    recorder = _Recorder()
    parser.subscribe(recorder)
    parser.parse(':DEFAULT(OCTAVE=3) C')
    parser.parse('C')
    assert _note_values(recorder.body()) == [36, 60]


def test_atom() -> None:
    events = _parse('%V1,L2,I0,C5Q')
    assert events[:3] == [TrackChanged(1), LayerChanged(2), InstrumentParsed(0)]
    assert events[3].note.value == 60


def test_invalid_atom() -> None:
    with pytest.raises(ParserError):
        _parse('%V1,XYZ')


def test_harmonic_and_melodic_connectors() -> None:
    events = _parse('C+E_G')
    notes = [event.note for event in events]
    assert notes[0].is_first_note
    assert notes[1].is_harmonic_note
    assert notes[2].is_melodic_note


def test_chord_event() -> None:
    events = _parse('C4MAJ^E')
    assert len(events) == 1
    assert isinstance(events[0], ChordParsed)
    assert [note.value for note in events[0].chord.get_notes()] == [52, 55, 60]


def test_microtone_through_parser() -> None:
    events = _parse('M500')
    assert events[0] == PitchWheelParsed(9937 & 0x7F, 9937 >> 7)
    assert events[1].note.value == 59
    assert events[1].note.duration == pytest.approx(0.25)
    assert events[2] == PitchWheelParsed(0, 64)


def test_broken_chord_through_parser() -> None:
    assert _note_values(_parse('C4MAJ:$0Q,$2Q')) == [48, 55]


def test_dictionary_from_configuration() -> None:
    configuration = ParserConfiguration(dictionary={'MyNote': '64'})
    events = _parse('[MYNOTE]', configuration)
    assert events[0].note.value == 64
    assert events[0].note.is_percussion_note


def test_load_dictionary() -> None:
    parser = StaccatoParser()
    parser.context.load_dictionary(['# comentário', '$RIFF_NOTE = 62', 'lixo'])
    assert parser.context.lookup_int('[riff_note]') == 62


def test_loaded_dictionary_survives_parses() -> None:
    parser = StaccatoParser()
    recorder = _Recorder()
    parser.subscribe(recorder)
    parser.context.load_dictionary(['$RIFF_NOTE=62'])

    parser.parse('KEY:DMAJ [RIFF_NOTE]q')
    assert _note_values(recorder.body()) == [62]

    recorder.events.clear()
    parser.parse('[RIFF_NOTE]h F')
    assert _note_values(recorder.body()) == [62, 65]


def test_unknown_token_is_skipped_when_not_strict() -> None:
    assert _note_values(_parse('C ZZZ D')) == [60, 62]


def test_unknown_token_raises_when_strict() -> None:
    with pytest.raises(UnknownTokenError) as info:
        _parse('C ZZZ', ParserConfiguration(strict=True))
    assert info.value.errant_string == 'ZZZ'
    assert info.value.position == 2


def test_tokenize() -> None:
    tokens = StaccatoParser().tokenize('V0 T120 KEY:CMAJ TIME:4/4 c5q | &la :PW(8192) ???')
    assert [token.kind for token in tokens] == [
        TokenType.VOICE,
        TokenType.TEMPO,
        TokenType.KEY_SIGNATURE,
        TokenType.TIME_SIGNATURE,
        TokenType.NOTE,
        TokenType.BAR_LINE,
        TokenType.LYRIC,
        TokenType.FUNCTION,
        TokenType.UNKNOWN,
    ]
    assert str(tokens[4]) == 'C5Q'
