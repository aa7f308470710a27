import logging
from typing_extensions import override

from staccato.config import DEFAULT_DURATION, INSTRUMENT_NAMES, PERCUSSION_TRACK
from staccato.domain.bus import ParserListener
from staccato.domain.events import (
    BarLineParsed,
    BeforeParsingStarted,
    ChannelPressureParsed,
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
from staccato.domain.theory import Key, Note
from staccato.domain.timing import TrackTimeManager

logger = logging.getLogger(__name__)


class DiagnosticParserListener(ParserListener):
    """Registra cada evento recebido no log."""

    @override
    def handle(self, event: ParserEvent) -> None:
        logger.info('%s', event)


class TimedParserListener(ParserListener):
    """Base dos ouvintes que mantêm cursores de tempo por faixa e camada."""

    def __init__(self, time_manager: TrackTimeManager | None = None) -> None:
        self.time_manager: TrackTimeManager = time_manager or TrackTimeManager()

    def to_units(self, beats: float) -> float:
        """Converte frações de semibreve para a unidade do cursor."""
        return beats

    def handle_timing(self, event: ParserEvent) -> bool:
        """Trata faixa, camada e marcadores; devolve False para os demais eventos."""
        manager = self.time_manager
        match event:
            case TrackChanged(track=track):
                manager.set_current_track(track)
            case LayerChanged(layer=layer):
                manager.set_current_layer(layer)
            case TrackBeatTimeBookmarked(bookmark_id=bookmark_id):
                manager.add_track_beat_time_bookmark(bookmark_id)
            case TrackBeatTimeBookmarkRequested(bookmark_id=bookmark_id):
                manager.track_beat_time = manager.get_track_beat_time_bookmark(bookmark_id)
            case TrackBeatTimeRequested(time=time):
                manager.track_beat_time = self.to_units(time)
            case _:
                return False
        return True


class TrackDurationListener(TimedParserListener):
    """Calcula a duração, em frações de semibreve, de cada faixa usada."""

    @override
    def handle(self, event: ParserEvent) -> None:
        if self.handle_timing(event):
            return
        match event:
            case BeforeParsingStarted():
                self.time_manager.reset()
            case NoteParsed(note=note):
                self.time_manager.place_note(note, DEFAULT_DURATION)
            case ChordParsed(chord=chord):
                for note in chord.get_notes():
                    self.time_manager.place_note(note, DEFAULT_DURATION)

    @property
    def durations(self) -> dict[int, float]:
        manager = self.time_manager
        return {
            track: manager.latest_track_beat_time(track)
            for track in range(manager.last_created_track + 1)
        }


class StaccatoParserListener(ParserListener):
    """Reescreve os eventos recebidos como texto Staccato."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._elements: list[str] = []
        self._track: int = 0
        self._key: Key = Key.from_accidentals(0)
        self._last_sound: int = -1

    def get_pattern(self) -> str:
        return ' '.join(self._elements)

    @override
    def handle(self, event: ParserEvent) -> None:
        match event:
            case BeforeParsingStarted():
                self.reset()
            case TrackChanged(track=track):
                self._track = track
                self._elements.append(f'V{track}')
            case LayerChanged(layer=layer):
                self._elements.append(f'L{layer}')
            case InstrumentParsed(instrument=instrument):
                self._elements.append(f'I[{INSTRUMENT_NAMES[instrument]}]')
            case TempoChanged(bpm=bpm):
                self._elements.append(f'T{bpm}')
            case KeySignatureParsed(key=key, scale=scale):
                self._key = Key.from_accidentals(key, scale)
                self._elements.append(f'KEY:{self._key.key_signature}')
            case TimeSignatureParsed(numerator=numerator, power_of_two=power):
                self._elements.append(f'TIME:{numerator}/{2**power}')
            case BarLineParsed(bar_id=bar_id):
                self._elements.append('|' if bar_id < 0 else f'|{bar_id}')
            case TrackBeatTimeBookmarked(bookmark_id=bookmark_id):
                self._elements.append(f'#{bookmark_id}')
            case TrackBeatTimeBookmarkRequested(bookmark_id=bookmark_id):
                self._elements.append(f'@#{bookmark_id}')
            case TrackBeatTimeRequested(time=time):
                self._elements.append(f'@{time}')
            case PitchWheelParsed(lsb=lsb, msb=msb):
                self._elements.append(f':PW({lsb},{msb})')
            case ChannelPressureParsed(pressure=pressure):
                self._elements.append(f':CP({pressure})')
            case PolyphonicPressureParsed(key=key, pressure=pressure):
                self._elements.append(f':PP({key},{pressure})')
            case SystemExclusiveParsed(data=data):
                self._elements.append(f':SX({",".join(str(byte) for byte in data)})')
            case ControllerEventParsed(controller=controller, value=value):
                self._elements.append(f':CE({controller},{value})')
            case LyricParsed(lyric=lyric):
                self._elements.append('&' + _wrap_spaces(lyric))
            case MarkerParsed(marker=marker):
                self._elements.append('!' + _wrap_spaces(marker))
            case FunctionParsed(identifier=identifier, parameters=parameters):
                self._elements.append(f':{identifier}({parameters})')
            case NoteParsed(note=note):
                self._append_sound(note, self._note_text(note))
            case ChordParsed(chord=chord):
                self._append_sound(chord.root, chord.pattern)

    def _note_text(self, note: Note) -> str:
        if note.is_rest:
            return note.pattern
        if self._track == PERCUSSION_TRACK:
            return note.percussion_pattern
        if note.original_string:
            return note.pattern

        # Letras naturais recebem N para não sofrer ajuste da armadura
        tone = Note.tone_string_for(note.value, self._key.note_names)
        name = Note.tone_string_without_octave(note.value, self._key.note_names)
        if len(name) == 1 and self._key.accidental_for_letter(name):
            tone = f'{name}N{tone[1:]}'
        return tone + note.decorations()

    def _append_sound(self, note: Note, text: str) -> None:
        follows_sound = bool(self._elements) and self._last_sound == len(self._elements) - 1
        if follows_sound and note.is_harmonic_note:
            self._elements[-1] += '+' + text
        elif follows_sound and note.is_melodic_note:
            self._elements[-1] += '_' + text
        else:
            self._elements.append(text)
        self._last_sound = len(self._elements) - 1


def _wrap_spaces(text: str) -> str:
    return f'({text})' if ' ' in text else text
