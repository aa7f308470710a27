from abc import ABC, abstractmethod
from typing_extensions import override

from staccato.domain.events import (
    AfterParsingFinished,
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
    NotePressed,
    NoteReleased,
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
from staccato.domain.theory import Chord, Note


class ParserListener(ABC):
    """Observador de eventos; um único ponto de entrada para todos os tipos."""

    @abstractmethod
    def handle(self, event: ParserEvent) -> None:
        """Recebe um evento do barramento."""


class EventBus:
    """Publica eventos, na ordem de inscrição, para os ouvintes registrados."""

    def __init__(self) -> None:
        self._listeners: list[ParserListener] = []

    @property
    def listeners(self) -> tuple[ParserListener, ...]:
        return tuple(self._listeners)

    def subscribe(self, listener: ParserListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ParserListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def fire(self, event: ParserEvent) -> None:
        # Cópia: inscrições feitas durante o disparo valem só para o próximo
        for listener in tuple(self._listeners):
            listener.handle(event)

    def fire_before_parsing_started(self) -> None:
        self.fire(BeforeParsingStarted())

    def fire_after_parsing_finished(self) -> None:
        self.fire(AfterParsingFinished())

    def fire_track_changed(self, track: int) -> None:
        self.fire(TrackChanged(track))

    def fire_layer_changed(self, layer: int) -> None:
        self.fire(LayerChanged(layer))

    def fire_instrument_parsed(self, instrument: int) -> None:
        self.fire(InstrumentParsed(instrument))

    def fire_tempo_changed(self, bpm: int) -> None:
        self.fire(TempoChanged(bpm))

    def fire_key_signature_parsed(self, key: int, scale: int) -> None:
        self.fire(KeySignatureParsed(key, scale))

    def fire_time_signature_parsed(self, numerator: int, power_of_two: int) -> None:
        self.fire(TimeSignatureParsed(numerator, power_of_two))

    def fire_bar_line_parsed(self, bar_id: int) -> None:
        self.fire(BarLineParsed(bar_id))

    def fire_track_beat_time_bookmarked(self, bookmark_id: str) -> None:
        self.fire(TrackBeatTimeBookmarked(bookmark_id))

    def fire_track_beat_time_bookmark_requested(self, bookmark_id: str) -> None:
        self.fire(TrackBeatTimeBookmarkRequested(bookmark_id))

    def fire_track_beat_time_requested(self, time: float) -> None:
        self.fire(TrackBeatTimeRequested(time))

    def fire_pitch_wheel_parsed(self, lsb: int, msb: int) -> None:
        self.fire(PitchWheelParsed(lsb, msb))

    def fire_channel_pressure_parsed(self, pressure: int) -> None:
        self.fire(ChannelPressureParsed(pressure))

    def fire_polyphonic_pressure_parsed(self, key: int, pressure: int) -> None:
        self.fire(PolyphonicPressureParsed(key, pressure))

    def fire_system_exclusive_parsed(self, data: bytes) -> None:
        self.fire(SystemExclusiveParsed(bytes(data)))

    def fire_controller_event_parsed(self, controller: int, value: int) -> None:
        self.fire(ControllerEventParsed(controller, value))

    def fire_lyric_parsed(self, lyric: str) -> None:
        self.fire(LyricParsed(lyric))

    def fire_marker_parsed(self, marker: str) -> None:
        self.fire(MarkerParsed(marker))

    def fire_function_parsed(self, identifier: str, parameters: str) -> None:
        self.fire(FunctionParsed(identifier, parameters))

    def fire_note_pressed(self, note: Note) -> None:
        self.fire(NotePressed(note))

    def fire_note_released(self, note: Note) -> None:
        self.fire(NoteReleased(note))

    def fire_note_parsed(self, note: Note) -> None:
        self.fire(NoteParsed(note))

    def fire_chord_parsed(self, chord: Chord) -> None:
        self.fire(ChordParsed(chord))


class ChainingParserListener(EventBus, ParserListener):
    """Ouvinte que também é barramento: transforma e repassa os eventos.

    Subclasses sobrescrevem `handle`, alteram o evento e chamam
    `super().handle(evento)` para encaminhá-lo aos próprios inscritos.
    """

    @override
    def handle(self, event: ParserEvent) -> None:
        self.fire(event)
