import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from typing import Final, Protocol, TypeAlias
from typing_extensions import override

from staccato.config import (
    DEFAULT_BPM,
    DEFAULT_DURATION,
    MAX_MIDI_VALUE,
    MAX_PITCH_BEND,
    NUM_TRACKS,
)
from staccato.domain.bus import EventBus
from staccato.domain.events import (
    AfterParsingFinished,
    BeforeParsingStarted,
    ChannelPressureParsed,
    ChordParsed,
    ControllerEventParsed,
    InstrumentParsed,
    NoteParsed,
    ParserEvent,
    PitchWheelParsed,
    PolyphonicPressureParsed,
    TempoChanged,
)
from staccato.domain.listeners import TimedParserListener
from staccato.domain.models import ParserConfiguration
from staccato.domain.parser import StaccatoParser
from staccato.domain.theory import Chord, Note

logger = logging.getLogger(__name__)

ALL_NOTES_OFF: Final[int] = 123
TICK_INTERVAL_SECONDS: Final[float] = 0.001

Command: TypeAlias = Callable[[], None]
ScheduledEvent: TypeAlias = Callable[[int], None]


def beats_to_ms(beats: float, bpm: int) -> float:
    """Converte frações de semibreve em milissegundos no andamento dado."""
    return beats * 4 * 60_000 / bpm


class LiveSink(Protocol):
    """Saída que recebe as mensagens no instante em que devem soar."""

    def note_on(self, channel: int, note: int, velocity: int) -> None: ...

    def note_off(self, channel: int, note: int, velocity: int) -> None: ...

    def program_change(self, channel: int, program: int) -> None: ...

    def pitch_bend(self, channel: int, value: int) -> None: ...

    def channel_pressure(self, channel: int, pressure: int) -> None: ...

    def poly_pressure(self, channel: int, note: int, pressure: int) -> None: ...

    def control_change(self, channel: int, controller: int, value: int) -> None: ...


class RealtimeInterpolator(ABC):
    """Mudança gradual atualizada a cada milissegundo durante `duration_ms`."""

    def __init__(self, duration_ms: int) -> None:
        self.duration_ms: int = duration_ms
        self.start_time: int | None = None
        self.is_active: bool = False

    @property
    def is_started(self) -> bool:
        return self.start_time is not None

    def start(self, time_ms: int) -> None:
        self.start_time = time_ms
        self.is_active = True

    def end(self) -> None:
        self.is_active = False

    @abstractmethod
    def update(self, elapsed_ms: int, percent: float) -> None:
        """Aplica o progresso atual (0.0 a 1.0)."""


class RealtimeScheduler(threading.Thread):
    """Executa comandos, eventos e interpoladores agendados em milissegundos."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        super().__init__(daemon=True)
        self._clock: Callable[[], float] = clock or time.monotonic
        self._origin: float = self._clock()
        self._lock: threading.Lock = threading.Lock()
        self._commands: defaultdict[int, list[Command]] = defaultdict(list)
        self._events: defaultdict[int, list[ScheduledEvent]] = defaultdict(list)
        self._interpolators: list[RealtimeInterpolator] = []
        self._active_time: int = -1
        self._stop_request: threading.Event = threading.Event()

    @property
    def active_time(self) -> int:
        return self._active_time

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._origin) * 1000)

    def _next_available_time(self, time_ms: int) -> int:
        return time_ms if time_ms > self._active_time else self._active_time + 1

    def schedule_command(self, time_ms: int, command: Command) -> int:
        with self._lock:
            time_ms = self._next_available_time(time_ms)
            self._commands[time_ms].append(command)
        return time_ms

    def schedule_event(self, time_ms: int, event: ScheduledEvent) -> int:
        with self._lock:
            time_ms = self._next_available_time(time_ms)
            self._events[time_ms].append(event)
        return time_ms

    def unschedule_event(self, time_ms: int, event: ScheduledEvent) -> None:
        with self._lock:
            events = self._events.get(time_ms)
            if events and event in events:
                events.remove(event)

    def add_interpolator(self, interpolator: RealtimeInterpolator) -> None:
        with self._lock:
            self._interpolators.append(interpolator)

    def remove_interpolator(self, interpolator: RealtimeInterpolator) -> None:
        with self._lock:
            if interpolator in self._interpolators:
                self._interpolators.remove(interpolator)

    def advance_to(self, time_ms: int) -> None:
        """Processa cada milissegundo ainda não visitado até `time_ms`."""
        for current in range(self._active_time + 1, time_ms + 1):
            self._tick(current)

    def _tick(self, time_ms: int) -> None:
        with self._lock:
            self._active_time = time_ms
            commands = self._commands.pop(time_ms, [])
            events = self._events.pop(time_ms, [])
            interpolators = list(self._interpolators)

        for command in commands:
            command()
        for event in events:
            event(time_ms)

        for interpolator in interpolators:
            if not interpolator.is_started:
                interpolator.start(time_ms)
            if not interpolator.is_active:
                continue
            elapsed = time_ms - interpolator.start_time
            percent = elapsed / interpolator.duration_ms if interpolator.duration_ms else 1.0
            interpolator.update(elapsed, min(percent, 1.0))
            if elapsed >= interpolator.duration_ms:
                interpolator.end()
                self.remove_interpolator(interpolator)

    @override
    def run(self) -> None:
        while not self._stop_request.wait(TICK_INTERVAL_SECONDS):
            self.advance_to(self.elapsed_ms())

    def finish(self) -> None:
        """Sinaliza a thread para parar."""
        self._stop_request.set()


class RealtimeMidiParserListener(TimedParserListener):
    """Agenda no tocador, em milissegundos, os eventos publicados pelo parser."""

    def __init__(self, player: 'RealtimePlayer') -> None:
        super().__init__()
        self.player: RealtimePlayer = player
        self.bpm: int = DEFAULT_BPM

    @override
    def to_units(self, beats: float) -> float:
        return beats_to_ms(beats, self.bpm)

    @override
    def handle(self, event: ParserEvent) -> None:
        if isinstance(event, BeforeParsingStarted):
            self.time_manager.reset()
            self.bpm = DEFAULT_BPM
        # Nada pode ser agendado no passado
        self.time_manager.set_all_track_beat_time(self.player.get_current_time())
        if self.handle_timing(event):
            return

        player = self.player
        match event:
            case TempoChanged(bpm=bpm):
                self.bpm = bpm
            case InstrumentParsed(instrument=instrument):
                self._schedule(lambda: player.change_instrument(instrument))
            case PitchWheelParsed() as wheel:
                self._schedule(lambda: player.set_pitch_bend(wheel.value))
            case ChannelPressureParsed(pressure=pressure):
                self._schedule(lambda: player.change_channel_pressure(pressure))
            case PolyphonicPressureParsed(key=key, pressure=pressure):
                self._schedule(lambda: player.change_polyphonic_pressure(key, pressure))
            case ControllerEventParsed(controller=controller, value=value):
                self._schedule(lambda: player.change_controller(controller, value))
            case NoteParsed(note=note):
                self._schedule_note(note)
            case ChordParsed(chord=chord):
                for note in chord.get_notes():
                    self._schedule_note(note)

    def _schedule(self, action: Command, time_ms: float | None = None) -> None:
        """Agenda a ação presa à faixa atual."""
        track = self.time_manager.current_track
        player = self.player

        def command() -> None:
            with player.lock:
                player.change_track(track)
                action()

        when = self.time_manager.track_beat_time if time_ms is None else time_ms
        player.scheduler.schedule_command(int(when), command)

    def _schedule_note(self, note: Note) -> None:
        placement = self.time_manager.place_note(note, DEFAULT_DURATION, self.to_units)
        if placement.on_time is not None:
            self._schedule(lambda: self.player.start_note(note), placement.on_time)
        if placement.off_time is not None:
            self._schedule(lambda: self.player.stop_note(note), placement.off_time)


class TemporalParserListener(TimedParserListener, EventBus):
    """Grava os eventos do parser por milissegundo e os reproduz depois.

    A análise acontece antes da reprodução, então `replay` só precisa
    esperar entre um instante e o próximo e republicar os eventos aos
    próprios inscritos. A faixa e a camada de cada evento são gravadas
    junto com ele e reanunciadas quando mudam.
    """

    def __init__(self) -> None:
        TimedParserListener.__init__(self)
        EventBus.__init__(self)
        self.bpm: int = DEFAULT_BPM
        self.time_to_events: defaultdict[int, list[tuple[int, int, ParserEvent]]] = (
            defaultdict(list)
        )

    @override
    def to_units(self, beats: float) -> float:
        return beats_to_ms(beats, self.bpm)

    @override
    def handle(self, event: ParserEvent) -> None:
        match event:
            case BeforeParsingStarted():
                self.time_manager.reset()
                self.time_to_events.clear()
                self.bpm = DEFAULT_BPM
                return
            case AfterParsingFinished():
                return
        if self.handle_timing(event):
            return

        manager = self.time_manager
        match event:
            case TempoChanged(bpm=bpm):
                self.bpm = bpm
                self._record(event, manager.track_beat_time)
            case NoteParsed(note=note):
                placement = manager.place_note(note, DEFAULT_DURATION, self.to_units)
                self._record(event, manager.track_beat_time - placement.duration)
            case ChordParsed(chord=chord):
                placements = [
                    manager.place_note(note, DEFAULT_DURATION, self.to_units)
                    for note in chord.get_notes()
                ]
                self._record(event, manager.track_beat_time - placements[-1].duration)
            case _:
                self._record(event, manager.track_beat_time)

    def _record(self, event: ParserEvent, time_ms: float) -> None:
        manager = self.time_manager
        self.time_to_events[int(time_ms)].append(
            (manager.current_track, manager.current_layer, event)
        )

    def replay(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Republica os eventos gravados respeitando os intervalos entre eles."""
        self.fire_before_parsing_started()
        track = 0
        layers = [0] * NUM_TRACKS
        previous_ms = 0
        for time_ms in sorted(self.time_to_events):
            if time_ms > previous_ms:
                sleep((time_ms - previous_ms) / 1000)
            previous_ms = time_ms
            for event_track, event_layer, event in self.time_to_events[time_ms]:
                if event_track != track:
                    track = event_track
                    self.fire_track_changed(track)
                if event_layer != layers[track]:
                    layers[track] = event_layer
                    self.fire_layer_changed(event_layer)
                self.fire(event)
        self.fire_after_parsing_finished()


class RealtimePlayer:
    """Toca notação e notas avulsas imediatamente em uma saída ao vivo."""

    def __init__(
        self,
        sink: LiveSink,
        configuration: ParserConfiguration | None = None,
        clock: Callable[[], float] | None = None,
        autostart: bool = True,
    ) -> None:
        self.sink: LiveSink = sink
        self.lock: threading.RLock = threading.RLock()
        self._track: int = 0
        self.scheduler: RealtimeScheduler = RealtimeScheduler(clock)
        self.parser: StaccatoParser = StaccatoParser(configuration)
        self.listener: RealtimeMidiParserListener = RealtimeMidiParserListener(self)
        self.parser.subscribe(self.listener)
        if autostart:
            self.scheduler.start()

    @property
    def current_track(self) -> int:
        return self._track

    def play(self, text: str) -> None:
        """Analisa o texto e agenda o resultado a partir do instante atual."""
        self.parser.parse(text)

    def get_current_time(self) -> int:
        return self.scheduler.elapsed_ms()

    def start_note(self, note: Note) -> None:
        with self.lock:
            self.sink.note_on(self._track, note.value, note.on_velocity)

    def stop_note(self, note: Note) -> None:
        with self.lock:
            self.sink.note_off(self._track, note.value, note.off_velocity)

    def start_chord(self, chord: Chord) -> None:
        for note in chord.get_notes():
            self.start_note(note)

    def stop_chord(self, chord: Chord) -> None:
        for note in chord.get_notes():
            self.stop_note(note)

    def schedule(self, time_ms: int, event: ScheduledEvent) -> int:
        return self.scheduler.schedule_event(time_ms, event)

    def unschedule(self, time_ms: int, event: ScheduledEvent) -> None:
        self.scheduler.unschedule_event(time_ms, event)

    def start_interpolator(self, interpolator: RealtimeInterpolator) -> None:
        self.scheduler.add_interpolator(interpolator)

    def stop_interpolator(self, interpolator: RealtimeInterpolator) -> None:
        self.scheduler.remove_interpolator(interpolator)

    def change_instrument(self, instrument: int | str) -> None:
        if isinstance(instrument, str):
            instrument = self.parser.context.lookup_int(instrument)
        _check_range('Instrumento', instrument, MAX_MIDI_VALUE)
        with self.lock:
            self.sink.program_change(self._track, instrument)

    def change_track(self, track: int) -> None:
        _check_range('Faixa', track, NUM_TRACKS - 1)
        with self.lock:
            self._track = track

    def set_pitch_bend(self, value: int) -> None:
        _check_range('Pitch bend', value, MAX_PITCH_BEND)
        with self.lock:
            self.sink.pitch_bend(self._track, value)

    def change_channel_pressure(self, pressure: int) -> None:
        _check_range('Pressão', pressure, MAX_MIDI_VALUE)
        with self.lock:
            self.sink.channel_pressure(self._track, pressure)

    def change_polyphonic_pressure(self, key: int, pressure: int) -> None:
        _check_range('Nota', key, MAX_MIDI_VALUE)
        _check_range('Pressão', pressure, MAX_MIDI_VALUE)
        with self.lock:
            self.sink.poly_pressure(self._track, key, pressure)

    def change_controller(self, controller: int, value: int) -> None:
        _check_range('Controlador', controller, MAX_MIDI_VALUE)
        _check_range('Valor', value, MAX_MIDI_VALUE)
        with self.lock:
            self.sink.control_change(self._track, controller, value)

    def close(self) -> None:
        """Silencia todos os canais e encerra o agendador."""
        with self.lock:
            for channel in range(NUM_TRACKS):
                self.sink.control_change(channel, ALL_NOTES_OFF, 0)
        self.scheduler.finish()
        logger.info('Tocador em tempo real encerrado')


def _check_range(name: str, value: int, upper: int) -> None:
    if not 0 <= value <= upper:
        msg = f'{name} fora do intervalo 0-{upper}: {value}'
        raise ValueError(msg)
