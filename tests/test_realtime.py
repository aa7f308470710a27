"""Testes do agendador em milissegundos e do tocador em tempo real."""

import threading
from collections import Counter
from typing_extensions import override

import pytest

from staccato.domain.bus import ParserListener
from staccato.domain.errors import SymbolLookupError
from staccato.domain.events import LayerChanged, NoteParsed, ParserEvent, TrackChanged
from staccato.domain.note_subparser import NoteSubparser
from staccato.domain.parser import StaccatoParser
from staccato.infrastructure.realtime_player import (
    ALL_NOTES_OFF,
    RealtimeInterpolator,
    RealtimePlayer,
    RealtimeScheduler,
    TemporalParserListener,
)


class _RecordingSink:
    def __init__(self) -> None:
        self.messages: list[tuple[object, ...]] = []

    def note_on(self, channel: int, note: int, velocity: int) -> None:
        self.messages.append(('note_on', channel, note, velocity))

    def note_off(self, channel: int, note: int, velocity: int) -> None:
        self.messages.append(('note_off', channel, note, velocity))

    def program_change(self, channel: int, program: int) -> None:
        self.messages.append(('program_change', channel, program))

    def pitch_bend(self, channel: int, value: int) -> None:
        self.messages.append(('pitch_bend', channel, value))

    def channel_pressure(self, channel: int, pressure: int) -> None:
        self.messages.append(('channel_pressure', channel, pressure))

    def poly_pressure(self, channel: int, note: int, pressure: int) -> None:
        self.messages.append(('poly_pressure', channel, note, pressure))

    def control_change(self, channel: int, controller: int, value: int) -> None:
        self.messages.append(('control_change', channel, controller, value))


class _FakeClock:
    def __init__(self) -> None:
        self.seconds: float = 0.0

    def __call__(self) -> float:
        return self.seconds


class _RecordingInterpolator(RealtimeInterpolator):
    def __init__(self, duration_ms: int) -> None:
        super().__init__(duration_ms)
        self.updates: list[tuple[int, float]] = []

    @override
    def update(self, elapsed_ms: int, percent: float) -> None:
        self.updates.append((elapsed_ms, percent))


class _Recorder(ParserListener):
    def __init__(self) -> None:
        self.events: list[ParserEvent] = []

    @override
    def handle(self, event: ParserEvent) -> None:
        self.events.append(event)

    def describe(self) -> list[str]:
        described: list[str] = []
        for event in self.events:
            match event:
                case NoteParsed(note=note):
                    described.append(f'Note {note.value}')
                case TrackChanged(track=track):
                    described.append(f'TrackChanged {track}')
                case LayerChanged(layer=layer):
                    described.append(f'LayerChanged {layer}')
                case _:
                    described.append(type(event).__name__)
        return described


def _sample_player() -> tuple[RealtimePlayer, _RecordingSink, _FakeClock]:
    sink = _RecordingSink()
    clock = _FakeClock()
    player = RealtimePlayer(sink, clock=clock, autostart=False)
    return player, sink, clock


def test_schedule_in_the_past_moves_to_next_millisecond() -> None:
    scheduler = RealtimeScheduler(_FakeClock())
    scheduler.advance_to(10)
    assert scheduler.schedule_event(5, lambda time_ms: None) == 11
    assert scheduler.schedule_event(10, lambda time_ms: None) == 11
    assert scheduler.schedule_event(20, lambda time_ms: None) == 20


def test_events_receive_their_time() -> None:
    scheduler = RealtimeScheduler(_FakeClock())
    received: list[int] = []
    scheduler.schedule_event(3, received.append)
    scheduler.schedule_event(3, received.append)
    scheduler.schedule_event(7, received.append)
    scheduler.advance_to(5)
    assert received == [3, 3]
    scheduler.advance_to(10)
    assert received == [3, 3, 7]


def test_unschedule_event() -> None:
    scheduler = RealtimeScheduler(_FakeClock())
    received: list[int] = []
    scheduler.unschedule_event(30, received.append)
    scheduler.schedule_event(30, received.append)
    scheduler.unschedule_event(30, received.append)
    scheduler.advance_to(40)
    assert received == []


def test_commands_run_before_events() -> None:
    scheduler = RealtimeScheduler(_FakeClock())
    order: list[str] = []
    scheduler.schedule_event(2, lambda time_ms: order.append('event'))
    scheduler.schedule_command(2, lambda: order.append('command'))
    scheduler.advance_to(2)
    assert order == ['command', 'event']


def test_interpolator_progress() -> None:
    scheduler = RealtimeScheduler(_FakeClock())
    interpolator = _RecordingInterpolator(4)
    scheduler.add_interpolator(interpolator)
    scheduler.advance_to(10)
    assert interpolator.start_time == 0
    assert interpolator.updates == [(0, 0.0), (1, 0.25), (2, 0.5), (3, 0.75), (4, 1.0)]
    assert not interpolator.is_active


def test_stopped_interpolator_is_not_updated() -> None:
    player, _, _ = _sample_player()
    interpolator = _RecordingInterpolator(100)
    player.start_interpolator(interpolator)
    player.scheduler.advance_to(1)
    player.stop_interpolator(interpolator)
    player.scheduler.advance_to(50)
    assert len(interpolator.updates) == 2


def test_elapsed_ms_uses_clock() -> None:
    clock = _FakeClock()
    clock.seconds = 5.0
    scheduler = RealtimeScheduler(clock)
    clock.seconds = 5.25
    assert scheduler.elapsed_ms() == 250


def test_scheduler_thread_stops() -> None:
    scheduler = RealtimeScheduler()
    scheduler.start()
    scheduler.finish()
    scheduler.join(timeout=1.0)
    assert not scheduler.is_alive()


def test_play_schedules_notes_in_milliseconds() -> None:
    player, sink, _ = _sample_player()
    player.play('C5q')
    player.scheduler.advance_to(499)
    assert sink.messages == [('note_on', 0, 60, 64)]
    player.scheduler.advance_to(500)
    assert sink.messages[-1] == ('note_off', 0, 60, 64)


def test_tempo_changes_note_length() -> None:
    player, sink, _ = _sample_player()
    player.play('T60 Cq')
    player.scheduler.advance_to(999)
    assert len(sink.messages) == 1
    player.scheduler.advance_to(1000)
    assert sink.messages[-1][0] == 'note_off'


def test_play_starts_at_current_time() -> None:
    player, sink, clock = _sample_player()
    clock.seconds = 2.0
    player.play('C')
    player.scheduler.advance_to(1999)
    assert sink.messages == []
    player.scheduler.advance_to(2000)
    assert sink.messages == [('note_on', 0, 60, 64)]


def test_commands_are_bound_to_their_track() -> None:
    player, sink, _ = _sample_player()
    player.play('V1 I[FLUTE] Cq V2 Dq')
    player.scheduler.advance_to(0)
    assert sink.messages == [
        ('program_change', 1, 73),
        ('note_on', 1, 60, 64),
        ('note_on', 2, 62, 64),
    ]
    assert player.current_track == 2


def test_parsed_controls_reach_the_sink() -> None:
    player, sink, _ = _sample_player()
    player.play(':PW(9000) :CP(30) :PP(60,40) :CE(7,100)')
    player.scheduler.advance_to(0)
    assert sink.messages == [
        ('pitch_bend', 0, 9000),
        ('channel_pressure', 0, 30),
        ('poly_pressure', 0, 60, 40),
        ('control_change', 0, 7, 100),
    ]


def test_immediate_controls() -> None:
    player, sink, _ = _sample_player()
    player.change_track(3)
    player.change_instrument('FLUTE')
    player.change_instrument(5)
    player.set_pitch_bend(8192)
    assert sink.messages == [
        ('program_change', 3, 73),
        ('program_change', 3, 5),
        ('pitch_bend', 3, 8192),
    ]


def test_immediate_controls_validate_ranges() -> None:
    player, _, _ = _sample_player()
    with pytest.raises(ValueError):
        player.change_track(16)
    with pytest.raises(ValueError):
        player.set_pitch_bend(20000)
    with pytest.raises(ValueError):
        player.change_controller(128, 0)


def test_start_and_stop_chord() -> None:
    player, sink, _ = _sample_player()
    chord = NoteSubparser().create_chord('C4MAJ')
    player.start_chord(chord)
    player.stop_chord(chord)
    assert [message[2] for message in sink.messages] == [48, 52, 55, 48, 52, 55]
    assert [message[0] for message in sink.messages[3:]] == ['note_off'] * 3


def test_player_schedule_and_unschedule() -> None:
    player, _, _ = _sample_player()
    received: list[int] = []
    time_ms = player.schedule(5, received.append)
    player.schedule(6, received.append)
    player.unschedule(time_ms, received.append)
    player.scheduler.advance_to(10)
    assert received == [6]


def test_close_silences_all_channels() -> None:
    player, sink, _ = _sample_player()
    player.close()
    assert sink.messages == [('control_change', channel, ALL_NOTES_OFF, 0) for channel in range(16)]


def test_scheduling_from_another_thread_runs_every_entry_once() -> None:
    scheduler = RealtimeScheduler(_FakeClock())
    runs: Counter[int] = Counter()

    def advance() -> None:
        for time_ms in range(2000):
            scheduler.advance_to(time_ms)

    worker = threading.Thread(target=advance)
    worker.start()
    for index in range(1000):
        # Metade no milissegundo atual, metade em instantes fixos
        time_ms = scheduler.active_time if index % 2 else index
        if index % 4 < 2:
            scheduler.schedule_command(time_ms, lambda index=index: runs.update([index]))
        else:
            scheduler.schedule_event(time_ms, lambda _, index=index: runs.update([index]))
    worker.join(timeout=10.0)
    scheduler.advance_to(2001)

    assert runs == Counter(range(1000))


def test_bookmarks_do_not_leak_between_plays() -> None:
    player, _, _ = _sample_player()
    player.play('Cq #A')
    with pytest.raises(SymbolLookupError):
        player.play('@#A Cq')


def test_temporal_listener_records_and_replays() -> None:
    parser = StaccatoParser()
    temporal = TemporalParserListener()
    recorder = _Recorder()
    parser.subscribe(temporal)
    temporal.subscribe(recorder)

    parser.parse('T60 Cq Dq V1 L1 Eh')
    assert sorted(temporal.time_to_events) == [0, 1000]

    sleeps: list[float] = []
    temporal.replay(sleeps.append)
    assert sleeps == [1.0]
    assert recorder.describe() == [
        'BeforeParsingStarted',
        'TempoChanged',
        'Note 60',
        'TrackChanged 1',
        'LayerChanged 1',
        'Note 64',
        'TrackChanged 0',
        'Note 62',
        'AfterParsingFinished',
    ]


def test_temporal_listener_starts_over_on_each_parse() -> None:
    parser = StaccatoParser()
    temporal = TemporalParserListener()
    parser.subscribe(temporal)
    parser.parse('Cw Cw')
    parser.parse('C4MAJh Rq E')
    assert sorted(temporal.time_to_events) == [0, 1000, 1500]
