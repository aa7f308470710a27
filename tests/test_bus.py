"""Testes do barramento de eventos e do encadeamento de ouvintes."""

from dataclasses import FrozenInstanceError, replace
from typing_extensions import override

import pytest

from staccato.domain.bus import ChainingParserListener, EventBus, ParserListener
from staccato.domain.events import NoteParsed, ParserEvent, TempoChanged
from staccato.domain.parser import StaccatoParser
from staccato.domain.theory import Note


class _Recorder(ParserListener):
    def __init__(self) -> None:
        self.events: list[ParserEvent] = []

    @override
    def handle(self, event: ParserEvent) -> None:
        self.events.append(event)


class _SubscribingListener(ParserListener):
    """Inscreve um novo ouvinte no meio do disparo."""

    def __init__(self, bus: EventBus, late: ParserListener) -> None:
        self.bus: EventBus = bus
        self.late: ParserListener = late

    @override
    def handle(self, event: ParserEvent) -> None:
        self.bus.subscribe(self.late)


class _TransposeListener(ChainingParserListener):
    @override
    def handle(self, event: ParserEvent) -> None:
        if isinstance(event, NoteParsed):
            event = NoteParsed(replace(event.note, value=event.note.value + 12))
        super().handle(event)


def test_listeners_receive_events_in_subscription_order() -> None:
    bus = EventBus()
    order: list[str] = []

    class _Named(ParserListener):
        def __init__(self, name: str) -> None:
            self.name = name

        @override
        def handle(self, event: ParserEvent) -> None:
            order.append(self.name)

    bus.subscribe(_Named('a'))
    bus.subscribe(_Named('b'))
    bus.fire_tempo_changed(100)
    assert order == ['a', 'b']


def test_subscription_during_fire_applies_to_next_event() -> None:
    bus = EventBus()
    late = _Recorder()
    bus.subscribe(_SubscribingListener(bus, late))
    bus.fire_tempo_changed(100)
    assert late.events == []
    bus.fire_tempo_changed(110)
    assert late.events == [TempoChanged(110)]


def test_unsubscribe_and_clear() -> None:
    bus = EventBus()
    recorder = _Recorder()
    bus.subscribe(recorder)
    bus.unsubscribe(recorder)
    bus.unsubscribe(recorder)
    bus.fire_tempo_changed(100)
    assert recorder.events == []

    bus.subscribe(recorder)
    bus.clear_listeners()
    assert bus.listeners == ()


def test_chaining_listener_forwards_transformed_events() -> None:
    parser = StaccatoParser()
    chain = _TransposeListener()
    recorder = _Recorder()
    chain.subscribe(recorder)
    parser.subscribe(chain)

    parser.parse('C')
    notes = [event.note for event in recorder.events if isinstance(event, NoteParsed)]
    assert [note.value for note in notes] == [72]


def test_fire_note_parsed_builds_event() -> None:
    bus = EventBus()
    recorder = _Recorder()
    bus.subscribe(recorder)
    note = Note(value=64)
    bus.fire_note_parsed(note)
    assert recorder.events == [NoteParsed(note)]


def test_unsubscribe_during_fire_keeps_remaining_listeners() -> None:
    bus = EventBus()
    first, second, third = _Recorder(), _Recorder(), _Recorder()

    class _Unsubscriber(ParserListener):
        @override
        def handle(self, event: ParserEvent) -> None:
            bus.unsubscribe(self)
            bus.unsubscribe(second)

    bus.subscribe(first)
    bus.subscribe(_Unsubscriber())
    bus.subscribe(second)
    bus.subscribe(third)

    bus.fire_tempo_changed(100)
    assert first.events == [TempoChanged(100)]
    assert second.events == [TempoChanged(100)]
    assert third.events == [TempoChanged(100)]

    bus.fire_tempo_changed(110)
    assert second.events == [TempoChanged(100)]
    assert third.events == [TempoChanged(100), TempoChanged(110)]
    assert bus.listeners == (first, third)


def test_events_are_immutable() -> None:
    event = TempoChanged(100)
    with pytest.raises(FrozenInstanceError):
        event.bpm = 120  # type: ignore[misc]
