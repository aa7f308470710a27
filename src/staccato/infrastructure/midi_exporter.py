import logging
from pathlib import Path
from typing import Protocol, TypeAlias
from typing_extensions import override

import mido  # pyright: ignore[reportMissingTypeStubs]

from staccato.config import DEFAULT_DURATION, DEFAULT_RESOLUTION, PITCH_BEND_CENTER
from staccato.domain.events import (
    AfterParsingFinished,
    BeforeParsingStarted,
    ChannelPressureParsed,
    ChordParsed,
    ControllerEventParsed,
    InstrumentParsed,
    KeySignatureParsed,
    LyricParsed,
    MarkerParsed,
    NoteParsed,
    ParserEvent,
    PitchWheelParsed,
    PolyphonicPressureParsed,
    SystemExclusiveParsed,
    TempoChanged,
    TimeSignatureParsed,
)
from staccato.domain.listeners import TimedParserListener
from staccato.domain.theory import MAJOR_KEY_NAMES, MINOR_KEY_NAMES, Note
from staccato.domain.timing import TrackTimeManager

logger = logging.getLogger(__name__)

MidiMessage: TypeAlias = mido.Message | mido.MetaMessage


class SequenceSink(Protocol):
    """Destino das mensagens posicionadas em ticks absolutos."""

    def clear(self) -> None: ...

    def create_track(self) -> int: ...

    def append(self, track: int, tick: int, message: MidiMessage) -> None: ...

    def to_midi_file(self) -> mido.MidiFile: ...


class MidoSequenceSink:
    """Agrupa mensagens do mido por faixa e gera um `MidiFile` tipo 1."""

    def __init__(self, resolution: int = DEFAULT_RESOLUTION) -> None:
        self.resolution: int = resolution
        self._tracks: list[list[tuple[int, MidiMessage]]] = []

    def clear(self) -> None:
        self._tracks.clear()

    def create_track(self) -> int:
        self._tracks.append([])
        return len(self._tracks) - 1

    @property
    def track_count(self) -> int:
        return len(self._tracks)

    def append(self, track: int, tick: int, message: MidiMessage) -> None:
        self._tracks[track].append((tick, message))

    def events(self, track: int) -> list[tuple[int, MidiMessage]]:
        """Mensagens da faixa em ordem de tick (estável para o mesmo tick)."""
        return sorted(self._tracks[track], key=lambda item: item[0])

    def to_midi_file(self) -> mido.MidiFile:
        midi = mido.MidiFile(type=1, ticks_per_beat=self.resolution)
        for index in range(len(self._tracks)):
            track = mido.MidiTrack()
            previous = 0
            for tick, message in self.events(index):
                track.append(message.copy(time=tick - previous))
                previous = tick
            midi.tracks.append(track)
        return midi


def mido_key_name(accidentals: int, scale: int) -> str:
    """Nome de tonalidade aceito pelo mido (`Bb`, `F#m`)."""
    names = MAJOR_KEY_NAMES if scale >= 0 else MINOR_KEY_NAMES
    name = names[accidentals + 7]
    name = name[0] + name[1:].replace('B', 'b')
    return name if scale >= 0 else f'{name}m'


class MidiParserListener(TimedParserListener):
    """Materializa os eventos do parser em mensagens MIDI posicionadas em ticks."""

    def __init__(
        self,
        sink: SequenceSink | None = None,
        resolution: int = DEFAULT_RESOLUTION,
    ) -> None:
        self.resolution: int = resolution
        self.sink: SequenceSink = sink or MidoSequenceSink(resolution)
        super().__init__(TrackTimeManager(on_track_created=self._on_track_created))

    def _on_track_created(self, track: int) -> None:
        created = self.sink.create_track()
        logger.debug('Faixa %d criada no sequenciador (%d)', track, created)

    def to_ticks(self, beats: float) -> int:
        return round(self.resolution * beats * 4)

    def get_sequence(self) -> mido.MidiFile:
        return self.sink.to_midi_file()

    def save(self, file_path: Path) -> None:
        """Grava a sequência atual em disco."""
        midi = self.get_sequence()
        with file_path.open('wb') as output_file:
            midi.save(file=output_file)

    @property
    def _channel(self) -> int:
        return self.time_manager.current_track

    def _add(self, message: MidiMessage, beats: float | None = None) -> None:
        time = self.time_manager.track_beat_time if beats is None else beats
        self.sink.append(self.time_manager.current_track, self.to_ticks(time), message)

    @override
    def handle(self, event: ParserEvent) -> None:
        if self.handle_timing(event):
            return

        match event:
            case BeforeParsingStarted():
                self.sink.clear()
                self.time_manager.reset()
            case AfterParsingFinished():
                self._finish_tracks()
            case InstrumentParsed(instrument=instrument):
                self._add(mido.Message('program_change', channel=self._channel, program=instrument))
            case TempoChanged(bpm=bpm):
                self._add(mido.MetaMessage('set_tempo', tempo=mido.bpm2tempo(bpm)))
            case KeySignatureParsed(key=key, scale=scale):
                self._add(mido.MetaMessage('key_signature', key=mido_key_name(key, scale)))
            case TimeSignatureParsed(numerator=numerator, power_of_two=power):
                self._add(
                    mido.MetaMessage(
                        'time_signature',
                        numerator=numerator,
                        denominator=2**power,
                        clocks_per_click=24,
                        notated_32nd_notes_per_beat=8,
                    )
                )
            case LyricParsed(lyric=lyric):
                self._add(mido.MetaMessage('lyrics', text=lyric))
            case MarkerParsed(marker=marker):
                self._add(mido.MetaMessage('marker', text=marker))
            case PitchWheelParsed() as wheel:
                self._add(
                    mido.Message(
                        'pitchwheel', channel=self._channel, pitch=wheel.value - PITCH_BEND_CENTER
                    )
                )
            case ChannelPressureParsed(pressure=pressure):
                self._add(mido.Message('aftertouch', channel=self._channel, value=pressure))
            case PolyphonicPressureParsed(key=key, pressure=pressure):
                self._add(
                    mido.Message('polytouch', channel=self._channel, note=key, value=pressure)
                )
            case SystemExclusiveParsed(data=data):
                payload = data.removeprefix(b'\xf0').removesuffix(b'\xf7')
                self._add(mido.Message('sysex', data=payload))
            case ControllerEventParsed(controller=controller, value=value):
                self._add(
                    mido.Message(
                        'control_change', channel=self._channel, control=controller, value=value
                    )
                )
            case NoteParsed(note=note):
                self._add_note(note)
            case ChordParsed(chord=chord):
                for note in chord.get_notes():
                    self._add_note(note)

    def _add_note(self, note: Note) -> None:
        placement = self.time_manager.place_note(note, DEFAULT_DURATION)
        if placement.on_time is not None:
            self._add(
                mido.Message(
                    'note_on', channel=self._channel, note=note.value, velocity=note.on_velocity
                ),
                placement.on_time,
            )
        if placement.off_time is not None:
            self._add(
                mido.Message(
                    'note_off', channel=self._channel, note=note.value, velocity=note.off_velocity
                ),
                placement.off_time,
            )

    def _finish_tracks(self) -> None:
        manager = self.time_manager
        for track in range(manager.last_created_track + 1):
            tick = self.to_ticks(manager.latest_track_beat_time(track))
            self.sink.append(track, tick, mido.MetaMessage('end_of_track'))
