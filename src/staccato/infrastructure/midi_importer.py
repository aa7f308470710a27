import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Final

import mido  # pyright: ignore[reportMissingTypeStubs]

from staccato.config import PITCH_BEND_CENTER
from staccato.domain.bus import EventBus
from staccato.domain.theory import MAJOR_KEY_NAMES, MINOR_KEY_NAMES, Note

logger = logging.getLogger(__name__)

DURATION_EPSILON: Final[float] = 1e-9


@dataclass
class MidiNote:
    start_ticks: int
    end_ticks: int
    channel: int
    pitch: int
    on_velocity: int
    off_velocity: int

    @property
    def duration_ticks(self) -> int:
        return self.end_ticks - self.start_ticks


@dataclass
class _TimedMessage:
    tick: int
    message: mido.Message | mido.MetaMessage


class MidiParser(EventBus):
    """Lê um `mido.MidiFile` e publica os eventos equivalentes no barramento."""

    def parse(self, midi: mido.MidiFile) -> None:
        self._ticks_per_whole: int = midi.ticks_per_beat * 4
        self._channel: int = 0
        self._cursor: defaultdict[int, float] = defaultdict(float)
        self._last_note_start: dict[int, int] = {}

        messages = self._merge_tracks(midi)
        notes = self._pair_notes(messages)

        # Mensagens que não são notas vêm antes das notas no mesmo tick
        timeline: list[tuple[int, int, int, _TimedMessage | MidiNote]] = [
            (item.tick, 0, index, item)
            for index, item in enumerate(messages)
            if not _is_note_message(item.message)
        ]
        timeline.extend((note.start_ticks, 1, index, note) for index, note in enumerate(notes))
        timeline.sort(key=lambda entry: entry[:3])

        self.fire_before_parsing_started()
        for _, _, _, item in timeline:
            if isinstance(item, MidiNote):
                self._fire_note(item)
            else:
                self._fire_message(item)
        self.fire_after_parsing_finished()

    def _merge_tracks(self, midi: mido.MidiFile) -> list[_TimedMessage]:
        """Junta todas as faixas em uma única linha do tempo em ticks absolutos."""
        merged: list[_TimedMessage] = []
        for track in midi.tracks:
            tick = 0
            for message in track:
                tick += message.time
                merged.append(_TimedMessage(tick, message))
        merged.sort(key=lambda item: item.tick)
        return merged

    def _pair_notes(self, messages: list[_TimedMessage]) -> list[MidiNote]:
        """Associa cada note_on ao note_off correspondente (primeiro a entrar, primeiro a sair)."""
        pending: defaultdict[tuple[int, int], deque[MidiNote]] = defaultdict(deque)
        notes: list[MidiNote] = []
        last_tick = messages[-1].tick if messages else 0

        for item in messages:
            message = item.message
            if not _is_note_message(message):
                continue

            key = (message.channel, message.note)
            if message.type == 'note_on' and message.velocity > 0:
                note = MidiNote(
                    item.tick, item.tick, message.channel, message.note, message.velocity, 0
                )
                pending[key].append(note)
                notes.append(note)
            elif pending[key]:
                note = pending[key].popleft()
                note.end_ticks = item.tick
                note.off_velocity = message.velocity if message.type == 'note_off' else 0
            else:
                logger.debug('note_off sem note_on correspondente: %s', message)

        for open_notes in pending.values():
            for note in open_notes:
                logger.warning('Nota %d sem note_off; encerrando no fim do arquivo', note.pitch)
                note.end_ticks = last_tick

        return [note for note in notes if note.duration_ticks > 0]

    def _to_beats(self, ticks: int) -> float:
        return ticks / self._ticks_per_whole

    def _select_channel(self, channel: int) -> None:
        if channel != self._channel:
            # Depois de trocar de faixa a nota seguinte não pode se juntar ao acorde anterior
            self._last_note_start.pop(channel, None)
            self._channel = channel
            self.fire_track_changed(channel)

    def _move_to(self, ticks: int) -> None:
        """Leva o cursor do canal atual até `ticks` com pausa ou pedido de tempo."""
        beats = self._to_beats(ticks)
        cursor = self._cursor[self._channel]
        if beats > cursor + DURATION_EPSILON:
            self.fire_note_parsed(Note.rest(beats - cursor))
        elif beats < cursor - DURATION_EPSILON:
            self.fire_track_beat_time_requested(beats)
        self._cursor[self._channel] = beats

    def _fire_note(self, note: MidiNote) -> None:
        self._select_channel(note.channel)
        is_harmonic = self._last_note_start.get(note.channel) == note.start_ticks
        if not is_harmonic:
            self._move_to(note.start_ticks)

        duration = self._to_beats(note.duration_ticks)
        self.fire_note_parsed(
            Note(
                value=note.pitch,
                duration=duration,
                on_velocity=note.on_velocity,
                off_velocity=note.off_velocity,
                octave_explicitly_set=True,
                duration_explicitly_set=True,
                is_first_note=not is_harmonic,
                is_harmonic_note=is_harmonic,
            )
        )
        self._cursor[note.channel] = self._to_beats(note.start_ticks) + duration
        self._last_note_start[note.channel] = note.start_ticks

    def _fire_message(self, item: _TimedMessage) -> None:
        message = item.message
        if message.type == 'end_of_track':
            return

        if hasattr(message, 'channel'):
            self._select_channel(message.channel)
        self._last_note_start.pop(self._channel, None)
        self._move_to(item.tick)

        match message.type:
            case 'program_change':
                self.fire_instrument_parsed(message.program)
            case 'control_change':
                self.fire_controller_event_parsed(message.control, message.value)
            case 'pitchwheel':
                value = message.pitch + PITCH_BEND_CENTER
                self.fire_pitch_wheel_parsed(value & 0x7F, value >> 7)
            case 'aftertouch':
                self.fire_channel_pressure_parsed(message.value)
            case 'polytouch':
                self.fire_polyphonic_pressure_parsed(message.note, message.value)
            case 'sysex':
                self.fire_system_exclusive_parsed(bytes(message.data))
            case 'set_tempo':
                self.fire_tempo_changed(round(mido.tempo2bpm(message.tempo)))
            case 'key_signature':
                self.fire_key_signature_parsed(*key_signature_from_mido(message.key))
            case 'time_signature':
                self.fire_time_signature_parsed(
                    message.numerator, message.denominator.bit_length() - 1
                )
            case 'lyrics':
                self.fire_lyric_parsed(message.text)
            case 'marker':
                self.fire_marker_parsed(message.text)
            case _:
                logger.debug('Mensagem MIDI ignorada: %s', message)


def key_signature_from_mido(name: str) -> tuple[int, int]:
    """Converte `F#m` em (acidentes, escala)."""
    is_minor = name.endswith('m')
    root = (name[:-1] if is_minor else name).upper()
    names = MINOR_KEY_NAMES if is_minor else MAJOR_KEY_NAMES
    return names.index(root) - 7, -1 if is_minor else 1


def _is_note_message(message: mido.Message | mido.MetaMessage) -> bool:
    return message.type in ('note_on', 'note_off')
