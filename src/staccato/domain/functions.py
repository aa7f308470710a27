import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import ClassVar, Final
from typing_extensions import override

from staccato.config import MAX_MIDI_VALUE, MAX_PITCH_BEND
from staccato.domain.errors import ParserError
from staccato.domain.models import ParserContext
from staccato.domain.theory import Note

logger = logging.getLogger(__name__)

TRILL_DEFAULT_INTERVAL: Final[int] = 1
TRILL_DEFAULT_NOTE_DURATION: Final[float] = 0.03125  # Fusa


def split_parameters(parameters: str) -> list[str]:
    """Separa `a,_b` em `['a', 'b']` (o `_` substitui espaços dentro de parênteses)."""
    return [piece.strip(' _') for piece in parameters.split(',') if piece.strip(' _')]


class PreprocessorFunction(ABC):
    """Função expandida em texto antes da análise (`:TRILL(C5q)`)."""

    names: ClassVar[tuple[str, ...]]

    @abstractmethod
    def apply(self, parameters: str, context: ParserContext) -> str:
        """Devolve a notação que substitui a chamada."""


class SubparserFunction(ABC):
    """Função executada durante a análise, disparando eventos no barramento."""

    names: ClassVar[tuple[str, ...]]

    @abstractmethod
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        """Interpreta os parâmetros e publica os eventos correspondentes."""


class FunctionManager:
    """Registro de funções, indexado pelos nomes em maiúsculas."""

    def __init__(
        self,
        functions: Iterable[PreprocessorFunction | SubparserFunction] = (),
    ) -> None:
        self._preprocessor_functions: dict[str, PreprocessorFunction] = {}
        self._subparser_functions: dict[str, SubparserFunction] = {}
        for function in functions:
            self.add(function)

    @classmethod
    def with_builtins(
        cls,
        extra: Iterable[PreprocessorFunction | SubparserFunction] = (),
    ) -> 'FunctionManager':
        manager = cls(
            [
                PitchWheelFunction(),
                ControllerFunction(),
                ChannelPressureFunction(),
                PolyPressureFunction(),
                SysexFunction(),
                DefaultNoteSettingsFunction(),
                TrillFunction(),
                ArpeggiatedChordFunction(),
            ]
        )
        for function in extra:
            manager.add(function)
        return manager

    def add(self, function: PreprocessorFunction | SubparserFunction) -> None:
        registry: dict = (
            self._preprocessor_functions
            if isinstance(function, PreprocessorFunction)
            else self._subparser_functions
        )
        for name in function.names:
            registry[name.upper()] = function

    def get_preprocessor_function(self, name: str) -> PreprocessorFunction | None:
        return self._preprocessor_functions.get(name.upper())

    def get_subparser_function(self, name: str) -> SubparserFunction | None:
        return self._subparser_functions.get(name.upper())


def _int_parameter(
    parameter: str,
    context: ParserContext,
    upper: int = MAX_MIDI_VALUE,
) -> int:
    try:
        value = int(parameter, 0)
    except ValueError:
        value = context.lookup_int(parameter)
    if not 0 <= value <= upper:
        raise ParserError(f'Valor fora do intervalo 0-{upper}', parameter)
    return value


def _expect_count(name: str, parameters: list[str], *counts: int) -> None:
    if len(parameters) not in counts:
        raise ParserError(f'Número de parâmetros inválido para {name}', ','.join(parameters))


class PitchWheelFunction(SubparserFunction):
    names = ('PW', 'PITCHWHEEL', 'PB', 'PITCHBEND')

    @override
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        _expect_count('PITCHWHEEL', parameters, 1, 2)
        if len(parameters) == 2:
            lsb = _int_parameter(parameters[0], context)
            msb = _int_parameter(parameters[1], context)
        else:
            value = _int_parameter(parameters[0], context, MAX_PITCH_BEND)
            lsb, msb = value & 0x7F, value >> 7
        context.bus.fire_pitch_wheel_parsed(lsb, msb)


class ControllerFunction(SubparserFunction):
    names = ('CE', 'CON', 'CONTROLLER', 'CONTROLLEREVENT')

    @override
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        _expect_count('CONTROLLER', parameters, 2)
        controller = _int_parameter(parameters[0], context, upper=128 * 128 - 1)

        if controller <= MAX_MIDI_VALUE:
            value = _int_parameter(parameters[1], context)
            context.bus.fire_controller_event_parsed(controller, value)
            return

        # Controlador combinado: coarse * 128 + fine, valor de 14 bits
        coarse, fine = divmod(controller, 128)
        value = _int_parameter(parameters[1], context, MAX_PITCH_BEND)
        context.bus.fire_controller_event_parsed(fine, value & 0x7F)
        context.bus.fire_controller_event_parsed(coarse, value >> 7)


class ChannelPressureFunction(SubparserFunction):
    names = ('CP', 'CHANNELPRESSURE')

    @override
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        _expect_count('CHANNELPRESSURE', parameters, 1)
        context.bus.fire_channel_pressure_parsed(_int_parameter(parameters[0], context))


class PolyPressureFunction(SubparserFunction):
    names = ('PP', 'POLYPRESSURE', 'POLYPHONICPRESSURE')

    @override
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        _expect_count('POLYPRESSURE', parameters, 2)
        key = _int_parameter(parameters[0], context)
        pressure = _int_parameter(parameters[1], context)
        context.bus.fire_polyphonic_pressure_parsed(key, pressure)


class SysexFunction(SubparserFunction):
    names = ('SX', 'SYSEX')

    @override
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        if not parameters:
            raise ParserError('SYSEX exige ao menos um byte')
        data = bytes(_int_parameter(parameter, context, 0xFF) for parameter in parameters)
        context.bus.fire_system_exclusive_parsed(data)


class DefaultNoteSettingsFunction(SubparserFunction):
    """`:DEFAULT(OCTAVE=4,DURATION=H)` altera os padrões das próximas notas."""

    names = ('DEFAULT', 'DEFAULTS')

    @override
    def apply(self, parameters: list[str], context: ParserContext) -> None:
        settings = context.note_settings
        for parameter in parameters:
            name, _, value = parameter.upper().partition('=')
            match name:
                case 'OCTAVE':
                    settings.default_octave = _int_parameter(value, context, 10)
                case 'BASS_OCTAVE':
                    settings.default_bass_octave = _int_parameter(value, context, 10)
                case 'DURATION':
                    settings.default_duration = _duration_parameter(value, context)
                case 'ON_VELOCITY':
                    settings.default_on_velocity = _int_parameter(value, context)
                case 'OFF_VELOCITY':
                    settings.default_off_velocity = _int_parameter(value, context)
                case 'ADJUST_BY_KEY':
                    settings.adjust_by_key_signature = value in ('TRUE', 'ON', '1')
                case _:
                    raise ParserError('Configuração padrão desconhecida', parameter)
        logger.debug('Novos padrões de nota: %s', settings)


def _duration_parameter(value: str, context: ParserContext) -> float:
    try:
        return float(value)
    except ValueError:
        return context.note_provider.duration_for_string(value)


class TrillFunction(PreprocessorFunction):
    """`:TRILL(C5q,2,s)`: alterna a nota com a nota `intervalo` semitons acima."""

    names = ('TR', 'TRILL')

    @override
    def apply(self, parameters: str, context: ParserContext) -> str:
        arguments = split_parameters(parameters)
        if not 1 <= len(arguments) <= 3:
            raise ParserError('Parâmetros inválidos para TRILL', parameters)

        note = context.note_provider.create_note(arguments[0])
        interval = int(arguments[1]) if len(arguments) > 1 else TRILL_DEFAULT_INTERVAL
        trill_duration = (
            _duration_parameter(arguments[2].upper(), context)
            if len(arguments) > 2
            else TRILL_DEFAULT_NOTE_DURATION
        )

        total = note.duration or context.note_settings.default_duration
        count = max(1, round(total / trill_duration))
        duration_text = Note.duration_string_for(trill_duration)
        values = (note.value, note.value + interval)
        return '_'.join(
            f'{Note.tone_string_for(values[index % 2])}{duration_text}' for index in range(count)
        )


class ArpeggiatedChordFunction(PreprocessorFunction):
    """`:ARPEGGIATED(C4majW)`: divide o acorde em notas melódicas de mesma duração."""

    names = ('AR', 'ARPEGGIATED')

    @override
    def apply(self, parameters: str, context: ParserContext) -> str:
        arguments = split_parameters(parameters)
        if len(arguments) != 1:
            raise ParserError('Parâmetros inválidos para ARPEGGIATED', parameters)

        chord = context.chord_provider.create_chord(arguments[0])
        notes = chord.get_notes()
        total = chord.root.duration or context.note_settings.default_duration
        duration_text = Note.duration_string_for(total / len(notes))
        return '_'.join(f'{Note.tone_string_for(note.value)}{duration_text}' for note in notes)
