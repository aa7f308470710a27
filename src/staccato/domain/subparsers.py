import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, Final
from typing_extensions import override

from staccato.config import MAX_MIDI_VALUE, NUM_LAYERS, NUM_TRACKS
from staccato.domain.errors import ParserError
from staccato.domain.functions import FunctionManager, split_parameters
from staccato.domain.models import ParserContext
from staccato.domain.theory import (
    MAJOR_KEY_NAMES,
    MINOR_KEY_NAMES,
    Key,
    Note,
    Scale,
    TimeSignature,
    pitch_class_for_name,
)
from staccato.domain.tokens import TokenType

if TYPE_CHECKING:
    from staccato.domain.note_subparser import NoteSubparser


class Subparser(ABC):
    """Estratégia que reconhece e interpreta um tipo de fragmento."""

    token_type: ClassVar[TokenType] = TokenType.UNKNOWN

    @abstractmethod
    def matches(self, fragment: str) -> bool:
        """Indica se o fragmento pertence a este subparser."""

    def get_token_type(self, fragment: str) -> TokenType:  # noqa: ARG002
        return self.token_type

    @abstractmethod
    def parse(self, fragment: str, context: ParserContext) -> int:
        """Interpreta o fragmento e devolve quantos caracteres foram consumidos."""


class IVLSubparser(Subparser):
    """Voz (`V`), camada (`L`) e instrumento (`I`)."""

    VALUE_REGEX: Final[re.Pattern[str]] = re.compile(r'\d+|\[[^\]]*\]|.+')

    PREFIXES: Final[dict[str, TokenType]] = {
        'V': TokenType.VOICE,
        'L': TokenType.LAYER,
        'I': TokenType.INSTRUMENT,
    }

    @override
    def matches(self, fragment: str) -> bool:
        return len(fragment) > 1 and fragment[0] in self.PREFIXES

    @override
    def get_token_type(self, fragment: str) -> TokenType:
        return self.PREFIXES[fragment[0]]

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        match = self.VALUE_REGEX.match(fragment, 1)
        if not match:
            raise ParserError('Valor ausente', fragment)
        value = context.lookup_int(match.group())

        match fragment[0]:
            case 'V':
                _check_range('Voz', value, NUM_TRACKS - 1, fragment)
                context.bus.fire_track_changed(value)
            case 'L':
                _check_range('Camada', value, NUM_LAYERS - 1, fragment)
                context.bus.fire_layer_changed(value)
            case _:
                _check_range('Instrumento', value, MAX_MIDI_VALUE, fragment)
                context.bus.fire_instrument_parsed(value)

        return match.end()


class BarLineSubparser(Subparser):
    token_type = TokenType.BAR_LINE

    @override
    def matches(self, fragment: str) -> bool:
        return fragment.startswith('|')

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        identifier = fragment[1:]
        if identifier and not identifier.isdigit():
            raise ParserError('Identificador de compasso inválido', fragment)
        context.bus.fire_bar_line_parsed(int(identifier) if identifier else -1)
        return len(fragment)


class SignatureSubparser(Subparser):
    """Armadura de clave (`KEY:`/`K`) e fórmula de compasso (`TIME:`)."""

    KEY_SIGNATURE: Final[str] = 'KEY:'
    TIME_SIGNATURE: Final[str] = 'TIME:'

    ACCIDENTAL_COUNT_REGEX: Final[re.Pattern[str]] = re.compile(r'K(#+|B+)')
    KEY_NAME_REGEX: Final[re.Pattern[str]] = re.compile(r'([A-G][#B]?)(MAJ|MIN)?')
    TIME_REGEX: Final[re.Pattern[str]] = re.compile(r'(\d+)/(\d+)')

    @override
    def matches(self, fragment: str) -> bool:
        return (
            fragment.startswith((self.KEY_SIGNATURE, self.TIME_SIGNATURE))
            or self.ACCIDENTAL_COUNT_REGEX.fullmatch(fragment) is not None
        )

    @override
    def get_token_type(self, fragment: str) -> TokenType:
        if fragment.startswith(self.TIME_SIGNATURE):
            return TokenType.TIME_SIGNATURE
        return TokenType.KEY_SIGNATURE

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        if fragment.startswith(self.TIME_SIGNATURE):
            self._parse_time_signature(fragment, context)
            return len(fragment)

        text = fragment.removeprefix(self.KEY_SIGNATURE)
        key = self.create_key(text)
        context.key = key
        context.bus.fire_key_signature_parsed(
            key.accidentals, key.scale.major_or_minor_indicator
        )
        return len(fragment)

    def _parse_time_signature(self, fragment: str, context: ParserContext) -> None:
        match = self.TIME_REGEX.fullmatch(fragment, len(self.TIME_SIGNATURE))
        if not match:
            raise ParserError('Fórmula de compasso inválida', fragment)
        try:
            signature = TimeSignature(int(match.group(1)), int(match.group(2)))
        except ValueError as error:
            raise ParserError(str(error), fragment) from error

        context.time_signature = signature
        context.bus.fire_time_signature_parsed(signature.beats, signature.power_of_two)

    def create_key(self, text: str) -> Key:
        """Cria a tonalidade a partir de `CMAJ`, `F#MIN`, `G` ou `K###`."""
        text = text.upper()

        counted = self.ACCIDENTAL_COUNT_REGEX.fullmatch(text)
        if counted:
            symbols = counted.group(1)
            count = len(symbols) if symbols[0] == '#' else -len(symbols)
            if abs(count) > 7:
                raise ParserError('Acidentes demais na armadura', text)
            return Key.from_accidentals(count)

        named = self.KEY_NAME_REGEX.fullmatch(text)
        if not named:
            raise ParserError('Tonalidade inválida', text)

        name, mode = named.groups()
        scale = Scale.MINOR if mode == 'MIN' else Scale.MAJOR
        names = MINOR_KEY_NAMES if scale is Scale.MINOR else MAJOR_KEY_NAMES
        if name not in names and not any(
            pitch_class_for_name(candidate) == pitch_class_for_name(name)
            for candidate in names
        ):
            raise ParserError('Tonalidade inválida', text)

        root = Note(
            value=48 + pitch_class_for_name(name),
            octave_explicitly_set=True,
            original_string=name,
        )
        return Key(root, scale)


class TempoSubparser(Subparser):
    """Andamento em BPM: `T120`, `T[ALLEGRO]`."""

    token_type = TokenType.TEMPO

    @override
    def matches(self, fragment: str) -> bool:
        return len(fragment) > 1 and fragment[0] == 'T'

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        bpm = context.lookup_int(fragment[1:])
        if bpm <= 0:
            raise ParserError('Andamento deve ser positivo', fragment)
        context.bus.fire_tempo_changed(bpm)
        return len(fragment)


class BeatTimeSubparser(Subparser):
    """Marcadores de tempo: `#NOME` define, `@#NOME` retorna e `@1.5` posiciona."""

    BOOKMARK: Final[str] = '#'
    REQUEST: Final[str] = '@'

    @override
    def matches(self, fragment: str) -> bool:
        return len(fragment) > 1 and fragment[0] in (self.BOOKMARK, self.REQUEST)

    @override
    def get_token_type(self, fragment: str) -> TokenType:
        if fragment[0] == self.BOOKMARK:
            return TokenType.TRACK_TIME_BOOKMARK
        return TokenType.TRACK_TIME_BOOKMARK_REQUESTED

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        if fragment[0] == self.BOOKMARK:
            context.bus.fire_track_beat_time_bookmarked(fragment[1:])
        elif fragment[1] == self.BOOKMARK:
            if len(fragment) < 3:
                raise ParserError('Marcador sem nome', fragment)
            context.bus.fire_track_beat_time_bookmark_requested(fragment[2:])
        else:
            try:
                time = float(fragment[1:])
            except ValueError:
                raise ParserError('Tempo inválido', fragment) from None
            if time < 0:
                raise ParserError('Tempo não pode ser negativo', fragment)
            context.bus.fire_track_beat_time_requested(time)
        return len(fragment)


class LyricMarkerSubparser(Subparser):
    """Letra (`&`) e marcação (`!`); `&(duas palavras)` preserva espaços."""

    LYRIC: Final[str] = '&'
    MARKER: Final[str] = '!'

    @override
    def matches(self, fragment: str) -> bool:
        return len(fragment) > 1 and fragment[0] in (self.LYRIC, self.MARKER)

    @override
    def get_token_type(self, fragment: str) -> TokenType:
        return TokenType.LYRIC if fragment[0] == self.LYRIC else TokenType.MARKER

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        text = fragment[1:]
        if text.startswith('(') and text.endswith(')'):
            text = text[1:-1].replace('_', ' ')

        if fragment[0] == self.LYRIC:
            context.bus.fire_lyric_parsed(text)
        else:
            context.bus.fire_marker_parsed(text)
        return len(fragment)


class FunctionSubparser(Subparser):
    """Chamadas `:NOME(parâmetros)` resolvidas pelo `FunctionManager`."""

    token_type = TokenType.FUNCTION

    FUNCTION_REGEX: Final[re.Pattern[str]] = re.compile(r':(\w+)(?:\((.*)\))?')

    def __init__(self, functions: FunctionManager) -> None:
        self.functions: FunctionManager = functions

    @override
    def matches(self, fragment: str) -> bool:
        return len(fragment) > 1 and fragment[0] == ':'

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        match = self.FUNCTION_REGEX.fullmatch(fragment)
        if not match:
            raise ParserError('Chamada de função inválida', fragment)

        name, parameters = match.group(1), match.group(2) or ''
        function = self.functions.get_subparser_function(name)
        if function:
            function.apply(split_parameters(parameters), context)
        else:
            context.bus.fire_function_parsed(name.upper(), parameters.replace('_', ' '))
        return len(fragment)


class AtomSubparser(Subparser):
    """Átomo `%V0,L0,I0,C5Q`: voz, camada e instrumento junto de uma nota."""

    token_type = TokenType.ATOM

    ATOM: Final[str] = '%'
    QUARK_SEPARATOR: Final[str] = ','

    def __init__(self, ivl: IVLSubparser, notes: 'NoteSubparser') -> None:
        self.ivl: IVLSubparser = ivl
        self.notes: NoteSubparser = notes

    @override
    def matches(self, fragment: str) -> bool:
        return len(fragment) > 1 and fragment[0] == self.ATOM

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        for quark in fragment[1:].split(self.QUARK_SEPARATOR):
            if self.ivl.matches(quark):
                consumed = self.ivl.parse(quark, context)
            elif self.notes.matches(quark):
                consumed = self.notes.parse(quark, context)
            else:
                raise ParserError('Elemento de átomo inválido', quark)
            if consumed != len(quark):
                raise ParserError('Elemento de átomo inválido', quark)
        return len(fragment)


def _check_range(name: str, value: int, upper: int, fragment: str) -> None:
    if not 0 <= value <= upper:
        raise ParserError(f'{name} fora do intervalo 0-{upper}', fragment)
