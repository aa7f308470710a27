import logging
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Final
from typing_extensions import override

from staccato.config import PITCH_BEND_CENTER
from staccato.domain.errors import ParserError
from staccato.domain.formatting import replace_dollars_with_candidates
from staccato.domain.functions import FunctionManager
from staccato.domain.models import ParserContext
from staccato.domain.theory import FREQUENCY_OF_NOTE_ZERO, Note

logger = logging.getLogger(__name__)

DEFAULT_MICROTONE_QUALIFIER: Final[str] = '/0.25'


class Preprocessor(ABC):
    """Etapa que reescreve o texto antes da divisão em fragmentos."""

    @abstractmethod
    def preprocess(self, text: str, context: ParserContext) -> str:
        """Devolve o texto transformado."""


# --- Instruções ({volume 100}) ---


class Instruction(ABC):
    """Tratador de uma instrução entre chaves."""

    @abstractmethod
    def apply(self, arguments: list[str]) -> str:
        """Recebe o conteúdo das chaves separado por espaços."""


class Choice(Instruction):
    """`{modo 1}` escolhe a alternativa pelo índice do último argumento."""

    def __init__(self, *choices: str) -> None:
        self.choices: tuple[str, ...] = choices

    @override
    def apply(self, arguments: list[str]) -> str:
        try:
            return self.choices[int(arguments[-1], 0)]
        except (ValueError, IndexError):
            raise ParserError('Escolha inválida para a instrução', ' '.join(arguments)) from None


class Switch(Instruction):
    """`{sustain ON}` troca `$` pelo valor ligado ou desligado."""

    def __init__(self, template: str, on_value: str, off_value: str) -> None:
        self.template: str = template
        self.on_value: str = on_value
        self.off_value: str = off_value

    @override
    def apply(self, arguments: list[str]) -> str:
        match arguments[-1].upper():
            case 'ON':
                return self.template.replace('$', self.on_value)
            case 'OFF':
                return self.template.replace('$', self.off_value)
            case _:
                return self.template


class LastIsValue(Instruction):
    """`{volume 100}` troca `$` pelo último argumento."""

    def __init__(self, template: str) -> None:
        self.template: str = template

    @override
    def apply(self, arguments: list[str]) -> str:
        return self.template.replace('$', arguments[-1])


class LastIsValueToSplit(Instruction):
    """O divisor converte o último argumento em pares marcador/valor do molde."""

    def __init__(self, template: str, splitter: Callable[[str], dict[str, str]]) -> None:
        self.template: str = template
        self.splitter: Callable[[str], dict[str, str]] = splitter

    @override
    def apply(self, arguments: list[str]) -> str:
        result = self.template
        for key, value in self.splitter(arguments[-1]).items():
            result = result.replace(key, value)
        return result


# --- Etapas ---


class ReplacementMapPreprocessor(Preprocessor):
    """Troca `<NOME>` (ou palavras soltas) pelos valores do mapa configurado."""

    BRACKETED_REGEX: Final[re.Pattern[str]] = re.compile(r'<[^<>\s]+>')
    BARE_REGEX: Final[re.Pattern[str]] = re.compile(r'\S+')

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        configuration = context.configuration
        if not configuration.replacement_map:
            return text

        mapping = configuration.replacement_map
        if configuration.replacement_map_case_insensitive:
            mapping = {key.upper(): value for key, value in mapping.items()}
        regex = self.BRACKETED_REGEX if configuration.require_angle_brackets else self.BARE_REGEX

        def replace(match: re.Match[str]) -> str:
            token = match.group()
            key = token[1:-1] if configuration.require_angle_brackets else token
            if configuration.replacement_map_case_insensitive:
                key = key.upper()
            return mapping.get(key, token)

        for _ in range(configuration.replacement_iterations):
            text = regex.sub(replace, text)
        return text


class InstructionPreprocessor(Preprocessor):
    INSTRUCTION_REGEX: Final[re.Pattern[str]] = re.compile(r'\{[ -~]*?}')

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        instructions = context.configuration.instructions

        def replace(match: re.Match[str]) -> str:
            content = match.group()[1:-1]
            keys = [key for key in instructions if content.startswith(key)]
            if not keys:
                logger.debug('Instrução sem tratador: %r', content)
                return content

            handler = instructions[max(keys, key=len)]
            if isinstance(handler, str):
                return handler
            return handler.apply(content.split(' '))

        return self.INSTRUCTION_REGEX.sub(replace, text)


class UppercasePreprocessor(Preprocessor):
    """Converte para maiúsculas, preservando letras, marcações e parâmetros de funções."""

    PRESERVED_REGEX: Final[re.Pattern[str]] = re.compile(
        r'(?<!\S)[&!](?:\([^)]*\)\S*|\S*)|:\w+\([^)]*\)'
    )

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        parts: list[str] = []
        pos = 0
        for match in self.PRESERVED_REGEX.finditer(text):
            parts.append(text[pos : match.start()].upper())
            token = match.group()
            if token.startswith(':'):
                name, _, payload = token.partition('(')
                token = f'{name.upper()}({payload}'
            parts.append(token)
            pos = match.end()
        parts.append(text[pos:].upper())
        return ''.join(parts)


class CollectedNotesPreprocessor(Preprocessor):
    """`(C E G)Q` vira `CQ+EQ+GQ`."""

    COLLECTED_REGEX: Final[re.Pattern[str]] = re.compile(r'(?<!\S)\(([^()]*)\)(\S*)')
    CONNECTOR_REGEX: Final[re.Pattern[str]] = re.compile(r'([+_])')

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        def replace(match: re.Match[str]) -> str:
            suffix = match.group(2)
            elements = [
                ''.join(
                    piece if piece in ('+', '_') else piece + suffix
                    for piece in self.CONNECTOR_REGEX.split(element)
                    if piece
                )
                for element in match.group(1).split()
            ]
            return '+'.join(elements)

        return self.COLLECTED_REGEX.sub(replace, text)


class ParenSpacesPreprocessor(Preprocessor):
    PARENS_REGEX: Final[re.Pattern[str]] = re.compile(r'\([^()]*\)')

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        return self.PARENS_REGEX.sub(lambda match: match.group().replace(' ', '_'), text)


class FunctionPreprocessor(Preprocessor):
    """Expande as funções de pré-processamento (`:TRILL(...)`)."""

    FUNCTION_REGEX: Final[re.Pattern[str]] = re.compile(r':(\w+)\(([^()]*)\)')

    def __init__(self, functions: FunctionManager) -> None:
        self.functions: FunctionManager = functions

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        def replace(match: re.Match[str]) -> str:
            function = self.functions.get_preprocessor_function(match.group(1))
            if function is None:
                return match.group()
            return function.apply(match.group(2), context).upper()

        return self.FUNCTION_REGEX.sub(replace, text)


class MicrotonePreprocessor(Preprocessor):
    """`M440.5Q` vira a nota mais próxima entre dois ajustes de pitch wheel."""

    MICROTONE_REGEX: Final[re.Pattern[str]] = re.compile(r'(?<!\S)M(\S*)')
    FREQUENCY_REGEX: Final[re.Pattern[str]] = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(.*)')

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        def replace(match: re.Match[str]) -> str:
            parsed = self.FREQUENCY_REGEX.fullmatch(match.group(1))
            if not parsed:
                raise ParserError('Microtom sem frequência', match.group())
            frequency = float(parsed.group(1))
            if frequency <= 0:
                raise ParserError('Frequência deve ser positiva', match.group())

            qualifier = parsed.group(2) or DEFAULT_MICROTONE_QUALIFIER
            note, bend = self.note_and_bend(frequency)
            return f':PitchWheel({bend}) {note}{qualifier} :PitchWheel({PITCH_BEND_CENTER})'

        return self.MICROTONE_REGEX.sub(replace, text)

    @staticmethod
    def note_and_bend(frequency: float) -> tuple[int, int]:
        # Deslocamento de uma oitava herdado do formato; ver DESIGN.md
        exact = 12 * math.log2(frequency / FREQUENCY_OF_NOTE_ZERO)
        whole = math.floor(exact)
        bend = PITCH_BEND_CENTER + int((exact - whole) * PITCH_BEND_CENTER)
        return whole - 12, bend


def convert_frequency_to_staccato(
    frequency: float,
    qualifier: str = DEFAULT_MICROTONE_QUALIFIER,
) -> str:
    """Nota temperada mais próxima da frequência, sem ajuste de pitch wheel."""
    exact = 12 * math.log2(frequency / FREQUENCY_OF_NOTE_ZERO)
    return f'{round(exact) - 12}{qualifier}'


class BrokenChordPreprocessor(Preprocessor):
    """`C4MAJ:$0Q,$1Q,$2Q,$!H` vira as notas do acorde na ordem pedida."""

    BROKEN_CHORD_REGEX: Final[re.Pattern[str]] = re.compile(r'(?<!\S)([^\s:]+):(\S*\$\S*)')

    @override
    def preprocess(self, text: str, context: ParserContext) -> str:
        def replace(match: re.Match[str]) -> str:
            chord = context.chord_provider.create_chord(match.group(1))
            candidates = [Note.tone_string_for(note.value) for note in chord.get_notes()]
            try:
                return replace_dollars_with_candidates(match.group(2), candidates).upper()
            except IndexError as error:
                raise ParserError(str(error), match.group()) from error

        return self.BROKEN_CHORD_REGEX.sub(replace, text)


def default_preprocessors(functions: FunctionManager) -> list[Preprocessor]:
    return [
        ReplacementMapPreprocessor(),
        InstructionPreprocessor(),
        UppercasePreprocessor(),
        CollectedNotesPreprocessor(),
        ParenSpacesPreprocessor(),
        FunctionPreprocessor(functions),
        MicrotonePreprocessor(),
        BrokenChordPreprocessor(),
    ]
