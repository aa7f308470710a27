import re
from typing import Final, NamedTuple
from typing_extensions import override

from staccato.config import MAX_MIDI_VALUE, MAX_OCTAVE
from staccato.domain.errors import ParserError
from staccato.domain.models import NoteSettings, ParserConfiguration, ParserContext
from staccato.domain.subparsers import Subparser
from staccato.domain.theory import (
    CHORD_MAP,
    DURATION_LETTERS,
    LETTER_PITCH_CLASSES,
    Chord,
    Intervals,
    Note,
)
from staccato.domain.tokens import TokenType


class _Root(NamedTuple):
    """Raiz lida do texto, antes de aplicar oitava padrão."""

    value: int
    is_absolute: bool
    is_rest: bool
    is_percussion: bool
    octave: int | None
    original: str


class NoteSubparser(Subparser):
    """Notas, pausas e acordes, unidos por `+` (harmonia) e `_` (melodia).

    Também é o provedor padrão de notas, acordes e durações.
    """

    token_type = TokenType.NOTE

    NOTE_START: Final[frozenset[str]] = frozenset('ABCDEFGR[0123456789')
    ACCIDENTALS: Final[str] = '#BN'
    HARMONIC: Final[str] = '+'
    MELODIC: Final[str] = '_'

    DIGITS_REGEX: Final[re.Pattern[str]] = re.compile(r'\d+')
    OCTAVE_REGEX: Final[re.Pattern[str]] = re.compile(r'\d{1,2}')
    NUMERIC_DURATION_REGEX: Final[re.Pattern[str]] = re.compile(r'/(\d+(?:\.\d*)?|\.\d+)')
    TUPLET_REGEX: Final[re.Pattern[str]] = re.compile(r'\*(?:(\d+):(\d+))?')
    VELOCITY_REGEX: Final[re.Pattern[str]] = re.compile(r'([AD])(\d+)')

    def __init__(self, settings: NoteSettings | None = None) -> None:
        self._context = ParserContext(ParserConfiguration(note_settings=settings or NoteSettings()))
        self._context.note_provider = self
        self._context.chord_provider = self

    @override
    def matches(self, fragment: str) -> bool:
        if not fragment or fragment[0] not in self.NOTE_START:
            return False
        try:
            self._scan(fragment, self._context, resolve=False)
        except ParserError:
            return False
        return True

    @override
    def parse(self, fragment: str, context: ParserContext) -> int:
        for element in self._scan(fragment, context):
            if isinstance(element, Chord):
                context.bus.fire_chord_parsed(element)
            else:
                context.bus.fire_note_parsed(element)
        return len(fragment)

    def create_note(self, text: str) -> Note:
        elements = self._scan(text.upper(), self._context)
        if len(elements) != 1 or not isinstance(elements[0], Note):
            raise ParserError('Texto não descreve uma única nota', text)
        return elements[0]

    def create_chord(self, text: str) -> Chord:
        elements = self._scan(text.upper(), self._context)
        if len(elements) != 1 or not isinstance(elements[0], Chord):
            raise ParserError('Texto não descreve um único acorde', text)
        return elements[0]

    def duration_for_string(self, text: str) -> float:
        text = text.upper()
        duration, pos = self._parse_duration(text, 0)
        if duration is None or pos != len(text):
            raise ParserError('Duração inválida', text)
        return duration

    def _scan(
        self,
        text: str,
        context: ParserContext,
        resolve: bool = True,
    ) -> list[Note | Chord]:
        elements: list[Note | Chord] = []
        connector: str | None = None
        pos = 0

        while True:
            element, pos = self._parse_element(text, pos, context, resolve, connector)
            elements.append(element)
            if pos == len(text):
                return elements

            connector = text[pos]
            if connector not in (self.HARMONIC, self.MELODIC):
                raise ParserError('Caractere inesperado na nota', text, pos)
            pos += 1

    def _parse_element(
        self,
        text: str,
        pos: int,
        context: ParserContext,
        resolve: bool,
        connector: str | None,
    ) -> tuple[Note | Chord, int]:
        settings = context.note_settings
        root, pos = self._parse_root(text, pos, context, resolve)

        chord_name = None
        if not root.is_rest:
            chord_name = next((name for name in CHORD_MAP if text.startswith(name, pos)), None)
            if chord_name:
                pos += len(chord_name)

        inversion, bass = 0, None
        if chord_name and text.startswith('^', pos):
            inversion, bass, pos = self._parse_inversion(text, pos, context, resolve)

        is_end_of_tie = False
        if text.startswith('-', pos) and (
            text[pos + 1 : pos + 2] in DURATION_LETTERS or text.startswith('/', pos + 1)
        ):
            is_end_of_tie = True
            pos += 1

        duration, pos = self._parse_duration(text, pos)

        is_start_of_tie = text.startswith('-', pos)
        if is_start_of_tie:
            pos += 1

        on_velocity, off_velocity = settings.default_on_velocity, settings.default_off_velocity
        while match := self.VELOCITY_REGEX.match(text, pos):
            velocity = int(match.group(2))
            if velocity > MAX_MIDI_VALUE:
                raise ParserError('Velocidade fora do intervalo 0-127', text, pos)
            if match.group(1) == 'A':
                on_velocity = velocity
            else:
                off_velocity = velocity
            pos = match.end()

        default_octave = settings.default_bass_octave if chord_name else settings.default_octave
        note = Note(
            value=self._value_for(root, default_octave, text),
            duration=duration if duration is not None else settings.default_duration,
            on_velocity=on_velocity,
            off_velocity=off_velocity,
            is_rest=root.is_rest,
            octave_explicitly_set=root.is_absolute or root.octave is not None,
            duration_explicitly_set=duration is not None,
            is_start_of_tie=is_start_of_tie,
            is_end_of_tie=is_end_of_tie,
            is_first_note=connector is None,
            is_melodic_note=connector == self.MELODIC,
            is_harmonic_note=connector == self.HARMONIC,
            is_percussion_note=root.is_percussion,
            original_string=root.original,
        )

        if not chord_name:
            return note, pos

        try:
            chord = Chord(note, Intervals(CHORD_MAP[chord_name].degrees), inversion)
            if bass is not None:
                chord.set_bass_note(bass)
            # Notas do acorde acima de 127 só aparecem ao gerá-las
            chord.get_notes()
        except ValueError as error:
            raise ParserError(str(error), text, pos) from error
        return chord, pos

    def _parse_root(
        self,
        text: str,
        pos: int,
        context: ParserContext,
        resolve: bool,
    ) -> tuple[_Root, int]:
        start = pos
        char = text[pos : pos + 1]

        if char == 'R':
            return _Root(0, True, True, False, None, 'R'), pos + 1

        if char == '[':
            end = text.find(']', pos)
            name = text[pos + 1 : end]
            if end < 0 or not name:
                raise ParserError('Colchete de nota sem fechamento', text, pos)
            if name.isdigit():
                return _Root(int(name), True, False, False, None, text[start : end + 1]), end + 1
            value = context.lookup_int(name) if resolve else 0
            return _Root(value, True, False, True, None, text[start : end + 1]), end + 1

        if char.isdigit():
            match = self.DIGITS_REGEX.match(text, pos)
            return _Root(int(match.group()), True, False, False, None, match.group()), match.end()

        if char not in LETTER_PITCH_CLASSES:
            raise ParserError('Nota inválida', text, pos)

        pitch_class = LETTER_PITCH_CLASSES[char]
        pos += 1
        is_marked = False
        while pos < len(text) and text[pos] in self.ACCIDENTALS:
            if text[pos] == '#':
                pitch_class += 1
            elif text[pos] == 'B':
                pitch_class -= 1
            is_marked = True
            pos += 1

        if not is_marked and context.note_settings.adjust_by_key_signature:
            pitch_class += context.key.accidental_for_letter(char)

        octave = None
        if match := self.OCTAVE_REGEX.match(text, pos):
            octave = int(match.group())
            if octave > MAX_OCTAVE:
                raise ParserError(f'Oitava fora do intervalo 0-{MAX_OCTAVE}', text, pos)
            pos = match.end()

        return _Root(pitch_class, False, False, False, octave, text[start:pos]), pos

    def _parse_inversion(
        self,
        text: str,
        pos: int,
        context: ParserContext,
        resolve: bool,
    ) -> tuple[int, Note | None, int]:
        """Lê `^^` (número de inversões) ou `^E` (nota do baixo)."""
        following = text[pos + 1 : pos + 2]
        if following and (following in LETTER_PITCH_CLASSES or following in '[0123456789'):
            root, end = self._parse_root(text, pos + 1, context, resolve)
            value = root.value if root.is_absolute else root.value % 12
            return 0, Note(value=value), end

        inversion = 0
        while text.startswith('^', pos):
            inversion += 1
            pos += 1
        return inversion, None, pos

    def _parse_duration(self, text: str, pos: int) -> tuple[float | None, int]:
        """Soma letras (`HQ`), multiplicadores (`W2`), pontos e quiálteras."""
        total = 0.0
        found = False

        if match := self.NUMERIC_DURATION_REGEX.match(text, pos):
            total = float(match.group(1))
            found = True
            pos = match.end()
        else:
            while pos < len(text) and text[pos] in DURATION_LETTERS:
                addition = DURATION_LETTERS[text[pos]]
                pos += 1
                if match := self.DIGITS_REGEX.match(text, pos):
                    addition *= int(match.group())
                    pos = match.end()
                total += addition
                while text.startswith('.', pos):
                    addition /= 2
                    total += addition
                    pos += 1
                found = True

        if not found:
            return None, pos

        if match := self.TUPLET_REGEX.match(text, pos):
            numerator = int(match.group(1)) if match.group(1) else 3
            denominator = int(match.group(2)) if match.group(2) else 2
            if numerator == 0:
                raise ParserError('Quiáltera inválida', text, pos)
            total *= denominator / numerator
            pos = match.end()
        return total, pos

    @staticmethod
    def _value_for(root: _Root, default_octave: int, text: str) -> int:
        if root.is_rest:
            return 0
        if root.is_absolute:
            value = root.value
        else:
            octave = root.octave if root.octave is not None else default_octave
            value = octave * 12 + root.value
        if not 0 <= value <= MAX_MIDI_VALUE:
            raise ParserError('Nota fora do intervalo 0-127', text)
        return value
