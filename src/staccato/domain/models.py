from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from staccato.config import (
    DEFAULT_BASS_OCTAVE,
    DEFAULT_DURATION,
    DEFAULT_OCTAVE,
    DEFAULT_VELOCITY,
    build_default_dictionary,
)
from staccato.domain.bus import EventBus
from staccato.domain.errors import SymbolLookupError
from staccato.domain.theory import (
    ChordProvider,
    Key,
    KeyProvider,
    Note,
    NoteProvider,
    Scale,
    TimeSignature,
    default_key_provider,
    default_note_provider,
)

if TYPE_CHECKING:
    from staccato.domain.functions import PreprocessorFunction, SubparserFunction
    from staccato.domain.preprocessors import Instruction


@dataclass
class NoteSettings:
    """Valores aplicados às notas que não os declaram."""

    default_octave: int = DEFAULT_OCTAVE
    default_bass_octave: int = DEFAULT_BASS_OCTAVE
    default_duration: float = DEFAULT_DURATION
    default_on_velocity: int = DEFAULT_VELOCITY
    default_off_velocity: int = DEFAULT_VELOCITY
    adjust_by_key_signature: bool = True


@dataclass
class ParserConfiguration:
    """Configuração injetada no parser; `ParserConfiguration()` é o padrão."""

    note_settings: NoteSettings = field(default_factory=NoteSettings)
    strict: bool = False
    replacement_map: dict[str, str] = field(default_factory=dict)
    replacement_map_case_insensitive: bool = False
    require_angle_brackets: bool = True
    replacement_iterations: int = 1
    instructions: 'dict[str, Instruction | str]' = field(default_factory=dict)
    dictionary: dict[str, str] = field(default_factory=dict)
    functions: 'list[PreprocessorFunction | SubparserFunction]' = field(
        default_factory=list
    )


class ParserContext:
    """Estado compartilhado pelos subparsers de um mesmo parser."""

    def __init__(
        self,
        configuration: ParserConfiguration | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.configuration: ParserConfiguration = configuration or ParserConfiguration()
        self.bus: EventBus = bus or EventBus()
        self.dictionary: dict[str, str] = build_default_dictionary()
        self.dictionary.update(
            {name.upper(): value for name, value in self.configuration.dictionary.items()}
        )
        self._note_provider: NoteProvider | None = None
        self._chord_provider: ChordProvider | None = None
        self._key_provider: KeyProvider | None = None
        self.reset()

    def reset(self) -> None:
        """Volta tonalidade, compasso e padrões de nota ao início; mantém o dicionário."""
        self.note_settings: NoteSettings = replace(self.configuration.note_settings)
        self.key: Key = Key(Note(48, octave_explicitly_set=True, original_string='C'), Scale.MAJOR)
        self.time_signature: TimeSignature = TimeSignature(4, 4)

    @property
    def note_provider(self) -> NoteProvider:
        return self._note_provider or default_note_provider()

    @note_provider.setter
    def note_provider(self, provider: NoteProvider) -> None:
        self._note_provider = provider

    @property
    def chord_provider(self) -> ChordProvider:
        return self._chord_provider or default_note_provider()

    @chord_provider.setter
    def chord_provider(self, provider: ChordProvider) -> None:
        self._chord_provider = provider

    @property
    def key_provider(self) -> KeyProvider:
        return self._key_provider or default_key_provider()

    @key_provider.setter
    def key_provider(self, provider: KeyProvider) -> None:
        self._key_provider = provider

    def lookup(self, name: str) -> str:
        try:
            return self.dictionary[name.upper()]
        except KeyError:
            raise SymbolLookupError('Símbolo desconhecido', name) from None

    def lookup_int(self, name: str) -> int:
        """Resolve `120`, `[ALLEGRO]` ou `ALLEGRO` para um inteiro."""
        text = name.strip()
        if text.startswith('[') and text.endswith(']'):
            text = text[1:-1]
        if text.isdigit():
            return int(text)

        value = self.lookup(text)
        try:
            return int(value)
        except ValueError:
            raise SymbolLookupError('Símbolo sem valor numérico', name) from None

    def load_dictionary(self, lines: Iterable[str]) -> None:
        """Carrega linhas `$NOME=VALOR`; linhas iniciadas por `#` são comentários."""
        for raw_line in lines:
            line = raw_line.strip()
            if not line.startswith('$') or '=' not in line:
                continue
            name, value = line[1:].split('=', 1)
            self.dictionary[name.strip().upper()] = value.strip()
