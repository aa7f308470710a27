import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, fields, replace
from functools import cache
from typing import TYPE_CHECKING, ClassVar, Final, Protocol

from staccato.config import (
    DEFAULT_VELOCITY,
    MAX_MIDI_VALUE,
    PERCUSSION_NAMES,
)
from staccato.domain.formatting import replace_dollars_with_candidates

if TYPE_CHECKING:
    from staccato.domain.note_subparser import NoteSubparser
    from staccato.domain.subparsers import SignatureSubparser

NOTE_NAMES_COMMON: Final[tuple[str, ...]] = (
    'C', 'C#', 'D', 'Eb', 'E', 'F', 'F#', 'G', 'G#', 'A', 'Bb', 'B',
)  # fmt: skip
NOTE_NAMES_SHARP: Final[tuple[str, ...]] = (
    'C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B',
)  # fmt: skip
NOTE_NAMES_FLAT: Final[tuple[str, ...]] = (
    'C', 'Db', 'D', 'Eb', 'E', 'F', 'Gb', 'G', 'Ab', 'A', 'Bb', 'B',
)  # fmt: skip

LETTER_PITCH_CLASSES: Final[dict[str, int]] = {
    'C': 0,
    'D': 2,
    'E': 4,
    'F': 5,
    'G': 7,
    'A': 9,
    'B': 11,
}

FREQUENCY_OF_NOTE_ZERO: Final[float] = 8.1757989156

DURATION_LETTERS: Final[dict[str, float]] = {
    'W': 1.0,
    'H': 0.5,
    'Q': 0.25,
    'I': 0.125,
    'S': 0.0625,
    'T': 0.03125,
    'X': 0.015625,
    'O': 0.0078125,
}

_DURATION_STRINGS: Final[tuple[tuple[float, str], ...]] = (
    (0.75, 'h.'),
    (0.5, 'h'),
    (0.375, 'q.'),
    (0.25, 'q'),
    (0.1875, 'i.'),
    (0.125, 'i'),
    (0.09375, 's.'),
    (0.0625, 's'),
    (0.046875, 't.'),
    (0.03125, 't'),
    (0.0234375, 'x.'),
    (0.015625, 'x'),
    (0.01171875, 'o.'),
    (0.0078125, 'o'),
)

_DURATION_TOLERANCE: Final[float] = 1e-9


class NoteProvider(Protocol):
    def create_note(self, text: str) -> 'Note': ...

    def duration_for_string(self, text: str) -> float: ...


class ChordProvider(Protocol):
    def create_chord(self, text: str) -> 'Chord': ...


class KeyProvider(Protocol):
    def create_key(self, text: str) -> 'Key': ...


@cache
def default_note_provider() -> 'NoteSubparser':
    """Provedor de notas e acordes usado quando nenhum é injetado."""
    from staccato.domain.note_subparser import NoteSubparser  # noqa: PLC0415

    return NoteSubparser()


@cache
def default_key_provider() -> 'SignatureSubparser':
    """Provedor de tonalidades usado quando nenhum é injetado."""
    from staccato.domain.subparsers import SignatureSubparser  # noqa: PLC0415

    return SignatureSubparser()


def pitch_class_for_name(name: str) -> int:
    """Converte um nome como `Eb` ou `F#` na classe de altura (0-11)."""
    letter = name[:1].upper()
    if letter not in LETTER_PITCH_CLASSES:
        msg = f'Nome de nota inválido: {name!r}'
        raise ValueError(msg)

    accidentals = name[1:]
    offset = accidentals.count('#') - accidentals.upper().count('B')
    return (LETTER_PITCH_CLASSES[letter] + offset) % 12


@dataclass(eq=False)
class Note:
    """Nota (ou pausa) com duração em frações de semibreve."""

    value: int = 0
    duration: float = 0.0
    on_velocity: int = DEFAULT_VELOCITY
    off_velocity: int = DEFAULT_VELOCITY
    is_rest: bool = False
    octave_explicitly_set: bool = False
    duration_explicitly_set: bool = False
    is_start_of_tie: bool = False
    is_end_of_tie: bool = False
    is_first_note: bool = True
    is_melodic_note: bool = False
    is_harmonic_note: bool = False
    is_percussion_note: bool = False
    original_string: str | None = None

    def __post_init__(self) -> None:
        for name in ('value', 'on_velocity', 'off_velocity'):
            number = getattr(self, name)
            if not 0 <= number <= MAX_MIDI_VALUE:
                msg = f'{name} fora do intervalo 0-{MAX_MIDI_VALUE}: {number}'
                raise ValueError(msg)

    @classmethod
    def from_string(cls, text: str, provider: NoteProvider | None = None) -> 'Note':
        return (provider or default_note_provider()).create_note(text)

    @classmethod
    def rest(cls, duration: float) -> 'Note':
        return cls(is_rest=True, duration=duration, duration_explicitly_set=True)

    def copy(self) -> 'Note':
        return replace(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Note):
            return NotImplemented
        if (
            self.original_string is not None
            and other.original_string is not None
            and self.original_string.upper() != other.original_string.upper()
        ):
            return False
        return self._comparable() == other._comparable()

    def _comparable(self) -> tuple[object, ...]:
        return tuple(
            getattr(self, field.name)
            for field in fields(self)
            if field.name != 'original_string'
        )

    @property
    def octave(self) -> int:
        return self.value // 12

    @property
    def position_in_octave(self) -> int:
        return self.value % 12

    @property
    def frequency(self) -> float:
        return self.frequency_for_note(self.value)

    @property
    def tone_string(self) -> str:
        if self.is_rest:
            return 'R'
        return self.tone_string_for(self.value)

    @property
    def pattern(self) -> str:
        """Texto em Staccato capaz de reconstruir esta nota."""
        if self.is_rest:
            tone = 'R'
        else:
            tone = self.original_string or self.tone_string
        return tone + self.decorations()

    @property
    def percussion_pattern(self) -> str:
        if self.is_rest:
            return self.pattern
        return self.percussion_string_for(self.value) + self.decorations()

    def decorations(self) -> str:
        """Duração, ligaduras e velocidades anexadas ao tom."""
        is_tied = self.is_start_of_tie or self.is_end_of_tie
        parts: list[str] = []

        if self.is_end_of_tie:
            parts.append('-')
        if self.duration_explicitly_set or is_tied:
            parts.append(self.duration_string_for(self.duration))
        if self.is_start_of_tie:
            parts.append('-')
        parts.append(self.velocity_string_for(self.on_velocity, self.off_velocity))
        return ''.join(parts)

    @staticmethod
    def tone_string_for(value: int, names: Sequence[str] = NOTE_NAMES_COMMON) -> str:
        return f'{names[value % 12]}{value // 12}'

    @staticmethod
    def tone_string_without_octave(value: int, names: Sequence[str] = NOTE_NAMES_COMMON) -> str:
        return names[value % 12]

    @staticmethod
    def percussion_string_for(value: int) -> str:
        name = PERCUSSION_NAMES.get(value)
        return f'[{name}]' if name else f'[{value}]'

    @staticmethod
    def frequency_for_note(value: float) -> float:
        return round(FREQUENCY_OF_NOTE_ZERO * 2 ** (value / 12), 4)

    @staticmethod
    def duration_string_for(duration: float) -> str:
        if duration <= 0:
            return ''

        whole = int(duration)
        remainder = duration - whole
        result = ''
        if whole > 0:
            result = 'w' if whole == 1 else f'w{whole}'

        if math.isclose(remainder, 0.0, abs_tol=_DURATION_TOLERANCE):
            return result
        for value, text in _DURATION_STRINGS:
            if math.isclose(remainder, value, abs_tol=_DURATION_TOLERANCE):
                return result + text
        return f'/{duration}'

    @staticmethod
    def velocity_string_for(on_velocity: int, off_velocity: int) -> str:
        text = ''
        if on_velocity != DEFAULT_VELOCITY:
            text += f'a{on_velocity}'
        if off_velocity != DEFAULT_VELOCITY:
            text += f'd{off_velocity}'
        return text

    def __str__(self) -> str:
        return self.pattern


_DEGREE_HALFSTEPS: Final[dict[int, int]] = {
    1: 0,
    2: 2,
    3: 4,
    4: 5,
    5: 7,
    6: 9,
    7: 11,
    8: 12,
    9: 14,
    10: 16,
    11: 17,
    12: 19,
    13: 21,
    14: 23,
    15: 24,
}
_HALFSTEP_DEGREES: Final[dict[int, int]] = {v: k for k, v in _DEGREE_HALFSTEPS.items()}


class Intervals:
    """Sequência de graus (`1 b3 5`) relativa a uma nota raiz opcional."""

    def __init__(self, pattern: str | Iterable[str], root: Note | None = None) -> None:
        degrees = pattern.split() if isinstance(pattern, str) else list(pattern)
        for degree in degrees:
            self.halfsteps_for(degree)
        self.degrees: list[str] = degrees
        self.root: Note | None = root

    @staticmethod
    def halfsteps_for(degree: str) -> int:
        digits = degree.lstrip('b#')
        prefix = degree[: len(degree) - len(digits)]
        if not digits.isdigit() or int(digits) not in _DEGREE_HALFSTEPS:
            msg = f'Grau inválido: {degree!r}'
            raise ValueError(msg)
        return _DEGREE_HALFSTEPS[int(digits)] + prefix.count('#') - prefix.count('b')

    @classmethod
    def from_notes(cls, notes: Sequence[Note]) -> 'Intervals':
        """Deriva os graus a partir da distância de cada nota até a primeira."""
        if not notes:
            msg = 'É necessária ao menos uma nota'
            raise ValueError(msg)

        degrees: list[str] = []
        for note in notes:
            diff = note.value - notes[0].value
            if diff in _HALFSTEP_DEGREES:
                degrees.append(str(_HALFSTEP_DEGREES[diff]))
            elif diff + 1 in _HALFSTEP_DEGREES:
                degrees.append(f'b{_HALFSTEP_DEGREES[diff + 1]}')
            else:
                msg = f'Distância sem grau correspondente: {diff}'
                raise ValueError(msg)
        return cls(degrees, root=notes[0])

    @property
    def halfsteps(self) -> list[int]:
        return [self.halfsteps_for(degree) for degree in self.degrees]

    @property
    def size(self) -> int:
        return len(self.degrees)

    def rotate(self, delta: int) -> 'Intervals':
        if not self.degrees:
            return Intervals([], self.root)
        shift = delta % len(self.degrees)
        return Intervals(self.degrees[shift:] + self.degrees[:shift], self.root)

    def has(self, degree: str) -> bool:
        return degree in self.degrees

    def get_notes(self) -> list[Note]:
        if self.root is None:
            msg = 'Intervalos sem nota raiz não geram notas'
            raise ValueError(msg)
        return [
            replace(self.root, value=self.root.value + halfstep, original_string=None)
            for halfstep in self.halfsteps
        ]

    def as_sequence(self, template: str) -> str:
        """Aplica o molde `$0 $1 ...` às notas geradas pelos intervalos."""
        candidates = [Note.tone_string_for(note.value) for note in self.get_notes()]
        return replace_dollars_with_candidates(template, candidates)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Intervals):
            return NotImplemented
        return self.degrees == other.degrees

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return ' '.join(self.degrees)

    def __repr__(self) -> str:
        return f'Intervals({str(self)!r})'


_CHORD_DEFINITIONS: Final[dict[str, str]] = {
    'MAJ': '1 3 5',
    'MAJ6': '1 3 5 6',
    'MAJ7': '1 3 5 7',
    'MAJ9': '1 3 5 7 9',
    'ADD9': '1 3 5 9',
    'MAJ6%9': '1 3 5 6 9',
    'MAJ7%6': '1 3 5 6 7',
    'MAJ13': '1 3 5 7 9 13',
    'MIN': '1 b3 5',
    'MIN6': '1 b3 5 6',
    'MIN7': '1 b3 5 b7',
    'MIN9': '1 b3 5 b7 9',
    'MIN11': '1 b3 5 b7 9 11',
    'MIN7%11': '1 b3 5 b7 11',
    'MINADD9': '1 b3 5 9',
    'MIN6%9': '1 b3 5 6 9',
    'MINMAJ7': '1 b3 5 7',
    'MINMAJ9': '1 b3 5 7 9',
    'DOM7': '1 3 5 b7',
    'DOM7%6': '1 3 5 6 b7',
    'DOM7%11': '1 3 5 b7 11',
    'DOM7SUS': '1 4 5 b7',
    'DOM7%6SUS': '1 4 5 6 b7',
    'DOM9': '1 3 5 b7 9',
    'DOM11': '1 3 5 b7 9 11',
    'DOM13': '1 3 5 b7 9 13',
    'DOM13SUS': '1 3 5 b7 11 13',
    'DOM7%6%11': '1 3 5 b7 9 11 13',
    'AUG': '1 3 #5',
    'AUG7': '1 3 #5 b7',
    'DIM': '1 b3 b5',
    'DIM7': '1 b3 b5 6',
    'SUS4': '1 4 5',
    'SUS2': '1 2 5',
}

# Nomes mais longos primeiro e, entre iguais, ordem alfabética
CHORD_MAP: Final[dict[str, Intervals]] = {
    name: Intervals(_CHORD_DEFINITIONS[name])
    for name in sorted(_CHORD_DEFINITIONS, key=lambda name: (-len(name), name))
}

_HUMAN_READABLE_CHORD_NAMES: Final[dict[str, str]] = {
    'MAJ6%9': '6/9',
    'MAJ7%6': '7/6',
}


class Chord:
    """Acorde formado por uma nota raiz, intervalos e inversão."""

    def __init__(self, root: Note, intervals: Intervals, inversion: int = 0) -> None:
        self.root: Note = root
        self.intervals: Intervals = intervals
        self.inversion: int = 0
        self.set_inversion(inversion)

    @classmethod
    def from_string(cls, text: str, provider: ChordProvider | None = None) -> 'Chord':
        return (provider or default_note_provider()).create_chord(text)

    @classmethod
    def from_notes(cls, notes: Sequence[Note] | str) -> 'Chord | None':
        """Tenta reconhecer um acorde nomeado a partir de notas soltas."""
        if isinstance(notes, str):
            notes = [Note.from_string(token) for token in notes.split()]
        if not notes:
            return None

        bass = min(notes, key=lambda note: note.value)
        pitch_classes = sorted({note.value % 12 for note in notes})

        for intervals in CHORD_MAP.values():
            wanted = {halfstep % 12 for halfstep in intervals.halfsteps}
            if len(wanted) != len(pitch_classes):
                continue
            for root_class in pitch_classes:
                if {(pc - root_class) % 12 for pc in pitch_classes} != wanted:
                    continue
                root = replace(
                    bass,
                    value=bass.value - (bass.value - root_class) % 12,
                    original_string=None,
                    is_first_note=True,
                    is_harmonic_note=False,
                    is_melodic_note=False,
                )
                return cls(root, Intervals(intervals.degrees)).set_bass_note(bass)
        return None

    @staticmethod
    def chord_names() -> list[str]:
        return list(CHORD_MAP)

    def set_inversion(self, inversion: int) -> 'Chord':
        if not 0 <= inversion < max(self.intervals.size, 1):
            msg = f'Inversão {inversion} inválida para {self.intervals.size} notas'
            raise ValueError(msg)
        self.inversion = inversion
        return self

    def set_bass_note(self, bass: Note) -> 'Chord':
        """Escolhe a inversão cuja nota mais grave tem a classe de `bass`.

        Baixos fora do acorde (C/D, por exemplo) não alteram a inversão.
        """
        for index, halfstep in enumerate(self.intervals.halfsteps):
            if (self.root.value + halfstep) % 12 == bass.value % 12:
                self.inversion = index
                break
        return self

    @property
    def bass_note(self) -> Note:
        return self.get_notes()[0]

    @property
    def chord_type(self) -> str | None:
        for name, intervals in CHORD_MAP.items():
            if intervals == self.intervals:
                return name
        return None

    @property
    def human_readable_name(self) -> str:
        chord_type = self.chord_type
        root = Note.tone_string_without_octave(self.root.value)
        if chord_type is None:
            return f'{root}({self.intervals})'
        return root + _HUMAN_READABLE_CHORD_NAMES.get(
            chord_type, chord_type.replace('%', '/').lower()
        )

    def get_notes(self) -> list[Note]:
        values = [self.root.value + halfstep for halfstep in self.intervals.halfsteps]
        for index in range(self.inversion):
            values[index] += 12
        values = values[self.inversion :] + values[: self.inversion]

        notes = [
            replace(
                self.root,
                value=values[0],
                original_string=self.root.original_string if self.inversion == 0 else None,
            )
        ]
        notes.extend(
            replace(
                self.root,
                value=value,
                is_first_note=False,
                is_harmonic_note=True,
                is_melodic_note=False,
                original_string=None,
            )
            for value in values[1:]
        )
        return notes

    @property
    def pattern(self) -> str:
        chord_type = self.chord_type
        if chord_type is None:
            return self.pattern_with_notes
        root = self.root.original_string or self.root.tone_string
        return f'{root}{chord_type.lower()}{"^" * self.inversion}{self.root.decorations()}'

    @property
    def pattern_with_notes(self) -> str:
        return '+'.join(
            Note.tone_string_for(note.value) + note.decorations() for note in self.get_notes()
        )

    def get_pattern_with_notes_except_root(self) -> str:
        notes = [note for note in self.get_notes() if note.value % 12 != self.root.value % 12]
        return '+'.join(Note.tone_string_for(note.value) for note in notes)

    def get_pattern_with_notes_except_bass(self) -> str:
        notes = self.get_notes()[1:]
        return '+'.join(Note.tone_string_for(note.value) for note in notes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Chord):
            return NotImplemented
        return (
            self.root == other.root
            and self.intervals == other.intervals
            and self.inversion == other.inversion
        )

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return self.pattern

    def __repr__(self) -> str:
        return f'Chord({self.pattern!r})'


class Scale:
    """Escala definida por intervalos e indicador maior (1) ou menor (-1)."""

    MAJOR: ClassVar['Scale']
    MINOR: ClassVar['Scale']

    def __init__(self, intervals: Intervals | str, major_or_minor_indicator: int = 1) -> None:
        self.intervals: Intervals = (
            Intervals(intervals) if isinstance(intervals, str) else intervals
        )
        self.major_or_minor_indicator: int = major_or_minor_indicator

    @property
    def is_major(self) -> bool:
        return self.major_or_minor_indicator >= 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scale):
            return NotImplemented
        return (
            self.intervals == other.intervals
            and self.major_or_minor_indicator == other.major_or_minor_indicator
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f'Scale({str(self.intervals)!r}, {self.major_or_minor_indicator})'


Scale.MAJOR = Scale('1 2 3 4 5 6 7', 1)
Scale.MINOR = Scale('1 2 b3 4 5 b6 b7', -1)

# Índice = número de acidentes + 7
MAJOR_KEY_NAMES: Final[tuple[str, ...]] = (
    'CB', 'GB', 'DB', 'AB', 'EB', 'BB', 'F', 'C', 'G', 'D', 'A', 'E', 'B', 'F#', 'C#',
)  # fmt: skip
MINOR_KEY_NAMES: Final[tuple[str, ...]] = (
    'AB', 'EB', 'BB', 'F', 'C', 'G', 'D', 'A', 'E', 'B', 'F#', 'C#', 'G#', 'D#', 'A#',
)  # fmt: skip

# Ordem em que sustenidos e bemóis aparecem na armadura
SHARP_ORDER: Final[str] = 'FCGDAEB'
FLAT_ORDER: Final[str] = 'BEADGCF'


class Key:
    """Tonalidade: nota raiz mais escala."""

    def __init__(self, root: Note, scale: Scale | None = None) -> None:
        self.root: Note = root
        self.scale: Scale = scale or Scale.MAJOR

    @classmethod
    def from_string(cls, text: str, provider: KeyProvider | None = None) -> 'Key':
        return (provider or default_key_provider()).create_key(text)

    @classmethod
    def from_accidentals(cls, accidentals: int, scale_indicator: int = 1) -> 'Key':
        if not -7 <= accidentals <= 7:
            msg = f'Número de acidentes inválido: {accidentals}'
            raise ValueError(msg)
        is_major = scale_indicator >= 0
        name = (MAJOR_KEY_NAMES if is_major else MINOR_KEY_NAMES)[accidentals + 7]
        root = Note(
            value=48 + pitch_class_for_name(name),
            octave_explicitly_set=True,
            original_string=name,
        )
        return cls(root, Scale.MAJOR if is_major else Scale.MINOR)

    @property
    def root_name(self) -> str:
        if self.root.original_string:
            return self.root.original_string.rstrip('0123456789').upper()
        return Note.tone_string_without_octave(self.root.value).upper()

    @property
    def accidentals(self) -> int:
        """Quantidade de sustenidos (positiva) ou bemóis (negativa)."""
        names = MAJOR_KEY_NAMES if self.scale.is_major else MINOR_KEY_NAMES
        if self.root_name in names:
            return names.index(self.root_name) - 7

        candidates = [
            index - 7
            for index, name in enumerate(names)
            if pitch_class_for_name(name) == self.root.value % 12
        ]
        return min(candidates, key=abs)

    @property
    def note_names(self) -> tuple[str, ...]:
        """Grafia das notas alteradas que combina com a armadura."""
        if self.accidentals > 0:
            return NOTE_NAMES_SHARP
        if self.accidentals < 0:
            return NOTE_NAMES_FLAT
        return NOTE_NAMES_COMMON

    @property
    def key_signature(self) -> str:
        return f'{self.root_name}{"MAJ" if self.scale.is_major else "MIN"}'

    def accidental_for_letter(self, letter: str) -> int:
        """Ajuste (-1, 0, +1) que a armadura aplica a uma letra sem acidente."""
        accidentals = self.accidentals
        if accidentals > 0 and letter in SHARP_ORDER[:accidentals]:
            return 1
        if accidentals < 0 and letter in FLAT_ORDER[:-accidentals]:
            return -1
        return 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self.root.value % 12 == other.root.value % 12 and self.scale == other.scale

    __hash__ = None  # type: ignore[assignment]

    def __str__(self) -> str:
        return self.key_signature

    def __repr__(self) -> str:
        return f'Key({self.key_signature!r})'


@dataclass
class TimeSignature:
    beats: int = 4
    duration_for_beat: int = 4

    def __post_init__(self) -> None:
        if self.beats <= 0 or self.duration_for_beat <= 0:
            msg = f'Fórmula de compasso inválida: {self}'
            raise ValueError(msg)
        if self.duration_for_beat & (self.duration_for_beat - 1):
            msg = f'O denominador deve ser potência de dois: {self.duration_for_beat}'
            raise ValueError(msg)

    @property
    def power_of_two(self) -> int:
        return self.duration_for_beat.bit_length() - 1

    def __str__(self) -> str:
        return f'{self.beats}/{self.duration_for_beat}'


