from dataclasses import dataclass

from staccato.domain.theory import Chord, Note


@dataclass(frozen=True)
class ParserEvent:
    """Classe base para todos os eventos publicados pelos parsers."""


@dataclass(frozen=True)
class BeforeParsingStarted(ParserEvent):
    """Disparado uma única vez antes do primeiro fragmento."""


@dataclass(frozen=True)
class AfterParsingFinished(ParserEvent):
    """Disparado uma única vez depois do último fragmento."""


@dataclass(frozen=True)
class TrackChanged(ParserEvent):
    track: int


@dataclass(frozen=True)
class LayerChanged(ParserEvent):
    layer: int


@dataclass(frozen=True)
class InstrumentParsed(ParserEvent):
    instrument: int


@dataclass(frozen=True)
class TempoChanged(ParserEvent):
    bpm: int


@dataclass(frozen=True)
class KeySignatureParsed(ParserEvent):
    """Armadura: acidentes (-7 a 7) e escala (1 maior, -1 menor)."""

    key: int
    scale: int


@dataclass(frozen=True)
class TimeSignatureParsed(ParserEvent):
    numerator: int
    power_of_two: int


@dataclass(frozen=True)
class BarLineParsed(ParserEvent):
    bar_id: int


@dataclass(frozen=True)
class TrackBeatTimeBookmarked(ParserEvent):
    bookmark_id: str


@dataclass(frozen=True)
class TrackBeatTimeBookmarkRequested(ParserEvent):
    bookmark_id: str


@dataclass(frozen=True)
class TrackBeatTimeRequested(ParserEvent):
    time: float


@dataclass(frozen=True)
class PitchWheelParsed(ParserEvent):
    lsb: int
    msb: int

    @property
    def value(self) -> int:
        return self.lsb + (self.msb << 7)


@dataclass(frozen=True)
class ChannelPressureParsed(ParserEvent):
    pressure: int


@dataclass(frozen=True)
class PolyphonicPressureParsed(ParserEvent):
    key: int
    pressure: int


@dataclass(frozen=True)
class SystemExclusiveParsed(ParserEvent):
    data: bytes


@dataclass(frozen=True)
class ControllerEventParsed(ParserEvent):
    controller: int
    value: int


@dataclass(frozen=True)
class LyricParsed(ParserEvent):
    lyric: str


@dataclass(frozen=True)
class MarkerParsed(ParserEvent):
    marker: str


@dataclass(frozen=True)
class FunctionParsed(ParserEvent):
    """Função sem tratamento específico, repassada como texto."""

    identifier: str
    parameters: str


@dataclass(frozen=True)
class NotePressed(ParserEvent):
    note: Note


@dataclass(frozen=True)
class NoteReleased(ParserEvent):
    note: Note


@dataclass(frozen=True)
class NoteParsed(ParserEvent):
    note: Note


@dataclass(frozen=True)
class ChordParsed(ParserEvent):
    chord: Chord
