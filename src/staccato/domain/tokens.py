from enum import StrEnum
from typing import NamedTuple


class TokenType(StrEnum):
    """Tipos semânticos de um fragmento de notação."""

    VOICE = 'voice'
    LAYER = 'layer'
    INSTRUMENT = 'instrument'
    TEMPO = 'tempo'
    KEY_SIGNATURE = 'key_signature'
    TIME_SIGNATURE = 'time_signature'
    BAR_LINE = 'bar_line'
    TRACK_TIME_BOOKMARK = 'track_time_bookmark'
    TRACK_TIME_BOOKMARK_REQUESTED = 'track_time_bookmark_requested'
    LYRIC = 'lyric'
    MARKER = 'marker'
    FUNCTION = 'function'
    NOTE = 'note'
    WHITESPACE = 'whitespace'
    ATOM = 'atom'
    UNKNOWN = 'unknown'


class Token(NamedTuple):
    """Par imutável (texto original, tipo)."""

    raw: str
    kind: TokenType

    def __str__(self) -> str:
        return self.raw
