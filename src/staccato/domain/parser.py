import logging
import re
from collections.abc import Iterator
from typing import Final

from staccato.domain.bus import EventBus
from staccato.domain.errors import UnknownTokenError
from staccato.domain.functions import FunctionManager
from staccato.domain.models import ParserConfiguration, ParserContext
from staccato.domain.note_subparser import NoteSubparser
from staccato.domain.preprocessors import Preprocessor, default_preprocessors
from staccato.domain.subparsers import (
    AtomSubparser,
    BarLineSubparser,
    BeatTimeSubparser,
    FunctionSubparser,
    IVLSubparser,
    LyricMarkerSubparser,
    SignatureSubparser,
    Subparser,
    TempoSubparser,
)
from staccato.domain.tokens import Token, TokenType

logger = logging.getLogger(__name__)


class StaccatoParser(EventBus):
    """Converte texto Staccato em eventos publicados para os ouvintes inscritos."""

    FRAGMENT_REGEX: Final[re.Pattern[str]] = re.compile(r'\S+')

    def __init__(self, configuration: ParserConfiguration | None = None) -> None:
        super().__init__()
        self.configuration: ParserConfiguration = configuration or ParserConfiguration()
        self.functions: FunctionManager = FunctionManager.with_builtins(
            self.configuration.functions
        )

        self.note_subparser = NoteSubparser(self.configuration.note_settings)
        self.signature_subparser = SignatureSubparser()
        ivl = IVLSubparser()

        # A ordem decide empates: TIME: antes de T120, notas antes de tudo
        self.subparsers: list[Subparser] = [
            self.note_subparser,
            ivl,
            BarLineSubparser(),
            self.signature_subparser,
            TempoSubparser(),
            BeatTimeSubparser(),
            LyricMarkerSubparser(),
            FunctionSubparser(self.functions),
            AtomSubparser(ivl, self.note_subparser),
        ]
        self.preprocessors: list[Preprocessor] = default_preprocessors(self.functions)
        self.context: ParserContext = self.new_context()

    def new_context(self) -> ParserContext:
        context = ParserContext(self.configuration, bus=self)
        context.note_provider = self.note_subparser
        context.chord_provider = self.note_subparser
        context.key_provider = self.signature_subparser
        return context

    def preprocess(self, text: str, context: ParserContext | None = None) -> str:
        context = context or self.context
        for preprocessor in self.preprocessors:
            text = preprocessor.preprocess(text, context)
        return text

    def tokenize(self, text: str) -> list[Token]:
        """Classifica cada fragmento do texto pré-processado."""
        tokens: list[Token] = []
        for fragment, _ in self._fragments(self.preprocess(text)):
            subparser = self._find_subparser(fragment)
            kind = subparser.get_token_type(fragment) if subparser else TokenType.UNKNOWN
            tokens.append(Token(fragment, kind))
        return tokens

    def parse(self, text: str) -> None:
        self.context.reset()
        self.fire_before_parsing_started()

        processed = self.preprocess(text, self.context)
        logger.debug('Texto pré-processado: %r', processed)
        for fragment, position in self._fragments(processed):
            self._parse_fragment(fragment, position)

        self.fire_after_parsing_finished()

    def _fragments(self, text: str) -> Iterator[tuple[str, int]]:
        for match in self.FRAGMENT_REGEX.finditer(text):
            yield match.group(), match.start()

    def _find_subparser(self, fragment: str) -> Subparser | None:
        return next((sub for sub in self.subparsers if sub.matches(fragment)), None)

    def _parse_fragment(self, fragment: str, position: int) -> None:
        remaining = fragment
        while remaining:
            subparser = self._find_subparser(remaining)
            if subparser is None:
                if self.configuration.strict:
                    raise UnknownTokenError('Fragmento não reconhecido', remaining, position)
                logger.debug('Fragmento desconhecido %r na posição %d', remaining, position)
                return

            consumed = subparser.parse(remaining, self.context) or len(remaining)
            remaining = remaining[consumed:]
            position += consumed
