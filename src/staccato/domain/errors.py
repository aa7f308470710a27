class StaccatoError(Exception):
    """Erro base da biblioteca."""


class ParserError(StaccatoError, ValueError):
    """Falha ao interpretar um trecho de notação."""

    def __init__(
        self,
        message: str,
        errant_string: str | None = None,
        position: int | None = None,
    ) -> None:
        self.message: str = message
        self.errant_string: str | None = errant_string
        self.position: int | None = position

        details = message
        if errant_string is not None:
            details = f'{details}: {errant_string!r}'
        if position is not None:
            details = f'{details} (posição {position})'
        super().__init__(details)


class UnknownTokenError(ParserError):
    """Nenhum subparser reconheceu o fragmento (modo estrito)."""


class SymbolLookupError(ParserError):
    """Um nome simbólico não existe no dicionário ou nos marcadores."""
