import re
from collections.abc import Mapping, Sequence
from typing import Final

_SEPARATORS: Final[re.Pattern[str]] = re.compile(r'([ +_,])')
_INDEXED: Final[re.Pattern[str]] = re.compile(r'\$(\d+)(.*)')


def replace_dollars_with_candidates(
    sequence: str,
    candidates: Sequence[str],
    underscore_replacement: str = '_',
    special_replacers: Mapping[str, str] | None = None,
    input_separator: str = ' ',
    output_separator: str = ' ',
    final_thing_to_append: str | None = None,
) -> str:
    """Substitui `$0`, `$1`, `$!` e marcadores especiais pelos candidatos.

    O texto que segue o marcador é anexado ao valor substituído (`$0q` vira
    `Cq`). `$!` representa todos os candidatos unidos por `+`. Vírgulas
    viram espaços e `_` é trocado por `underscore_replacement`.
    """
    specials = sorted((special_replacers or {}).items(), key=lambda kv: -len(kv[0]))
    output: list[str] = []

    for index, element in enumerate(sequence.split(input_separator)):
        if index > 0:
            output.append(output_separator)

        for piece in _SEPARATORS.split(element):
            match piece:
                case '':
                    continue
                case ' ' | ',':
                    output.append(' ')
                case '+':
                    output.append('+')
                case '_':
                    output.append(underscore_replacement)
                case _:
                    output.append(_replace_piece(piece, candidates, specials))

    if final_thing_to_append:
        output.append(final_thing_to_append)
    return ''.join(output)


def _replace_piece(
    piece: str,
    candidates: Sequence[str],
    specials: list[tuple[str, str]],
) -> str:
    if not piece.startswith('$'):
        return piece

    if piece.startswith('$!'):
        appender = piece[2:]
        return '+'.join(f'{candidate}{appender}' for candidate in candidates)

    indexed = _INDEXED.fullmatch(piece)
    if indexed:
        position = int(indexed.group(1))
        if position >= len(candidates):
            msg = f'Marcador {piece!r} sem candidato correspondente'
            raise IndexError(msg)
        return f'{candidates[position]}{indexed.group(2)}'

    for key, replacement in specials:
        if piece.startswith(key, 1):
            return f'{replacement}{piece[1 + len(key):]}'

    return piece
