from collections.abc import Callable
from typing import NamedTuple

from staccato.config import NUM_LAYERS, NUM_TRACKS
from staccato.domain.errors import SymbolLookupError
from staccato.domain.theory import Note


class NotePlacement(NamedTuple):
    """Instantes de acionamento e liberação de uma nota (None quando suprimidos)."""

    on_time: float | None
    off_time: float | None
    duration: float


class TrackTimeManager:
    """Cursores de tempo por faixa e camada.

    A unidade do cursor é escolhida por quem usa o gerenciador: frações de
    semibreve no sequenciador e milissegundos na reprodução em tempo real.
    """

    def __init__(self, on_track_created: Callable[[int], None] | None = None) -> None:
        self._on_track_created: Callable[[int], None] | None = on_track_created
        self.reset()

    def reset(self) -> None:
        self._beat_time: list[list[float]] = [[0.0] * NUM_LAYERS for _ in range(NUM_TRACKS)]
        self._anchor: list[list[float]] = [[0.0] * NUM_LAYERS for _ in range(NUM_TRACKS)]
        self._current_layer: list[int] = [0] * NUM_TRACKS
        self._bookmarks: dict[str, float] = {}
        self._current_track: int = 0
        self._last_created_track: int = -1
        self._create_tracks_up_to(0)

    @property
    def current_track(self) -> int:
        return self._current_track

    @property
    def last_created_track(self) -> int:
        return self._last_created_track

    def set_current_track(self, track: int) -> None:
        _check_index('faixa', track, NUM_TRACKS)
        self._create_tracks_up_to(track)
        self._current_track = track

    def _create_tracks_up_to(self, track: int) -> None:
        while self._last_created_track < track:
            self._last_created_track += 1
            if self._on_track_created:
                self._on_track_created(self._last_created_track)

    @property
    def current_layer(self) -> int:
        return self._current_layer[self._current_track]

    def set_current_layer(self, layer: int) -> None:
        _check_index('camada', layer, NUM_LAYERS)
        self._current_layer[self._current_track] = layer

    @property
    def track_beat_time(self) -> float:
        return self._beat_time[self._current_track][self.current_layer]

    @track_beat_time.setter
    def track_beat_time(self, time: float) -> None:
        self._beat_time[self._current_track][self.current_layer] = time

    def advance_track_beat_time(self, delta: float) -> None:
        self.track_beat_time += delta

    def set_all_track_beat_time(self, time: float) -> None:
        """Leva todos os cursores atrasados até `time`."""
        for layers in self._beat_time:
            for layer, current in enumerate(layers):
                if current < time:
                    layers[layer] = time

    def latest_track_beat_time(self, track: int) -> float:
        return max(self._beat_time[track])

    def add_track_beat_time_bookmark(self, bookmark_id: str) -> None:
        self._bookmarks[bookmark_id] = self.track_beat_time

    def get_track_beat_time_bookmark(self, bookmark_id: str) -> float:
        try:
            return self._bookmarks[bookmark_id]
        except KeyError:
            raise SymbolLookupError('Marcador de tempo desconhecido', bookmark_id) from None

    def place_note(
        self,
        note: Note,
        default_duration: float,
        to_units: Callable[[float], float] | None = None,
    ) -> NotePlacement:
        """Posiciona a nota no cursor atual e avança o cursor."""
        beats = note.duration if note.duration > 0 else default_duration
        duration = to_units(beats) if to_units else beats

        track, layer = self._current_track, self.current_layer
        if note.is_first_note:
            self._anchor[track][layer] = self.track_beat_time
        if note.is_harmonic_note:
            self.track_beat_time = self._anchor[track][layer]

        if note.is_rest:
            self.advance_track_beat_time(duration)
            return NotePlacement(None, None, duration)

        on_time = None if note.is_end_of_tie else self.track_beat_time
        self.advance_track_beat_time(duration)
        off_time = None if note.is_start_of_tie else self.track_beat_time
        return NotePlacement(on_time, off_time, duration)


def _check_index(name: str, value: int, limit: int) -> None:
    if not 0 <= value < limit:
        msg = f'Número de {name} fora do intervalo 0-{limit - 1}: {value}'
        raise ValueError(msg)
