import logging
from pathlib import Path
from typing import TYPE_CHECKING

import mido  # pyright: ignore[reportMissingTypeStubs]

from staccato.config import DEFAULT_SOUNDFONT
from staccato.domain.listeners import StaccatoParserListener, TrackDurationListener
from staccato.domain.models import ParserConfiguration
from staccato.domain.parser import StaccatoParser
from staccato.infrastructure.midi_exporter import MidiParserListener
from staccato.infrastructure.midi_importer import MidiParser

if TYPE_CHECKING:
    from staccato.infrastructure.audio_player import FluidSynthSink
    from staccato.infrastructure.realtime_player import RealtimePlayer

logger = logging.getLogger(__name__)


class Player:
    """Fachada para gerar, salvar, importar e tocar música em notação Staccato."""

    def __init__(self, configuration: ParserConfiguration | None = None) -> None:
        self.configuration: ParserConfiguration = configuration or ParserConfiguration()
        self.current_player: RealtimePlayer | None = None
        self._synth: FluidSynthSink | None = None

    def get_sequence(self, text: str) -> mido.MidiFile:
        """Analisa o texto e devolve a sequência MIDI correspondente."""
        parser = StaccatoParser(self.configuration)
        listener = MidiParserListener()
        parser.subscribe(listener)
        parser.parse(text)
        return listener.get_sequence()

    def save_midi(self, text: str, file_path: Path) -> None:
        """Analisa o texto e grava um arquivo MIDI."""
        midi = self.get_sequence(text)
        with file_path.open('wb') as output_file:
            midi.save(file=output_file)
        logger.info('Arquivo MIDI salvo em %s', file_path)

    def load_midi(self, file_path: Path) -> str:
        """Lê um arquivo MIDI e o converte em notação."""
        return self.midi_to_staccato(mido.MidiFile(filename=file_path))

    def midi_to_staccato(self, midi: mido.MidiFile) -> str:
        parser = MidiParser()
        listener = StaccatoParserListener()
        parser.subscribe(listener)
        parser.parse(midi)
        return listener.get_pattern()

    def track_durations(self, text: str) -> dict[int, float]:
        """Duração de cada faixa, em frações de semibreve."""
        parser = StaccatoParser(self.configuration)
        listener = TrackDurationListener()
        parser.subscribe(listener)
        parser.parse(text)
        return listener.durations

    def play_music(self, text: str, soundfont_path: Path = DEFAULT_SOUNDFONT) -> None:
        """Toca o texto em tempo real no fluidsynth."""
        # Importação tardia: fluidsynth só é necessário para tocar
        from staccato.infrastructure.audio_player import FluidSynthSink  # noqa: PLC0415
        from staccato.infrastructure.realtime_player import RealtimePlayer  # noqa: PLC0415

        self.stop_music()
        self._synth = FluidSynthSink(soundfont_path)
        self.current_player = RealtimePlayer(self._synth, self.configuration)
        self.current_player.play(text)

    def stop_music(self) -> None:
        """Para a reprodução atual se estiver ativa."""
        if self.current_player:
            self.current_player.close()
            if self.current_player.scheduler.is_alive():
                self.current_player.scheduler.join(timeout=1.0)
        if self._synth:
            self._synth.delete()
        self.current_player = None
        self._synth = None
