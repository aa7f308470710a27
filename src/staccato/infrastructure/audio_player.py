import logging
from pathlib import Path

import fluidsynth

from staccato.config import PITCH_BEND_CENTER

logger = logging.getLogger(__name__)


class FluidSynthSink:
    """Saída ao vivo que toca as mensagens em um sintetizador fluidsynth."""

    def __init__(self, soundfont_path: Path, driver: str | None = None) -> None:
        self.fs: fluidsynth.Synth = fluidsynth.Synth()
        self.fs.start(driver=driver)
        self.soundfont_id: int = self.fs.sfload(str(soundfont_path))
        logger.info('Soundfont carregado: %s', soundfont_path)

    def note_on(self, channel: int, note: int, velocity: int) -> None:
        self.fs.noteon(channel, note, velocity)

    def note_off(self, channel: int, note: int, velocity: int) -> None:  # noqa: ARG002
        self.fs.noteoff(channel, note)

    def program_change(self, channel: int, program: int) -> None:
        self.fs.program_change(channel, program)

    def pitch_bend(self, channel: int, value: int) -> None:
        # fluidsynth espera o valor centrado em zero
        self.fs.pitch_bend(channel, value - PITCH_BEND_CENTER)

    def channel_pressure(self, channel: int, pressure: int) -> None:
        self.fs.channel_pressure(channel, pressure)

    def poly_pressure(self, channel: int, note: int, pressure: int) -> None:
        self.fs.key_pressure(channel, note, pressure)

    def control_change(self, channel: int, controller: int, value: int) -> None:
        self.fs.cc(channel, controller, value)

    def delete(self) -> None:
        self.fs.delete()
