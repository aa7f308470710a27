from pathlib import Path
from typing import Final

# Caminho padrão para o SoundFont
DEFAULT_SOUNDFONT: Final[Path] = Path('FluidR3_GM.sf2')

# Limites dos valores MIDI
MAX_MIDI_VALUE: Final[int] = 127
MAX_PITCH_BEND: Final[int] = 16383
PITCH_BEND_CENTER: Final[int] = 8192
MAX_OCTAVE: Final[int] = 10

NUM_TRACKS: Final[int] = 16
NUM_LAYERS: Final[int] = 16
PERCUSSION_TRACK: Final[int] = 9

# Ticks por semínima usados na escrita da sequência
DEFAULT_RESOLUTION: Final[int] = 128
DEFAULT_BPM: Final[int] = 120

# Valores padrão das notas
DEFAULT_OCTAVE: Final[int] = 5
DEFAULT_BASS_OCTAVE: Final[int] = 4
DEFAULT_DURATION: Final[float] = 0.25  # Semínima
DEFAULT_VELOCITY: Final[int] = 64

INSTRUMENT_NAMES: Final[tuple[str, ...]] = (
    'PIANO', 'BRIGHT_ACOUSTIC', 'ELECTRIC_GRAND', 'HONKEY_TONK',
    'ELECTRIC_PIANO', 'ELECTRIC_PIANO_2', 'HARPSICHORD', 'CLAVINET',
    'CELESTA', 'GLOCKENSPIEL', 'MUSIC_BOX', 'VIBRAPHONE',
    'MARIMBA', 'XYLOPHONE', 'TUBULAR_BELLS', 'DULCIMER',
    'DRAWBAR_ORGAN', 'PERCUSSIVE_ORGAN', 'ROCK_ORGAN', 'CHURCH_ORGAN',
    'REED_ORGAN', 'ACCORDIAN', 'HARMONICA', 'TANGO_ACCORDIAN',
    'GUITAR', 'STEEL_STRING_GUITAR', 'ELECTRIC_JAZZ_GUITAR', 'ELECTRIC_CLEAN_GUITAR',
    'ELECTRIC_MUTED_GUITAR', 'OVERDRIVEN_GUITAR', 'DISTORTION_GUITAR', 'GUITAR_HARMONICS',
    'ACOUSTIC_BASS', 'ELECTRIC_BASS_FINGER', 'ELECTRIC_BASS_PICK', 'FRETLESS_BASS',
    'SLAP_BASS_1', 'SLAP_BASS_2', 'SYNTH_BASS_1', 'SYNTH_BASS_2',
    'VIOLIN', 'VIOLA', 'CELLO', 'CONTRABASS',
    'TREMOLO_STRINGS', 'PIZZICATO_STRINGS', 'ORCHESTRAL_STRINGS', 'TIMPANI',
    'STRING_ENSEMBLE_1', 'STRING_ENSEMBLE_2', 'SYNTH_STRINGS_1', 'SYNTH_STRINGS_2',
    'CHOIR_AAHS', 'VOICE_OOHS', 'SYNTH_VOICE', 'ORCHESTRA_HIT',
    'TRUMPET', 'TROMBONE', 'TUBA', 'MUTED_TRUMPET',
    'FRENCH_HORN', 'BRASS_SECTION', 'SYNTHBRASS_1', 'SYNTHBRASS_2',
    'SOPRANO_SAX', 'ALTO_SAX', 'TENOR_SAX', 'BARITONE_SAX',
    'OBOE', 'ENGLISH_HORN', 'BASSOON', 'CLARINET',
    'PICCOLO', 'FLUTE', 'RECORDER', 'PAN_FLUTE',
    'BLOWN_BOTTLE', 'SKAKUHACHI', 'WHISTLE', 'OCARINA',
    'SQUARE', 'SAWTOOTH', 'CALLIOPE', 'CHIFF',
    'CHARANG', 'VOICE', 'FIFTHS', 'BASSLEAD',
    'NEW_AGE', 'WARM', 'POLYSYNTH', 'CHOIR',
    'BOWED', 'METALLIC', 'HALO', 'SWEEP',
    'RAIN', 'SOUNDTRACK', 'CRYSTAL', 'ATMOSPHERE',
    'BRIGHTNESS', 'GOBLIN', 'ECHOES', 'SCI_FI',
    'SITAR', 'BANJO', 'SHAMISEN', 'KOTO',
    'KALIMBA', 'BAGPIPE', 'FIDDLE', 'SHANAI',
    'TINKLE_BELL', 'AGOGO', 'STEEL_DRUMS', 'WOODBLOCK',
    'TAIKO_DRUM', 'MELODIC_TOM', 'SYNTH_DRUM', 'REVERSE_CYMBAL',
    'GUITAR_FRET_NOISE', 'BREATH_NOISE', 'SEASHORE', 'BIRD_TWEET',
    'TELEPHONE_RING', 'HELICOPTER', 'APPLAUSE', 'GUNSHOT',
)  # fmt: skip

INSTRUMENT_ALIASES: Final[dict[str, int]] = {
    'ACOUSTIC_GRAND': 0,
    'GRAND_PIANO': 0,
    'NYLON_STRING_GUITAR': 24,
    'SYNTH_DRUMS': 118,
}

TEMPO_NAMES: Final[dict[str, int]] = {
    'GRAVE': 40,
    'LARGO': 45,
    'LARGHETTO': 50,
    'LENTO': 55,
    'ADAGIO': 60,
    'ADAGIETTO': 65,
    'ANDANTE': 70,
    'ANDANTINO': 80,
    'MODERATO': 95,
    'ALLEGRETTO': 110,
    'ALLEGRO': 120,
    'VIVACE': 145,
    'PRESTO': 180,
    'PRESTISSIMO': 220,
}

PERCUSSION_NAMES: Final[dict[int, str]] = dict(
    enumerate(
        (
            'ACOUSTIC_BASS_DRUM', 'BASS_DRUM', 'SIDE_STICK', 'ACOUSTIC_SNARE',
            'HAND_CLAP', 'ELECTRIC_SNARE', 'LO_FLOOR_TOM', 'CLOSED_HI_HAT',
            'HIGH_FLOOR_TOM', 'PEDAL_HI_HAT', 'LO_TOM', 'OPEN_HI_HAT',
            'LO_MID_TOM', 'HI_MID_TOM', 'CRASH_CYMBAL_1', 'HI_TOM',
            'RIDE_CYMBAL_1', 'CHINESE_CYMBAL', 'RIDE_BELL', 'TAMBOURINE',
            'SPLASH_CYMBAL', 'COWBELL', 'CRASH_CYMBAL_2', 'VIBRASLAP',
            'RIDE_CYMBAL_2', 'HI_BONGO', 'LO_BONGO', 'MUTE_HI_CONGA',
            'OPEN_HI_CONGA', 'LO_CONGA', 'HI_TIMBALE', 'LO_TIMBALE',
            'HI_AGOGO', 'LO_AGOGO', 'CABASA', 'MARACAS',
            'SHORT_WHISTLE', 'LONG_WHISTLE', 'SHORT_GUIRO', 'LONG_GUIRO',
            'CLAVES', 'HI_WOOD_BLOCK', 'LO_WOOD_BLOCK', 'MUTE_CUICA',
            'OPEN_CUICA', 'MUTE_TRIANGLE', 'OPEN_TRIANGLE',
        ),  # fmt: skip
        start=35,
    )
)

# Controladores de 7 bits (coarse, fine)
CONTROLLER_PAIRS: Final[dict[str, tuple[int, int]]] = {
    'BANK_SELECT': (0, 32),
    'MOD_WHEEL': (1, 33),
    'BREATH': (2, 34),
    'FOOT_PEDAL': (4, 36),
    'PORTAMENTO_TIME': (5, 37),
    'DATA_ENTRY': (6, 38),
    'VOLUME': (7, 39),
    'BALANCE': (8, 40),
    'PAN_POSITION': (10, 42),
    'EXPRESSION': (11, 43),
    'EFFECT_CONTROL_1': (12, 44),
    'EFFECT_CONTROL_2': (13, 45),
    'SLIDER_1': (16, 48),
    'SLIDER_2': (17, 49),
    'SLIDER_3': (18, 50),
    'SLIDER_4': (19, 51),
    'NON_REGISTERED': (99, 98),
    'REGISTERED': (101, 100),
}

CONTROLLER_NAMES: Final[dict[str, int]] = {
    'HOLD_PEDAL': 64,
    'PORTAMENTO': 65,
    'SUSTENUTO_PEDAL': 66,
    'SOFT_PEDAL': 67,
    'LEGATO_PEDAL': 68,
    'HOLD_2_PEDAL': 69,
    'SOUND_VARIATION': 70,
    'SOUND_TIMBRE': 71,
    'SOUND_RELEASE_TIME': 72,
    'SOUND_ATTACK_TIME': 73,
    'SOUND_BRIGHTNESS': 74,
    'SOUND_CONTROL_6': 75,
    'SOUND_CONTROL_7': 76,
    'SOUND_CONTROL_8': 77,
    'SOUND_CONTROL_9': 78,
    'SOUND_CONTROL_10': 79,
    'GENERAL_PURPOSE_BUTTON_1': 80,
    'GENERAL_PURPOSE_BUTTON_2': 81,
    'GENERAL_PURPOSE_BUTTON_3': 82,
    'GENERAL_PURPOSE_BUTTON_4': 83,
    'EFFECTS_LEVEL': 91,
    'TREMULO_LEVEL': 92,
    'CHORUS_LEVEL': 93,
    'CELESTE_LEVEL': 94,
    'PHASER_LEVEL': 95,
    'DATA_BUTTON_INCREMENT': 96,
    'DATA_BUTTON_DECREMENT': 97,
    'ALL_SOUND_OFF': 120,
    'ALL_CONTROLLERS_OFF': 121,
    'LOCAL_KEYBOARD': 122,
    'ALL_NOTES_OFF': 123,
    'OMNI_MODE_OFF': 124,
    'OMNI_MODE_ON': 125,
    'MONO_OPERATION': 126,
    'POLY_OPERATION': 127,
}

CONTROLLER_VALUES: Final[dict[str, int]] = {
    'ON': 127,
    'OFF': 0,
    'DEFAULT': 64,
}


def build_default_dictionary() -> dict[str, str]:
    """Junta todas as tabelas de símbolos em um único dicionário de nomes."""
    dictionary: dict[str, str] = {'PERCUSSION': str(PERCUSSION_TRACK)}

    for instrument_id, name in enumerate(INSTRUMENT_NAMES):
        dictionary[name] = str(instrument_id)
    for name, instrument_id in INSTRUMENT_ALIASES.items():
        dictionary[name] = str(instrument_id)

    for value, name in PERCUSSION_NAMES.items():
        dictionary[name] = str(value)

    dictionary.update({name: str(bpm) for name, bpm in TEMPO_NAMES.items()})

    for name, (coarse, fine) in CONTROLLER_PAIRS.items():
        dictionary[f'{name}_COARSE'] = str(coarse)
        dictionary[f'{name}_FINE'] = str(fine)
        dictionary[name] = str(coarse * 128 + fine)

    dictionary.update({name: str(number) for name, number in CONTROLLER_NAMES.items()})
    dictionary.update({name: str(value) for name, value in CONTROLLER_VALUES.items()})
    return dictionary
