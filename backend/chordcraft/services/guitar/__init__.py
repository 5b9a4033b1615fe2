from .fretboard import STANDARD_TUNING, get_tuning, positions_to_pitches, tuning_names
from .open_chords import CHORD_SHAPES, chord_positions, shape_positions
from .tablature import generate_tablature

__all__ = [
    "STANDARD_TUNING",
    "get_tuning",
    "positions_to_pitches",
    "tuning_names",
    "CHORD_SHAPES",
    "chord_positions",
    "shape_positions",
    "generate_tablature",
]
