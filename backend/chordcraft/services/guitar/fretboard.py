from __future__ import annotations

import logging
from typing import Iterable

from chordcraft.services.chords.chord_vocabulary import NOTE_NAMES_SHARP

_LOG = logging.getLogger(__name__)

# Standard tuning (string 6 -> 1): E2 A2 D3 G3 B3 E4
STANDARD_TUNING = (40, 45, 50, 55, 59, 64)

# Only standard tuning has a fingering table.
TUNINGS: dict[str, tuple[int, ...]] = {"standard": STANDARD_TUNING}


def get_tuning(name: str | None) -> tuple[int, ...]:
    if not name:
        return STANDARD_TUNING
    key = str(name).strip().lower()
    tuning = TUNINGS.get(key)
    if tuning is None:
        _LOG.warning("No fingering table for tuning %r, using standard tuning", name)
        return STANDARD_TUNING
    return tuning


def tuning_names(tuning: tuple[int, ...] = STANDARD_TUNING) -> list[str]:
    """Open-string note names from the lowest string up ('E A D G B E')."""
    return [NOTE_NAMES_SHARP[int(p) % 12] for p in tuning]


def positions_to_pitches(
    positions: Iterable[tuple[int, int]],
    tuning: tuple[int, ...] = STANDARD_TUNING,
) -> list[int]:
    """
    Convert (string, fret) positions to MIDI pitches.
    String numbers are 1..6 where 1 is the highest string.
    """
    pitches: list[int] = []
    tuning_list = list(tuning)
    for string_num, fret in positions:
        idx = 6 - int(string_num)
        if idx < 0 or idx >= len(tuning_list):
            continue
        pitches.append(int(tuning_list[idx]) + int(fret))
    return pitches
