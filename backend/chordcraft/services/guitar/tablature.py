from __future__ import annotations

import logging
from typing import Sequence

from chordcraft.schemas import ChordDetection, TabNote, Tablature
from chordcraft.services.guitar.fretboard import get_tuning, tuning_names
from chordcraft.services.guitar.open_chords import chord_positions

_LOG = logging.getLogger(__name__)


def generate_tablature(chords: Sequence[ChordDetection], *, tuning_name: str | None = None) -> Tablature:
    """
    One fretting event per chord occurrence, timed to the chord's span.
    Only standard tuning has a fingering table.
    """
    tuning = get_tuning(tuning_name)

    notes: list[TabNote] = []
    unknown: set[str] = set()
    for det in chords:
        positions = chord_positions(det.chord)
        if not positions:
            unknown.add(det.chord)
            continue
        for string_num, fret in positions:
            notes.append(
                TabNote(
                    string=int(string_num),
                    fret=int(fret),
                    time=float(det.start_time),
                    duration=float(det.duration),
                    chord=det.chord,
                )
            )

    if unknown:
        _LOG.info("No fingering for chords: %s", ", ".join(sorted(unknown)))
    _LOG.info("Tablature: %d notes for %d chords", len(notes), len(chords))
    return Tablature(tuning=tuning_names(tuning), capo=0, notes=notes)
