from __future__ import annotations

from chordcraft.services.chords.chord_vocabulary import split_chord_label

Shape = tuple[int, int, int, int, int, int]

# Chord shapes in standard tuning, frets for strings 6 -> 1. -1 means muted.
# Keyed by (root pitch class, quality suffix) so enharmonic spellings share a shape.
CHORD_SHAPES: dict[tuple[int, str], Shape] = {
    # major
    (0, ""): (-1, 3, 2, 0, 1, 0),
    (1, ""): (-1, 4, 6, 6, 6, 4),
    (2, ""): (-1, -1, 0, 2, 3, 2),
    (3, ""): (-1, 6, 8, 8, 8, 6),
    (4, ""): (0, 2, 2, 1, 0, 0),
    (5, ""): (1, 3, 3, 2, 1, 1),
    (6, ""): (2, 4, 4, 3, 2, 2),
    (7, ""): (3, 2, 0, 0, 0, 3),
    (8, ""): (4, 6, 6, 5, 4, 4),
    (9, ""): (-1, 0, 2, 2, 2, 0),
    (10, ""): (-1, 1, 3, 3, 3, 1),
    (11, ""): (-1, 2, 4, 4, 4, 2),
    # minor
    (0, "m"): (-1, 3, 5, 5, 4, 3),
    (1, "m"): (-1, 4, 6, 6, 5, 4),
    (2, "m"): (-1, -1, 0, 2, 3, 1),
    (3, "m"): (-1, 6, 8, 8, 7, 6),
    (4, "m"): (0, 2, 2, 0, 0, 0),
    (5, "m"): (1, 3, 3, 1, 1, 1),
    (6, "m"): (2, 4, 4, 2, 2, 2),
    (7, "m"): (3, 5, 5, 3, 3, 3),
    (8, "m"): (4, 6, 6, 4, 4, 4),
    (9, "m"): (-1, 0, 2, 2, 1, 0),
    (10, "m"): (-1, 1, 3, 3, 2, 1),
    (11, "m"): (-1, 2, 4, 4, 3, 2),
    # dominant 7th
    (0, "7"): (-1, 3, 2, 3, 1, 0),
    (2, "7"): (-1, -1, 0, 2, 1, 2),
    (4, "7"): (0, 2, 0, 1, 0, 0),
    (7, "7"): (3, 2, 0, 0, 0, 1),
    (9, "7"): (-1, 0, 2, 0, 2, 0),
    (11, "7"): (-1, 2, 1, 2, 0, 2),
    # major 7th
    (0, "maj7"): (-1, 3, 2, 0, 0, 0),
    (2, "maj7"): (-1, -1, 0, 2, 2, 2),
    (4, "maj7"): (0, 2, 1, 1, 0, 0),
    (5, "maj7"): (-1, -1, 3, 2, 1, 0),
    (7, "maj7"): (3, 2, 0, 0, 0, 2),
    (9, "maj7"): (-1, 0, 2, 1, 2, 0),
    # minor 7th
    (2, "m7"): (-1, -1, 0, 2, 1, 1),
    (4, "m7"): (0, 2, 0, 0, 0, 0),
    (9, "m7"): (-1, 0, 2, 0, 1, 0),
    (11, "m7"): (-1, 2, 0, 2, 0, 2),
    # suspended
    (2, "sus2"): (-1, -1, 0, 2, 3, 0),
    (2, "sus4"): (-1, -1, 0, 2, 3, 3),
    (4, "sus4"): (0, 2, 2, 2, 0, 0),
    (9, "sus2"): (-1, 0, 2, 2, 0, 0),
    (9, "sus4"): (-1, 0, 2, 2, 3, 0),
}


def shape_positions(shape: Shape) -> list[tuple[int, int]]:
    positions: list[tuple[int, int]] = []
    for i, fret in enumerate(shape):
        if fret < 0:
            continue
        string_num = 6 - int(i)
        positions.append((int(string_num), int(fret)))
    return positions


def chord_positions(chord_label: str) -> list[tuple[int, int]]:
    """
    (string, fret) pairs for a chord label, string 1 being the high E.
    Labels without a known shape give an empty list.
    """
    root, quality = split_chord_label(chord_label)
    if root is None or quality is None:
        return []
    shape = CHORD_SHAPES.get((root, quality))
    if shape is None:
        return []
    return shape_positions(shape)
