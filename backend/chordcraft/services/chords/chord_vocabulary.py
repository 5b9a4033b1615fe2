from __future__ import annotations

import re

NOTE_NAMES_SHARP = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAMES_FLAT = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]

NOTE_TO_PC: dict[str, int] = {
    "C": 0,
    "B#": 0,
    "C#": 1,
    "Db": 1,
    "D": 2,
    "D#": 3,
    "Eb": 3,
    "E": 4,
    "Fb": 4,
    "E#": 5,
    "F": 5,
    "F#": 6,
    "Gb": 6,
    "G": 7,
    "G#": 8,
    "Ab": 8,
    "A": 9,
    "A#": 10,
    "Bb": 10,
    "B": 11,
    "Cb": 11,
}

_NO_CHORD = {"N", "NO_CHORD", "NOCHORD", "N.C.", "NC", "X", "NONE"}
_ROOT_RE = re.compile(r"^([A-Ga-g])([#b]?)(.*)$")

# Compact suffixes produced by the template matcher, plus common aliases.
_QUALITY_MAP = {
    "": "",
    "maj": "",
    "major": "",
    "m": "m",
    "min": "m",
    "minor": "m",
    "7": "7",
    "dom7": "7",
    "maj7": "maj7",
    "m7": "m7",
    "min7": "m7",
    "dim": "dim",
    "aug": "aug",
    "+": "aug",
    "sus4": "sus4",
    "sus": "sus4",
    "sus2": "sus2",
}


def split_chord_label(label: str) -> tuple[int | None, str | None]:
    """
    Parse a compact chord label ('Am', 'Bbmaj7', 'F#sus4', 'E:min') into
    (root pitch class, normalized quality suffix). (None, None) for no-chord
    or unparseable labels.
    """
    if not label:
        return None, None
    raw = label.strip().replace("♯", "#").replace("♭", "b")
    if raw.upper() in _NO_CHORD:
        return None, None
    raw = raw.split("/", 1)[0]

    match = _ROOT_RE.match(raw.replace(":", ""))
    if not match:
        return None, None
    root = f"{match.group(1).upper()}{match.group(2)}"
    pc = NOTE_TO_PC.get(root)
    if pc is None:
        return None, None

    suffix = match.group(3).strip().replace(" ", "")
    # uppercase M is major (CM7), lowercase m is minor (Cm7)
    if suffix.startswith("M") and not suffix.lower().startswith(("maj", "min")):
        suffix = "maj" + suffix[1:]
    quality = _QUALITY_MAP.get(suffix.lower())
    if quality is None:
        return int(pc), None
    return int(pc), quality


def format_chord_label(root_pc: int, quality: str, *, use_flats: bool = False) -> str:
    names = NOTE_NAMES_FLAT if use_flats else NOTE_NAMES_SHARP
    return f"{names[int(root_pc) % 12]}{quality}"


def spell_chord_label(label: str, use_flats: bool) -> str:
    """
    Rewrite the root with the preferred enharmonic spelling ('A#m' -> 'Bbm').
    Labels that cannot be parsed are returned unchanged.
    """
    pc, quality = split_chord_label(label)
    if pc is None or quality is None:
        return label
    return format_chord_label(pc, quality, use_flats=use_flats)
