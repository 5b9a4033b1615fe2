# Descriptive analysis of the normalized sample
from .summary import (
    estimate_difficulty,
    summarize_audio,
)

__all__ = [
    "estimate_difficulty",
    "summarize_audio",
]
