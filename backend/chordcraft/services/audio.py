from __future__ import annotations
from pathlib import Path
import logging
import math
import shutil
import subprocess
import soundfile as sf
import numpy as np

from chordcraft.core.errors import ConversionError, MediaToolError

_LOG = logging.getLogger(__name__)

# Canonical analysis format
PCM_CODEC = "pcm_s16le"
PCM_SUBTYPE = "PCM_16"

def require_tool(binary: str) -> str:
    path = shutil.which(binary)
    if path is None:
        raise MediaToolError(f"Required media tool '{binary}' is not installed or not on PATH")
    return path

def _run_ffmpeg(cmd: list[str], out_wav: Path, timeout: float) -> None:
    try:
        subprocess.run(cmd, check=True, capture_output=True, timeout=float(timeout))
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
        raise ConversionError(f"ffmpeg failed (exit {e.returncode}): {stderr[-500:]}") from e
    except subprocess.TimeoutExpired as e:
        raise ConversionError(f"ffmpeg timed out after {timeout:.0f}s") from e

    # Never hand an empty file to the next stage.
    if not out_wav.exists():
        raise ConversionError(f"ffmpeg produced no output at {out_wav.name}")
    try:
        frames = sf.info(str(out_wav)).frames
    except RuntimeError as e:
        raise ConversionError(f"ffmpeg output is not readable audio: {e}") from e
    if frames <= 0:
        raise ConversionError(f"ffmpeg produced empty audio at {out_wav.name}")

def ffmpeg_to_wav_mono(
    input_path: Path,
    out_wav: Path,
    *,
    sample_rate: int = 44100,
    binary: str = "ffmpeg",
    timeout: float = 300.0,
) -> Path:
    """Convert any input to 16-bit mono PCM WAV at a fixed sample rate."""
    exe = require_tool(binary)
    out_wav.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        exe, "-y",
        "-i", str(input_path),
        "-vn",
        "-acodec", PCM_CODEC,
        "-ac", "1",
        "-ar", str(int(sample_rate)),
        str(out_wav),
    ]
    _LOG.info("Converting %s -> %s", input_path.name, out_wav.name)
    _run_ffmpeg(cmd, out_wav, timeout)
    return out_wav

def sample_offset(duration: float, window: float = 30.0, max_offset: float = 30.0) -> float:
    """
    Start of the analysis window: biased toward the middle of the song,
    capped, and pulled back so the window fits inside the audio when it can.
    """
    if not duration or duration <= 0 or not math.isfinite(duration):
        return 0.0
    offset = min(float(max_offset), math.floor(float(duration) / 2.0), max(0.0, float(duration) - float(window)))
    return float(max(0.0, offset))

def extract_sample(
    wav_path: Path,
    out_wav: Path,
    *,
    offset: float,
    duration: float = 30.0,
    sample_rate: int = 44100,
    binary: str = "ffmpeg",
    timeout: float = 300.0,
) -> Path:
    exe = require_tool(binary)
    out_wav.parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        exe, "-y",
        "-ss", f"{float(offset):.3f}",
        "-t", f"{float(duration):.3f}",
        "-i", str(wav_path),
        "-acodec", PCM_CODEC,
        "-ac", "1",
        "-ar", str(int(sample_rate)),
        str(out_wav),
    ]
    _LOG.info("Extracting %.1fs sample at %.1fs from %s", duration, offset, wav_path.name)
    _run_ffmpeg(cmd, out_wav, timeout)
    return out_wav

def measure_duration(path: Path) -> float:
    """Duration in seconds, read from the audio itself."""
    try:
        info = sf.info(str(path))
    except RuntimeError as e:
        raise ConversionError(f"Cannot read audio duration from {path.name}: {e}") from e
    if info.samplerate <= 0:
        raise ConversionError(f"Invalid sample rate in {path.name}")
    return float(info.frames) / float(info.samplerate)

def audio_info(path: Path) -> dict:
    info = sf.info(str(path))
    bit_depth = {"PCM_16": 16, "PCM_24": 24, "PCM_32": 32, "PCM_U8": 8, "FLOAT": 32, "DOUBLE": 64}.get(info.subtype, 16)
    return {
        "duration": float(info.frames) / float(info.samplerate) if info.samplerate else 0.0,
        "sample_rate": int(info.samplerate),
        "channels": int(info.channels),
        "bit_depth": int(bit_depth),
    }

def load_wav(path: Path) -> tuple[np.ndarray, int]:
    try:
        y, sr = sf.read(str(path), dtype="float32", always_2d=False)
    except RuntimeError as e:
        raise ConversionError(f"Cannot decode {path.name}: {e}") from e
    if y.ndim > 1:
        y = np.mean(y, axis=1)
    return y.astype(np.float32), sr
