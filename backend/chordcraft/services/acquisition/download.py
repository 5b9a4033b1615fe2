from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Literal

import yt_dlp

from chordcraft.core.errors import AcquisitionError
from chordcraft.services.acquisition.youtube import watch_url

_LOG = logging.getLogger(__name__)

StrategyKind = Literal["ytdlp_api", "ytdlp_cli"]

_RAW_STEM = "raw"
# Leftovers of an interrupted attempt; never treated as a finished download.
_PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp")


@dataclass(frozen=True)
class DownloadStrategy:
    name: str
    kind: StrategyKind
    player_client: str | None = None
    options: dict[str, Any] = field(default_factory=dict)


KNOWN_STRATEGIES: dict[str, DownloadStrategy] = {
    "yt-dlp": DownloadStrategy(name="yt-dlp", kind="ytdlp_api"),
    "yt-dlp-android": DownloadStrategy(name="yt-dlp-android", kind="ytdlp_api", player_client="android"),
    "yt-dlp-safari": DownloadStrategy(name="yt-dlp-safari", kind="ytdlp_api", player_client="web_safari"),
    "yt-dlp-cli": DownloadStrategy(name="yt-dlp-cli", kind="ytdlp_cli"),
}


@dataclass(frozen=True)
class DownloadConfig:
    timeout_sec: float = 300.0
    socket_timeout_sec: float = 15.0
    ytdlp_binary: str = "yt-dlp"
    cookies_file: str | None = None


def resolve_strategies(names: Iterable[str]) -> list[DownloadStrategy]:
    out: list[DownloadStrategy] = []
    for name in names:
        strategy = KNOWN_STRATEGIES.get(str(name).strip())
        if strategy is None:
            _LOG.warning("Unknown download strategy '%s', skipping. Known: %s", name, list(KNOWN_STRATEGIES))
            continue
        out.append(strategy)
    return out


def _clear_partial(dest_dir: Path) -> None:
    for p in dest_dir.glob(f"{_RAW_STEM}.*"):
        try:
            p.unlink()
        except FileNotFoundError:
            pass


def _find_output(dest_dir: Path) -> Path | None:
    candidates = [
        p for p in dest_dir.glob(f"{_RAW_STEM}.*")
        if p.is_file() and p.suffix not in _PARTIAL_SUFFIXES and p.stat().st_size > 0
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_size)


def _download_with_ytdlp(
    video_id: str,
    dest_dir: Path,
    strategy: DownloadStrategy,
    config: DownloadConfig,
) -> Path:
    opts: dict[str, Any] = {
        "format": "bestaudio/best",
        "outtmpl": str(dest_dir / f"{_RAW_STEM}.%(ext)s"),
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
        "socket_timeout": float(config.socket_timeout_sec),
        "retries": 1,
    }
    if strategy.player_client:
        opts["extractor_args"] = {"youtube": {"player_client": [strategy.player_client]}}
    if config.cookies_file:
        opts["cookiefile"] = config.cookies_file
    opts.update(strategy.options)

    with yt_dlp.YoutubeDL(opts) as ydl:
        ydl.download([watch_url(video_id)])

    out = _find_output(dest_dir)
    if out is None:
        raise RuntimeError("yt-dlp finished but produced no audio file")
    return out


def _download_with_cli(
    video_id: str,
    dest_dir: Path,
    strategy: DownloadStrategy,
    config: DownloadConfig,
) -> Path:
    binary = shutil.which(config.ytdlp_binary)
    if binary is None:
        raise RuntimeError(f"{config.ytdlp_binary} binary not found on PATH")

    cmd = [
        binary,
        "--format", "bestaudio/best",
        "--output", str(dest_dir / f"{_RAW_STEM}.%(ext)s"),
        "--no-playlist",
        "--socket-timeout", str(int(config.socket_timeout_sec)),
        "--quiet",
    ]
    if config.cookies_file:
        cmd += ["--cookies", config.cookies_file]
    cmd.append(watch_url(video_id))

    result = subprocess.run(cmd, capture_output=True, text=True, timeout=float(config.timeout_sec))
    if result.returncode != 0:
        raise RuntimeError(f"yt-dlp exited with {result.returncode}: {result.stderr.strip()[-500:]}")

    out = _find_output(dest_dir)
    if out is None:
        raise RuntimeError("yt-dlp CLI finished but produced no audio file")
    return out


Runner = Callable[[str, Path, DownloadStrategy, DownloadConfig], Path]

RUNNERS: dict[str, Runner] = {
    "ytdlp_api": _download_with_ytdlp,
    "ytdlp_cli": _download_with_cli,
}


def download_audio(
    video_id: str,
    dest_dir: Path,
    strategies: list[DownloadStrategy],
    *,
    config: DownloadConfig | None = None,
    runners: dict[str, Runner] | None = None,
) -> Path:
    """
    Try each strategy in order until one yields a raw audio file.

    Attempts are sequential so the fallback order is deterministic.
    Raises AcquisitionError with every per-strategy message once all fail.
    """
    config = config or DownloadConfig()
    runners = runners or RUNNERS
    dest_dir.mkdir(parents=True, exist_ok=True)

    failures: list[tuple[str, str]] = []
    for strategy in strategies:
        runner = runners.get(strategy.kind)
        if runner is None:
            failures.append((strategy.name, f"no runner for kind '{strategy.kind}'"))
            continue

        _clear_partial(dest_dir)
        _LOG.info("Downloading %s with strategy %s", video_id, strategy.name)
        try:
            path = runner(video_id, dest_dir, strategy, config)
        except Exception as exc:  # noqa: BLE001
            msg = str(exc) or exc.__class__.__name__
            _LOG.warning("Download strategy %s failed for %s: %s", strategy.name, video_id, msg)
            failures.append((strategy.name, msg))
            continue

        _LOG.info("Downloaded %s via %s -> %s", video_id, strategy.name, path)
        return path

    _clear_partial(dest_dir)
    if not failures:
        failures.append(("none", "no download strategies configured"))
    raise AcquisitionError(f"All download strategies failed for video {video_id}", failures)
