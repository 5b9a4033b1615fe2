from __future__ import annotations

import logging
import re
from typing import Callable

import requests
import yt_dlp

from chordcraft.core.errors import ValidationError
from chordcraft.schemas import VideoMetadata

_LOG = logging.getLogger(__name__)

_OEMBED_URL = "https://www.youtube.com/oembed"
_DATA_API_URL = "https://www.googleapis.com/youtube/v3/videos"
_THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/hqdefault.jpg"

# watch?v=, youtu.be/, embed/, v/, shorts/, live/ and channel-style paths, on YouTube hosts only
_VIDEO_ID_RE = re.compile(
    r"^(?:https?://)?(?:[\w-]+\.)?"
    r"(?:youtube(?:-nocookie)?\.com/(?:[^/\s?#]+/.+/|(?:v|e(?:mbed)?|shorts|live)/|[^?#\s]*\?(?:.*&)?v=)|youtu\.be/)"
    r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)
_BARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_ISO_DURATION_RE = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def extract_video_id(url: str) -> str | None:
    url = str(url or "").strip()
    if not url:
        return None
    if _BARE_ID_RE.match(url):
        return url
    match = _VIDEO_ID_RE.match(url)
    return match.group(1) if match else None


def require_video_id(url: str) -> str:
    video_id = extract_video_id(url)
    if video_id is None:
        raise ValidationError(f"Invalid YouTube URL format: {url!r}")
    return video_id


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def parse_iso8601_duration(value: str | None) -> int:
    if not value:
        return 0
    match = _ISO_DURATION_RE.match(str(value).strip())
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def _from_oembed(video_id: str, *, api_key: str | None, timeout: float) -> VideoMetadata | None:
    resp = requests.get(
        _OEMBED_URL,
        params={"url": watch_url(video_id), "format": "json"},
        timeout=timeout,
    )
    resp.raise_for_status()
    data = resp.json()
    if not data:
        return None
    # oEmbed has no duration; it is measured from the audio later.
    return VideoMetadata(
        video_id=video_id,
        title=data.get("title") or "Unknown Title",
        artist=data.get("author_name") or "Unknown Artist",
        thumbnail=data.get("thumbnail_url"),
        source="oembed",
    )


def _from_data_api(video_id: str, *, api_key: str | None, timeout: float) -> VideoMetadata | None:
    if not api_key:
        return None
    resp = requests.get(
        _DATA_API_URL,
        params={"part": "snippet,contentDetails,statistics", "id": video_id, "key": api_key},
        timeout=timeout,
    )
    resp.raise_for_status()
    items = resp.json().get("items") or []
    if not items:
        return None
    item = items[0]
    snippet = item.get("snippet") or {}
    thumbs = snippet.get("thumbnails") or {}
    thumb = (thumbs.get("high") or thumbs.get("default") or {}).get("url")
    return VideoMetadata(
        video_id=video_id,
        title=snippet.get("title") or "Unknown Title",
        artist=snippet.get("channelTitle") or "Unknown Artist",
        duration=float(parse_iso8601_duration((item.get("contentDetails") or {}).get("duration"))),
        thumbnail=thumb,
        upload_date=snippet.get("publishedAt"),
        view_count=int((item.get("statistics") or {}).get("viewCount") or 0),
        description=snippet.get("description") or "",
        source="data_api",
    )


def _from_ytdlp(video_id: str, *, api_key: str | None, timeout: float) -> VideoMetadata | None:
    opts = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
        "noplaylist": True,
        "socket_timeout": timeout,
    }
    with yt_dlp.YoutubeDL(opts) as ydl:
        info = ydl.extract_info(watch_url(video_id), download=False)
    if not info:
        return None
    return VideoMetadata(
        video_id=video_id,
        title=info.get("title") or "Unknown Title",
        artist=info.get("artist") or info.get("uploader") or "Unknown Artist",
        duration=float(info.get("duration") or 0),
        thumbnail=info.get("thumbnail"),
        upload_date=info.get("upload_date"),
        view_count=int(info.get("view_count") or 0),
        description=info.get("description") or "",
        source="yt-dlp",
    )


def synthesized_metadata(video_id: str) -> VideoMetadata:
    return VideoMetadata(
        video_id=video_id,
        title=f"YouTube Video {video_id}",
        artist="Unknown Artist",
        thumbnail=_THUMBNAIL_URL.format(video_id=video_id),
        source="synthesized",
    )


MetadataTier = Callable[..., "VideoMetadata | None"]

# Lightweight public endpoint first, heavy extraction last.
METADATA_TIERS: list[tuple[str, MetadataTier]] = [
    ("oembed", _from_oembed),
    ("data_api", _from_data_api),
    ("yt-dlp", _from_ytdlp),
]


def fetch_metadata(
    video_id: str,
    *,
    api_key: str | None = None,
    timeout: float = 10.0,
    tiers: list[tuple[str, MetadataTier]] | None = None,
) -> VideoMetadata:
    """
    Resolve descriptive metadata through the tiers in order.
    Never raises: missing metadata must not fail a job.
    """
    for name, tier in (tiers if tiers is not None else METADATA_TIERS):
        try:
            meta = tier(video_id, api_key=api_key, timeout=float(timeout))
        except Exception as exc:  # noqa: BLE001
            _LOG.warning("Metadata tier %s failed for %s: %s", name, video_id, exc)
            continue
        if meta is not None:
            _LOG.info("Metadata for %s resolved via %s", video_id, name)
            return meta

    _LOG.warning("All metadata tiers failed for %s, using synthesized metadata", video_id)
    return synthesized_metadata(video_id)
