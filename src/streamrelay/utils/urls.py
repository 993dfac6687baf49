"""RTMP URL helpers."""
from __future__ import annotations


def ensure_trailing_slash(url: str | None) -> str | None:
    if not url:
        return None
    trimmed = url.strip()
    if not trimmed:
        return None
    return trimmed.rstrip("/") + "/"


def join_stream_key(base_url: str, stream_key: str) -> str:
    """Append ``stream_key`` to ``base_url`` as a single, unescaped path segment."""

    base = ensure_trailing_slash(base_url)
    if base is None:
        raise ValueError("ingest URL is empty")
    return f"{base}{stream_key}"


def mask_stream_key(url: str, stream_key: str) -> str:
    """Hide the stream key portion of a destination URL for display."""

    if not stream_key or not url.endswith(stream_key):
        return url
    return f"{url[: -len(stream_key)]}{'*' * 6}"


def local_rtmp_url(port: int, application: str, stream: str | None = None) -> str:
    url = f"rtmp://127.0.0.1:{int(port)}/{application}"
    if stream:
        url = f"{url}/{stream}"
    return url


__all__ = ["ensure_trailing_slash", "join_stream_key", "local_rtmp_url", "mask_stream_key"]
