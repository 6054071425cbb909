from __future__ import annotations

import posixpath
import secrets
from typing import Any, Literal
from urllib.parse import quote, urlsplit

from wallpaper.core.time import epoch_ms

OutputFormat = Literal["original", "webp", "avif", "jpeg"]

OUTPUT_FORMATS: tuple[str, ...] = ("original", "webp", "avif", "jpeg")

# Extension written by the converter for each encoded format.
FORMAT_EXTENSIONS: dict[str, str] = {
    "webp": "webp",
    "avif": "avif",
    "jpeg": "jpg",
}

ORIGINALS_PREFIX = "images"
CONVERTED_PREFIX = "converted"


def is_external_url(value: str | None) -> bool:
    raw = (value or "").strip()
    if raw.startswith("//"):
        return len(raw) > 2
    parsed = urlsplit(raw)
    return parsed.scheme.lower() in {"http", "https"} and bool(parsed.netloc)


def build_image_url(
    filename: str,
    device_type: str,
    output_format: str,
    base_origin: str,
) -> str:
    if is_external_url(filename):
        return filename

    origin = (base_origin or "").rstrip("/")
    name = filename.strip().lstrip("/")

    fmt = output_format if output_format in FORMAT_EXTENSIONS else "original"
    if fmt == "original":
        path = f"/{ORIGINALS_PREFIX}/{quote(device_type)}/{quote(name)}"
    else:
        stem, _ext = posixpath.splitext(name)
        path = f"/{CONVERTED_PREFIX}/{quote(device_type)}/{fmt}/{quote(stem or name)}.{FORMAT_EXTENSIONS[fmt]}"
    return origin + path


def with_cache_bust(url: str, *, now_ms: int | None = None, token: str | None = None) -> str:
    v = int(now_ms if now_ms is not None else epoch_ms())
    r = token or secrets.token_hex(5)
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}v={v}&r={r}"


def _accepted_media_types(accept: str | None) -> dict[str, float]:
    out: dict[str, float] = {}
    for part in (accept or "").split(","):
        pieces = [p.strip() for p in part.split(";")]
        media = pieces[0].lower()
        if not media:
            continue
        q = 1.0
        for param in pieces[1:]:
            if param.lower().startswith("q="):
                try:
                    q = float(param[2:])
                except ValueError:
                    q = 0.0
        out[media] = max(q, out.get(media, 0.0))
    return out


def negotiate_output_format(accept: str | None) -> OutputFormat:
    accepted = _accepted_media_types(accept)
    if accepted.get("image/avif", 0.0) > 0:
        return "avif"
    if accepted.get("image/webp", 0.0) > 0:
        return "webp"
    return "jpeg"


def resolve_base_origin(request: Any, *, public_base_url: str = "") -> str:
    """Configured public origin, else the origin the client used to reach us."""
    if public_base_url:
        return public_base_url.rstrip("/")

    headers = request.headers
    url = request.url
    proto = (headers.get("x-forwarded-proto") or "").split(",", 1)[0].strip().lower()
    host = (headers.get("x-forwarded-host") or "").split(",", 1)[0].strip()
    scheme = proto if proto in {"http", "https"} else url.scheme
    netloc = host or url.netloc
    return f"{scheme}://{netloc}"
