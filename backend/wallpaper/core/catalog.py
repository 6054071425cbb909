from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from wallpaper.core.config import Settings
from wallpaper.core.device import DEVICE_TYPES
from wallpaper.core.logging import get_logger
from wallpaper.core.metrics import observe_manifest_load, set_catalog_sizes
from wallpaper.core.redact import redact_url
from wallpaper.core.time import iso_utc_ms

log = get_logger(__name__)

IMAGE_EXTENSIONS: frozenset[str] = frozenset({".webp", ".jpg", ".jpeg", ".png", ".gif", ".avif", ".bmp"})

# Retry a failed refresh sooner than a full TTL while stale data is served.
_FAILED_REFRESH_RETRY_S = 30.0


class ManifestError(RuntimeError):
    pass


class ImageManifest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pc: list[str] = []
    pe: list[str] = []


@dataclass(frozen=True, slots=True)
class ImageSet:
    pc: tuple[str, ...] = ()
    pe: tuple[str, ...] = ()
    source: str = "static"
    loaded_at: str = field(default_factory=iso_utc_ms)

    def get(self, device_type: str) -> tuple[str, ...]:
        if device_type == "pc":
            return self.pc
        if device_type == "pe":
            return self.pe
        return ()

    def counts(self) -> dict[str, int]:
        return {"pc": len(self.pc), "pe": len(self.pe)}

    @classmethod
    def from_lists(cls, pc: Iterable[str] = (), pe: Iterable[str] = (), *, source: str = "static") -> "ImageSet":
        return cls(pc=_clean_entries(pc), pe=_clean_entries(pe), source=source)


def _clean_entries(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        entry = str(value or "").strip()
        if not entry or entry in seen:
            continue
        seen.add(entry)
        out.append(entry)
    return tuple(out)


def parse_text_manifest(text: str, *, source: str = "text") -> ImageSet:
    """
    One entry per line, prefixed with its set: ``pc/name.webp`` or ``pe https://cdn/x.jpg``.
    Blank lines and ``#`` comments are skipped.
    """

    buckets: dict[str, list[str]] = {t: [] for t in DEVICE_TYPES}
    skipped = 0
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        cut = min((i for i in (line.find("/"), line.find(" "), line.find("\t")) if i > 0), default=-1)
        prefix, entry = (line[:cut], line[cut + 1 :]) if cut > 0 else ("", "")
        prefix = prefix.strip().lower()
        entry = entry.strip()
        if prefix not in buckets or not entry:
            skipped += 1
            continue
        buckets[prefix].append(entry)

    if skipped:
        log.warning("manifest_lines_skipped source=%s count=%d", source, skipped)
    return ImageSet.from_lists(buckets["pc"], buckets["pe"], source=source)


def parse_json_manifest(data: Any, *, source: str = "json") -> ImageSet:
    try:
        manifest = ImageManifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"invalid manifest: {source}") from exc
    return ImageSet.from_lists(manifest.pc, manifest.pe, source=source)


def parse_manifest(text: str, *, source: str, content_type: str = "") -> ImageSet:
    stripped = (text or "").lstrip()
    if "json" in content_type.lower() or stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except ValueError as exc:
            raise ManifestError(f"manifest is not valid JSON: {source}") from exc
        return parse_json_manifest(data, source=source)
    return parse_text_manifest(text, source=source)


def load_manifest_file(path: str | Path) -> ImageSet:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"manifest not readable: {p}") from exc
    content_type = "application/json" if p.suffix.lower() == ".json" else ""
    return parse_manifest(text, source=f"file:{p.name}", content_type=content_type)


def scan_images_dir(root: str | Path) -> ImageSet:
    base = Path(root)
    if not base.is_dir():
        raise ManifestError(f"images dir not found: {base}")

    lists: dict[str, list[str]] = {}
    for device_type in DEVICE_TYPES:
        folder = base / device_type
        if not folder.is_dir():
            lists[device_type] = []
            continue
        lists[device_type] = sorted(
            p.name for p in folder.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
        )
    return ImageSet.from_lists(lists["pc"], lists["pe"], source=f"dir:{base.name}")


async def fetch_manifest_url(
    url: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    timeout_s: float = 5.0,
) -> ImageSet:
    async with httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0)),
        follow_redirects=True,
    ) as client:
        try:
            resp = await client.get(url, headers={"Accept": "application/json, text/plain"})
        except httpx.HTTPError as exc:
            raise ManifestError(f"manifest fetch failed: {type(exc).__name__}") from exc

    if resp.status_code != 200:
        raise ManifestError(f"manifest fetch returned {resp.status_code}")

    return parse_manifest(
        resp.text,
        source=f"url:{redact_url(url)}",
        content_type=resp.headers.get("content-type") or "",
    )


class ImageCatalog:
    """
    Process-wide cache of the image lists.

    Readers get an immutable `ImageSet` snapshot. Refreshes happen under one
    asyncio lock and swap the snapshot in whole; a failed refresh keeps serving
    the previous snapshot.
    """

    def __init__(
        self,
        *,
        manifest_url: str = "",
        manifest_path: str = "",
        images_dir: str = "",
        ttl_s: float = 300.0,
        timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        now: Callable[[], float] | None = None,
        static: ImageSet | None = None,
    ) -> None:
        self._manifest_url = manifest_url.strip()
        self._manifest_path = manifest_path.strip()
        self._images_dir = images_dir.strip()
        self._ttl_s = max(0.0, float(ttl_s))
        self._timeout_s = float(timeout_s)
        self.transport = transport
        self._now = now or time.monotonic

        self._lock = asyncio.Lock()
        self._current: ImageSet | None = static
        self._expires_at: float | None = None
        self._stale = False
        self._static = static is not None

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> "ImageCatalog":
        return cls(
            manifest_url=settings.image_manifest_url,
            manifest_path=settings.image_manifest_path,
            images_dir=settings.images_dir,
            ttl_s=settings.manifest_ttl_s,
            timeout_s=settings.manifest_timeout_s,
            transport=transport,
        )

    @classmethod
    def from_static(cls, pc: Iterable[str] = (), pe: Iterable[str] = ()) -> "ImageCatalog":
        return cls(static=ImageSet.from_lists(pc, pe))

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def current(self) -> ImageSet | None:
        return self._current

    def _fresh(self) -> bool:
        if self._current is None:
            return False
        if self._static:
            return True
        if self._expires_at is None:
            return False
        # TTL 0 means load once for the process lifetime.
        return self._ttl_s <= 0 or self._now() < self._expires_at

    async def _load(self) -> ImageSet:
        if self._manifest_url:
            return await fetch_manifest_url(self._manifest_url, transport=self.transport, timeout_s=self._timeout_s)
        if self._manifest_path:
            return await asyncio.to_thread(load_manifest_file, self._manifest_path)
        if self._images_dir:
            return await asyncio.to_thread(scan_images_dir, self._images_dir)
        return ImageSet(source="empty")

    async def get(self) -> ImageSet:
        if self._fresh():
            return self._current  # type: ignore[return-value]

        async with self._lock:
            if self._fresh():
                return self._current  # type: ignore[return-value]

            try:
                loaded = await self._load()
            except Exception as exc:
                if self._current is None:
                    observe_manifest_load(result="error")
                    log.error("image_catalog_load_failed err=%s", str(exc) or type(exc).__name__)
                    raise ManifestError("image catalog unavailable") from exc

                observe_manifest_load(result="stale")
                log.warning(
                    "image_catalog_refresh_failed_serving_stale source=%s err=%s",
                    self._current.source,
                    str(exc) or type(exc).__name__,
                )
                self._stale = True
                self._expires_at = self._now() + min(self._ttl_s or _FAILED_REFRESH_RETRY_S, _FAILED_REFRESH_RETRY_S)
                return self._current

            observe_manifest_load(result="ok")
            set_catalog_sizes(loaded.counts())
            log.info("image_catalog_loaded source=%s pc=%d pe=%d", loaded.source, len(loaded.pc), len(loaded.pe))
            self._current = loaded
            self._stale = False
            self._expires_at = self._now() + self._ttl_s
            return loaded

    def invalidate(self) -> None:
        if not self._static:
            self._expires_at = None
