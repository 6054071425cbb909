from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

API_RESULTS: tuple[str, ...] = (
    "ok",
    "help",
    "no_images",
    "bad_request",
    "unavailable",
    "error",
)

DEVICE_TYPES: tuple[str, ...] = ("pc", "pe")

OUTPUT_FORMATS: tuple[str, ...] = ("original", "webp", "avif", "jpeg", "external")

MANIFEST_RESULTS: tuple[str, ...] = ("ok", "error", "stale")

API_REQUESTS_TOTAL = Counter(
    "wallpaper_api_requests_total",
    "Total /api requests by result.",
    ["result"],
)

IMAGES_SERVED_TOTAL = Counter(
    "wallpaper_images_served_total",
    "Total image URLs handed out by device type and output format.",
    ["device_type", "format"],
)

UA_DETECTIONS_TOTAL = Counter(
    "wallpaper_ua_detections_total",
    "Total type=ua detections by resolved device type.",
    ["device_type"],
)

MANIFEST_LOADS_TOTAL = Counter(
    "wallpaper_manifest_loads_total",
    "Image manifest (re)loads by outcome.",
    ["result"],
)

CATALOG_SIZE = Gauge(
    "wallpaper_catalog_images",
    "Images currently known per device type.",
    ["device_type"],
)

API_LATENCY_SECONDS = Histogram(
    "wallpaper_api_latency_seconds",
    "Latency for /api endpoint (seconds).",
    buckets=(
        0.001,
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        5.0,
    ),
)


def _init_labelsets() -> None:
    for result in API_RESULTS:
        API_REQUESTS_TOTAL.labels(result=result).inc(0)
    for result in MANIFEST_RESULTS:
        MANIFEST_LOADS_TOTAL.labels(result=result).inc(0)
    for device_type in DEVICE_TYPES:
        UA_DETECTIONS_TOTAL.labels(device_type=device_type).inc(0)
        CATALOG_SIZE.labels(device_type=device_type).set(0)


_init_labelsets()


def api_result_from_status(status: int) -> str:
    if status in {200, 302}:
        return "ok"
    if status == 404:
        return "no_images"
    if status == 400:
        return "bad_request"
    if status == 503:
        return "unavailable"
    return "error"


def observe_api_result(*, result: str, duration_s: float | None) -> None:
    result = (result or "").strip()
    if result not in API_RESULTS:
        result = "error"
    API_REQUESTS_TOTAL.labels(result=result).inc()
    if duration_s is not None and duration_s >= 0:
        API_LATENCY_SECONDS.observe(duration_s)


def observe_images_served(*, device_type: str, formats: list[str]) -> None:
    for fmt in formats:
        label = fmt if fmt in OUTPUT_FORMATS else "original"
        IMAGES_SERVED_TOTAL.labels(device_type=device_type, format=label).inc()


def observe_manifest_load(*, result: str) -> None:
    if result not in MANIFEST_RESULTS:
        result = "error"
    MANIFEST_LOADS_TOTAL.labels(result=result).inc()


def set_catalog_sizes(counts: dict[str, int]) -> None:
    for device_type in DEVICE_TYPES:
        CATALOG_SIZE.labels(device_type=device_type).set(float(int(counts.get(device_type, 0) or 0)))
