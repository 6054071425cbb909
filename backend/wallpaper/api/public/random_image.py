from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wallpaper.core.catalog import ImageCatalog, ImageSet, ManifestError
from wallpaper.core.config import Settings
from wallpaper.core.errors import ApiError, ErrorCode
from wallpaper.core.image_urls import build_image_url, is_external_url, resolve_base_origin, with_cache_bust
from wallpaper.core.logging import get_logger
from wallpaper.core.metrics import UA_DETECTIONS_TOTAL, observe_images_served
from wallpaper.core.params import SelectionRequest, resolve_selection_request
from wallpaper.core.render import (
    SelectedImage,
    client_ip,
    render_help,
    render_json,
    render_preflight,
    render_redirect,
    render_text,
    render_ua_debug,
    selection_payload,
    ua_debug_payload,
)
from wallpaper.core.request_id import get_or_create_request_id, set_request_id_on_state
from wallpaper.core.sampler import Sampler
from wallpaper.core.time import epoch_ms

log = get_logger(__name__)

router = APIRouter()

_MAX_BODY_BYTES = 16 * 1024


class SelectionBody(BaseModel):
    """JSON body accepted on POST; any field also present in the query string loses to the query."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = None
    count: int | str | None = None
    format: str | None = None
    img_format: str | None = None
    return_: str | None = Field(default=None, alias="return")
    external: bool | str | None = None
    debug: bool | str | None = None

    def as_params(self) -> dict[str, str]:
        raw = self.model_dump(exclude_none=True, by_alias=True)
        out: dict[str, str] = {}
        for key, value in raw.items():
            if isinstance(value, bool):
                # A JSON false must not read as a bare "?debug" flag.
                out[key] = "1" if value else "0"
            else:
                out[key] = str(value)
        return out


async def _collect_params(request: Request) -> dict[str, str]:
    params: dict[str, str] = {}

    if request.method == "POST":
        content_type = (request.headers.get("content-type") or "").lower()
        if content_type.startswith("application/json"):
            raw = await request.body()
            if raw and len(raw) <= _MAX_BODY_BYTES:
                try:
                    body = SelectionBody.model_validate_json(raw)
                except ValidationError:
                    log.info("selection_body_ignored reason=invalid_json")
                else:
                    params.update(body.as_params())

    for key, value in request.query_params.items():
        params[key] = value
    # Merged params; error_response reads `format` from here.
    request.state.params = params
    return params


async def _help_image_set(catalog: ImageCatalog) -> ImageSet:
    try:
        return await catalog.get()
    except ManifestError:
        log.warning("help_rendered_without_catalog")
        return catalog.current or ImageSet(source="empty")


async def _load_image_set(catalog: ImageCatalog) -> ImageSet:
    try:
        return await catalog.get()
    except ManifestError as exc:
        raise ApiError(
            code=ErrorCode.MANIFEST_UNAVAILABLE,
            message="Image list unavailable",
            status_code=503,
        ) from exc


def _filter_candidates(entries: tuple[str, ...], *, external: bool | None) -> tuple[str, ...]:
    if external is None:
        return entries
    return tuple(e for e in entries if is_external_url(e) == external)


def _to_selected(
    picked: list[str],
    selection: SelectionRequest,
    *,
    origin: str,
    cache_bust: bool,
) -> list[SelectedImage]:
    out: list[SelectedImage] = []
    for entry in picked:
        if is_external_url(entry):
            out.append(SelectedImage(filename=entry.rsplit("/", 1)[-1] or entry, url=entry, format="external"))
            continue
        url = build_image_url(entry, selection.device_type, selection.output_format, origin)
        if cache_bust:
            url = with_cache_bust(url)
        out.append(SelectedImage(filename=entry, url=url, format=selection.output_format))
    return out


@router.api_route("/api", methods=["GET", "POST", "OPTIONS"])
@router.api_route("/api/", methods=["GET", "POST", "OPTIONS"], include_in_schema=False)
@router.api_route("/", methods=["GET", "POST", "OPTIONS"], include_in_schema=False)
async def random_wallpaper(request: Request) -> Any:
    if request.method == "OPTIONS":
        return render_preflight()

    rid = get_or_create_request_id(request)
    set_request_id_on_state(request, rid)

    settings: Settings = request.app.state.settings
    catalog: ImageCatalog = request.app.state.catalog
    sampler: Sampler = request.app.state.sampler

    params = await _collect_params(request)
    selection = resolve_selection_request(params, request.headers, max_count=settings.max_count)

    if selection is None:
        return render_help(await _help_image_set(catalog), max_count=settings.max_count)

    image_set = await _load_image_set(catalog)

    user_agent = request.headers.get("user-agent") or ""
    real_ip = client_ip(request.headers, fallback=getattr(request.client, "host", None))

    if selection.type_param == "ua":
        UA_DETECTIONS_TOTAL.labels(device_type=selection.device_type).inc()
        if selection.debug:
            return render_ua_debug(
                ua_debug_payload(selection, user_agent=user_agent or "unknown", real_ip=real_ip, request_id=rid)
            )

    candidates = _filter_candidates(image_set.get(selection.device_type), external=selection.external)
    if not candidates:
        raise ApiError(
            code=ErrorCode.NO_IMAGES,
            message="No images",
            status_code=404,
            details={"type": selection.device_type, "external": selection.external},
        )

    picked = sampler.pick(selection.device_type, candidates, selection.count)
    origin = resolve_base_origin(request, public_base_url=settings.public_base_url)
    images = _to_selected(picked, selection, origin=origin, cache_bust=settings.cache_bust)
    observe_images_served(device_type=selection.device_type, formats=[img.format for img in images])

    if selection.response_format == "redirect":
        return render_redirect(images[0])
    if selection.response_format == "text":
        return render_text(images)

    debug: dict[str, Any] | None = None
    if selection.debug:
        debug = {
            "user_agent": user_agent[:100],
            "real_ip": real_ip,
            "is_mobile": selection.device_type == "pe",
            "requested_img_format": selection.requested_output_format,
            "candidates": len(candidates),
            "catalog_source": image_set.source,
            "catalog_stale": catalog.stale,
            "timestamp": epoch_ms(),
        }
    return render_json(selection_payload(selection, images, request_id=rid, debug=debug))
