from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from wallpaper.core.catalog import ImageCatalog, ManifestError
from wallpaper.core.errors import ErrorCode, error_body
from wallpaper.core.request_id import get_or_create_request_id, set_request_id_header, set_request_id_on_state

router = APIRouter()


@router.get("/healthz")
async def healthz(request: Request) -> Any:
    rid = get_or_create_request_id(request)
    set_request_id_on_state(request, rid)

    catalog: ImageCatalog | None = getattr(request.app.state, "catalog", None)
    image_set = None
    if catalog is not None:
        try:
            image_set = await catalog.get()
        except ManifestError:
            image_set = None

    if image_set is not None:
        counts = image_set.counts()
        resp = JSONResponse(
            status_code=200,
            content={
                "ok": True,
                "catalog": {
                    "pc": counts["pc"],
                    "pe": counts["pe"],
                    "source": image_set.source,
                    "loaded_at": image_set.loaded_at,
                    "stale": bool(catalog.stale) if catalog is not None else False,
                },
                "request_id": rid,
            },
        )
    else:
        resp = JSONResponse(
            status_code=503,
            content=error_body(
                status_code=503,
                code=ErrorCode.MANIFEST_UNAVAILABLE,
                message="Image list unavailable",
                request_id=rid,
                details={"catalog_ok": False},
            ),
        )

    set_request_id_header(resp, rid)
    return resp
