from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client.exposition import CONTENT_TYPE_LATEST, generate_latest

from wallpaper.core.catalog import ImageCatalog
from wallpaper.core.metrics import set_catalog_sizes

router = APIRouter()


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    catalog: ImageCatalog | None = getattr(request.app.state, "catalog", None)
    if catalog is not None and catalog.current is not None:
        set_catalog_sizes(catalog.current.counts())

    content = generate_latest()
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)
