from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any, Mapping

from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response

from wallpaper.core.catalog import ImageSet
from wallpaper.core.params import SelectionRequest
from wallpaper.core.time import epoch_ms, iso_utc_ms

NO_CACHE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

PREFLIGHT_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, User-Agent, Accept",
    "Access-Control-Max-Age": "86400",
}

_DEBUG_UA_MAX_LEN = 100


@dataclass(frozen=True, slots=True)
class SelectedImage:
    filename: str
    url: str
    format: str

    def as_dict(self) -> dict[str, str]:
        return {"filename": self.filename, "url": self.url, "format": self.format}


def cors_headers() -> dict[str, str]:
    return {"Access-Control-Allow-Origin": "*"}


def _headers(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    out = {**NO_CACHE_HEADERS, **cors_headers()}
    if extra:
        out.update(extra)
    return out


def client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str:
    for name in ("EO-Client-IP", "CF-Connecting-IP", "X-Real-IP"):
        value = (headers.get(name) or "").strip()
        if value:
            return value
    xff = (headers.get("X-Forwarded-For") or "").strip()
    if xff:
        return xff.split(",", 1)[0].strip() or "unknown"
    return fallback or "unknown"


def render_preflight() -> Response:
    return Response(status_code=200, headers=dict(PREFLIGHT_HEADERS))


def help_text(image_set: ImageSet, *, max_count: int) -> str:
    counts = image_set.counts()
    return "\n".join(
        [
            "🖼️ 随机图片 API",
            "",
            "用法:",
            "• ?type=pc - 横屏图片",
            "• ?type=pe - 竖屏图片",
            "• ?type=ua - 根据 User-Agent 自动检测设备",
            "",
            "参数:",
            f"• count=1-{max_count} - 返回数量（默认 1）",
            "• format=json|text|redirect - 响应格式（默认 json）",
            "• return=redirect - 302 跳转到图片（仅单张）",
            "• img_format=auto|webp|avif|jpeg|original - 图片格式（默认 original）",
            "• external=true|false - 只使用外链 / 只使用本地图片",
            "• debug - 显示 UA 和检测结果",
            "",
            "统计:",
            f"• PC: {counts['pc']} 张",
            f"• PE: {counts['pe']} 张",
            f"• 时间: {iso_utc_ms()}",
        ]
    )


def render_help(image_set: ImageSet, *, max_count: int) -> PlainTextResponse:
    return PlainTextResponse(help_text(image_set, max_count=max_count), status_code=200, headers=_headers())


def render_redirect(image: SelectedImage) -> RedirectResponse:
    return RedirectResponse(url=image.url, status_code=302, headers=_headers())


def render_text(images: list[SelectedImage]) -> PlainTextResponse:
    return PlainTextResponse("\n".join(img.url for img in images), status_code=200, headers=_headers())


def ua_debug_payload(
    selection: SelectionRequest,
    *,
    user_agent: str,
    real_ip: str,
    request_id: str,
) -> dict[str, Any]:
    classification = selection.classification
    return {
        "detected": selection.type_param,
        "detected_by": selection.detected_by,
        "is_mobile": bool(classification.is_mobile) if classification else selection.device_type == "pe",
        "device_type": selection.device_type,
        "user_agent": user_agent[:_DEBUG_UA_MAX_LEN],
        "real_ip": real_ip,
        "timestamp": epoch_ms(),
        "request_id": request_id,
    }


def render_ua_debug(payload: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=200, content=payload, headers=_headers())


def selection_payload(
    selection: SelectionRequest,
    images: list[SelectedImage],
    *,
    request_id: str,
    debug: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": True,
        "code": 200,
        "message": "Success",
        "type": selection.device_type,
        "detected_by": selection.detected_by,
        "img_format": selection.output_format,
        "count": len(images),
    }
    if selection.count == 1 and len(images) == 1:
        body["image"] = images[0].as_dict()
    else:
        body["images"] = [img.as_dict() for img in images]
    if debug is not None:
        body["debug"] = debug
    body["timestamp"] = epoch_ms()
    body["request_id"] = request_id
    return body


def render_json(body: dict[str, Any]) -> JSONResponse:
    extra = {
        "ETag": f'"{secrets.token_hex(6)}"',
        "X-Timestamp": str(epoch_ms()),
    }
    return JSONResponse(status_code=200, content=body, headers=_headers(extra))
