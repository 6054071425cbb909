from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from wallpaper.core.time import epoch_ms


class ErrorCode(str, Enum):
    BAD_REQUEST = "BAD_REQUEST"
    INVALID_TYPE = "INVALID_TYPE"
    NOT_FOUND = "NOT_FOUND"
    NO_IMAGES = "NO_IMAGES"
    MANIFEST_UNAVAILABLE = "MANIFEST_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


UNKNOWN_REQUEST_ID = "req_unknown"

_DEFAULT_MESSAGE_BY_CODE: dict[ErrorCode, str] = {
    ErrorCode.BAD_REQUEST: "请求参数错误",
    ErrorCode.INVALID_TYPE: "type 参数无效（可选 pc / pe / ua）",
    ErrorCode.NOT_FOUND: "资源不存在",
    ErrorCode.NO_IMAGES: "没有可用的图片",
    ErrorCode.MANIFEST_UNAVAILABLE: "图片列表暂不可用",
    ErrorCode.INTERNAL_ERROR: "服务器内部错误",
}


def default_message(code: ErrorCode) -> str:
    return _DEFAULT_MESSAGE_BY_CODE.get(code, "请求失败")


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    code: ErrorCode
    message: str
    status_code: int = 400
    details: dict[str, Any] | None = None


def _coerce_request_id(request_id: str | None) -> str:
    request_id = (request_id or "").strip()
    return request_id if request_id else UNKNOWN_REQUEST_ID


def _request_id_from_request(request: Any | None) -> str | None:
    if request is None:
        return None
    request_id = getattr(getattr(request, "state", None), "request_id", None)
    if request_id:
        return str(request_id)
    header = request.headers.get("X-Request-Id")
    return header.strip() if header else None


def _wants_text(request: Any | None) -> bool:
    if request is None:
        return False
    params = getattr(getattr(request, "state", None), "params", None)
    if params is None:
        params = request.query_params
    raw = params.get("format")
    return (raw or "").strip().lower() == "text"


def error_body(
    *,
    status_code: int,
    code: ErrorCode,
    message: str | None = None,
    error: str | None = None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "code": int(status_code),
        "message": (message or "").strip() or default_message(code),
        "error": (error or "").strip() or code.value,
        "timestamp": epoch_ms(),
        "request_id": _coerce_request_id(request_id),
    }
    if details:
        body["details"] = details
    return body


def error_response(
    *,
    status_code: int,
    code: ErrorCode,
    message: str | None = None,
    error: str | None = None,
    request: Any | None = None,
    request_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Any:
    """JSON error payload, or ``message`` as plain text when the caller asked for ``format=text``."""
    if request_id is None:
        request_id = _request_id_from_request(request)
    body = error_body(
        status_code=status_code,
        code=code,
        message=message,
        error=error,
        request_id=request_id,
        details=details,
    )

    from wallpaper.core.render import NO_CACHE_HEADERS, cors_headers

    headers = {**NO_CACHE_HEADERS, **cors_headers()}
    if _wants_text(request):
        from fastapi.responses import PlainTextResponse

        return PlainTextResponse(
            f"{body['code']} {body['message']}",
            status_code=status_code,
            headers=headers,
        )

    from fastapi.responses import JSONResponse

    return JSONResponse(status_code=status_code, content=body, headers=headers)
