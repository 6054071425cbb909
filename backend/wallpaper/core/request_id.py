from __future__ import annotations

import re
import secrets
from typing import Any, Mapping

REQUEST_ID_HEADER = "X-Request-Id"

# Ids assigned by the edge in front of us, used when the client sent none.
EDGE_REQUEST_ID_HEADERS: tuple[str, ...] = (
    "EO-LOG-UUID",
    "CF-Ray",
    "X-Amzn-Trace-Id",
)

_MAX_REQUEST_ID_LEN = 128
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9._:=/+-]+$")


def new_request_id() -> str:
    return "req_" + secrets.token_hex(8)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    return headers.get(name) or headers.get(name.lower())


def _clean(value: str | None) -> str | None:
    if not value:
        return None
    value = value.strip()
    if not value or len(value) > _MAX_REQUEST_ID_LEN:
        return None
    if not _SAFE_ID_RE.match(value):
        return None
    return value


def get_request_id_from_headers(headers: Mapping[str, str] | None) -> str | None:
    if not headers:
        return None
    rid = _clean(_header(headers, REQUEST_ID_HEADER))
    if rid:
        return rid
    for name in EDGE_REQUEST_ID_HEADERS:
        rid = _clean(_header(headers, name))
        if rid:
            return rid
    return None


def set_request_id_on_state(request: Any, request_id: str) -> None:
    state = getattr(request, "state", None)
    if state is None:
        class _State:
            pass

        state = _State()
        setattr(request, "state", state)
    setattr(state, "request_id", request_id)


def set_request_id_header(response: Any, request_id: str) -> None:
    headers = getattr(response, "headers", None)
    if headers is None:
        setattr(response, "headers", {})
        headers = response.headers
    headers[REQUEST_ID_HEADER] = request_id


def get_or_create_request_id(request: Any) -> str:
    state = getattr(request, "state", None)
    if state is not None:
        rid = getattr(state, "request_id", None)
        if rid:
            return str(rid)
    headers = getattr(request, "headers", None)
    rid = get_request_id_from_headers(headers)
    return rid or new_request_id()


def build_request_id_middleware() -> Any:
    from starlette.middleware.base import BaseHTTPMiddleware

    class RequestIdMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):  # type: ignore[no-untyped-def]
            rid = get_or_create_request_id(request)
            set_request_id_on_state(request, rid)
            response = await call_next(request)
            set_request_id_header(response, rid)
            return response

    return RequestIdMiddleware
