from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

from wallpaper.core.config import HARD_MAX_COUNT
from wallpaper.core.device import DeviceClassification, DeviceType, classify_device
from wallpaper.core.errors import ApiError, ErrorCode
from wallpaper.core.image_urls import negotiate_output_format

ResponseFormat = Literal["json", "text", "redirect"]

TYPE_PARAMS: tuple[str, ...] = ("pc", "pe", "ua")

_RESPONSE_FORMAT_ALIASES: dict[str, str] = {
    "json": "json",
    "text": "text",
    "txt": "text",
    "plain": "text",
    "redirect": "redirect",
    "302": "redirect",
}

_OUTPUT_FORMAT_ALIASES: dict[str, str] = {
    "auto": "auto",
    "webp": "webp",
    "avif": "avif",
    "jpeg": "jpeg",
    "jpg": "jpeg",
    "original": "original",
    "orig": "original",
    "raw": "original",
}

_TRUE = {"", "1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


@dataclass(frozen=True, slots=True)
class SelectionRequest:
    type_param: str
    device_type: DeviceType
    detected_by: str
    count: int
    response_format: ResponseFormat
    output_format: str
    requested_output_format: str
    external: bool | None
    debug: bool
    classification: DeviceClassification | None = None


def _get(params: Mapping[str, Any], name: str) -> str | None:
    raw = params.get(name)
    if raw is None:
        return None
    return str(raw).strip()


def parse_flag(raw: str | None) -> bool | None:
    """``None`` when the parameter is absent or unrecognized; a bare ``?flag`` is true."""
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return None


def parse_count(raw: str | None, *, max_count: int) -> int:
    ceiling = max(1, min(int(max_count), HARD_MAX_COUNT))
    if not raw:
        return 1
    try:
        value = int(raw)
    except ValueError:
        try:
            value = int(float(raw))
        except (ValueError, OverflowError):
            return 1
    return max(1, min(value, ceiling))


def parse_response_format(format_raw: str | None, return_raw: str | None) -> ResponseFormat:
    fmt = _RESPONSE_FORMAT_ALIASES.get((format_raw or "").lower(), "json")
    if _RESPONSE_FORMAT_ALIASES.get((return_raw or "").lower()) == "redirect":
        fmt = "redirect"
    return fmt  # type: ignore[return-value]


def parse_output_format(raw: str | None) -> str:
    return _OUTPUT_FORMAT_ALIASES.get((raw or "").lower(), "original")


def resolve_selection_request(
    params: Mapping[str, Any],
    headers: Mapping[str, str] | None,
    *,
    max_count: int,
) -> SelectionRequest | None:
    """
    Normalizes the query of one /api call.

    Returns None when `type` is missing (the caller renders the help text).
    An unknown `type` is the only rejected input; every other malformed
    parameter falls back to its default.
    """

    type_param = (_get(params, "type") or "").lower()
    if not type_param:
        return None
    if type_param not in TYPE_PARAMS:
        raise ApiError(
            code=ErrorCode.INVALID_TYPE,
            message="Invalid type",
            status_code=400,
            details={"type": type_param[:32], "allowed": list(TYPE_PARAMS)},
        )

    classification: DeviceClassification | None = None
    if type_param == "ua":
        classification = classify_device(headers)
        device_type: DeviceType = classification.device_type
        detected_by = "client-hint" if classification.source == "client_hint" else "user-agent"
    else:
        device_type = "pc" if type_param == "pc" else "pe"
        detected_by = "manual"

    count = parse_count(_get(params, "count"), max_count=max_count)

    response_format = parse_response_format(_get(params, "format"), _get(params, "return"))
    if response_format == "redirect" and count > 1:
        response_format = "json"

    requested_output_format = parse_output_format(_get(params, "img_format"))
    output_format = requested_output_format
    if output_format == "auto":
        accept = (headers or {}).get("accept") or (headers or {}).get("Accept")
        output_format = negotiate_output_format(accept)

    debug = parse_flag(_get(params, "debug")) is True

    return SelectionRequest(
        type_param=type_param,
        device_type=device_type,
        detected_by=detected_by,
        count=count,
        response_format=response_format,
        output_format=output_format,
        requested_output_format=requested_output_format,
        external=parse_flag(_get(params, "external")),
        debug=debug,
        classification=classification,
    )
