from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Mapping

DeviceType = Literal["pc", "pe"]

DEVICE_TYPES: tuple[str, ...] = ("pc", "pe")

MOBILE_KEYWORDS: tuple[str, ...] = (
    "mobile",
    "android",
    "iphone",
    "ipad",
    "ipod",
    "blackberry",
    "windows phone",
    "opera mini",
    "iemobile",
    "mobile safari",
    "webos",
    "kindle",
    "silk",
    "fennec",
    "maemo",
    "tablet",
)

_MOBILE_RE = re.compile(r"android|webos|iphone|ipad|ipod|blackberry|iemobile|opera mini", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DeviceClassification:
    device_type: DeviceType
    is_mobile: bool
    source: str


def is_mobile_user_agent(user_agent: str | None) -> bool:
    if not user_agent or not isinstance(user_agent, str):
        return False

    ua = user_agent.lower()
    if any(keyword in ua for keyword in MOBILE_KEYWORDS):
        return True
    return _MOBILE_RE.search(user_agent) is not None


def _header(headers: Mapping[str, str] | None, name: str) -> str:
    if not headers:
        return ""
    return (headers.get(name) or headers.get(name.lower()) or "").strip()


def classify_device(headers: Mapping[str, str] | None) -> DeviceClassification:
    """
    Portrait (`pe`) for phones and tablets, widescreen (`pc`) otherwise.

    The `Sec-CH-UA-Mobile` client hint wins when present; browsers that send it
    report "?1" on mobile and "?0" on desktop.
    """

    ch_mobile = _header(headers, "Sec-CH-UA-Mobile")
    if ch_mobile in {"?1", "?0"}:
        is_mobile = ch_mobile == "?1"
        return DeviceClassification(
            device_type="pe" if is_mobile else "pc",
            is_mobile=is_mobile,
            source="client_hint",
        )

    is_mobile = is_mobile_user_agent(_header(headers, "User-Agent"))
    return DeviceClassification(
        device_type="pe" if is_mobile else "pc",
        is_mobile=is_mobile,
        source="user_agent",
    )
