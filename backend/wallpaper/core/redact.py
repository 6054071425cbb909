from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "***"

_SENSITIVE_KEY_PARTS = (
    "token",
    "key",
    "sig",
    "signature",
    "password",
    "secret",
    "authorization",
    "cookie",
)

_URI_IN_TEXT_RE = re.compile(r"(?i)https?://[^\s\"']+")
_QUERY_PAIR_RE = re.compile(r"(?P<sep>[?&])(?P<key>[^=&#\s]+)=(?P<value>[^&#\s]*)")

_TRAILING_PUNCT = ".,);:]}"


def is_sensitive_key(key: str) -> bool:
    key_l = key.lower()
    return any(part in key_l for part in _SENSITIVE_KEY_PARTS)


def _redact_userinfo(uri: str) -> str:
    m = re.match(r"^(?P<scheme>https?)://(?P<rest>.+)$", uri, flags=re.IGNORECASE)
    if not m:
        return uri
    rest = m.group("rest")
    authority = rest.split("/", 1)[0]
    if "@" not in authority:
        return uri
    userinfo, host = authority.rsplit("@", 1)
    username = userinfo.split(":", 1)[0]
    tail = rest[len(authority) :]
    return f"{m.group('scheme')}://{username}:{REDACTED}@{host}{tail}"


def _redact_query(uri: str) -> str:
    def _repl(m: re.Match[str]) -> str:
        if is_sensitive_key(m.group("key")):
            return f"{m.group('sep')}{m.group('key')}={REDACTED}"
        return m.group(0)

    return _QUERY_PAIR_RE.sub(_repl, uri)


def redact_url(uri: str) -> str:
    return _redact_query(_redact_userinfo(uri))


def redact_text(text: str) -> str:
    """Mask credentials embedded in any http(s) URL found in ``text``."""

    def _repl(m: re.Match[str]) -> str:
        full = m.group(0)
        suffix = ""
        while full and full[-1] in _TRAILING_PUNCT:
            suffix = full[-1] + suffix
            full = full[:-1]
        return redact_url(full) + suffix

    return _URI_IN_TEXT_RE.sub(_repl, text)


def redact_any(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and is_sensitive_key(k):
                out[k] = REDACTED
            else:
                out[k] = redact_any(v)
        return out
    if isinstance(value, (list, tuple)):
        seq = [redact_any(v) for v in value]
        return type(value)(seq) if isinstance(value, tuple) else seq
    return value
