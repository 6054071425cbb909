from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from wallpaper.core.logging import get_logger

log = get_logger(__name__)

HARD_MAX_COUNT = 100
DEFAULT_MAX_COUNT = 20
DEFAULT_HISTORY_SIZE = 50


@dataclass(frozen=True, slots=True)
class Settings:
    app_env: str
    public_base_url: str
    image_manifest_url: str
    image_manifest_path: str
    images_dir: str
    manifest_ttl_s: float
    manifest_timeout_s: float
    max_count: int
    history_size: int
    random_seed: str
    cache_bust: bool
    metrics_enabled: bool
    static_root: str
    log_level: int

    @property
    def is_prod(self) -> bool:
        return self.app_env in {"prod", "production"}

    @property
    def has_image_source(self) -> bool:
        return bool(self.image_manifest_url or self.image_manifest_path or self.images_dir)


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key, default)
    return value.strip()


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _get(env, key, "1" if default else "0").lower()
    if raw in {"1", "true", "yes", "y", "on"}:
        return True
    if raw in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _get_int(env: Mapping[str, str], key: str, default: int, *, lo: int, hi: int) -> int:
    try:
        value = int(_get(env, key, str(default)) or str(default))
    except Exception:
        value = default
    return max(lo, min(int(value), hi))


def _get_float(env: Mapping[str, str], key: str, default: float, *, lo: float, hi: float) -> float:
    try:
        value = float(_get(env, key, str(default)) or str(default))
    except Exception:
        value = default
    return max(lo, min(float(value), hi))


def _get_log_level(env: Mapping[str, str]) -> int:
    raw = _get(env, "LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    env = env or os.environ

    app_env = _get(env, "APP_ENV", "dev").lower()

    settings = Settings(
        app_env=app_env,
        public_base_url=_get(env, "PUBLIC_BASE_URL", "").rstrip("/"),
        image_manifest_url=_get(env, "IMAGE_MANIFEST_URL", ""),
        image_manifest_path=_get(env, "IMAGE_MANIFEST_PATH", ""),
        images_dir=_get(env, "IMAGES_DIR", ""),
        manifest_ttl_s=_get_float(env, "MANIFEST_TTL_SECONDS", 300.0, lo=0.0, hi=24 * 60 * 60.0),
        manifest_timeout_s=_get_float(env, "MANIFEST_TIMEOUT_SECONDS", 5.0, lo=0.1, hi=60.0),
        max_count=_get_int(env, "MAX_COUNT", DEFAULT_MAX_COUNT, lo=1, hi=HARD_MAX_COUNT),
        history_size=_get_int(env, "HISTORY_SIZE", DEFAULT_HISTORY_SIZE, lo=0, hi=10_000),
        random_seed=_get(env, "RANDOM_SEED", ""),
        cache_bust=_get_bool(env, "CACHE_BUST", False),
        metrics_enabled=_get_bool(env, "METRICS_ENABLED", True),
        static_root=_get(env, "STATIC_ROOT", ""),
        log_level=_get_log_level(env),
    )

    if settings.is_prod:
        problems: list[str] = []
        if not settings.has_image_source:
            problems.append("IMAGE_MANIFEST_URL/IMAGE_MANIFEST_PATH/IMAGES_DIR")
        if settings.random_seed:
            problems.append("RANDOM_SEED must be unset")
        if problems:
            raise ValueError(f"Invalid env vars for prod: {', '.join(problems)}")
    elif not settings.has_image_source:
        log.warning("image_source_not_configured app_env=%s", app_env)

    return settings
