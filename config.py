# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

# Порядок типов в пикере (остальные — по алфавиту)
TYPE_PRIORITY_DEFAULT: Tuple[str, ...] = (
    "STEERINGWHEEL",
    "MAGPADDLES",
    "PADDLES",
    "TRIM",
    "DRIVERASSISTMODULE",
    "AIRBAG",
    "BACKCOVER",
)

REFRESH_INTERVAL_FLOOR_MIN = 5
REFRESH_INTERVAL_DEFAULT_MIN = 20


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y")


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return tuple(x.strip().upper() for x in raw.split(",") if x.strip())


@dataclass(frozen=True)
class Settings:
    """Настройки процесса: читаются один раз при старте и дальше не меняются."""
    bot_token: str

    shopify_domain: str
    shopify_admin_token: str
    shopify_api_version: str
    shopify_page_size: int
    shopify_http_timeout: float

    sku_prefix: str
    sku_separator: str
    sku_type_index: int
    sku_car_index: int

    refresh_interval_min: int
    refresh_jitter_sec: int
    refresh_single_flight: bool

    internal_title_marker: str
    type_priority: Tuple[str, ...]
    subcategory_option_cap: int
    session_ttl_sec: int

    http_host: str
    http_port: int


def load_settings() -> Settings:
    """
    Собрать Settings из окружения (+ .env).
    Кривые числа не валят старт — подставляется дефолт.
    """
    load_dotenv()

    return Settings(
        bot_token=os.getenv("BOT_TOKEN", ""),
        shopify_domain=os.getenv("SHOPIFY_DOMAIN", ""),
        shopify_admin_token=os.getenv("SHOPIFY_ADMIN_TOKEN", ""),
        shopify_api_version=os.getenv("SHOPIFY_API_VERSION") or "2025-10",
        shopify_page_size=_env_int("SHOPIFY_PAGE_SIZE", 250),
        shopify_http_timeout=_env_float("SHOPIFY_HTTP_TIMEOUT", 20.0),
        sku_prefix=(os.getenv("SKU_PREFIX") or "C").strip().upper(),
        sku_separator=os.getenv("SKU_SEPARATOR") or "-",
        sku_type_index=_env_int("SKU_TYPE_INDEX", 2),
        sku_car_index=_env_int("SKU_CAR_INDEX", 1),
        refresh_interval_min=_env_int("REFRESH_INTERVAL_MIN", REFRESH_INTERVAL_DEFAULT_MIN),
        refresh_jitter_sec=max(0, _env_int("REFRESH_JITTER_SEC", 30)),
        refresh_single_flight=_env_flag("REFRESH_SINGLE_FLIGHT"),
        internal_title_marker=os.getenv("INTERNAL_TITLE_MARKER") or "Z INTERNAL",
        type_priority=_env_list("TYPE_PRIORITY", TYPE_PRIORITY_DEFAULT),
        subcategory_option_cap=max(1, _env_int("SUBCATEGORY_OPTION_CAP", 100)),
        session_ttl_sec=_env_int("SESSION_TTL_SEC", 900),
        http_host=os.getenv("HTTP_HOST") or "0.0.0.0",
        http_port=_env_int("HTTP_PORT", 8000),
    )
