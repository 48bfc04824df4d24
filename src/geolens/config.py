# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Runtime settings loaded from ``GEOLENS_*`` environment variables.

Every service takes its settings object explicitly; nothing here is a
module-level singleton.  ``server.main`` layers CLI flags over these.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")

BOT_USER_AGENT = "Mozilla/5.0 (compatible; GEOBot/1.0; +https://geolens.dev/bot)"


@dataclass(frozen=True, slots=True)
class FetchSettings:
    max_retries: int = 3
    base_timeout: float = 10.0  # seconds, attempt 0
    timeout_step: float = 2.0  # added per attempt
    backoff_base: float = 1.0  # seconds, doubled per attempt
    bot_user_agent: str = BOT_USER_AGENT
    accept_language: str = "zh-CN,zh;q=0.9,en;q=0.8"


@dataclass(frozen=True, slots=True)
class CacheSettings:
    enabled: bool = True
    ir_ttl: float = 3600.0
    ir_max_size: int = 1000
    html_ttl: float = 1800.0
    html_max_size: int = 500
    sweep_interval: float = 300.0
    single_flight: bool = False


@dataclass(frozen=True, slots=True)
class DetectorSettings:
    strict_mode: bool = True
    check_suspicious: bool = False
    custom_user_agents: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Settings:
    fetch: FetchSettings = field(default_factory=FetchSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    detector: DetectorSettings = field(default_factory=DetectorSettings)
    default_lang: str = "zh-CN"
    char_threshold: int = 200  # readability retry_length
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    json_logs: bool = False


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if raw:
        with suppress(ValueError):
            return int(raw)
    return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if raw:
        with suppress(ValueError):
            return float(raw)
    return default


def _env_list(env: Mapping[str, str], name: str) -> tuple[str, ...]:
    raw = env.get(name, "").strip()
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables; unset or malformed values keep defaults."""
    env = os.environ if environ is None else environ
    fetch_defaults = FetchSettings()
    cache_defaults = CacheSettings()
    detector_defaults = DetectorSettings()
    defaults = Settings()

    fetch = FetchSettings(
        max_retries=max(0, _env_int(env, "GEOLENS_FETCH_MAX_RETRIES", fetch_defaults.max_retries)),
        base_timeout=_env_float(env, "GEOLENS_FETCH_TIMEOUT", fetch_defaults.base_timeout),
        bot_user_agent=env.get("GEOLENS_BOT_USER_AGENT", "").strip() or fetch_defaults.bot_user_agent,
    )
    cache = CacheSettings(
        enabled=_env_bool(env, "GEOLENS_CACHE_ENABLED", cache_defaults.enabled),
        ir_ttl=_env_float(env, "GEOLENS_IR_CACHE_TTL", cache_defaults.ir_ttl),
        ir_max_size=_env_int(env, "GEOLENS_IR_CACHE_SIZE", cache_defaults.ir_max_size),
        html_ttl=_env_float(env, "GEOLENS_HTML_CACHE_TTL", cache_defaults.html_ttl),
        html_max_size=_env_int(env, "GEOLENS_HTML_CACHE_SIZE", cache_defaults.html_max_size),
        sweep_interval=_env_float(env, "GEOLENS_CACHE_SWEEP_INTERVAL", cache_defaults.sweep_interval),
        single_flight=_env_bool(env, "GEOLENS_CACHE_SINGLE_FLIGHT", cache_defaults.single_flight),
    )
    detector = DetectorSettings(
        strict_mode=_env_bool(env, "GEOLENS_STRICT_MODE", detector_defaults.strict_mode),
        check_suspicious=_env_bool(env, "GEOLENS_CHECK_SUSPICIOUS", detector_defaults.check_suspicious),
        custom_user_agents=_env_list(env, "GEOLENS_CUSTOM_AI_AGENTS"),
    )
    return Settings(
        fetch=fetch,
        cache=cache,
        detector=detector,
        default_lang=env.get("GEOLENS_DEFAULT_LANG", "").strip() or defaults.default_lang,
        host=env.get("GEOLENS_HOST", "").strip() or defaults.host,
        port=_env_int(env, "GEOLENS_PORT", defaults.port),
        log_level=env.get("GEOLENS_LOG_LEVEL", "").strip() or defaults.log_level,
        json_logs=_env_bool(env, "GEOLENS_JSON_LOGS", defaults.json_logs),
    )
