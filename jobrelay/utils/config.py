from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml


class ConfigError(RuntimeError):
    pass


DEFAULTS: dict[str, Any] = {
    "environment": "production",
    "storage": {"db_path": "data/jobrelay.db", "log_dir": "data/logs"},
    "telegram": {
        "bot_token": "",
        "chat_id": "",
        "admin_chat_id": "",
        "timeout_seconds": 20,
    },
    "ai": {
        "base_url": "https://openrouter.ai/api/v1",
        "api_key": "",
        "model": "qwen/qwen3-30b-a3b",
        "timeout_seconds": 60,
        "max_attempts": 3,
        "base_delay_seconds": 2.0,
        "max_tokens": 1024,
        "temperature": 0.7,
    },
    "formatter": {
        "caption_budget": 1024,
        "text_budget": 4096,
        "channel_url": "",
        "max_link_length": 512,
    },
    "pipeline": {
        "max_jobs_per_run": 15,
        "delay_between_posts_seconds": 1.0,
        "fetch_workers": 2,
        "request_timeout_seconds": 10,
        "detail_delay_seconds": 0.5,
    },
    "sources": {
        "enabled": ["yemenhr", "eoi", "reliefweb", "ykbank", "kuraimi", "qtb", "yldf"],
        "yemenhr_feed_url": "",
    },
}

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "TELEGRAM_CHAT_ID": ("telegram", "chat_id"),
    "ADMIN_CHAT_ID": ("telegram", "admin_chat_id"),
    "AI_API_KEY": ("ai", "api_key"),
    "AI_MODEL": ("ai", "model"),
    "RSS_FEED_URL": ("sources", "yemenhr_feed_url"),
}

SECTION_SEPARATOR = "━━━━━━━━━━━━━━━━━━━━"


@dataclass(slots=True, frozen=True)
class FormatterSettings:
    caption_budget: int = 1024
    text_budget: int = 4096
    channel_url: str = ""
    max_link_length: int = 512
    separator: str = SECTION_SEPARATOR
    ellipsis: str = "\n..."
    link_label: str = "🔗 رابط الوظيفة:"
    promotion: str = "❤️ نتمنى لكم التوفيق! تابعونا للمزيد:"

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "FormatterSettings":
        section = config.get("formatter", {})
        settings = cls(
            caption_budget=int(section.get("caption_budget", 1024)),
            text_budget=int(section.get("text_budget", 4096)),
            channel_url=str(section.get("channel_url") or ""),
            max_link_length=int(section.get("max_link_length", 512)),
        )
        if settings.caption_budget <= 0 or settings.text_budget < settings.caption_budget:
            raise ConfigError("formatter budgets must satisfy 0 < caption_budget <= text_budget")
        return settings


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            config.setdefault(section, {})[key] = value
    if env.get("JOBRELAY_ENV"):
        config["environment"] = env["JOBRELAY_ENV"]
    return config


def load_config(path: str | Path, environ: dict[str, str] | None = None) -> dict[str, Any]:
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise ConfigError(f"Config not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ConfigError("Config root must be a mapping")
    return apply_env_overrides(_merge(DEFAULTS, loaded), environ)
