"""Configuration loading for telelog.

Handler settings live in a single JSON file so routing tables can be edited
without touching Python; secrets come from the environment (or a ``.env``
file via python-dotenv) and override whatever the file says.

Example ``config.json``::

    {
      "telegram": {
        "chat_id": "-1001234567890",
        "topic_id": 1,
        "topics_level": {"app.topics.PaymentsTopic": 42},
        "queue": "telegram",
        "level": "ERROR"
      },
      "format": {"tags": "billing,prod"}
    }
"""

from __future__ import annotations

import json
import os
from typing import Any, Optional

from dotenv import load_dotenv

from telelog.adapters.telegram_formatter import parse_tags
from telelog.core.config import (
    DEFAULT_BOT_API,
    DeliveryConfig,
    FormatterConfig,
    HandlerSettings,
    ResolverConfig,
)

DEFAULT_CONFIG_PATH = "config.json"

# Environment variables override the matching "telegram" keys.
ENV_OVERRIDES = {
    "TELEGRAM_BOT_TOKEN": "token",
    "TELEGRAM_CHAT_ID": "chat_id",
    "TELEGRAM_TOPIC_ID": "topic_id",
    "TELEGRAM_BOT_API": "bot_api",
    "TELEGRAM_PROXY": "proxy",
    "TELEGRAM_QUEUE": "queue",
}


def _load_json_config(path: Optional[str]) -> dict:
    """Load the JSON config; the default path is optional, an explicit one is not."""

    explicit = path is not None
    path = path or os.getenv("TELELOG_CONFIG", DEFAULT_CONFIG_PATH)
    if not os.path.exists(path):
        if explicit:
            raise FileNotFoundError(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_settings(path: Optional[str] = None, env_file: Optional[str] = None) -> HandlerSettings:
    """Build ``HandlerSettings`` from ``config.json`` plus environment overrides."""

    load_dotenv(env_file)
    config = _load_json_config(path)

    telegram = dict(config.get("telegram", {}))
    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            telegram[key] = value

    delivery = DeliveryConfig(
        token=telegram.get("token", ""),
        chat_id=telegram.get("chat_id"),
        topic_id=telegram.get("topic_id"),
        bot_api=telegram.get("bot_api") or DEFAULT_BOT_API,
        proxy=telegram.get("proxy"),
        timeout=float(telegram.get("timeout", 5)),
        queue=telegram.get("queue"),
        verify_tls=_as_bool(telegram.get("verify_tls"), True),
    )

    fmt = config.get("format", {})
    defaults = FormatterConfig()
    formatter = FormatterConfig(
        html=_as_bool(fmt.get("html"), True),
        template=fmt.get("template") or defaults.template,
        date_format=fmt.get("date_format") or defaults.date_format,
        separator=fmt.get("separator", defaults.separator),
        tags=parse_tags(fmt.get("tags")),
        message_size=int(fmt.get("message_size", defaults.message_size)),
    )

    resolver_defaults = ResolverConfig()
    resolver = ResolverConfig(
        component_namespace=telegram.get("component_namespace"),
        command_markers=tuple(telegram.get("command_markers", resolver_defaults.command_markers)),
        job_markers=tuple(telegram.get("job_markers", resolver_defaults.job_markers)),
        app_root=telegram.get("app_root", resolver_defaults.app_root),
    )

    return HandlerSettings(
        delivery=delivery,
        formatter=formatter,
        resolver=resolver,
        topics_level=dict(telegram.get("topics_level", {})),
        level=str(telegram.get("level", "DEBUG")).upper(),
        bubble=_as_bool(telegram.get("bubble"), True),
        environment=os.getenv("APP_ENV") or telegram.get("environment", "production"),
    )
