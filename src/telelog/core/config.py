"""Core configuration dataclasses.

We keep config parsing outside the core (see ``telelog.settings``), but these
dataclasses define the shape the core and adapters expect so callers can
build them safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from telelog.core.models import ChatId, TopicId

DEFAULT_BOT_API = "https://api.telegram.org/bot"
TELEGRAM_HOST = "https://api.telegram.org"
# Telegram's limit for the ``text`` parameter of sendMessage.
TELEGRAM_MESSAGE_SIZE = 4096

DEFAULT_MESSAGE_FORMAT = "<b>%level_name%</b> (%channel%) [%date%]\n\n%message%\n\n%context%%extra%"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %Z"


@dataclass(frozen=True)
class FormatterConfig:
    """Message rendering settings consumed by ``TelegramFormatter``."""

    html: bool = True
    template: str = DEFAULT_MESSAGE_FORMAT
    date_format: str = DEFAULT_DATE_FORMAT
    separator: str = "-"
    tags: tuple[str, ...] = ()
    message_size: int = TELEGRAM_MESSAGE_SIZE


@dataclass(frozen=True)
class ResolverConfig:
    """Naming conventions used to recognise commands and jobs."""

    component_namespace: Optional[str] = None
    command_markers: tuple[str, ...] = ("console.commands",)
    job_markers: tuple[str, ...] = ("jobs",)
    app_root: str = "app"


@dataclass(frozen=True)
class DeliveryConfig:
    """Destination and transport settings for the notification endpoint."""

    token: str
    chat_id: ChatId
    topic_id: Optional[TopicId] = None
    bot_api: str = DEFAULT_BOT_API
    proxy: Optional[str] = None
    timeout: float = 5.0
    queue: Optional[str] = None
    verify_tls: bool = True
    max_attempts: int = 2
    retry_delay: float = 120.0

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("Telegram bot token is required")
        if self.chat_id in (None, ""):
            raise ValueError("Telegram chat_id is required")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")

    def endpoint(self, token: Optional[str] = None) -> str:
        """Return the sendMessage URL, or ``bot_api`` itself for custom gateways."""

        if TELEGRAM_HOST not in self.bot_api:
            return self.bot_api
        return f"{self.bot_api}{token or self.token}/SendMessage"


@dataclass(frozen=True)
class HandlerSettings:
    """Everything needed to build a handler from a config file."""

    delivery: DeliveryConfig
    formatter: FormatterConfig = field(default_factory=FormatterConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    topics_level: Mapping[Any, TopicId] = field(default_factory=dict)
    level: str = "DEBUG"
    bubble: bool = True
    environment: str = "production"
