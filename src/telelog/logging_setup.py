"""Attach a configured ``TelegramLogHandler`` to a logger."""

from __future__ import annotations

import logging
from typing import Optional

from telelog.adapters.execution_context import set_environment
from telelog.adapters.telegram_formatter import TelegramFormatter
from telelog.adapters.telegram_log_handler import TelegramLogHandler
from telelog.core.config import HandlerSettings
from telelog.settings import load_settings


def build_handler(settings: HandlerSettings) -> TelegramLogHandler:
    """Create a handler (and its queue, when one is named) from settings."""

    delivery = settings.delivery
    level = getattr(logging, settings.level, logging.DEBUG)
    return TelegramLogHandler(
        token=delivery.token,
        chat_id=delivery.chat_id,
        topic_id=delivery.topic_id,
        topics_level=settings.topics_level,
        level=level,
        bot_api=delivery.bot_api,
        proxy=delivery.proxy,
        timeout=delivery.timeout,
        queue=delivery.queue,
        verify_tls=delivery.verify_tls,
        formatter=TelegramFormatter(config=settings.formatter),
        resolver_config=settings.resolver,
    )


def configure_logging(
    settings: Optional[HandlerSettings] = None,
    logger_name: Optional[str] = None,
) -> TelegramLogHandler:
    """Attach a Telegram handler to ``logger_name`` (root by default).

    ``bubble=False`` stops records from propagating past that logger once the
    Telegram handler has seen them.
    """

    settings = settings or load_settings()
    set_environment(settings.environment)

    handler = build_handler(settings)
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    if logger_name:
        logger.propagate = settings.bubble
    return handler
