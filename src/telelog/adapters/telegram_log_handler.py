"""``logging`` handler that routes records to Telegram forum topics.

Wires the default adapters (decorator introspection, source scan, Bot API
sender, thread-pool queue, context-variable execution context) into the core
``LogProcessor``. Every collaborator can be swapped through the constructor.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Optional

from telelog.adapters.delivery_queue import ThreadPoolDeliveryQueue
from telelog.adapters.execution_context import current_execution
from telelog.adapters.introspection import DecoratorAttributeProvider, ModuleSourceReader
from telelog.adapters.record_mapper import build_event
from telelog.adapters.telegram_formatter import TelegramFormatter
from telelog.adapters.telegram_sender import TelegramBotSender
from telelog.core.config import DEFAULT_BOT_API, DeliveryConfig, ResolverConfig
from telelog.core.models import ChatId, TopicId
from telelog.core.ports import (
    AttributeProviderPort,
    ContextProviderPort,
    DeliveryQueuePort,
    SenderPort,
    SourceReaderPort,
)
from telelog.core.processor import LogProcessor
from telelog.core.topic_resolver import TopicResolver

# Records from our own loggers are dropped so delivery failures cannot loop.
INTERNAL_LOGGER = "telelog"


class TelegramLogHandler(logging.Handler):
    """Handler that sends each record to a Telegram chat, topic-routed."""

    def __init__(
        self,
        token: str,
        chat_id: ChatId,
        topic_id: Optional[TopicId] = None,
        topics_level: Optional[Mapping[Any, TopicId]] = None,
        level: int = logging.DEBUG,
        bot_api: str = DEFAULT_BOT_API,
        proxy: Optional[str] = None,
        timeout: float = 5.0,
        queue: Optional[str] = None,
        verify_tls: bool = True,
        formatter: Optional[TelegramFormatter] = None,
        resolver_config: Optional[ResolverConfig] = None,
        context_provider: Optional[ContextProviderPort] = None,
        attribute_provider: Optional[AttributeProviderPort] = None,
        source_reader: Optional[SourceReaderPort] = None,
        sender: Optional[SenderPort] = None,
        delivery_queue: Optional[DeliveryQueuePort] = None,
    ) -> None:
        super().__init__(level)
        self.setFormatter(formatter or TelegramFormatter())

        delivery = DeliveryConfig(
            token=token,
            chat_id=chat_id,
            topic_id=topic_id,
            bot_api=bot_api,
            proxy=proxy,
            timeout=timeout,
            queue=queue,
            verify_tls=verify_tls,
        )
        self.resolver = TopicResolver(
            topics_level or {},
            attribute_provider or DecoratorAttributeProvider(),
            source_reader or ModuleSourceReader(),
            resolver_config,
        )
        self._context_provider = context_provider or current_execution
        sender = sender or TelegramBotSender()

        self._owned_queue = None
        if queue and delivery_queue is None:
            self._owned_queue = ThreadPoolDeliveryQueue(sender)
            delivery_queue = self._owned_queue

        self._processor = LogProcessor(
            delivery=delivery,
            resolver=self.resolver,
            formatter=self,
            sender=sender,
            queue=delivery_queue,
        )

    @property
    def delivery(self) -> DeliveryConfig:
        return self._processor.delivery

    def setFormatter(self, fmt: Optional[logging.Formatter]) -> None:
        if fmt is not None and not isinstance(fmt, TelegramFormatter):
            raise TypeError("TelegramLogHandler needs a TelegramFormatter")
        super().setFormatter(fmt)

    def render(self, event, execution=None) -> str:
        return self.formatter.render(event, execution)

    def set_token(self, token: str) -> "TelegramLogHandler":
        self._processor.delivery = replace(self.delivery, token=token)
        return self

    def set_chat_id(self, chat_id: ChatId) -> "TelegramLogHandler":
        self._processor.delivery = replace(self.delivery, chat_id=chat_id)
        return self

    def set_topic_id(self, topic_id: Optional[TopicId]) -> "TelegramLogHandler":
        self._processor.delivery = replace(self.delivery, topic_id=topic_id)
        return self

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == INTERNAL_LOGGER or record.name.startswith(INTERNAL_LOGGER + "."):
            return
        try:
            event = build_event(record)
            self._processor.handle(event, self._context_provider())
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            if self._owned_queue is not None:
                self._owned_queue.close(wait=True)
        finally:
            super().close()
