"""Core log delivery pipeline.

This module is integration-agnostic. It only relies on ports for rendering,
delivery and queueing, so the same orchestration serves the ``logging``
handler and any other emitter that can build a ``LogEvent``.
"""

from __future__ import annotations

import logging
from typing import Optional

from telelog.core.config import DeliveryConfig
from telelog.core.models import DeliveryTask, ExecutionContext, LogEvent
from telelog.core.ports import DeliveryQueuePort, FormatterPort, SenderPort
from telelog.core.topic_resolver import TopicResolver

LOGGER = logging.getLogger(__name__)


def describe_failure(error: BaseException) -> str:
    """Name a delivery failure without its message text.

    Transport errors quote the request URL, and that URL carries the bot token.
    """

    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return f"{type(error).__name__} (HTTP {status_code})"
    return type(error).__name__


class LogProcessor:
    """Orchestrates topic resolution, rendering and dispatch of one event."""

    def __init__(
        self,
        delivery: DeliveryConfig,
        resolver: TopicResolver,
        formatter: FormatterPort,
        sender: SenderPort,
        queue: Optional[DeliveryQueuePort] = None,
    ) -> None:
        if delivery.queue and queue is None:
            raise ValueError(f"Queue {delivery.queue!r} configured without a delivery queue")
        self.delivery = delivery
        self._resolver = resolver
        self._formatter = formatter
        self._sender = sender
        self._queue = queue

    def build_task(self, event: LogEvent, execution: ExecutionContext) -> DeliveryTask:
        """Resolve the destination and render the message for ``event``."""

        context = event.context
        # Explicit context overrides beat the declared topic, which beats the default.
        topic_id = context.get("topic_id")
        if topic_id is None:
            topic_id = self._resolver.resolve(event, execution)
        if topic_id is None:
            topic_id = self.delivery.topic_id

        token = context.get("token") or self.delivery.token
        chat_id = context.get("chat_id")
        if chat_id is None:
            chat_id = self.delivery.chat_id

        return DeliveryTask(
            url=self.delivery.endpoint(token),
            message=self._formatter.render(event, execution),
            chat_id=chat_id,
            topic_id=topic_id,
            proxy=self.delivery.proxy,
            timeout=self.delivery.timeout,
            verify_tls=self.delivery.verify_tls,
            max_attempts=self.delivery.max_attempts,
            retry_delay=self.delivery.retry_delay,
        )

    def handle(self, event: LogEvent, execution: ExecutionContext) -> DeliveryTask:
        """Process one event through the pipeline and return the dispatched task."""

        task = self.build_task(event, execution)

        if not self.delivery.queue:
            # One inline attempt; failures must never reach the logging caller.
            try:
                self._sender.send(task)
            except Exception as exc:
                LOGGER.debug("Telegram delivery to %s failed: %s", task.chat_id, describe_failure(exc))
            return task

        self._queue.submit(task, self.delivery.queue)
        return task
