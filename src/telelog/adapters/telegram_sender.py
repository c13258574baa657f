"""Telegram Bot API delivery adapter.

Performs exactly one ``sendMessage`` attempt per call. Retries belong to the
delivery queue, so this class keeps no state beyond the task it is given.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from telelog.core.models import DeliveryTask

LOGGER = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    """The Bot API (or gateway) answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Telegram Bot API error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class TelegramBotSender:
    """Sender adapter that posts form-encoded messages to the Bot API."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session

    def send(self, task: DeliveryTask) -> None:
        """Post ``task`` once; raise on transport errors and non-2xx answers."""

        proxies = None
        if task.proxy:
            proxies = {"http": task.proxy, "https": task.proxy}

        post = self._session.post if self._session is not None else requests.post
        response = post(
            task.url,
            data=task.form_params(),
            timeout=task.timeout,
            proxies=proxies,
            verify=task.verify_tls,
        )
        if not 200 <= response.status_code < 300:
            raise DeliveryError(response.status_code, response.text[:200])
        LOGGER.debug("Delivered message to chat %s (topic %s)", task.chat_id, task.topic_id)
