"""Queued delivery with retry.

``ThreadPoolDeliveryQueue`` is the in-process submission facility used when a
queue name is configured: ``submit`` returns immediately and a worker thread
runs the delivery with a fixed-delay retry policy. Any object with a
compatible ``submit(task, queue_name)`` (a Celery or RQ shim, for example)
can replace it.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from tenacity import RetryCallState, Retrying, stop_after_attempt, wait_fixed

from telelog.core.models import DeliveryTask
from telelog.core.ports import SenderPort
from telelog.core.processor import describe_failure

LOGGER = logging.getLogger(__name__)

FailureCallback = Callable[[DeliveryTask, BaseException], None]


def run_delivery_task(
    task: DeliveryTask,
    sender: SenderPort,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Deliver ``task``, retrying until its attempts are exhausted.

    The task is marked failed and the last error re-raised once every attempt
    has failed.
    """

    def attempt() -> None:
        task.attempts_remaining -= 1
        sender.send(task)

    retrying = Retrying(
        stop=stop_after_attempt(task.max_attempts),
        wait=wait_fixed(task.retry_delay),
        sleep=sleep,
        before_sleep=_log_retry(task),
        reraise=True,
    )
    try:
        retrying(attempt)
    except Exception:
        task.failed = True
        raise


def _log_retry(task: DeliveryTask) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        LOGGER.info(
            "Telegram delivery to chat %s failed (%s), retrying in %.0fs",
            task.chat_id,
            describe_failure(retry_state.outcome.exception()),
            retry_state.next_action.sleep,
        )

    return log


def log_failure(task: DeliveryTask, error: BaseException) -> None:
    LOGGER.warning(
        "Telegram delivery to chat %s permanently failed after %d attempts: %s",
        task.chat_id,
        task.max_attempts,
        describe_failure(error),
    )


class ThreadPoolDeliveryQueue:
    """Named worker pools that deliver tasks off the logging thread."""

    def __init__(
        self,
        sender: SenderPort,
        max_workers: int = 2,
        on_failure: Optional[FailureCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._sender = sender
        self._max_workers = max_workers
        self._on_failure = on_failure or log_failure
        self._sleep = sleep
        self._executors: dict[str, ThreadPoolExecutor] = {}
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, task: DeliveryTask, queue_name: str) -> Future:
        """Hand ``task`` to the ``queue_name`` pool and return immediately."""

        with self._lock:
            if self._closed:
                raise RuntimeError("Delivery queue is closed")
            executor = self._executors.get(queue_name)
            if executor is None:
                executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=f"telelog-{queue_name}",
                )
                self._executors[queue_name] = executor
        return executor.submit(self._work, task)

    def _work(self, task: DeliveryTask) -> None:
        try:
            run_delivery_task(task, self._sender, self._sleep)
        except Exception as exc:
            self._on_failure(task, exc)

    def close(self, wait: bool = True) -> None:
        """Stop accepting tasks and shut every pool down."""

        with self._lock:
            self._closed = True
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait)
