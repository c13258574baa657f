from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from telelog.core.config import DeliveryConfig
from telelog.core.models import DeliveryTask, ExecutionContext, LogEvent, RouteInfo
from telelog.core.processor import LogProcessor
from telelog.core.topic_resolver import TopicResolver


class FixedResolver(TopicResolver):
    def __init__(self, topic_id: Any) -> None:
        self.topic_id = topic_id

    def resolve(self, event: LogEvent, execution: ExecutionContext) -> Any:
        return self.topic_id


class FakeFormatter:
    def render(self, event: LogEvent, execution: Optional[ExecutionContext] = None) -> str:
        return f"rendered:{event.message}"


class FakeSender:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent: list[DeliveryTask] = []
        self.error = error

    def send(self, task: DeliveryTask) -> None:
        self.sent.append(task)
        if self.error is not None:
            raise self.error


class FakeQueue:
    def __init__(self) -> None:
        self.submitted: list[tuple[DeliveryTask, str]] = []

    def submit(self, task: DeliveryTask, queue_name: str) -> None:
        self.submitted.append((task, queue_name))


def _event(context: Optional[dict] = None) -> LogEvent:
    return LogEvent(
        level_name="ERROR",
        level_no=40,
        channel="app",
        message="boom",
        datetime=datetime(2024, 1, 1, tzinfo=timezone.utc),
        context=context or {},
    )


def _processor(
    resolved: Any = None,
    sender: Optional[FakeSender] = None,
    delivery_queue: Optional[FakeQueue] = None,
    **delivery: Any,
) -> LogProcessor:
    options = {"token": "T", "chat_id": "-100", "topic_id": "default"}
    options.update(delivery)
    return LogProcessor(
        delivery=DeliveryConfig(**options),
        resolver=FixedResolver(resolved),
        formatter=FakeFormatter(),
        sender=sender or FakeSender(),
        queue=delivery_queue,
    )


def test_default_bot_api_url() -> None:
    task = _processor().build_task(_event(), ExecutionContext())
    assert task.url == "https://api.telegram.org/botT/SendMessage"


def test_custom_bot_api_is_used_verbatim() -> None:
    processor = _processor(bot_api="https://example.com/hook")
    task = processor.build_task(_event({"token": "other"}), ExecutionContext())
    assert task.url == "https://example.com/hook"


def test_context_token_changes_url() -> None:
    task = _processor().build_task(_event({"token": "X"}), ExecutionContext())
    assert task.url == "https://api.telegram.org/botX/SendMessage"


def test_context_topic_beats_resolved_topic() -> None:
    task = _processor(resolved="T2").build_task(_event({"topic_id": "T1"}), ExecutionContext())
    assert task.topic_id == "T1"


def test_resolved_topic_beats_default() -> None:
    task = _processor(resolved="T2").build_task(_event(), ExecutionContext())
    assert task.topic_id == "T2"


def test_default_topic_and_chat_apply_last() -> None:
    task = _processor().build_task(_event(), ExecutionContext())
    assert task.topic_id == "default"
    assert task.chat_id == "-100"


def test_context_chat_id_override() -> None:
    task = _processor().build_task(_event({"chat_id": 555}), ExecutionContext())
    assert task.chat_id == 555


def test_task_carries_transport_options() -> None:
    processor = _processor(proxy="socks5://proxy:1080", timeout=9, verify_tls=False)
    task = processor.build_task(_event(), ExecutionContext(route=RouteInfo()))
    assert task.message == "rendered:boom"
    assert task.proxy == "socks5://proxy:1080"
    assert task.timeout == 9
    assert task.verify_tls is False
    assert task.attempts_remaining == 2
    assert task.retry_delay == 120.0


def test_synchronous_path_sends_inline() -> None:
    sender = FakeSender()
    _processor(sender=sender).handle(_event(), ExecutionContext())
    assert len(sender.sent) == 1


def test_synchronous_failure_is_contained() -> None:
    sender = FakeSender(error=ConnectionError("offline"))
    task = _processor(sender=sender).handle(_event(), ExecutionContext())
    assert sender.sent == [task]


def test_queued_path_submits_without_sending() -> None:
    sender, queue = FakeSender(), FakeQueue()
    task = _processor(sender=sender, delivery_queue=queue, queue="telegram").handle(_event(), ExecutionContext())
    assert sender.sent == []
    assert queue.submitted == [(task, "telegram")]


def test_queue_name_requires_queue() -> None:
    with pytest.raises(ValueError):
        _processor(queue="telegram")


def test_delivery_config_validation() -> None:
    with pytest.raises(ValueError):
        DeliveryConfig(token="", chat_id="1")
    with pytest.raises(ValueError):
        DeliveryConfig(token="T", chat_id="")
    with pytest.raises(ValueError):
        DeliveryConfig(token="T", chat_id="1", timeout=0)
