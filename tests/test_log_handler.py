from __future__ import annotations

import logging
from typing import Optional

import pytest

from telelog.adapters.execution_context import (
    current_execution,
    request_scope,
    route_scope,
    set_console,
    set_queue_worker,
    worker_scope,
)
from telelog.adapters.telegram_formatter import TelegramFormatter
from telelog.adapters.telegram_log_handler import TelegramLogHandler
from telelog.core.config import ResolverConfig
from telelog.core.models import ComponentCall, DeliveryTask, RequestInfo
from sample_app.topics import PaymentsTopic, ReportsTopic


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


TOPICS = {PaymentsTopic: 42, "sample_app.topics.ReportsTopic": 43}


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def logger(sender: FakeSender):
    handler = TelegramLogHandler(
        token="T",
        chat_id="-100",
        topic_id=1,
        topics_level=TOPICS,
        level=logging.INFO,
        sender=sender,
        resolver_config=ResolverConfig(component_namespace="sample_app.components", app_root="sample_app"),
    )
    log = logging.getLogger("sample_app.test")
    log.setLevel(logging.DEBUG)
    log.propagate = False
    log.addHandler(handler)
    yield log
    log.removeHandler(handler)
    handler.close()
    set_console(False)
    set_queue_worker(False)


def test_plain_record_uses_default_topic(logger, sender) -> None:
    logger.warning("disk at %d%%", 93)
    assert len(sender.sent) == 1
    task = sender.sent[0]
    assert task.topic_id == 1
    assert task.url == "https://api.telegram.org/botT/SendMessage"
    assert "disk at 93%" in task.message
    assert "<b>WARNING</b> (sample_app.test)" in task.message


def test_level_threshold_applies(logger, sender) -> None:
    logger.debug("noise")
    assert sender.sent == []


def test_route_action_selects_declared_topic(logger, sender) -> None:
    with route_scope(action="sample_app.http.controllers.OrderController@store"):
        logger.error("payment failed")
    assert sender.sent[0].topic_id == 42


def test_undeclared_route_method_keeps_default(logger, sender) -> None:
    with route_scope(action="sample_app.http.controllers.OrderController@index"):
        logger.error("listing failed")
    assert sender.sent[0].topic_id == 1


def test_unmapped_declaration_keeps_default(logger, sender) -> None:
    with route_scope(action="sample_app.http.controllers.OrderController@destroy"):
        logger.error("delete failed")
    assert sender.sent[0].topic_id == 1


def test_attribute_dropping_decorator_uses_source_scan(logger, sender) -> None:
    # The topmost decorator in source is "audited", which matches no topic key.
    with route_scope(action="sample_app.http.controllers.OrderController@refund"):
        logger.error("refund failed")
    assert sender.sent[0].topic_id == 1


def test_missing_controller_is_not_fatal(logger, sender) -> None:
    with route_scope(action="sample_app.http.missing.Nope@store"):
        logger.error("lost")
    assert sender.sent[0].topic_id == 1


def test_component_call_selects_topic(logger, sender) -> None:
    with route_scope(component=ComponentCall(name="order-table", method="approve")):
        logger.error("approve failed")
    assert sender.sent[0].topic_id == 42


def test_console_command_exception_selects_topic(logger, sender) -> None:
    from sample_app.console.commands.sync_orders import SyncOrders

    set_console(True)
    try:
        SyncOrders().handle()
    except RuntimeError:
        logger.exception("sync failed")
    assert sender.sent[0].topic_id == 43
    assert "upstream unavailable" in sender.sent[0].message


def test_job_exception_selects_topic(logger, sender) -> None:
    from sample_app.jobs.send_report import SendReport

    with worker_scope():
        try:
            SendReport().handle()
        except KeyError:
            logger.exception("report failed")
    assert sender.sent[0].topic_id == 43


def test_job_flag_without_exception_keeps_default(logger, sender) -> None:
    with worker_scope():
        logger.error("no exception here")
    assert sender.sent[0].topic_id == 1


def test_explicit_overrides_win(logger, sender) -> None:
    with route_scope(action="sample_app.http.controllers.OrderController@store"):
        logger.error("override", extra={"topic_id": 7, "chat_id": "-200", "token": "X"})
    task = sender.sent[0]
    assert (task.topic_id, task.chat_id) == (7, "-200")
    assert task.url == "https://api.telegram.org/botX/SendMessage"


def test_exception_report_includes_request(logger, sender) -> None:
    request = RequestInfo(url="https://shop.example/pay", method="POST", inputs={"password": "s3cret", "sku": "A1"})
    with route_scope(action="sample_app.http.controllers.OrderController@store"):
        with request_scope(request):
            try:
                raise ValueError("card declined")
            except ValueError:
                logger.exception("checkout failed")
    message = sender.sent[0].message
    assert "<b>Url:</b> https://shop.example/pay" in message
    assert '{"sku":"A1"}' in message
    assert "s3cret" not in message


def test_sync_delivery_failure_does_not_propagate() -> None:
    handler = TelegramLogHandler(token="T", chat_id="-100", sender=FakeSender(error=ConnectionError("offline")))
    record = logging.LogRecord("app", logging.ERROR, __file__, 1, "boom", (), None)
    handler.emit(record)


def test_unexpected_errors_go_to_handle_error(monkeypatch) -> None:
    handler = TelegramLogHandler(token="T", chat_id="-100", sender=FakeSender())
    errors = []
    monkeypatch.setattr(handler, "handleError", errors.append)

    def broken():
        raise RuntimeError("context provider exploded")

    handler._context_provider = broken
    record = logging.LogRecord("app", logging.ERROR, __file__, 1, "boom", (), None)
    handler.emit(record)
    assert errors == [record]


def test_internal_records_are_ignored(sender) -> None:
    handler = TelegramLogHandler(token="T", chat_id="-100", sender=sender)
    handler.emit(logging.LogRecord("telelog.adapters.delivery_queue", logging.WARNING, __file__, 1, "x", (), None))
    handler.emit(logging.LogRecord("telelogger", logging.WARNING, __file__, 1, "x", (), None))
    assert len(sender.sent) == 1


def test_queue_name_submits_task() -> None:
    queue = FakeQueue()
    handler = TelegramLogHandler(token="T", chat_id="-100", queue="telegram", delivery_queue=queue)
    handler.emit(logging.LogRecord("app", logging.ERROR, __file__, 1, "boom", (), None))
    assert queue.submitted[0][1] == "telegram"
    assert len(queue.submitted[0][0].message) <= 4096


def test_setters_chain(sender) -> None:
    handler = TelegramLogHandler(token="T", chat_id="-100", sender=sender)
    assert handler.set_token("N").set_chat_id("-300").set_topic_id(5) is handler
    handler.emit(logging.LogRecord("app", logging.ERROR, __file__, 1, "boom", (), None))
    task = sender.sent[0]
    assert (task.url, task.chat_id, task.topic_id) == ("https://api.telegram.org/botN/SendMessage", "-300", 5)


def test_rejects_non_telegram_formatter() -> None:
    handler = TelegramLogHandler(token="T", chat_id="-100", formatter=TelegramFormatter(html=False))
    with pytest.raises(TypeError):
        handler.setFormatter(logging.Formatter("%(message)s"))


def test_route_scope_is_restored() -> None:
    with route_scope(action="a.B@c"):
        assert current_execution().route.action == "a.B@c"
    assert current_execution().route is None


def test_unprintable_context_value_is_still_delivered(logger, sender) -> None:
    class Unprintable:
        def __str__(self) -> str:
            raise RuntimeError("cannot render")

    logger.warning("payment stuck", extra={"context": {"payload": Unprintable()}})
    assert len(sender.sent) == 1
    assert "payment stuck" in sender.sent[0].message
    assert "<unprintable Unprintable>" in sender.sent[0].message


def test_failed_send_does_not_log_the_bot_token(logger, sender, caplog) -> None:
    sender.error = ConnectionError("Max retries exceeded with url: /botT/SendMessage")
    caplog.set_level(logging.DEBUG, logger="telelog")
    logger.error("checkout failed")
    assert len(sender.sent) == 1
    assert "Telegram delivery to -100 failed: ConnectionError" in caplog.text
    assert "/botT/" not in caplog.text
