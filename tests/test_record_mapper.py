from __future__ import annotations

import logging
import sys

from telelog.adapters.record_mapper import build_event, extract_frames


class Worker:
    def run(self) -> None:
        raise ValueError("broken")


def _record(exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("billing", logging.ERROR, __file__, 10, "charge %s failed", ("#7",), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_build_event_basic_fields() -> None:
    event = build_event(_record())
    assert event.level_name == "ERROR"
    assert event.level_no == logging.ERROR
    assert event.channel == "billing"
    assert event.message == "charge #7 failed"
    assert event.datetime.tzinfo is not None
    assert event.context == {}
    assert event.extra == {}
    assert event.exception is None


def test_context_and_routing_keys() -> None:
    event = build_event(_record(context={"order": 7, "topic_id": 1}, topic_id=2, chat_id="-1", request_id="r-9"))
    # The explicit context mapping wins over top-level routing keys.
    assert event.context == {"order": 7, "topic_id": 1, "chat_id": "-1"}
    assert event.extra == {"request_id": "r-9"}


def test_exception_taken_from_exc_info() -> None:
    try:
        Worker().run()
    except ValueError:
        exc_info = sys.exc_info()
    event = build_event(_record(exc_info=exc_info))
    assert event.exception is exc_info[1]
    assert event.frames[-1].function == "run"
    assert event.frames[-1].class_path == f"{__name__}.Worker"
    assert event.frames[-1].filename == __file__


def test_explicit_context_exception_wins() -> None:
    explicit = RuntimeError("explicit")
    try:
        Worker().run()
    except ValueError:
        exc_info = sys.exc_info()
    event = build_event(_record(exc_info=exc_info, context={"exception": explicit}))
    assert event.exception is explicit
    assert event.frames == ()


def test_non_exception_context_value_is_dropped() -> None:
    event = build_event(_record(context={"exception": "not an exception"}))
    assert "exception" not in event.context


def test_extract_frames_without_traceback() -> None:
    assert extract_frames(None) == ()
    assert extract_frames(ValueError("never raised")) == ()
