"""``logging.LogRecord`` to core ``LogEvent`` mapping adapter.

This keeps ``logging``-specific details out of the core pipeline. Callers
pass routing overrides either inside a ``context`` mapping or as top-level
``extra`` keys::

    logger.error("sync failed", extra={"context": {"order": 7}, "topic_id": 12})
"""

from __future__ import annotations

import logging
import traceback
from datetime import datetime
from typing import Any, Optional

from telelog.core.models import LogEvent, TraceFrame

ROUTING_KEYS = ("token", "chat_id", "topic_id")
CONTEXT_ATTRIBUTE = "context"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_STANDARD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _class_path_of_frame(frame) -> Optional[str]:
    local_vars = frame.f_locals
    if "self" in local_vars:
        owner = type(local_vars["self"])
    elif "cls" in local_vars and isinstance(local_vars["cls"], type):
        owner = local_vars["cls"]
    else:
        return None
    return f"{owner.__module__}.{owner.__qualname__}"


def extract_frames(exception: Optional[BaseException]) -> tuple[TraceFrame, ...]:
    """Return the traceback of ``exception`` as ``TraceFrame``s, innermost last."""

    if exception is None or exception.__traceback__ is None:
        return ()
    frames = []
    for frame, lineno in traceback.walk_tb(exception.__traceback__):
        frames.append(
            TraceFrame(
                function=frame.f_code.co_name,
                class_path=_class_path_of_frame(frame),
                filename=frame.f_code.co_filename,
                lineno=lineno,
            )
        )
    return tuple(frames)


def _exception_from_record(record: logging.LogRecord) -> Optional[BaseException]:
    exc_info = record.exc_info
    if not exc_info or exc_info is True:
        return None
    return exc_info[1]


def build_event(record: logging.LogRecord) -> LogEvent:
    """Build a core LogEvent from a ``logging.LogRecord``."""

    context: dict[str, Any] = {}
    raw_context = getattr(record, CONTEXT_ATTRIBUTE, None)
    if isinstance(raw_context, dict):
        context.update(raw_context)

    extra: dict[str, Any] = {}
    for key, value in vars(record).items():
        if key in _STANDARD_ATTRIBUTES or key == CONTEXT_ATTRIBUTE:
            continue
        if key in ROUTING_KEYS:
            context.setdefault(key, value)
        else:
            extra[key] = value

    # An exception passed explicitly in context wins over exc_info.
    exception = context.get("exception")
    if not isinstance(exception, BaseException):
        context.pop("exception", None)
        exception = _exception_from_record(record)
        if exception is not None:
            context["exception"] = exception

    return LogEvent(
        level_name=record.levelname,
        level_no=record.levelno,
        channel=record.name,
        message=record.getMessage(),
        datetime=datetime.fromtimestamp(record.created).astimezone(),
        context=context,
        extra=extra,
        frames=extract_frames(exception),
    )
