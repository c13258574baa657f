"""Telegram message formatting.

Turns a log event into the HTML flavour accepted by the Bot API
(``parse_mode=html``). Exceptions get a full incident report built from the
ambient request; everything else is rendered through a small placeholder
template. Output is always clipped to Telegram's message size.
"""

from __future__ import annotations

import html
import json
import logging
import re
import traceback
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
from urllib.parse import unquote

from telelog.adapters.execution_context import current_execution
from telelog.adapters.record_mapper import build_event, extract_frames
from telelog.core.config import FormatterConfig
from telelog.core.models import ExecutionContext, LogEvent, RequestInfo

STACK_MARKER = "Traceback (most recent call last):"
TRACE_CHARS = 1000
REDACTED_INPUTS = ("password", "password_confirmation")
# Routing overrides that must not leak into the rendered context.
HIDDEN_CONTEXT_KEYS = ("token", "exception")

SEVERITY_NAMES = {
    logging.CRITICAL: "CRITICAL",
    logging.ERROR: "ERROR",
    logging.WARNING: "WARNING",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBUG",
}

_PLACEHOLDER = re.compile(r"%(level_name|channel|date|message|context|extra)%")
_TAG = re.compile(r"<[^>]*>")


def truncate(text: str, limit: int) -> str:
    """Clip ``text`` to ``limit`` code points."""

    if len(text) <= limit:
        return text
    return text[:limit]


def strip_tags(text: str) -> str:
    return _TAG.sub("", text)


def stringify(values: Mapping[str, Any]) -> str:
    """Render a context/extra mapping as compact single-line JSON.

    Values that cannot be serialised or printed are replaced one by one, so a
    single bad value never costs the rest of the mapping.
    """

    try:
        return json.dumps(dict(values), ensure_ascii=False, default=str)
    except Exception:
        safe = {_safe_str(key): _safe_str(value) for key, value in values.items()}
        return json.dumps(safe, ensure_ascii=False)


def _safe_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def parse_tags(tags: Union[str, Iterable[str], None]) -> tuple[str, ...]:
    if tags is None:
        return ()
    if isinstance(tags, str):
        tags = tags.split(",")
    return tuple(tag.strip() for tag in tags)


class TelegramFormatter(logging.Formatter):
    """Formats log records for a Telegram chat."""

    def __init__(
        self,
        html: bool = True,
        template: Optional[str] = None,
        date_format: Optional[str] = None,
        separator: str = "-",
        tags: Union[str, Iterable[str], None] = "",
        message_size: Optional[int] = None,
        config: Optional[FormatterConfig] = None,
    ) -> None:
        super().__init__()
        if config is None:
            defaults = FormatterConfig()
            config = FormatterConfig(
                html=html,
                template=template or defaults.template,
                date_format=date_format or defaults.date_format,
                separator=separator,
                tags=parse_tags(tags),
                message_size=message_size or defaults.message_size,
            )
        self.config = config

    # logging.Formatter API

    def format(self, record: logging.LogRecord) -> str:
        return self.render(build_event(record), current_execution())

    def format_batch(self, records: Sequence[logging.LogRecord]) -> str:
        return self.render_batch([build_event(record) for record in records], current_execution())

    # Event API

    def render(self, event: LogEvent, execution: Optional[ExecutionContext] = None) -> str:
        """Render one event, clipped to the configured message size."""

        if event.exception is not None:
            message = self._render_exception(event, execution)
        else:
            message = self._render_log(event)
        return truncate(message, self.config.message_size)

    def render_batch(self, events: Iterable[LogEvent], execution: Optional[ExecutionContext] = None) -> str:
        """Render several events into one message, separated by a rule line."""

        divider = self.config.separator * 15 + "\n"
        return divider.join(self.render(event, execution) for event in events)

    def _render_log(self, event: LogEvent) -> str:
        try:
            text = self._compose_log(event)
        except Exception:
            # Fall back to the bare message rather than losing the record.
            text = f"<b>{event.level_name}</b> {event.channel}\n\n{event.message}"
        if not self.config.html:
            text = strip_tags(text)
        return text

    def _compose_log(self, event: LogEvent) -> str:
        message = event.message
        if STACK_MARKER in message:
            message = _highlight_trace(message)

        context = {k: v for k, v in event.context.items() if k not in HIDDEN_CONTEXT_KEYS}
        values = {
            "level_name": event.level_name,
            "channel": event.channel,
            "date": event.datetime.strftime(self.config.date_format),
            "message": message,
            # Empty maps drop the placeholder together with its newline.
            "context": f"<b>Context:</b> {stringify(context)}\n" if context else "",
            "extra": f"<b>Extra:</b> {stringify(event.extra)}\n" if event.extra else "",
        }
        return _PLACEHOLDER.sub(lambda match: values[match.group(1)], self.config.template)

    def _render_exception(self, event: LogEvent, execution: Optional[ExecutionContext]) -> str:
        parts: list[str] = []
        try:
            self._compose_exception(event, execution, parts)
        except Exception:
            # A broken report must not break logging; keep whatever was built.
            pass
        message = "".join(parts)
        if not self.config.html:
            message = strip_tags(message)
        return message

    def _compose_exception(
        self,
        event: LogEvent,
        execution: Optional[ExecutionContext],
        parts: list[str],
    ) -> None:
        exception = event.exception
        execution = execution or ExecutionContext()
        request = execution.request or RequestInfo()
        frames = event.frames or extract_frames(exception)
        origin = frames[-1] if frames else None

        severity = SEVERITY_NAMES.get(getattr(exception, "severity", None), "")
        exception_type = type(exception)

        parts.append(f"{severity} <b>Time: </b> {event.datetime.strftime('%Y-%m-%d %H:%M:%S')}\n")
        parts.append(f"<b>On: </b> {html.escape(execution.environment)}\n")
        parts.append(f"<b>Message:</b> {html.escape(str(exception))}\n")
        parts.append(f"<b>Exception:</b> {exception_type.__module__}.{exception_type.__qualname__}\n")
        parts.append(f"<b>Code:</b> {html.escape(str(_exception_code(exception)))}\n")
        parts.append(f"<b>Tags:</b> {self._tags()}\n")
        parts.append(f"<b>File:</b> {origin.filename if origin else ''}\n")
        parts.append(f"<b>Line:</b> {origin.lineno if origin else ''}\n")
        parts.append(f"<b>Url:</b> {html.escape(unquote(request.url))}\n")
        parts.append(f"<b>Ip:</b> {request.client_ip or ''}")

        if "Telegram" in str(exception):
            chat_id = _chat_id_from_trace(exception)
            if chat_id is not None:
                parts.append(f"\n<b>Chat Id: </b> {chat_id}")

        if request.user is not None:
            parts.append(
                f"\n<b>User:</b> {request.user.id} / <b>Name:</b> {html.escape(str(request.user.name or ''))}"
            )

        referer = request.header("referer")
        if referer:
            parts.append(f"\n<b>Referer:</b> {html.escape(referer)}")

        if request.method:
            method = f"\n<b>Request Method:</b> {request.method}"
            if request.is_ajax:
                method += " <b>(Ajax)</b> "
            parts.append(method)

        parts.append(f"\n<b>Request Inputs:</b> <pre>{html.escape(_dump_inputs(request.inputs), quote=False)}</pre>")

        trace = "".join(traceback.format_exception(exception_type, exception, exception.__traceback__))
        parts.append(
            f"\n\n<b>Trace: </b> \n<b> => </b> => {html.escape(trace[:TRACE_CHARS], quote=False)} ..."
        )

    def _tags(self) -> str:
        return "".join(f"#{tag} " for tag in self.config.tags if tag)


def _highlight_trace(message: str) -> str:
    escaped = message.replace("<", "&lt;").replace(">", "&gt;")
    head, _, trace = escaped.partition(STACK_MARKER)
    return f"{head.rstrip()}\n<b>{STACK_MARKER}</b>\n<code>{trace.strip(chr(10))}</code>"


def _exception_code(exception: BaseException) -> Any:
    for name in ("status_code", "code", "errno"):
        value = getattr(exception, name, None)
        if value is not None:
            return value
    return ""


def _dump_inputs(inputs: Mapping[str, Any]) -> str:
    visible = {k: v for k, v in inputs.items() if k not in REDACTED_INPUTS}
    dumped = json.dumps(visible, ensure_ascii=False, default=str)
    return dumped.replace("\n", "").replace(" ", "")


def _chat_id_from_trace(exception: BaseException) -> Any:
    """Find the chat id a failed delivery was addressed to, if the trace kept it."""

    for frame, _ in traceback.walk_tb(exception.__traceback__):
        local_vars = frame.f_locals
        if local_vars.get("chat_id") is not None:
            return local_vars["chat_id"]
        for value in local_vars.values():
            if isinstance(value, Mapping) and value.get("chat_id") is not None:
                return value["chat_id"]
            chat_id = getattr(value, "chat_id", None)
            if isinstance(chat_id, (str, int)) and not isinstance(chat_id, bool):
                return chat_id
    return None
