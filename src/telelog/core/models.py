"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to ``logging.LogRecord`` or any web framework's request types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Union

TopicId = Union[str, int]
ChatId = Union[str, int]


@dataclass(frozen=True)
class TraceFrame:
    """One frame of an exception traceback, reduced to what routing needs."""

    function: str
    class_path: Optional[str]
    filename: str
    lineno: int


@dataclass(frozen=True)
class LogEvent:
    """A single emitted log record, consumed once by the processor."""

    level_name: str
    level_no: int
    channel: str
    message: str
    datetime: datetime
    context: Mapping[str, Any] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)
    # Innermost frame last, mirroring traceback order.
    frames: tuple[TraceFrame, ...] = ()

    @property
    def exception(self) -> Optional[BaseException]:
        return self.context.get("exception")


@dataclass(frozen=True)
class ComponentCall:
    """Read-only snapshot of a reactive UI component invocation."""

    name: str
    method: Optional[str]


@dataclass(frozen=True)
class RouteInfo:
    """The active HTTP route, as reported by the host web framework."""

    action: Optional[str] = None
    component: Optional[ComponentCall] = None


@dataclass(frozen=True)
class UserInfo:
    id: Any
    name: Optional[str] = None


@dataclass(frozen=True)
class RequestInfo:
    """The subset of the current HTTP request used in exception reports."""

    url: str = ""
    client_ip: Optional[str] = None
    method: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    is_ajax: bool = False
    user: Optional[UserInfo] = None
    inputs: Mapping[str, Any] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class ExecutionContext:
    """Ambient execution state that produced a log event."""

    route: Optional[RouteInfo] = None
    running_in_console: bool = False
    queue_worker: bool = False
    request: Optional[RequestInfo] = None
    environment: str = "production"


@dataclass
class DeliveryTask:
    """One message bound for the notification endpoint.

    Owned exclusively by the delivery subsystem; the retry worker updates the
    counters in place.
    """

    url: str
    message: str
    chat_id: ChatId
    topic_id: Optional[TopicId] = None
    proxy: Optional[str] = None
    timeout: float = 5.0
    verify_tls: bool = True
    max_attempts: int = 2
    retry_delay: float = 120.0
    attempts_remaining: int = field(default=-1)
    failed: bool = False

    def __post_init__(self) -> None:
        if self.attempts_remaining < 0:
            self.attempts_remaining = self.max_attempts

    def form_params(self) -> dict[str, Any]:
        """Return the Bot API ``sendMessage`` form fields for this task."""

        params: dict[str, Any] = {
            "text": self.message,
            "chat_id": self.chat_id,
            "parse_mode": "html",
            "disable_web_page_preview": "true",
        }
        if self.topic_id is not None:
            params["message_thread_id"] = self.topic_id
        return params
