"""Ambient execution context for the handler.

Web middleware and queue workers record what is running in context
variables; the handler snapshots them into an ``ExecutionContext`` at emit
time. Context variables keep concurrent requests, threads and asyncio tasks
isolated from each other. Console mode is a process-wide flag.

Typical middleware usage::

    with route_scope(action="app.http.controllers.orders.OrderController@store"):
        with request_scope(RequestInfo(url=str(request.url), method=request.method)):
            return call_next(request)
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from telelog.core.models import ComponentCall, ExecutionContext, RequestInfo, RouteInfo

_route: ContextVar[Optional[RouteInfo]] = ContextVar("telelog.route", default=None)
_request: ContextVar[Optional[RequestInfo]] = ContextVar("telelog.request", default=None)
# None means "use the process-wide default".
_queue_worker: ContextVar[Optional[bool]] = ContextVar("telelog.queue_worker", default=None)

_state = {
    "environment": os.getenv("APP_ENV", "production"),
    "console": False,
    "queue_worker": False,
}


def set_environment(name: str) -> None:
    """Set the environment label shown in exception reports."""

    _state["environment"] = name


def set_console(running: bool = True) -> None:
    """Flag the process as a non-interactive console command run."""

    _state["console"] = running


def set_queue_worker(bound: bool = True) -> None:
    """Flag the whole process as a queue worker."""

    _state["queue_worker"] = bound


def bind_route(action: Optional[str] = None, component: Optional[ComponentCall] = None):
    """Mark a route as active; returns the token for ``unbind_route``."""

    return _route.set(RouteInfo(action=action, component=component))


def unbind_route(token) -> None:
    _route.reset(token)


def bind_request(request: RequestInfo):
    return _request.set(request)


def unbind_request(token) -> None:
    _request.reset(token)


@contextmanager
def route_scope(action: Optional[str] = None, component: Optional[ComponentCall] = None) -> Iterator[RouteInfo]:
    token = bind_route(action, component)
    try:
        yield _route.get()
    finally:
        unbind_route(token)


@contextmanager
def request_scope(request: RequestInfo) -> Iterator[RequestInfo]:
    token = bind_request(request)
    try:
        yield request
    finally:
        unbind_request(token)


@contextmanager
def worker_scope() -> Iterator[None]:
    """Mark only the current thread or task as running a queued job."""

    token = _queue_worker.set(True)
    try:
        yield
    finally:
        _queue_worker.reset(token)


def current_execution() -> ExecutionContext:
    """Snapshot the ambient context for the current thread or task."""

    queue_worker = _queue_worker.get()
    if queue_worker is None:
        queue_worker = _state["queue_worker"]
    return ExecutionContext(
        route=_route.get(),
        running_in_console=_state["console"],
        queue_worker=queue_worker,
        request=_request.get(),
        environment=_state["environment"],
    )
