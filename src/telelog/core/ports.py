"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the host framework and delivery
adapters so that the core can be reused with different web frameworks,
worker pools or HTTP transports.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from telelog.core.models import DeliveryTask, ExecutionContext, LogEvent


class ContextProviderPort(Protocol):
    """Returns the ambient execution context at emit time."""

    def __call__(self) -> ExecutionContext:
        ...


class AttributeProviderPort(Protocol):
    """Method-level metadata introspection."""

    def get_attributes(self, class_path: str, method: str) -> list[Any]:
        ...

    def find_class(self, module_path: str, method: str) -> Optional[str]:
        """Return the class path of the class in ``module_path`` defining ``method``."""
        ...


class SourceReaderPort(Protocol):
    """Source text of the unit declaring ``class_path``."""

    def read_source(self, class_path: str) -> str:
        ...


class FormatterPort(Protocol):
    def render(self, event: LogEvent, execution: Optional[ExecutionContext] = None) -> str:
        ...


class SenderPort(Protocol):
    """Performs exactly one delivery attempt."""

    def send(self, task: DeliveryTask) -> None:
        ...


class DeliveryQueuePort(Protocol):
    """Asynchronous submission facility, safe for concurrent use."""

    def submit(self, task: DeliveryTask, queue_name: str) -> None:
        ...
