"""Declarative topic metadata for handler methods.

A topic level is a small class whose instances decorate methods::

    class PaymentsTopic(TopicLevel):
        pass

    class CheckoutController:
        @PaymentsTopic()
        def store(self, request):
            ...

The handler is configured with a topics table keyed by the level class (or
its dotted path), so ``{PaymentsTopic: 42}`` routes every log record raised
while ``store`` is running to forum topic 42.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, TypeVar

from telelog.core.models import TopicId

ATTRIBUTE_NAME = "__log_topics__"

F = TypeVar("F", bound=Callable[..., Any])


def class_path_of(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


class TopicLevel:
    """Base class for topic declarations."""

    def __call__(self, func: F) -> F:
        declared: list[TopicLevel] = list(getattr(func, ATTRIBUTE_NAME, []))
        # Decorators apply bottom-up; keep source order so [0] is the topmost.
        declared.insert(0, self)
        setattr(func, ATTRIBUTE_NAME, declared)
        return func

    def get_topic_id(self, topics_level: Mapping[Any, TopicId]) -> Optional[TopicId]:
        cls = type(self)
        if cls in topics_level:
            return topics_level[cls]
        return topics_level.get(class_path_of(cls))


def declared_topics(func: Callable[..., Any]) -> list[TopicLevel]:
    """Return the topic levels declared on ``func``, topmost first."""

    return list(getattr(func, ATTRIBUTE_NAME, []))
