"""Topic resolution (core domain).

Maps the execution context of a log event to a forum topic id by looking up
the topic level declared on the method that was running: the routed
controller action, the reactive component call, the console command or the
queued job.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Mapping, Optional

from telelog.core.class_paths import (
    component_class_path,
    find_handler_frame,
    module_path_from_file,
    path_has_marker,
    split_action,
)
from telelog.core.config import ResolverConfig
from telelog.core.models import ExecutionContext, LogEvent, TopicId
from telelog.core.ports import AttributeProviderPort, SourceReaderPort
from telelog.core.topics import class_path_of

HANDLE_METHOD = "handle"

# A run of decorator lines directly above a (possibly async) def.
_DECORATED_DEF = re.compile(
    r"((?:^[ \t]*@[^\n]*\n)+)[ \t]*(?:async[ \t]+)?def[ \t]+(\w+)",
    re.MULTILINE,
)


class _NotFound:
    def __repr__(self) -> str:
        return "NOT_FOUND"


# Introspection found no declaration at all, as opposed to a declaration
# whose level has no entry in the topics table.
NOT_FOUND: Any = _NotFound()


def scan_declared_attributes(source: str, class_name: Optional[str] = None) -> dict[str, list[str]]:
    """Build ``{method: [decorator names]}`` from raw source text.

    Call arguments are dropped, so ``@PaymentsTopic(level=2)`` yields
    ``PaymentsTopic``. When ``class_name`` is given and found, only that
    class body is scanned.
    """

    if class_name:
        source = _class_body(source, class_name)
    source = _join_decorator_calls(source)

    found: dict[str, list[str]] = {}
    for match in _DECORATED_DEF.finditer(source):
        decorator_block, method_name = match.group(1), match.group(2)
        for line in decorator_block.splitlines():
            name = line.strip().lstrip("@")
            name = re.sub(r"\(.*", "", name).strip()
            if name:
                found.setdefault(method_name, []).append(name)
    return found


def _join_decorator_calls(source: str) -> str:
    """Fold decorator calls that span several lines onto their first line."""

    lines: list[str] = []
    depth = 0
    for line in source.splitlines():
        if depth > 0:
            lines[-1] += " " + line.strip()
        else:
            lines.append(line)
            if not line.lstrip().startswith("@"):
                continue
        depth = max(lines[-1].count("(") - lines[-1].count(")"), 0)
    return "\n".join(lines) + "\n"


def _class_body(source: str, class_name: str) -> str:
    start = re.search(rf"^class[ \t]+{re.escape(class_name)}\b.*$", source, re.MULTILINE)
    if start is None:
        return source
    end = re.search(r"^(?=[^\s#])", source[start.end():], re.MULTILINE)
    if end is None:
        return source[start.start():]
    return source[start.start(): start.end() + end.start()]


class TopicResolver:
    """Resolve the topic id for a log event from its execution context."""

    def __init__(
        self,
        topics_level: Mapping[Any, TopicId],
        attributes: AttributeProviderPort,
        sources: SourceReaderPort,
        config: Optional[ResolverConfig] = None,
    ) -> None:
        self._topics_level = MappingProxyType(dict(topics_level))
        self._attributes = attributes
        self._sources = sources
        self._config = config or ResolverConfig()

    @property
    def topics_level(self) -> Mapping[Any, TopicId]:
        return self._topics_level

    def resolve(self, event: LogEvent, execution: ExecutionContext) -> Optional[TopicId]:
        """Return the declared topic for the running unit, or None."""

        # An active route always wins, even inside console or worker processes.
        if execution.route is not None:
            target = self._request_target(execution)
        elif event.exception is not None and execution.running_in_console:
            target = self._command_target(event)
        elif event.exception is not None and execution.queue_worker:
            target = self._job_target(event)
        else:
            target = None

        if target is None:
            return None
        class_path, method = target
        if not class_path or not method:
            return None
        return self.lookup(class_path, method)

    def lookup(self, class_path: str, method: str) -> Optional[TopicId]:
        """Find the topic declared on ``class_path.method``."""

        topic_id = self._by_introspection(class_path, method)
        if topic_id is NOT_FOUND:
            return self._by_source_scan(class_path, method)
        return topic_id

    def _request_target(self, execution: ExecutionContext) -> Optional[tuple[str, Optional[str]]]:
        route = execution.route
        if route.component is not None:
            component = route.component
            return (
                component_class_path(component.name, self._config.component_namespace),
                component.method,
            )
        if not route.action:
            return None
        return split_action(route.action)

    def _command_target(self, event: LogEvent) -> Optional[tuple[str, str]]:
        if event.frames:
            origin = event.frames[-1].filename
            if path_has_marker(origin, self._config.command_markers):
                module_path = module_path_from_file(origin, self._config.app_root)
                class_path = None
                if module_path:
                    class_path = self._safe_find_class(module_path)
                if class_path:
                    return class_path, HANDLE_METHOD

        class_path = find_handler_frame(event.frames, self._config.command_markers, HANDLE_METHOD)
        if class_path is None:
            return None
        return class_path, HANDLE_METHOD

    def _job_target(self, event: LogEvent) -> Optional[tuple[str, str]]:
        class_path = find_handler_frame(event.frames, self._config.job_markers, HANDLE_METHOD)
        if class_path is None:
            return None
        return class_path, HANDLE_METHOD

    def _safe_find_class(self, module_path: str) -> Optional[str]:
        try:
            return self._attributes.find_class(module_path, HANDLE_METHOD)
        except Exception:
            return None

    def _by_introspection(self, class_path: str, method: str) -> Any:
        try:
            attributes = self._attributes.get_attributes(class_path, method)
            if attributes:
                return attributes[0].get_topic_id(self._topics_level)
        except Exception:
            # Missing classes or unreadable metadata fall through to the scan.
            pass
        return NOT_FOUND

    def _by_source_scan(self, class_path: str, method: str) -> Optional[TopicId]:
        try:
            source = self._sources.read_source(class_path)
            class_name = class_path.rsplit(".", 1)[-1]
            declared = scan_declared_attributes(source, class_name)
            names = declared.get(method)
            if not names:
                return None
            first = names[0]
            for key, topic_id in self._topics_level.items():
                key_text = class_path_of(key) if isinstance(key, type) else str(key)
                if first in key_text:
                    return topic_id
        except Exception:
            return None
        return None
