"""Helpers for turning ambient context into ``(class path, method)`` pairs.

Class paths are dotted import paths (``app.jobs.reports.SendReport``). They
are only ever strings here; importing happens in the introspection adapter.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from telelog.core.models import TraceFrame

ACTION_SEPARATOR = "@"
# Callable-object controllers route to the instance itself.
CALLABLE_METHOD = "__call__"


def studly(segment: str) -> str:
    """Return ``segment`` in CapWords form (``user-table`` -> ``UserTable``)."""

    words = re.split(r"[-_\s]+", segment)
    return "".join(word[:1].upper() + word[1:] for word in words if word)


def component_class_path(name: str, namespace: Optional[str] = None) -> str:
    """Map a dotted component name to its class path under ``namespace``."""

    class_path = ".".join(studly(part) for part in name.split(".") if part)
    if namespace:
        return f"{namespace.strip('.')}.{class_path}"
    return class_path


def split_action(action: str) -> tuple[str, str]:
    """Split a ``Class@method`` route action into its two halves."""

    class_path, sep, method = action.partition(ACTION_SEPARATOR)
    if not sep or not method:
        return class_path, CALLABLE_METHOD
    return class_path, method


def path_has_marker(path: str, markers: Iterable[str]) -> bool:
    normalized = "/" + path.replace("\\", "/").strip("/") + "/"
    return any(f"/{marker.replace('.', '/')}/" in normalized for marker in markers)


def class_has_marker(class_path: str, markers: Iterable[str]) -> bool:
    dotted = f".{class_path}."
    return any(f".{marker.strip('.')}." in dotted for marker in markers)


def module_path_from_file(path: str, app_root: str = "app") -> Optional[str]:
    """Rewrite a source file path into the dotted module path rooted at ``app_root``.

    ``/srv/site/app/console/commands/sync.py`` becomes
    ``app.console.commands.sync``.
    """

    parts = [part for part in path.replace("\\", "/").split("/") if part]
    if app_root not in parts:
        return None
    # The last occurrence wins so checkouts living under an "app" folder still work.
    start = len(parts) - 1 - parts[::-1].index(app_root)
    module_parts = parts[start:]
    last = module_parts[-1]
    if last.endswith(".py"):
        module_parts[-1] = last[: -len(".py")]
    if module_parts[-1] == "__init__":
        module_parts.pop()
    return ".".join(module_parts)


def find_handler_frame(
    frames: Sequence[TraceFrame],
    markers: Iterable[str],
    function: str = "handle",
) -> Optional[str]:
    """Return the class path of the innermost ``function`` frame matching a marker."""

    markers = tuple(markers)
    for frame in reversed(frames):
        if frame.function != function or not frame.class_path:
            continue
        if class_has_marker(frame.class_path, markers):
            return frame.class_path
    return None
