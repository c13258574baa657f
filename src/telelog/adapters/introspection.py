"""Module introspection adapters for topic resolution.

``DecoratorAttributeProvider`` imports the target class and reads the topic
levels attached by ``TopicLevel`` decorators. ``ModuleSourceReader`` reads
the declaring module's source text without importing it, which still works
for modules that fail to import or are loaded lazily.
"""

from __future__ import annotations

import importlib
import importlib.util
import inspect
from typing import Any, Optional

from telelog.core.topics import class_path_of, declared_topics


def split_class_path(class_path: str) -> tuple[str, list[str]]:
    """Split ``pkg.module.Outer.Inner`` into an importable module and attribute chain.

    The longest importable prefix is taken as the module.
    """

    parts = class_path.strip(".").split(".")
    for index in range(len(parts) - 1, 0, -1):
        module_path = ".".join(parts[:index])
        try:
            if importlib.util.find_spec(module_path) is not None:
                return module_path, parts[index:]
        except (ImportError, ValueError):
            continue
    raise ImportError(f"No importable module for {class_path!r}")


def locate_class(class_path: str) -> type:
    module_path, attributes = split_class_path(class_path)
    target: Any = importlib.import_module(module_path)
    for name in attributes:
        target = getattr(target, name)
    if not isinstance(target, type):
        raise TypeError(f"{class_path!r} is not a class")
    return target


class DecoratorAttributeProvider:
    """Reads topic declarations from decorated methods."""

    def get_attributes(self, class_path: str, method: str) -> list[Any]:
        cls = locate_class(class_path)
        func = inspect.getattr_static(cls, method)
        # Unwrap staticmethod/classmethod descriptors.
        func = getattr(func, "__func__", func)
        return declared_topics(func)

    def find_class(self, module_path: str, method: str) -> Optional[str]:
        module = importlib.import_module(module_path)
        for _, member in inspect.getmembers(module, inspect.isclass):
            if member.__module__ != module.__name__:
                continue
            if method in vars(member):
                return class_path_of(member)
        return None


class ModuleSourceReader:
    """Returns the source text of the module that declares a class."""

    def read_source(self, class_path: str) -> str:
        module_path, _ = split_class_path(class_path)
        spec = importlib.util.find_spec(module_path)
        if spec is None or not spec.origin or not spec.has_location:
            raise FileNotFoundError(f"No source file for {module_path!r}")
        with open(spec.origin, "r", encoding="utf-8") as handle:
            return handle.read()
