"""Processor registry: every modifier kind has one processor registered via decorator.

Usage:
    @modifier_processor(type="linear-array", description="Copies along a line")
    class LinearArrayProcessor(ArrayProcessor):
        def apply(self, instances, settings, ctx):
            ...

The set of kinds is closed: registering a type outside the modifier models
is an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from modstack.models.modifier import SETTINGS_BY_TYPE

if TYPE_CHECKING:
    from modstack.engine.processors.base import ModifierProcessor

logger = logging.getLogger(__name__)


@dataclass
class ProcessorSpec:
    type: str
    processor: ModifierProcessor
    description: str = ""


class ProcessorRegistry:
    """Singleton registry of modifier processors."""

    def __init__(self) -> None:
        self._processors: dict[str, ProcessorSpec] = {}

    def register(self, spec: ProcessorSpec) -> None:
        if spec.type not in SETTINGS_BY_TYPE:
            raise ValueError(f"Unknown modifier type: {spec.type}")
        if spec.type in self._processors:
            raise ValueError(f"Duplicate processor for modifier type: {spec.type}")
        self._processors[spec.type] = spec
        logger.debug("Registered processor %s (%s)", spec.type, type(spec.processor).__name__)

    def get(self, modifier_type: str) -> ProcessorSpec:
        try:
            return self._processors[modifier_type]
        except KeyError:
            raise KeyError(f"No processor registered for modifier type: {modifier_type}") from None

    def has(self, modifier_type: str) -> bool:
        return modifier_type in self._processors

    def all(self) -> list[ProcessorSpec]:
        return sorted(self._processors.values(), key=lambda s: s.type)

    @property
    def count(self) -> int:
        return len(self._processors)


# Module-level singleton
_registry = ProcessorRegistry()


def get_registry() -> ProcessorRegistry:
    return _registry


def modifier_processor(*, type: str, description: str = ""):
    """Class decorator: instantiate the processor and register it."""

    def decorator(cls: Callable[[], ModifierProcessor]):
        cls.type = type
        _registry.register(ProcessorSpec(type=type, processor=cls(), description=description))
        return cls

    return decorator
