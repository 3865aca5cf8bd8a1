"""modstack procedural modifier engine."""

from modstack.engine.registry import modifier_processor, get_registry
from modstack.engine.instances import VirtualInstance, VirtualModifierState
from modstack.engine.context import ModifierContext
from modstack.engine.cache import EngineCaches
from modstack.engine.composer import TransformComposer

__all__ = [
    "modifier_processor",
    "get_registry",
    "VirtualInstance",
    "VirtualModifierState",
    "ModifierContext",
    "EngineCaches",
    "TransformComposer",
]
