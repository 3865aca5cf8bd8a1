"""Tests for the processor registry."""

import pytest

from modstack.engine.processors.base import ModifierProcessor
from modstack.engine.registry import ProcessorRegistry, ProcessorSpec, get_registry
from modstack.main import create_engine


class _Passthrough(ModifierProcessor):
    def apply(self, instances, settings, ctx):
        return list(instances)


def test_register_and_get():
    reg = ProcessorRegistry()
    spec = ProcessorSpec(type="mirror", processor=_Passthrough())
    reg.register(spec)
    assert reg.get("mirror") is spec
    assert reg.has("mirror")
    assert reg.count == 1


def test_duplicate_type_rejected():
    reg = ProcessorRegistry()
    reg.register(ProcessorSpec(type="mirror", processor=_Passthrough()))
    with pytest.raises(ValueError, match="Duplicate"):
        reg.register(ProcessorSpec(type="mirror", processor=_Passthrough()))


def test_unknown_type_rejected():
    reg = ProcessorRegistry()
    with pytest.raises(ValueError, match="Unknown modifier type"):
        reg.register(ProcessorSpec(type="twist", processor=_Passthrough()))


def test_missing_processor_raises_key_error():
    reg = ProcessorRegistry()
    with pytest.raises(KeyError):
        reg.get("grid-array")


def test_create_engine_registers_all_kinds():
    composer = create_engine()
    types = [s.type for s in composer.registry.all()]
    assert types == ["boolean", "circular-array", "grid-array", "linear-array", "mirror"]
    assert composer.registry is get_registry()


def test_decorator_sets_processor_type():
    create_engine()
    spec = get_registry().get("linear-array")
    assert spec.processor.type == "linear-array"
    assert spec.description
