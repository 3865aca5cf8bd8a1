"""Shared test fixtures."""

from __future__ import annotations

import itertools
from typing import Any

import pytest

from modstack.engine.cache import EngineCaches
from modstack.engine.composer import TransformComposer
from modstack.main import create_engine
from modstack.models.modifier import Modifier
from modstack.models.shape import ShapeRecord

_modifier_ids = itertools.count(1)


def make_shape(
    id: str = "shape:src",
    type: str = "geo",
    x: float = 0.0,
    y: float = 0.0,
    w: float = 100.0,
    h: float = 100.0,
    rotation: float = 0.0,
    **props: Any,
) -> ShapeRecord:
    return ShapeRecord(id=id, type=type, x=x, y=y, rotation=rotation, props={"w": w, "h": h, **props})


def make_modifier(type: str, order: int = 0, enabled: bool = True, id: str | None = None, **settings: Any) -> Modifier:
    return Modifier(
        id=id or f"mod-{next(_modifier_ids)}",
        type=type,
        order=order,
        enabled=enabled,
        settings=settings,
    )


def sequential_ids(prefix: str = "shape:new"):
    counter = itertools.count()
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture
def caches() -> EngineCaches:
    return EngineCaches()


@pytest.fixture
def composer(caches: EngineCaches) -> TransformComposer:
    return create_engine(caches=caches)


@pytest.fixture
def square() -> ShapeRecord:
    """100x100 rectangle with its top-left at the origin (center 50, 50)."""
    return make_shape()
