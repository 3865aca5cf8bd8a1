"""Host shape record: the drawing surface's view of a single shape."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ShapeRecord(BaseModel):
    """A shape as the host stores it.

    ``x, y`` is the unrotated top-left corner in page space; ``rotation``
    (radians) turns the shape about that corner.
    """

    id: str
    type: str
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    parent_id: str | None = None
    props: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)


class ChildShape(BaseModel):
    """Member of a compound shape, positioned relative to the compound's top-left."""

    id: str
    type: str
    relative_x: float = 0.0
    relative_y: float = 0.0
    relative_rotation: float = 0.0
    props: dict[str, Any] = Field(default_factory=dict)
