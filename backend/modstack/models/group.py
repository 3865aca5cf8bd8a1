"""Group context: supplied by the host when the source shape sits in a document group."""

from __future__ import annotations

from pydantic import BaseModel, Field

from modstack.models.shape import ShapeRecord
from modstack.utils.geometry import Bounds


class GroupTransform(BaseModel):
    x: float = 0.0
    y: float = 0.0
    rotation: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0


class GroupContext(BaseModel):
    group_center: tuple[float, float]
    group_top_left: tuple[float, float]
    group_bounds: Bounds
    group_shapes: list[ShapeRecord] = Field(default_factory=list)
    group_transform: GroupTransform | None = None

    @classmethod
    def from_bounds(
        cls,
        bounds: Bounds,
        shapes: list[ShapeRecord] | None = None,
        transform: GroupTransform | None = None,
    ) -> GroupContext:
        return cls(
            group_center=bounds.center,
            group_top_left=(bounds.min_x, bounds.min_y),
            group_bounds=bounds,
            group_shapes=shapes or [],
            group_transform=transform,
        )
