"""ModifierContext: what a processor knows besides the instance list.

Carries the source shape, the optional group context, the current generation
level and engine config, and answers the size/center questions every
processor asks about a shape or an instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from modstack.engine.config import EngineConfig
from modstack.utils.geometry import Bounds, oriented_extent, rotate_vector

if TYPE_CHECKING:
    from modstack.engine.cache import EngineCaches
    from modstack.engine.instances import VirtualInstance
    from modstack.models.group import GroupContext
    from modstack.models.modifier import Modifier
    from modstack.models.shape import ShapeRecord

logger = logging.getLogger(__name__)

BoundsProvider = Callable[["ShapeRecord"], "Bounds | None"]


def shape_size(shape: ShapeRecord, config: EngineConfig | None = None) -> tuple[float, float]:
    """Unscaled (w, h) of a shape, clamped to the minimum reference size."""
    cfg = config or EngineConfig()
    props = shape.props
    if "w" in props or "h" in props:
        w = float(props.get("w", cfg.default_shape_size))
        h = float(props.get("h", cfg.default_shape_size))
    elif "r" in props:
        w = h = 2 * float(props["r"])
    else:
        w = h = cfg.default_shape_size
    return (max(w, cfg.min_reference_size), max(h, cfg.min_reference_size))


def shape_center(
    shape: ShapeRecord,
    config: EngineConfig | None = None,
    bounds_provider: BoundsProvider | None = None,
) -> tuple[float, float]:
    """Page-space geometric center. Rotation turns about the top-left corner."""
    if bounds_provider is not None:
        bounds = bounds_provider(shape)
        if bounds is not None:
            return bounds.center
    w, h = shape_size(shape, config)
    dx, dy = rotate_vector(w / 2, h / 2, shape.rotation)
    return (shape.x + dx, shape.y + dy)


@dataclass
class ModifierContext:
    original_shape: ShapeRecord
    config: EngineConfig = field(default_factory=EngineConfig)
    group_context: GroupContext | None = None
    generation_level: int = 0
    source_shapes: dict[str, ShapeRecord] = field(default_factory=dict)
    modifier: Modifier | None = None
    caches: EngineCaches | None = None
    bounds_provider: BoundsProvider | None = None

    # -- source shape -----------------------------------------------------

    @property
    def source_size(self) -> tuple[float, float]:
        return shape_size(self.original_shape, self.config)

    @property
    def source_center(self) -> tuple[float, float]:
        return shape_center(self.original_shape, self.config, self.bounds_provider)

    @property
    def source_rotation(self) -> float:
        """Rotation that percentage offsets follow."""
        gc = self.group_context
        if gc is not None and gc.group_transform is not None:
            return gc.group_transform.rotation
        if gc is not None:
            return 0.0
        return self.original_shape.rotation

    # -- reference frame (individual mode) --------------------------------

    @property
    def reference_size(self) -> tuple[float, float]:
        if self.group_context is not None:
            b = self.group_context.group_bounds
            return (
                max(b.width, self.config.min_reference_size),
                max(b.height, self.config.min_reference_size),
            )
        return self.source_size

    @property
    def reference_center(self) -> tuple[float, float]:
        if self.group_context is not None:
            return self.group_context.group_center
        return self.source_center

    # -- per-instance lookups ---------------------------------------------

    def shape_for(self, inst: VirtualInstance) -> ShapeRecord:
        return self.source_shapes.get(inst.source_shape_id, self.original_shape)

    def size_for(self, inst: VirtualInstance) -> tuple[float, float]:
        return shape_size(self.shape_for(inst), self.config)

    def instance_bounds(self, inst: VirtualInstance) -> Bounds:
        """Axis-aligned box around the instance's oriented, scaled footprint."""
        w, h = self.size_for(inst)
        hx, hy = oriented_extent(w / 2, h / 2, inst.rotation, inst.scale_x, inst.scale_y)
        cx, cy = inst.center
        return Bounds(cx - hx, cy - hy, cx + hx, cy + hy)

    def group_id(self, modifier_type: str) -> str:
        return f"{modifier_type}-gen{self.generation_level}-{self.original_shape.id}"
