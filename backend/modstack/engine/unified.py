"""Unified composition: treat the current instance set as one rigid formation.

Once a stack has produced several copies (or starts from a document group),
the next array modifier repeats the whole set instead of each member.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from modstack.utils.geometry import Bounds, union_bounds

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext
    from modstack.engine.instances import VirtualInstance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectiveBounds:
    bounds: Bounds
    center: tuple[float, float]

    @property
    def width(self) -> float:
        return self.bounds.width

    @property
    def height(self) -> float:
        return self.bounds.height


def should_use_unified_composition(instances: list[VirtualInstance]) -> bool:
    if any(inst.is_group_member for inst in instances):
        return True
    clones = sum(1 for inst in instances if not inst.is_original)
    return clones >= 2


def formation_members(instances: list[VirtualInstance]) -> list[VirtualInstance]:
    """Members that move with the formation; the original placeholder is dropped."""
    members = [inst for inst in instances if not inst.is_original]
    return members or list(instances)


def calculate_collective_bounds(
    instances: list[VirtualInstance],
    ctx: ModifierContext,
) -> CollectiveBounds:
    boxes = [ctx.instance_bounds(inst) for inst in instances]
    bounds = union_bounds(boxes)
    if bounds is None:
        cx, cy = ctx.source_center
        w, h = ctx.source_size
        bounds = Bounds.from_center(cx, cy, w, h)
    # Degenerate formations still need a usable percentage reference
    min_size = ctx.config.min_reference_size
    if bounds.width < min_size or bounds.height < min_size:
        cx, cy = bounds.center
        bounds = Bounds.from_center(cx, cy, max(bounds.width, min_size), max(bounds.height, min_size))
    logger.debug(
        "Collective bounds of %d instances: %.1fx%.1f at (%.1f, %.1f)",
        len(instances),
        bounds.width,
        bounds.height,
        *bounds.center,
    )
    return CollectiveBounds(bounds=bounds, center=bounds.center)
