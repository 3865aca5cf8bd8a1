"""Mirror: keep every instance and append its reflection across an axis line."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import TYPE_CHECKING

from modstack.engine.instances import MirrorMeta, VirtualInstance
from modstack.engine.processors.base import ModifierProcessor
from modstack.engine.registry import modifier_processor
from modstack.engine.unified import (
    calculate_collective_bounds,
    formation_members,
    should_use_unified_composition,
)
from modstack.models.modifier import MirrorSettings

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext

logger = logging.getLogger(__name__)


@modifier_processor(type="mirror", description="Reflected copies across a vertical or horizontal line")
class MirrorProcessor(ModifierProcessor):
    """axis="x" reflects x across a vertical line, axis="y" reflects y across a horizontal one.

    The line sits halfway between the reference center and the reference
    center plus ``offset``, so a copy of a centered source lands at
    ``reference + offset``. A reflected copy gets its rotation negated and
    the matching flip toggled, so mirroring twice about the same line gives
    back the original poses.
    """

    def apply(
        self,
        instances: list[VirtualInstance],
        settings: MirrorSettings,
        ctx: ModifierContext,
    ) -> list[VirtualInstance]:
        if not instances:
            return []

        unified = should_use_unified_composition(instances)
        if unified:
            kept = formation_members(instances)
            reference = calculate_collective_bounds(kept, ctx).center
        else:
            kept = list(instances)
            reference = ctx.reference_center

        axis_index = 0 if settings.axis == "x" else 1
        line = reference[axis_index] + settings.offset / 2
        group_id = ctx.group_id(self.type)

        out = list(kept)
        merged = 0
        for source_index, inst in enumerate(kept):
            center = list(inst.center)
            center[axis_index] = 2 * line - center[axis_index]
            if settings.merge_threshold > 0:
                if math.dist(center, inst.center) < settings.merge_threshold:
                    merged += 1
                    continue

            fields = dict(
                index=len(out),
                source_index=source_index,
                array_index=1,
                generation_level=ctx.generation_level,
                group_id=group_id,
                from_unified_group=unified,
                flip_x=inst.flip_x != (settings.axis == "x"),
                flip_y=inst.flip_y != (settings.axis == "y"),
            )
            if inst.is_boolean_result:
                meta = replace(inst.metadata, **fields)
            else:
                meta = MirrorMeta(**fields, mirror_axis=settings.axis, mirror_offset=settings.offset)
            out.append(
                inst.moved(
                    (center[0], center[1]),
                    -inst.rotation,
                    inst.scale_x,
                    inst.scale_y,
                    metadata=meta,
                )
            )

        logger.debug(
            "mirror %s at %.1f: %d kept, %d reflected, %d merged",
            settings.axis,
            line,
            len(kept),
            len(out) - len(kept),
            merged,
        )
        return out
