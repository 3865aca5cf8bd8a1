"""Shared processor machinery.

Array processors describe their output as a list of ``FormationStep``s
(offset, rotation, scale relative to a pivot) and ``ArrayProcessor`` places
every input instance at every step, either one instance at a time
(individual mode) or with the whole set as one rigid formation (unified mode).
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from modstack.engine.instances import InstanceMeta, VirtualInstance
from modstack.engine.unified import (
    CollectiveBounds,
    calculate_collective_bounds,
    formation_members,
    should_use_unified_composition,
)
from modstack.utils.geometry import rotate_vector

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext

logger = logging.getLogger(__name__)


class ModifierProcessor(abc.ABC):
    type: str = ""

    @abc.abstractmethod
    def apply(
        self,
        instances: list[VirtualInstance],
        settings: Any,
        ctx: ModifierContext,
    ) -> list[VirtualInstance]:
        """Return the instance list after this modifier. Never mutates the input."""


@dataclass(frozen=True)
class Frame:
    """Where a formation is measured from.

    ``pivot`` is None in individual mode without a group: each instance then
    pivots on its own center.
    """

    size: tuple[float, float]
    pivot: tuple[float, float] | None
    unified: bool
    collective: CollectiveBounds | None = None


@dataclass(frozen=True)
class FormationStep:
    offset: tuple[float, float]
    rotation: float
    scale: float
    meta: InstanceMeta


class ArrayProcessor(ModifierProcessor):
    """Base for processors that repeat instances at a list of formation steps."""

    @abc.abstractmethod
    def steps(self, settings: Any, ctx: ModifierContext, frame: Frame) -> list[FormationStep]:
        """Formation steps for this modifier's settings."""

    def apply(
        self,
        instances: list[VirtualInstance],
        settings: Any,
        ctx: ModifierContext,
    ) -> list[VirtualInstance]:
        if not instances:
            return []
        if should_use_unified_composition(instances):
            return self._apply_unified(instances, settings, ctx)
        return self._apply_individual(instances, settings, ctx)

    def _apply_individual(
        self,
        instances: list[VirtualInstance],
        settings: Any,
        ctx: ModifierContext,
    ) -> list[VirtualInstance]:
        pivot = ctx.reference_center if ctx.group_context is not None else None
        frame = Frame(size=ctx.reference_size, pivot=pivot, unified=False)
        steps = self.steps(settings, ctx, frame)
        group_id = ctx.group_id(self.type)

        out: list[VirtualInstance] = []
        for source_index, inst in enumerate(instances):
            inst_pivot = pivot if pivot is not None else inst.center
            for array_index, step in enumerate(steps):
                out.append(
                    place(inst, step, inst_pivot, ctx,
                          index=len(out), source_index=source_index,
                          array_index=array_index, group_id=group_id,
                          from_unified_group=False)
                )
        logger.debug("%s individual: %d -> %d instances", self.type, len(instances), len(out))
        return out

    def _apply_unified(
        self,
        instances: list[VirtualInstance],
        settings: Any,
        ctx: ModifierContext,
    ) -> list[VirtualInstance]:
        members = formation_members(instances)
        collective = calculate_collective_bounds(members, ctx)
        frame = Frame(
            size=(collective.width, collective.height),
            pivot=collective.center,
            unified=True,
            collective=collective,
        )
        steps = self.steps(settings, ctx, frame)
        group_id = ctx.group_id(self.type)

        out: list[VirtualInstance] = []
        for array_index, step in enumerate(steps):
            for source_index, inst in enumerate(members):
                out.append(
                    place(inst, step, collective.center, ctx,
                          index=len(out), source_index=source_index,
                          array_index=array_index, group_id=group_id,
                          from_unified_group=True)
                )
        logger.debug(
            "%s unified: %d members x %d steps -> %d instances",
            self.type,
            len(members),
            len(steps),
            len(out),
        )
        return out


def place(
    inst: VirtualInstance,
    step: FormationStep,
    pivot: tuple[float, float],
    ctx: ModifierContext,
    **meta_fields: Any,
) -> VirtualInstance:
    """Move ``inst`` by one formation step about ``pivot``.

    center' = pivot + offset + R(step.rotation) . (step.scale * (center - pivot))
    """
    cx, cy = inst.center
    dx, dy = rotate_vector((cx - pivot[0]) * step.scale, (cy - pivot[1]) * step.scale, step.rotation)
    center = (pivot[0] + step.offset[0] + dx, pivot[1] + step.offset[1] + dy)
    # A boolean placeholder keeps its plan wherever it is copied to
    base = inst.metadata if inst.is_boolean_result else step.meta
    meta = replace(
        base,
        generation_level=ctx.generation_level,
        flip_x=inst.flip_x,
        flip_y=inst.flip_y,
        **meta_fields,
    )
    return inst.moved(
        center,
        inst.rotation + step.rotation,
        inst.scale_x * step.scale,
        inst.scale_y * step.scale,
        metadata=meta,
    )
