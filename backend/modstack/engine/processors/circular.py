"""Circular array: copies distributed on a circle or arc."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from modstack.engine.instances import CircularArrayMeta
from modstack.engine.processors.base import ArrayProcessor, FormationStep, Frame
from modstack.engine.registry import modifier_processor
from modstack.models.modifier import CircularArraySettings
from modstack.utils.geometry import rotate_vector
from modstack.utils.math_helpers import angle_step, deg

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext


@modifier_processor(type="circular-array", description="Copies around a circle or arc")
class CircularArrayProcessor(ArrayProcessor):
    def steps(
        self,
        settings: CircularArraySettings,
        ctx: ModifierContext,
        frame: Frame,
    ) -> list[FormationStep]:
        rot = ctx.source_rotation
        step_deg = angle_step(settings.start_angle, settings.end_angle, settings.count)

        # Unified formations orbit the source (or group) center, not the
        # collective center, so upstream modifiers do not move the circle.
        shift = (0.0, 0.0)
        if frame.unified and frame.pivot is not None:
            sx, sy = ctx.reference_center
            shift = (sx - frame.pivot[0], sy - frame.pivot[1])

        steps: list[FormationStep] = []
        for i in range(settings.count):
            angle = deg(settings.start_angle + step_deg * i)
            # Only the radius offset follows the source rotation
            rx, ry = rotate_vector(settings.radius * math.cos(angle), settings.radius * math.sin(angle), rot)
            ox, oy = settings.center_x + rx, settings.center_y + ry

            rotation = deg(settings.rotate_all + settings.rotate_each * i)
            if settings.align_to_center:
                rotation += angle + math.pi + math.pi / 2

            steps.append(
                FormationStep(
                    offset=(shift[0] + ox, shift[1] + oy),
                    rotation=rotation,
                    scale=1.0,
                    meta=CircularArrayMeta(circular_array_index=i),
                )
            )
        return steps
