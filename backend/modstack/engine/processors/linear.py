"""Linear array: copies stepped along a fixed offset."""

from __future__ import annotations

from typing import TYPE_CHECKING

from modstack.engine.instances import LinearArrayMeta
from modstack.engine.processors.base import ArrayProcessor, FormationStep, Frame
from modstack.engine.registry import modifier_processor
from modstack.models.modifier import LinearArraySettings
from modstack.utils.geometry import rotate_vector
from modstack.utils.math_helpers import apply_scale_step, calculate_progress, deg, percent_of

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext


@modifier_processor(type="linear-array", description="Copies along a line, with rotation and scale ramps")
class LinearArrayProcessor(ArrayProcessor):
    def steps(
        self,
        settings: LinearArraySettings,
        ctx: ModifierContext,
        frame: Frame,
    ) -> list[FormationStep]:
        w, h = frame.size
        px = percent_of(settings.offset_x, w)
        py = percent_of(settings.offset_y, h)
        rot = ctx.source_rotation

        steps: list[FormationStep] = []
        for i in range(settings.count):
            progress = calculate_progress(i, settings.count)
            steps.append(
                FormationStep(
                    offset=rotate_vector(i * px, i * py, rot),
                    rotation=deg(settings.rotate_all + i * settings.rotation_increment),
                    scale=apply_scale_step(settings.scale_step, progress),
                    meta=LinearArrayMeta(linear_array_index=i),
                )
            )
        return steps
