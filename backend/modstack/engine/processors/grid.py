"""Grid array: rows x columns of copies, first cell on the reference center."""

from __future__ import annotations

from typing import TYPE_CHECKING

from modstack.engine.instances import GridArrayMeta
from modstack.engine.processors.base import ArrayProcessor, FormationStep, Frame
from modstack.engine.registry import modifier_processor
from modstack.models.modifier import GridArraySettings
from modstack.utils.geometry import rotate_vector
from modstack.utils.math_helpers import apply_scale_step, calculate_progress, deg, percent_of

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext


@modifier_processor(type="grid-array", description="Copies on a rows x columns grid")
class GridArrayProcessor(ArrayProcessor):
    def steps(
        self,
        settings: GridArraySettings,
        ctx: ModifierContext,
        frame: Frame,
    ) -> list[FormationStep]:
        w, h = frame.size
        px = percent_of(settings.spacing_x, w)
        py = percent_of(settings.spacing_y, h)
        rot = ctx.source_rotation
        total = settings.rows * settings.columns

        steps: list[FormationStep] = []
        for row in range(settings.rows):
            for col in range(settings.columns):
                k = row * settings.columns + col
                rotation = deg(
                    settings.rotate_all
                    + settings.rotate_each * k
                    + settings.rotate_each_row * row
                    + settings.rotate_each_column * col
                )
                scale = (
                    apply_scale_step(settings.scale_step, calculate_progress(k, total))
                    * apply_scale_step(settings.row_scale_step, calculate_progress(row, settings.rows))
                    * apply_scale_step(settings.column_scale_step, calculate_progress(col, settings.columns))
                )
                steps.append(
                    FormationStep(
                        offset=rotate_vector(col * px, row * py, rot),
                        rotation=rotation,
                        scale=scale,
                        meta=GridArrayMeta(row=row, column=col),
                    )
                )
        return steps
