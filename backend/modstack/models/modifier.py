"""Modifier models: one validated settings model per modifier kind."""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

ModifierType = Literal["linear-array", "circular-array", "grid-array", "mirror", "boolean"]


class LinearArraySettings(BaseModel):
    count: int = Field(default=3, ge=1)
    offset_x: float = 100.0  # % of reference width
    offset_y: float = 0.0  # % of reference height
    rotation_increment: float = 0.0  # degrees per step
    rotate_all: float = 0.0  # degrees
    scale_step: float = 100.0  # % at the last copy


class CircularArraySettings(BaseModel):
    count: int = Field(default=8, ge=1)
    radius: float = 100.0
    start_angle: float = 0.0
    end_angle: float = 360.0
    center_x: float = 0.0  # px offset of the circle center from the reference point
    center_y: float = 0.0
    rotate_all: float = 0.0
    rotate_each: float = 0.0
    align_to_center: bool = False


class GridArraySettings(BaseModel):
    rows: int = Field(default=2, ge=1)
    columns: int = Field(default=2, ge=1)
    spacing_x: float = 100.0  # % of reference width
    spacing_y: float = 100.0
    rotate_all: float = 0.0
    rotate_each: float = 0.0
    rotate_each_row: float = 0.0
    rotate_each_column: float = 0.0
    scale_step: float = 100.0
    row_scale_step: float = 100.0
    column_scale_step: float = 100.0


class MirrorSettings(BaseModel):
    axis: Literal["x", "y"] = "x"
    offset: float = 0.0  # px from the reference center
    merge_threshold: float = Field(default=0.0, ge=0)


class BooleanSettings(BaseModel):
    operation: Literal["union", "subtract", "intersect", "exclude"] = "union"
    is_multi_shape: bool = False


ModifierSettings = Union[
    LinearArraySettings,
    CircularArraySettings,
    GridArraySettings,
    MirrorSettings,
    BooleanSettings,
]

SETTINGS_BY_TYPE: dict[str, type[BaseModel]] = {
    "linear-array": LinearArraySettings,
    "circular-array": CircularArraySettings,
    "grid-array": GridArraySettings,
    "mirror": MirrorSettings,
    "boolean": BooleanSettings,
}


class Modifier(BaseModel):
    """One entry of a shape's modifier stack."""

    id: str
    type: ModifierType
    order: int = 0
    enabled: bool = True
    settings: ModifierSettings

    @model_validator(mode="before")
    @classmethod
    def _coerce_settings(cls, data: Any) -> Any:
        # Raw settings dicts are parsed with the model that matches ``type``
        if not isinstance(data, dict):
            return data
        settings_cls = SETTINGS_BY_TYPE.get(data.get("type", ""))
        if settings_cls is None:
            return data
        raw = data.get("settings")
        if raw is None:
            raw = {}
        if isinstance(raw, dict):
            data = {**data, "settings": settings_cls.model_validate(raw)}
        return data

    @model_validator(mode="after")
    def _check_settings_kind(self) -> Modifier:
        expected = SETTINGS_BY_TYPE[self.type]
        if not isinstance(self.settings, expected):
            raise ValueError(
                f"{self.type} modifier needs {expected.__name__}, "
                f"got {type(self.settings).__name__}"
            )
        return self
