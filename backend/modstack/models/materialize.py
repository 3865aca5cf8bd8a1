"""Materialization output: the diff the host applies to its document."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from modstack.models.shape import ShapeRecord


class ShapeUpdate(BaseModel):
    id: str
    type: str
    x: float
    y: float
    rotation: float = 0.0
    meta: dict[str, Any] = Field(default_factory=dict)


class MaterializeResult(BaseModel):
    create: list[ShapeRecord] = Field(default_factory=list)
    update: list[ShapeUpdate] = Field(default_factory=list)
    delete: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.create or self.update or self.delete)
