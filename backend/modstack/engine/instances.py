"""Virtual instances: lightweight placements flowing through the modifier stack.

Each instance maps the source shape's local, center-origin coordinates into
page space via a 3x3 affine:

    T(center) . R(rotation) . S(scale_x * flip_x, scale_y * flip_y)

Metadata is a closed family of frozen dataclasses; consumers dispatch with
isinstance. The ``target_*`` fields are authoritative over what the matrix
decomposes to (a reflected matrix is ambiguous about its rotation).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from modstack.utils.geometry import Decomposed, Matrix, decompose, from_pose, identity, translation

if TYPE_CHECKING:
    from modstack.models.shape import ShapeRecord


@dataclass(frozen=True)
class InstanceMeta:
    modifier_type: str = "original"
    index: int = 0
    source_index: int = 0
    array_index: int = 0
    generation_level: int = 0
    group_id: str | None = None
    from_unified_group: bool = False
    target_rotation: float | None = None
    target_scale_x: float | None = None
    target_scale_y: float | None = None
    flip_x: bool = False
    flip_y: bool = False
    virtual_id: str | None = None
    boolean_group_id: str | None = None


@dataclass(frozen=True)
class OriginalMeta(InstanceMeta):
    modifier_type: str = "original"


@dataclass(frozen=True)
class GroupMemberMeta(InstanceMeta):
    modifier_type: str = "group-member"


@dataclass(frozen=True)
class CompoundChildMeta(InstanceMeta):
    modifier_type: str = "compound-child"
    parent_shape_id: str | None = None


@dataclass(frozen=True)
class LinearArrayMeta(InstanceMeta):
    modifier_type: str = "linear-array"
    linear_array_index: int = 0


@dataclass(frozen=True)
class CircularArrayMeta(InstanceMeta):
    modifier_type: str = "circular-array"
    circular_array_index: int = 0


@dataclass(frozen=True)
class GridArrayMeta(InstanceMeta):
    modifier_type: str = "grid-array"
    row: int = 0
    column: int = 0


@dataclass(frozen=True)
class MirrorMeta(InstanceMeta):
    modifier_type: str = "mirror"
    mirror_axis: str = "x"
    mirror_offset: float = 0.0


@dataclass(frozen=True)
class BooleanPlan:
    """Deferred boolean operation, resolved once at materialization."""

    operation: str
    input_instance_ids: tuple[str, ...]
    storage_key: str
    cache_key: str
    source_shape_id: str
    # Placeholder center at plan time; later moves are measured from here
    anchor: tuple[float, float] = (0.0, 0.0)
    compute_on_materialize: bool = True


@dataclass(frozen=True)
class BooleanResultMeta(InstanceMeta):
    modifier_type: str = "boolean-result"
    plan: BooleanPlan | None = None


@dataclass(frozen=True, eq=False)
class VirtualInstance:
    source_shape_id: str
    transform: Matrix
    metadata: InstanceMeta = field(default_factory=InstanceMeta)

    @property
    def center(self) -> tuple[float, float]:
        return translation(self.transform)

    @property
    def rotation(self) -> float:
        if self.metadata.target_rotation is not None:
            return self.metadata.target_rotation
        return _unflipped(self).rotation

    @property
    def scale_x(self) -> float:
        if self.metadata.target_scale_x is not None:
            return self.metadata.target_scale_x
        return abs(_unflipped(self).scale_x)

    @property
    def scale_y(self) -> float:
        if self.metadata.target_scale_y is not None:
            return self.metadata.target_scale_y
        return abs(_unflipped(self).scale_y)

    @property
    def flip_x(self) -> bool:
        return self.metadata.flip_x

    @property
    def flip_y(self) -> bool:
        return self.metadata.flip_y

    @property
    def is_original(self) -> bool:
        return isinstance(self.metadata, OriginalMeta)

    @property
    def is_group_member(self) -> bool:
        return isinstance(self.metadata, GroupMemberMeta)

    @property
    def is_boolean_result(self) -> bool:
        return isinstance(self.metadata, BooleanResultMeta)

    def moved(
        self,
        center: tuple[float, float],
        rotation: float,
        scale_x: float,
        scale_y: float,
        metadata: InstanceMeta | None = None,
        **meta_changes: Any,
    ) -> VirtualInstance:
        """Copy placed at a new pose. Target fields are rewritten to match."""
        meta = metadata if metadata is not None else self.metadata
        meta = replace(
            meta,
            target_rotation=rotation,
            target_scale_x=scale_x,
            target_scale_y=scale_y,
            **meta_changes,
        )
        return VirtualInstance(
            source_shape_id=self.source_shape_id,
            transform=placement(center, rotation, scale_x, scale_y, meta.flip_x, meta.flip_y),
            metadata=meta,
        )

    def with_metadata(self, **changes: Any) -> VirtualInstance:
        return VirtualInstance(self.source_shape_id, self.transform, replace(self.metadata, **changes))


def placement(
    center: tuple[float, float],
    rotation: float,
    scale_x: float = 1.0,
    scale_y: float = 1.0,
    flip_x: bool = False,
    flip_y: bool = False,
) -> Matrix:
    fx = -1.0 if flip_x else 1.0
    fy = -1.0 if flip_y else 1.0
    return from_pose(center[0], center[1], rotation, scale_x * fx, scale_y * fy)


def _unflipped(inst: VirtualInstance) -> Decomposed:
    # Undo the recorded flips before decomposing so rotation reads back cleanly
    m = inst.transform
    if inst.flip_x or inst.flip_y:
        m = m.copy()
        if inst.flip_x:
            m[:2, 0] = -m[:2, 0]
        if inst.flip_y:
            m[:2, 1] = -m[:2, 1]
    return decompose(m)


@dataclass
class VirtualModifierState:
    """Working state for one pass over a modifier stack."""

    original_shape: ShapeRecord
    virtual_instances: list[VirtualInstance] = field(default_factory=list)
    base_transform: Matrix = field(default_factory=identity)
    metadata: dict[str, Any] = field(default_factory=dict)
    source_shapes: dict[str, ShapeRecord] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    completed_modifiers: list[str] = field(default_factory=list)

    @property
    def boolean_result(self) -> VirtualInstance | None:
        for inst in self.virtual_instances:
            if inst.is_boolean_result:
                return inst
        return None

    @property
    def boolean_results(self) -> list[VirtualInstance]:
        return [inst for inst in self.virtual_instances if inst.is_boolean_result]

    @property
    def clones(self) -> list[VirtualInstance]:
        """Instances to materialize. Unplaced group members are the host's own shapes."""
        return [inst for inst in self.virtual_instances if not (inst.is_original or inst.is_group_member)]
