"""Boolean combine: deferred polygon union/subtract/intersect/exclude.

Three phases:
  plan         while the stack runs: park the participants, emit one placeholder
  execute      on demand: fold participant polygons with shapely (cached)
  materialize  at the end: turn the geometry into one bezier path shape
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, Callable

import numpy as np
import svgpathtools
from shapely.affinity import affine_transform
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from modstack.engine.cache import BooleanCache, EngineCaches, InstanceStorage
from modstack.engine.context import shape_center, shape_size
from modstack.engine.errors import BooleanOperationError
from modstack.engine.geometry_converter import instance_polygon
from modstack.engine.instances import (
    BooleanPlan,
    BooleanResultMeta,
    CompoundChildMeta,
    VirtualInstance,
    placement,
)
from modstack.engine.processors.base import ModifierProcessor
from modstack.engine.registry import modifier_processor
from modstack.engine.unified import calculate_collective_bounds
from modstack.models.materialize import MaterializeResult
from modstack.models.modifier import BooleanSettings
from modstack.models.shape import ChildShape, ShapeRecord
from modstack.utils.geometry import Bounds, apply_to_point, matrix_key, rotate_vector, to_shapely_params

if TYPE_CHECKING:
    from modstack.engine.context import ModifierContext
    from modstack.engine.instances import VirtualModifierState

logger = logging.getLogger(__name__)

OPERATIONS: dict[str, Callable[[BaseGeometry, BaseGeometry], BaseGeometry]] = {
    "union": lambda a, b: a.union(b),
    "subtract": lambda a, b: a.difference(b),
    "intersect": lambda a, b: a.intersection(b),
    "exclude": lambda a, b: a.symmetric_difference(b),
}

# Carried onto the result only when every participant agrees
STYLE_KEYS = ("color", "fill_color", "fill", "stroke_width")


@modifier_processor(type="boolean", description="Combine all instances into one outline")
class BooleanProcessor(ModifierProcessor):
    def apply(
        self,
        instances: list[VirtualInstance],
        settings: BooleanSettings,
        ctx: ModifierContext,
    ) -> list[VirtualInstance]:
        storage = ctx.caches.instances if ctx.caches is not None else InstanceStorage()
        return self.plan(instances, settings, ctx, storage)

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def plan(
        self,
        instances: list[VirtualInstance],
        settings: BooleanSettings,
        ctx: ModifierContext,
        storage: InstanceStorage,
    ) -> list[VirtualInstance]:
        participants = list(instances)
        if settings.is_multi_shape and ctx.original_shape.props.get("child_shapes"):
            participants = expand_compound(participants, ctx)
        if not participants:
            return []

        boolean_group_id = uuid.uuid4().hex[:12]
        marked = [
            inst.with_metadata(boolean_group_id=boolean_group_id, virtual_id=f"{boolean_group_id}:{i}")
            for i, inst in enumerate(participants)
        ]
        storage_key = f"boolean:{uuid.uuid4().hex}"
        storage.put(storage_key, marked)

        collective = calculate_collective_bounds(marked, ctx)
        plan = BooleanPlan(
            operation=settings.operation,
            input_instance_ids=tuple(inst.metadata.virtual_id for inst in marked),
            storage_key=storage_key,
            cache_key=boolean_cache_key(settings.operation, marked, ctx),
            source_shape_id=ctx.original_shape.id,
            anchor=collective.center,
        )
        meta = BooleanResultMeta(
            generation_level=ctx.generation_level,
            group_id=ctx.group_id(self.type),
            from_unified_group=len(marked) > 1,
            target_rotation=0.0,
            target_scale_x=1.0,
            target_scale_y=1.0,
            boolean_group_id=boolean_group_id,
            plan=plan,
        )
        logger.debug(
            "boolean %s planned over %d instances (key %s)",
            settings.operation,
            len(marked),
            plan.cache_key[:12],
        )
        return [
            VirtualInstance(
                source_shape_id=ctx.original_shape.id,
                transform=placement(collective.center, 0.0),
                metadata=meta,
            )
        ]

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(
        self,
        plan: BooleanPlan,
        instances: list[VirtualInstance],
        ctx: ModifierContext,
        cache: BooleanCache | None = None,
    ) -> BaseGeometry:
        if cache is not None:
            cached = cache.get(plan.cache_key)
            if cached is not None:
                logger.debug("boolean cache hit %s", plan.cache_key[:12])
                return cached

        ids = [inst.metadata.virtual_id or inst.source_shape_id for inst in instances]
        if not instances:
            raise BooleanOperationError(
                "No participants for boolean operation",
                operation=plan.operation,
                instances=ids,
            )

        op = OPERATIONS[plan.operation]
        try:
            polygons = [instance_polygon(inst, ctx.shape_for(inst), ctx.config) for inst in instances]
            result = polygons[0]
            for poly in polygons[1:]:
                result = op(result, poly)
        except (GEOSException, ValueError) as e:
            raise BooleanOperationError(
                f"Boolean {plan.operation} failed: {e}",
                operation=plan.operation,
                instances=ids,
            ) from e

        if cache is not None:
            cache.put(plan.cache_key, result)
        return result

    # ------------------------------------------------------------------
    # Materialize
    # ------------------------------------------------------------------

    def materialize(
        self,
        result_instance: VirtualInstance,
        state: VirtualModifierState,
        existing: dict[int, ShapeRecord],
        id_factory: Callable[[], str],
        caches: EngineCaches,
        ctx: ModifierContext,
    ) -> MaterializeResult:
        """One outline shape per placed copy of the plan's placeholder.

        Modifiers after the boolean move the placeholder; each copy carries
        the outline along by its pose relative to ``plan.anchor``.
        """
        meta = result_instance.metadata
        if not isinstance(meta, BooleanResultMeta) or meta.plan is None:
            raise ValueError("Instance does not carry a boolean plan")
        plan = meta.plan

        participants = caches.instances.get(plan.storage_key)
        if participants is None:
            logger.info("boolean storage miss for %s; using live instances", plan.storage_key)
            participants = [
                inst for inst in state.virtual_instances
                if not inst.is_boolean_result and not inst.is_original
            ]
        if not participants:
            return MaterializeResult()

        frame = calculate_collective_bounds(participants, ctx).bounds
        geometry = self.execute(plan, participants, ctx, caches.boolean)
        delete = [shape.id for _, shape in sorted(existing.items())]

        if not _polygons(geometry):
            logger.info("boolean %s produced no area for %s", plan.operation, plan.source_shape_id)
            return MaterializeResult(delete=delete)

        placed = [
            inst for inst in state.boolean_results
            if isinstance(inst.metadata, BooleanResultMeta) and inst.metadata.plan == plan
        ] or [result_instance]
        style = shared_style([ctx.shape_for(inst) for inst in participants])
        anchor_inverse = np.linalg.inv(placement(plan.anchor, 0.0))

        created: list[ShapeRecord] = []
        for index, inst in enumerate(placed):
            relative = inst.transform @ anchor_inverse
            params = to_shapely_params(relative)
            polygons = _polygons(affine_transform(geometry, params))
            corners = [
                apply_to_point(relative, x, y)
                for x in (frame.min_x, frame.max_x)
                for y in (frame.min_y, frame.max_y)
            ]
            created.append(
                self._outline_record(
                    polygons,
                    Bounds.from_points(corners),
                    style,
                    plan,
                    inst.metadata,
                    index,
                    state,
                    id_factory,
                )
            )

        logger.info(
            "boolean %s: %d participants -> %d shapes",
            plan.operation,
            len(participants),
            len(created),
        )
        return MaterializeResult(create=created, delete=delete)

    def _outline_record(
        self,
        polygons: list[Polygon],
        frame: Bounds,
        style: dict[str, Any],
        plan: BooleanPlan,
        meta: BooleanResultMeta,
        index: int,
        state: VirtualModifierState,
        id_factory: Callable[[], str],
    ) -> ShapeRecord:
        ox, oy = frame.min_x, frame.min_y
        largest = max(polygons, key=lambda p: p.area)
        points = [{"x": x - ox, "y": y - oy} for x, y in list(largest.exterior.coords)[:-1]]

        props: dict[str, Any] = {
            "w": frame.width,
            "h": frame.height,
            "points": points,
            "d": path_data(polygons, ox, oy),
            "is_closed": True,
        }
        props.update(style)

        return ShapeRecord(
            id=id_factory(),
            type="bezier",
            x=ox,
            y=oy,
            rotation=0.0,
            parent_id=state.original_shape.parent_id,
            props=props,
            meta={
                "stack_processed": True,
                "original_shape_id": plan.source_shape_id,
                "boolean_operation": plan.operation,
                "boolean_group_id": meta.boolean_group_id,
                "index": index,
                "generation_level": meta.generation_level,
                "target_rotation": 0.0,
                "target_scale_x": 1.0,
                "target_scale_y": 1.0,
                "flip_x": False,
                "flip_y": False,
            },
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def expand_compound(instances: list[VirtualInstance], ctx: ModifierContext) -> list[VirtualInstance]:
    """Replace each compound instance by one instance per child shape.

    Child records are added to the context's source shape table so later
    phases can size and outline them.
    """
    parent = ctx.original_shape
    pw, ph = shape_size(parent, ctx.config)
    children = [ChildShape.model_validate(c) for c in parent.props["child_shapes"]]

    out: list[VirtualInstance] = []
    for inst in instances:
        mirrored = inst.flip_x != inst.flip_y
        for child in children:
            record = ShapeRecord(id=child.id, type=child.type, rotation=child.relative_rotation, props=child.props)
            ctx.source_shapes.setdefault(child.id, record)
            cw, ch = shape_size(record, ctx.config)
            # Child center in the parent's center-origin frame
            dx, dy = rotate_vector(cw / 2, ch / 2, child.relative_rotation)
            lx = child.relative_x + dx - pw / 2
            ly = child.relative_y + dy - ph / 2
            center = apply_to_point(inst.transform, lx, ly)
            rel = -child.relative_rotation if mirrored else child.relative_rotation
            meta = CompoundChildMeta(
                index=len(out),
                source_index=inst.metadata.index,
                generation_level=ctx.generation_level,
                group_id=inst.metadata.group_id,
                flip_x=inst.flip_x,
                flip_y=inst.flip_y,
                parent_shape_id=parent.id,
            )
            child_inst = VirtualInstance(source_shape_id=child.id, transform=inst.transform, metadata=meta)
            out.append(child_inst.moved(center, inst.rotation + rel, inst.scale_x, inst.scale_y))
    return out


def boolean_cache_key(operation: str, instances: list[VirtualInstance], ctx: ModifierContext) -> str:
    """Content hash of everything the polygon result depends on."""
    parts: list[str] = [operation]
    for inst in instances:
        pose = placement(inst.center, inst.rotation, inst.scale_x, inst.scale_y, inst.flip_x, inst.flip_y)
        shape = ctx.shape_for(inst)
        parts.append(matrix_key(pose))
        parts.append(
            json.dumps(
                {
                    "id": shape.id,
                    "type": shape.type,
                    "center": shape_center(shape, ctx.config),
                    "rotation": shape.rotation,
                    "size": shape_size(shape, ctx.config),
                    "props": shape.props,
                },
                sort_keys=True,
                default=str,
            )
        )
    return hashlib.sha256("|".join(parts).encode()).hexdigest()


def _polygons(geometry: BaseGeometry) -> list[Polygon]:
    if geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, MultiPolygon):
        return [p for p in geometry.geoms if not p.is_empty]
    out: list[Polygon] = []
    for g in getattr(geometry, "geoms", []):
        out.extend(_polygons(g))
    return out


def path_data(polygons: list[Polygon], ox: float = 0.0, oy: float = 0.0) -> str:
    """SVG path data for every ring, relative to (ox, oy)."""
    subpaths: list[str] = []
    for poly in polygons:
        for ring in [poly.exterior, *poly.interiors]:
            pts = [complex(x - ox, y - oy) for x, y in ring.coords]
            if len(pts) < 4:
                continue
            lines = [svgpathtools.Line(a, b) for a, b in zip(pts, pts[1:]) if a != b]
            if lines:
                subpaths.append(svgpathtools.Path(*lines).d() + " Z")
    return " ".join(subpaths)


def shared_style(shapes: list[ShapeRecord]) -> dict[str, Any]:
    style: dict[str, Any] = {}
    for key in STYLE_KEYS:
        values = [s.props.get(key) for s in shapes]
        if values and values[0] is not None and all(v == values[0] for v in values):
            style[key] = values[0]
    return style
