"""Transform composer: folds a modifier stack over virtual instances.

Nothing is written to the host document while the stack runs; only the
final instance list is materialized, as a diff against the derived shapes
the host already has.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable

import numpy as np

from modstack.engine.cache import EngineCaches
from modstack.engine.config import EngineConfig
from modstack.engine.context import BoundsProvider, ModifierContext, shape_center, shape_size
from modstack.engine.errors import (
    MaterializationError,
    ModifierError,
    ModifierErrorHandler,
    RecoveryStrategy,
)
from modstack.engine.instances import (
    GroupMemberMeta,
    OriginalMeta,
    VirtualInstance,
    VirtualModifierState,
    placement,
)
from modstack.engine.monitor import ModifierPerformanceMonitor
from modstack.engine.registry import ProcessorRegistry, get_registry
from modstack.models.group import GroupContext
from modstack.models.materialize import MaterializeResult, ShapeUpdate
from modstack.models.modifier import Modifier
from modstack.models.shape import ShapeRecord

logger = logging.getLogger(__name__)


def default_id_factory() -> str:
    return f"shape:{uuid.uuid4().hex}"


class TransformComposer:
    """Runs modifier stacks and turns the result into host shape changes."""

    def __init__(
        self,
        registry: ProcessorRegistry | None = None,
        config: EngineConfig | None = None,
        caches: EngineCaches | None = None,
        error_handler: ModifierErrorHandler | None = None,
        monitor: ModifierPerformanceMonitor | None = None,
        bounds_provider: BoundsProvider | None = None,
    ) -> None:
        self.registry = registry or get_registry()
        self.config = config or EngineConfig()
        self.caches = caches or EngineCaches()
        self.error_handler = error_handler or ModifierErrorHandler(
            RecoveryStrategy.parse(self.config.recovery_strategy)
        )
        self.monitor = monitor or ModifierPerformanceMonitor(
            slow_modifier_ms=self.config.slow_modifier_ms,
            max_samples=self.config.max_timing_samples,
        )
        self.bounds_provider = bounds_provider

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_modifiers(
        self,
        shape: ShapeRecord,
        modifiers: list[Modifier],
        group_context: GroupContext | None = None,
    ) -> VirtualModifierState:
        """Fold the enabled modifiers, in ``order``, over one source shape."""
        state = self._initial_state(shape)
        return self._run(state, modifiers, group_context)

    def process_group(
        self,
        shapes: list[ShapeRecord],
        modifiers: list[Modifier],
        group_context: GroupContext | None = None,
    ) -> VirtualModifierState:
        """Fold a stack over a whole document group, treated as one formation."""
        if not shapes:
            raise ValueError("process_group needs at least one shape")
        state = VirtualModifierState(original_shape=shapes[0])
        for i, member in enumerate(shapes):
            state.source_shapes[member.id] = member
            state.virtual_instances.append(
                VirtualInstance(
                    source_shape_id=member.id,
                    transform=placement(shape_center(member, self.config, self.bounds_provider), member.rotation),
                    metadata=GroupMemberMeta(
                        index=i,
                        source_index=i,
                        target_rotation=member.rotation,
                        target_scale_x=1.0,
                        target_scale_y=1.0,
                    ),
                )
            )
        return self._run(state, modifiers, group_context)

    def _initial_state(self, shape: ShapeRecord) -> VirtualModifierState:
        center = shape_center(shape, self.config, self.bounds_provider)
        original = VirtualInstance(
            source_shape_id=shape.id,
            transform=placement(center, shape.rotation),
            metadata=OriginalMeta(target_rotation=shape.rotation, target_scale_x=1.0, target_scale_y=1.0),
        )
        return VirtualModifierState(
            original_shape=shape,
            virtual_instances=[original],
            source_shapes={shape.id: shape},
        )

    def _run(
        self,
        state: VirtualModifierState,
        modifiers: list[Modifier],
        group_context: GroupContext | None,
    ) -> VirtualModifierState:
        start = time.perf_counter()
        shape = state.original_shape
        active = sorted((m for m in modifiers if m.enabled), key=lambda m: m.order)

        logger.info(
            "Modifier stack on %s: %d enabled (%d skipped)",
            shape.id,
            len(active),
            len(modifiers) - len(active),
        )

        for level, modifier in enumerate(active, start=1):
            # Unknown kinds are a programming error, not a recoverable failure
            spec = self.registry.get(modifier.type)
            ctx = ModifierContext(
                original_shape=shape,
                config=self.config,
                group_context=group_context,
                generation_level=level,
                source_shapes=state.source_shapes,
                modifier=modifier,
                caches=self.caches,
                bounds_provider=self.bounds_provider,
            )
            before = state.virtual_instances

            def run_once(spec=spec, modifier=modifier, ctx=ctx, before=before) -> list[VirtualInstance]:
                return spec.processor.apply(list(before), modifier.settings, ctx)

            stop = self.monitor.start_timing(modifier.type, shape.id)
            try:
                state.virtual_instances = run_once()
                state.completed_modifiers.append(modifier.id)
                elapsed = stop()
                logger.debug(
                    "  %s (%s) -> %d instances in %.1fms",
                    modifier.id,
                    modifier.type,
                    len(state.virtual_instances),
                    elapsed,
                )
            except Exception as e:
                stop()
                result = self.error_handler.handle(e, modifier, shape, retry=run_once)
                if result.fallback is not None:
                    state.virtual_instances = result.fallback
                else:
                    state.virtual_instances = before
                if result.retried:
                    state.completed_modifiers.append(modifier.id)
                else:
                    state.errors[modifier.id] = str(e)

        total = (time.perf_counter() - start) * 1000
        logger.info(
            "Modifier stack complete: %d/%d modifiers, %d instances in %.0fms",
            len(state.completed_modifiers),
            len(active),
            len(state.virtual_instances),
            total,
        )
        return state

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def materialize(
        self,
        state: VirtualModifierState,
        existing: dict[int, ShapeRecord],
        id_factory: Callable[[], str] | None = None,
    ) -> MaterializeResult:
        """Diff the final instances against the host's derived shapes.

        ``existing`` maps clone ordinal -> shape; clone ``i`` reuses
        ``existing[i]`` when present, leftovers are deleted.
        """
        id_factory = id_factory or default_id_factory
        try:
            result_instance = state.boolean_result
            if result_instance is not None:
                return self._materialize_boolean(result_instance, state, existing, id_factory)

            result = MaterializeResult()
            used: set[int] = set()
            for i, inst in enumerate(state.clones):
                record = existing.get(i)
                if record is not None:
                    used.add(i)
                    x, y = self._top_left(inst, state)
                    result.update.append(
                        ShapeUpdate(
                            id=record.id,
                            type=record.type,
                            x=x,
                            y=y,
                            rotation=0.0,
                            meta=self._clone_meta(inst, state, record.meta),
                        )
                    )
                else:
                    result.create.append(self._clone_record(inst, state, id_factory))
            result.delete = [shape.id for i, shape in sorted(existing.items()) if i not in used]
        except ModifierError:
            raise
        except Exception as e:
            raise MaterializationError(
                f"Materialization of {state.original_shape.id} failed: {e}",
                shape=state.original_shape,
                details={"cause": type(e).__name__},
            ) from e

        logger.info(
            "Materialized %s: %d create, %d update, %d delete",
            state.original_shape.id,
            len(result.create),
            len(result.update),
            len(result.delete),
        )
        return result

    def materialize_instances(
        self,
        state: VirtualModifierState,
        id_factory: Callable[[], str] | None = None,
    ) -> list[ShapeRecord]:
        """Full records for every clone, without diffing."""
        id_factory = id_factory or default_id_factory
        return [self._clone_record(inst, state, id_factory) for inst in state.clones]

    def validate_state(self, state: VirtualModifierState) -> None:
        if not state.virtual_instances and not state.errors:
            raise ValueError(f"State for {state.original_shape.id} has no instances")
        originals = [inst for inst in state.virtual_instances if inst.is_original]
        if len(originals) > 1:
            raise ValueError(f"State has {len(originals)} original instances")
        for inst in state.virtual_instances:
            if inst.transform.shape != (3, 3):
                raise ValueError(f"Instance of {inst.source_shape_id} has a {inst.transform.shape} transform")
            if not np.all(np.isfinite(inst.transform)):
                raise ValueError(f"Instance of {inst.source_shape_id} has a non-finite transform")
            if inst.source_shape_id not in state.source_shapes and not inst.is_boolean_result:
                raise ValueError(f"Instance refers to unknown source shape {inst.source_shape_id}")
        for modifier_id in state.errors:
            if modifier_id in state.completed_modifiers:
                raise ValueError(f"Modifier {modifier_id} is both failed and completed")

    def _materialize_boolean(
        self,
        result_instance: VirtualInstance,
        state: VirtualModifierState,
        existing: dict[int, ShapeRecord],
        id_factory: Callable[[], str],
    ) -> MaterializeResult:
        processor = self.registry.get("boolean").processor
        ctx = ModifierContext(
            original_shape=state.original_shape,
            config=self.config,
            generation_level=result_instance.metadata.generation_level,
            source_shapes=state.source_shapes,
            caches=self.caches,
            bounds_provider=self.bounds_provider,
        )
        return processor.materialize(result_instance, state, existing, id_factory, self.caches, ctx)

    # ------------------------------------------------------------------
    # Record building
    # ------------------------------------------------------------------

    def _source(self, inst: VirtualInstance, state: VirtualModifierState) -> ShapeRecord:
        return state.source_shapes.get(inst.source_shape_id, state.original_shape)

    def _top_left(self, inst: VirtualInstance, state: VirtualModifierState) -> tuple[float, float]:
        # Host applies rotation/scale about the center afterwards
        w, h = shape_size(self._source(inst, state), self.config)
        cx, cy = inst.center
        return (cx - w / 2, cy - h / 2)

    def _clone_meta(self, inst: VirtualInstance, state: VirtualModifierState, base: dict | None = None) -> dict:
        m = inst.metadata
        meta = dict(base or {})
        meta.update({
            "stack_processed": True,
            "original_shape_id": state.original_shape.id,
            "source_shape_id": inst.source_shape_id,
            "modifier_type": m.modifier_type,
            "index": m.index,
            "array_index": m.array_index,
            "generation_level": m.generation_level,
            "group_id": m.group_id,
            "target_rotation": inst.rotation,
            "target_scale_x": inst.scale_x,
            "target_scale_y": inst.scale_y,
            "flip_x": inst.flip_x,
            "flip_y": inst.flip_y,
        })
        return meta

    def _clone_record(
        self,
        inst: VirtualInstance,
        state: VirtualModifierState,
        id_factory: Callable[[], str],
    ) -> ShapeRecord:
        source = self._source(inst, state)
        x, y = self._top_left(inst, state)
        return ShapeRecord(
            id=id_factory(),
            type=source.type,
            x=x,
            y=y,
            rotation=0.0,
            parent_id=source.parent_id,
            props=dict(source.props),
            meta=self._clone_meta(inst, state),
        )
