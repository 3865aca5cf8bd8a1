"""Tests for deferred boolean operations."""

import pytest
from shapely.geometry import Polygon

from modstack.engine.context import ModifierContext
from modstack.engine.errors import BooleanOperationError
from modstack.engine.instances import BooleanPlan, BooleanResultMeta
from modstack.engine.processors.boolean import BooleanProcessor, path_data, shared_style
from modstack.models.shape import ShapeRecord
from tests.conftest import make_modifier, make_shape, sequential_ids


def _overlapping_pair(operation: str, offset_x: float = 50):
    """Two 100x100 squares, the second shifted right by ``offset_x`` percent."""
    return [
        make_modifier("linear-array", order=0, count=2, offset_x=offset_x),
        make_modifier("boolean", order=1, operation=operation),
    ]


def _area(shape: ShapeRecord) -> float:
    return Polygon([(p["x"], p["y"]) for p in shape.props["points"]]).area


# ---------------------------------------------------------------------------
# Plan phase
# ---------------------------------------------------------------------------


class TestPlan:
    def test_single_result_instance(self, composer, square):
        state = composer.process_modifiers(square, _overlapping_pair("union"))
        assert len(state.virtual_instances) == 1
        result = state.virtual_instances[0]
        assert isinstance(result.metadata, BooleanResultMeta)
        plan = result.metadata.plan
        assert plan.operation == "union"
        assert plan.source_shape_id == square.id
        assert len(plan.input_instance_ids) == 2
        assert plan.compute_on_materialize

    def test_participants_parked_in_storage(self, composer, caches, square):
        state = composer.process_modifiers(square, _overlapping_pair("union"))
        plan = state.boolean_result.metadata.plan
        stored = caches.instances.get(plan.storage_key)
        assert len(stored) == 2
        assert {i.metadata.boolean_group_id for i in stored} == {state.boolean_result.metadata.boolean_group_id}
        assert [i.metadata.virtual_id for i in stored] == list(plan.input_instance_ids)

    def test_cache_key_is_content_based(self, composer, square):
        first = composer.process_modifiers(square, _overlapping_pair("union"))
        second = composer.process_modifiers(square, _overlapping_pair("union"))
        moved = composer.process_modifiers(square, _overlapping_pair("union", offset_x=60))
        key = first.boolean_result.metadata.plan.cache_key
        assert key == second.boolean_result.metadata.plan.cache_key
        assert key != moved.boolean_result.metadata.plan.cache_key
        assert first.boolean_result.metadata.plan.storage_key != second.boolean_result.metadata.plan.storage_key

    def test_empty_input_plans_nothing(self, square):
        ctx = ModifierContext(original_shape=square)
        out = BooleanProcessor().apply([], make_modifier("boolean").settings, ctx)
        assert out == []


# ---------------------------------------------------------------------------
# Materialize phase
# ---------------------------------------------------------------------------


class TestMaterialize:
    @pytest.mark.parametrize(
        "operation, expected_area",
        [("union", 15000), ("subtract", 5000), ("intersect", 5000), ("exclude", 10000)],
    )
    def test_operations(self, composer, square, operation, expected_area):
        state = composer.process_modifiers(square, _overlapping_pair(operation))
        result = composer.materialize(state, {})
        assert len(result.create) == 1
        shape = result.create[0]
        assert shape.type == "bezier"
        if operation == "exclude":
            # Two disjoint halves; points hold the larger one
            assert _area(shape) == pytest.approx(expected_area / 2)
            assert shape.props["d"].count("Z") == 2
        else:
            assert _area(shape) == pytest.approx(expected_area)

    def test_result_framed_by_collective_bounds(self, composer, square):
        state = composer.process_modifiers(square, _overlapping_pair("intersect"))
        shape = composer.materialize(state, {}).create[0]
        assert (shape.x, shape.y) == pytest.approx((0, 0))
        assert (shape.props["w"], shape.props["h"]) == pytest.approx((150, 100))
        assert shape.rotation == 0
        assert shape.meta["stack_processed"] is True
        assert shape.meta["original_shape_id"] == square.id
        assert shape.meta["boolean_operation"] == "intersect"

    def test_points_relative_to_frame(self, composer):
        shape = make_shape(x=1000, y=500)
        state = composer.process_modifiers(shape, _overlapping_pair("union"))
        result = composer.materialize(state, {}).create[0]
        xs = [p["x"] for p in result.props["points"]]
        ys = [p["y"] for p in result.props["points"]]
        assert min(xs) == pytest.approx(0)
        assert max(xs) == pytest.approx(150)
        assert min(ys) == pytest.approx(0)
        assert (result.x, result.y) == pytest.approx((1000, 500))

    def test_deletes_all_existing_clones(self, composer, square):
        existing = {0: make_shape(id="shape:a"), 1: make_shape(id="shape:b")}
        state = composer.process_modifiers(square, _overlapping_pair("union"))
        result = composer.materialize(state, existing, id_factory=sequential_ids("bool"))
        assert result.delete == ["shape:a", "shape:b"]
        assert [s.id for s in result.create] == ["bool-0"]
        assert not result.update

    def test_shared_style_kept(self, composer):
        shape = make_shape(color="red", fill="solid")
        state = composer.process_modifiers(shape, _overlapping_pair("union"))
        props = composer.materialize(state, {}).create[0].props
        assert props["color"] == "red"
        assert props["fill"] == "solid"
        assert "stroke_width" not in props

    def test_disjoint_intersection_creates_nothing(self, composer, square):
        state = composer.process_modifiers(square, _overlapping_pair("intersect", offset_x=300))
        result = composer.materialize(state, {0: make_shape(id="shape:old")})
        assert not result.create
        assert result.delete == ["shape:old"]

    def test_mirror_then_union_includes_source(self, composer, square):
        mods = [
            make_modifier("mirror", order=0, offset=100),
            make_modifier("boolean", order=1, operation="union"),
        ]
        state = composer.process_modifiers(square, mods)
        shape = composer.materialize(state, {}).create[0]
        # Source 0..100 and its reflection 100..200 touch along x = 100
        assert _area(shape) == pytest.approx(20000)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestBooleanCache:
    def test_second_evaluation_hits(self, composer, caches, square):
        for _ in range(2):
            state = composer.process_modifiers(square, _overlapping_pair("union"))
            composer.materialize(state, {})
        assert caches.boolean.hits == 1
        assert caches.boolean.misses == 1
        assert len(caches.boolean) == 1

    def test_moved_participant_misses(self, composer, caches, square):
        for offset in (50, 60):
            state = composer.process_modifiers(square, _overlapping_pair("union", offset_x=offset))
            composer.materialize(state, {})
        assert caches.boolean.hits == 0
        assert caches.boolean.misses == 2

    def test_resized_source_misses(self, composer, caches):
        for w in (100, 120):
            state = composer.process_modifiers(make_shape(w=w), _overlapping_pair("union"))
            composer.materialize(state, {})
        assert caches.boolean.hits == 0

    def test_cached_geometry_is_not_recomputed(self, composer, caches, square, monkeypatch):
        state = composer.process_modifiers(square, _overlapping_pair("union"))
        composer.materialize(state, {})

        def fail(*args, **kwargs):
            raise AssertionError("polygon recomputed")

        monkeypatch.setattr("modstack.engine.processors.boolean.instance_polygon", fail)
        state = composer.process_modifiers(square, _overlapping_pair("union"))
        assert len(composer.materialize(state, {}).create) == 1


# ---------------------------------------------------------------------------
# Modifiers stacked after a boolean
# ---------------------------------------------------------------------------


class TestAfterBoolean:
    def test_array_keeps_the_plan(self, composer, square):
        mods = _overlapping_pair("union") + [make_modifier("linear-array", order=2, count=2, offset_x=300)]
        state = composer.process_modifiers(square, mods)
        assert [i.metadata.modifier_type for i in state.virtual_instances] == ["boolean-result"] * 2
        plans = {i.metadata.plan for i in state.virtual_instances}
        assert len(plans) == 1
        assert state.virtual_instances[1].center == pytest.approx((375, 50))

    def test_array_repeats_the_outline(self, composer, square):
        mods = _overlapping_pair("union") + [make_modifier("linear-array", order=2, count=2, offset_x=300)]
        state = composer.process_modifiers(square, mods)
        result = composer.materialize(state, {0: make_shape(id="shape:old")}, id_factory=sequential_ids("b"))
        assert [s.type for s in result.create] == ["bezier", "bezier"]
        assert [s.x for s in result.create] == pytest.approx([0, 300])
        assert all(s.props["w"] == pytest.approx(150) for s in result.create)
        assert all(_area(s) == pytest.approx(15000) for s in result.create)
        assert [s.meta["index"] for s in result.create] == [0, 1]
        assert result.delete == ["shape:old"]

    def test_mirror_reflects_the_outline(self, composer, square):
        mods = _overlapping_pair("union") + [make_modifier("mirror", order=2, offset=200)]
        state = composer.process_modifiers(square, mods)
        created = composer.materialize(state, {}).create
        # Line at x = 150 maps the 0..150 outline onto 150..300
        assert [s.x for s in created] == pytest.approx([0, 150])
        assert all(_area(s) == pytest.approx(15000) for s in created)
        assert all(s.meta["flip_x"] is False for s in created)

    def test_unmoved_placeholder_uses_collective_frame(self, composer, square):
        state = composer.process_modifiers(square, _overlapping_pair("union"))
        shape = composer.materialize(state, {}).create[0]
        assert (shape.x, shape.y) == pytest.approx((0, 0))
        assert (shape.props["w"], shape.props["h"]) == pytest.approx((150, 100))


# ---------------------------------------------------------------------------
# Compound shapes
# ---------------------------------------------------------------------------


class TestCompound:
    def _compound(self) -> ShapeRecord:
        return make_shape(
            id="shape:compound",
            type="compound",
            w=200,
            h=100,
            child_shapes=[
                {"id": "child:a", "type": "geo", "relative_x": 0, "relative_y": 0, "props": {"w": 100, "h": 100}},
                {"id": "child:b", "type": "geo", "relative_x": 150, "relative_y": 0, "props": {"w": 50, "h": 100}},
            ],
        )

    def test_children_become_participants(self, composer, caches):
        mods = [make_modifier("boolean", operation="union", is_multi_shape=True)]
        state = composer.process_modifiers(self._compound(), mods)
        plan = state.boolean_result.metadata.plan
        stored = caches.instances.get(plan.storage_key)
        assert [i.source_shape_id for i in stored] == ["child:a", "child:b"]
        assert [i.center for i in stored] == [pytest.approx((50, 50)), pytest.approx((175, 50))]

    def test_union_of_disjoint_children(self, composer):
        mods = [make_modifier("boolean", operation="union", is_multi_shape=True)]
        state = composer.process_modifiers(self._compound(), mods)
        shape = composer.materialize(state, {}).create[0]
        assert shape.props["d"].count("Z") == 2
        assert _area(shape) == pytest.approx(10000)

    def test_without_flag_compound_is_one_box(self, composer):
        mods = [make_modifier("boolean", operation="union")]
        state = composer.process_modifiers(self._compound(), mods)
        shape = composer.materialize(state, {}).create[0]
        assert _area(shape) == pytest.approx(20000)


# ---------------------------------------------------------------------------
# Failures and helpers
# ---------------------------------------------------------------------------


class TestFailures:
    def test_execute_without_participants_raises(self, square):
        plan = BooleanPlan(
            operation="union",
            input_instance_ids=(),
            storage_key="boolean:x",
            cache_key="k",
            source_shape_id=square.id,
        )
        with pytest.raises(BooleanOperationError) as exc_info:
            BooleanProcessor().execute(plan, [], ModifierContext(original_shape=square))
        assert exc_info.value.operation == "union"
        assert exc_info.value.code == "BOOLEAN_OPERATION_FAILED"

    def test_unsupported_kind_uses_bounding_box(self, composer):
        shape = make_shape(type="sticky-note")
        state = composer.process_modifiers(shape, _overlapping_pair("union"))
        assert _area(composer.materialize(state, {}).create[0]) == pytest.approx(15000)


def test_path_data_closes_every_ring():
    square = Polygon([(0, 0), (10, 0), (10, 10), (0, 10)], holes=[[(2, 2), (4, 2), (4, 4), (2, 4)]])
    d = path_data([square])
    assert d.startswith("M")
    assert d.count("Z") == 2


def test_shared_style_requires_agreement():
    a = make_shape(id="a", color="red", fill="none")
    b = make_shape(id="b", color="blue", fill="none")
    assert shared_style([a, b]) == {"fill": "none"}
