"""Tests for affine + bounds helpers."""

import math

import numpy as np
import pytest

from modstack.utils.geometry import (
    Bounds,
    apply_to_point,
    compose,
    decompose,
    from_pose,
    oriented_extent,
    rotate,
    scale,
    translate,
    union_bounds,
)
from modstack.utils.math_helpers import angle_step, apply_scale_step, calculate_progress


# ---------------------------------------------------------------------------
# Matrices
# ---------------------------------------------------------------------------


class TestMatrices:
    def test_compose_applies_rightmost_first(self):
        m = compose(translate(10, 0), scale(2))
        assert apply_to_point(m, 1, 1) == pytest.approx((12, 2))

    def test_rotate_quarter_turn(self):
        assert apply_to_point(rotate(math.pi / 2), 1, 0) == pytest.approx((0, 1))

    def test_decompose_round_trip(self):
        d = decompose(from_pose(5, -3, 0.7, 2.0, 0.5))
        assert (d.x, d.y) == pytest.approx((5, -3))
        assert d.rotation == pytest.approx(0.7)
        assert d.scale_x == pytest.approx(2.0)
        assert d.scale_y == pytest.approx(0.5)

    def test_decompose_reflection_goes_to_scale_y(self):
        d = decompose(from_pose(0, 0, 0.0, -1.0, 1.0))
        assert d.scale_x > 0
        assert d.scale_y < 0

    def test_identity_pose(self):
        np.testing.assert_allclose(from_pose(0, 0), np.eye(3))


# ---------------------------------------------------------------------------
# Bounds
# ---------------------------------------------------------------------------


class TestBounds:
    def test_center_and_size(self):
        b = Bounds(0, 0, 100, 50)
        assert b.center == (50, 25)
        assert (b.width, b.height) == (100, 50)

    def test_union_bounds(self):
        b = union_bounds([Bounds(0, 0, 10, 10), Bounds(-5, 3, 4, 20)])
        assert b == Bounds(-5, 0, 10, 20)

    def test_union_of_nothing(self):
        assert union_bounds([]) is None

    def test_oriented_extent_45_degrees(self):
        hx, hy = oriented_extent(50, 50, math.pi / 4)
        assert hx == pytest.approx(50 * math.sqrt(2))
        assert hy == pytest.approx(50 * math.sqrt(2))

    def test_oriented_extent_uses_abs_scale(self):
        assert oriented_extent(10, 5, 0.0, -2.0, 1.0) == pytest.approx((20, 5))


# ---------------------------------------------------------------------------
# Ramps
# ---------------------------------------------------------------------------


class TestRamps:
    def test_progress(self):
        assert calculate_progress(0, 3) == 0
        assert calculate_progress(2, 3) == 1
        assert calculate_progress(0, 1) == 0

    def test_scale_step(self):
        assert apply_scale_step(200, 0.5) == pytest.approx(1.5)
        assert apply_scale_step(100, 1.0) == pytest.approx(1.0)

    def test_angle_step_full_turn(self):
        assert angle_step(0, 360, 4) == pytest.approx(90)

    def test_angle_step_partial_arc_hits_both_ends(self):
        assert angle_step(0, 180, 3) == pytest.approx(90)

    def test_angle_step_single(self):
        assert angle_step(0, 360, 1) == 0
