"""Leaf-node affine + bounds helpers. No engine imports.

All matrices are 3x3 numpy arrays acting on column vectors (x, y, 1):

    [a c e]
    [b d f]
    [0 0 1]
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

Matrix = NDArray[np.float64]

# Below this, a scale/determinant is treated as zero.
_EPS = 1e-12


def identity() -> Matrix:
    return np.eye(3, dtype=np.float64)


def translate(x: float, y: float) -> Matrix:
    m = identity()
    m[0, 2] = x
    m[1, 2] = y
    return m


def rotate(angle: float) -> Matrix:
    """Counter-clockwise rotation in radians (y-down screens read it clockwise)."""
    c = math.cos(angle)
    s = math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)


def scale(sx: float, sy: float | None = None) -> Matrix:
    if sy is None:
        sy = sx
    return np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)


def compose(*matrices: Matrix) -> Matrix:
    """Left-to-right product: compose(A, B, C) == A @ B @ C (C applied first)."""
    result = identity()
    for m in matrices:
        result = result @ m
    return result


def from_pose(
    x: float,
    y: float,
    rotation: float = 0.0,
    scale_x: float = 1.0,
    scale_y: float = 1.0,
) -> Matrix:
    """T(x, y) . R(rotation) . S(scale_x, scale_y)."""
    return compose(translate(x, y), rotate(rotation), scale(scale_x, scale_y))


def apply_to_point(m: Matrix, x: float, y: float) -> tuple[float, float]:
    px = m[0, 0] * x + m[0, 1] * y + m[0, 2]
    py = m[1, 0] * x + m[1, 1] * y + m[1, 2]
    return (float(px), float(py))


def translation(m: Matrix) -> tuple[float, float]:
    return (float(m[0, 2]), float(m[1, 2]))


@dataclass(frozen=True)
class Decomposed:
    x: float
    y: float
    rotation: float
    scale_x: float
    scale_y: float


def decompose(m: Matrix) -> Decomposed:
    """Split a T.R.S matrix back into its parts.

    A negative determinant (reflection) is folded into scale_y, so a mirrored
    instance decomposes to a different rotation than the one it was built with.
    Callers that know the intended values must carry them separately.
    """
    a, b = float(m[0, 0]), float(m[1, 0])
    c, d = float(m[0, 1]), float(m[1, 1])
    sx = math.hypot(a, b)
    det = a * d - b * c
    if sx < _EPS:
        return Decomposed(float(m[0, 2]), float(m[1, 2]), 0.0, 0.0, 0.0)
    rotation = math.atan2(b, a)
    sy = det / sx
    return Decomposed(float(m[0, 2]), float(m[1, 2]), rotation, sx, sy)


def rotate_vector(x: float, y: float, angle: float) -> tuple[float, float]:
    if angle == 0:
        return (x, y)
    c = math.cos(angle)
    s = math.sin(angle)
    return (x * c - y * s, x * s + y * c)


def to_shapely_params(m: Matrix) -> list[float]:
    """[a, b, d, e, xoff, yoff] as expected by shapely.affinity.affine_transform."""
    return [
        float(m[0, 0]),
        float(m[0, 1]),
        float(m[1, 0]),
        float(m[1, 1]),
        float(m[0, 2]),
        float(m[1, 2]),
    ]


def matrix_key(m: Matrix, precision: int = 6) -> str:
    """Stable text form of the six affine coefficients, used in cache keys."""
    values = to_shapely_params(m)
    return ",".join(f"{v:.{precision}f}" for v in values)


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned page-space rectangle."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> tuple[float, float]:
        return (self.min_x + self.width / 2, self.min_y + self.height / 2)

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> Bounds:
        return cls(cx - width / 2, cy - height / 2, cx + width / 2, cy + height / 2)

    @classmethod
    def from_points(cls, points: list[tuple[float, float]]) -> Bounds:
        pts = np.asarray(points, dtype=np.float64)
        lo = pts.min(axis=0)
        hi = pts.max(axis=0)
        return cls(float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))


def oriented_extent(
    half_width: float,
    half_height: float,
    rotation: float,
    scale_x: float = 1.0,
    scale_y: float = 1.0,
) -> tuple[float, float]:
    """Half-extent of the axis-aligned box around a rotated, scaled rectangle."""
    hw = abs(half_width * scale_x)
    hh = abs(half_height * scale_y)
    cos = abs(math.cos(rotation))
    sin = abs(math.sin(rotation))
    return (hw * cos + hh * sin, hw * sin + hh * cos)


def union_bounds(boxes: list[Bounds]) -> Bounds | None:
    if not boxes:
        return None
    arr = np.array([(b.min_x, b.min_y, b.max_x, b.max_y) for b in boxes], dtype=np.float64)
    return Bounds(
        float(np.min(arr[:, 0])),
        float(np.min(arr[:, 1])),
        float(np.max(arr[:, 2])),
        float(np.max(arr[:, 3])),
    )
