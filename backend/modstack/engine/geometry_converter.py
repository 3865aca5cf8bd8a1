"""Shape -> shapely polygon conversion for boolean operations.

Every extractor builds the outline in the shape's local, center-origin frame
(so (0, 0) is the geometric center); ``instance_polygon`` then applies the
instance's page-space affine. Kinds without an extractor degrade to their
bounding box.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Callable

import numpy as np
import svgpathtools
from shapely import affinity
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from modstack.engine.config import EngineConfig
from modstack.engine.context import shape_size
from modstack.engine.instances import placement
from modstack.utils.geometry import to_shapely_params

if TYPE_CHECKING:
    from modstack.engine.instances import VirtualInstance
    from modstack.models.shape import ShapeRecord

logger = logging.getLogger(__name__)

Extractor = Callable[[dict[str, Any], float, float, EngineConfig], Polygon]

_EXTRACTORS: dict[str, Extractor] = {}


def extractor(*kinds: str):
    def decorator(fn: Extractor) -> Extractor:
        for kind in kinds:
            _EXTRACTORS[kind] = fn
        return fn

    return decorator


def supported_kinds() -> list[str]:
    return sorted(_EXTRACTORS)


# ---------------------------------------------------------------------------
# Primitive outlines (center-origin)
# ---------------------------------------------------------------------------


def _box(w: float, h: float) -> Polygon:
    return Polygon([(-w / 2, -h / 2), (w / 2, -h / 2), (w / 2, h / 2), (-w / 2, h / 2)])


def _ellipse(w: float, h: float, segments: int) -> Polygon:
    t = np.linspace(0, 2 * math.pi, max(segments, 8), endpoint=False)
    return Polygon(np.column_stack([w / 2 * np.cos(t), h / 2 * np.sin(t)]))


def _regular(w: float, h: float, sides: int) -> Polygon:
    t = np.arange(sides) * 2 * math.pi / sides - math.pi / 2
    return Polygon(np.column_stack([w / 2 * np.cos(t), h / 2 * np.sin(t)]))


def _local_points(points: list[dict[str, Any]], w: float, h: float) -> list[tuple[float, float]]:
    """Host points are relative to the shape's top-left; shift to center-origin."""
    return [(float(p["x"]) - w / 2, float(p["y"]) - h / 2) for p in points]


def _clean(poly: BaseGeometry) -> Polygon:
    """Repair self-intersections and keep the largest polygonal part."""
    if not poly.is_valid:
        poly = make_valid(poly)
    if poly.geom_type == "Polygon":
        return poly
    parts = [
        g for g in getattr(poly, "geoms", [])
        if g.geom_type in ("Polygon", "MultiPolygon")
    ]
    if not parts:
        return Polygon()
    best = max(parts, key=lambda g: g.area)
    if isinstance(best, MultiPolygon):
        best = max(best.geoms, key=lambda g: g.area)
    return best


def _sample_path(path: svgpathtools.Path, cfg: EngineConfig) -> list[tuple[float, float]]:
    n = len(path) * cfg.path_samples_per_segment
    n = max(cfg.min_path_samples, min(cfg.max_path_samples, n))
    pts = [path.point(i / n) for i in range(n)]
    return [(p.real, p.imag) for p in pts]


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------


@extractor("rectangle")
def rectangle_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    return _box(w, h)


@extractor("ellipse", "circle")
def ellipse_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    return _ellipse(w, h, cfg.ellipse_segments)


@extractor("triangle")
def triangle_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    if props.get("points") and len(props["points"]) >= 3:
        return Polygon(_local_points(props["points"], w, h))
    return Polygon([(0, -h / 2), (w / 2, h / 2), (-w / 2, h / 2)])


@extractor("geo")
def geo_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    geo = props.get("geo", "rectangle")
    if geo == "ellipse":
        return _ellipse(w, h, cfg.ellipse_segments)
    if geo == "triangle":
        return triangle_outline({}, w, h, cfg)
    if geo == "diamond":
        return Polygon([(0, -h / 2), (w / 2, 0), (0, h / 2), (-w / 2, 0)])
    return _box(w, h)


@extractor("polygon")
def polygon_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    points = props.get("points")
    if points and len(points) >= 3:
        return Polygon(_local_points(points, w, h))
    return _regular(w, h, max(3, int(props.get("sides", 6))))


@extractor("star")
def star_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    tips = max(3, int(props.get("points", 5)))
    inner = float(props.get("inner_radius", 0.4))
    t = np.arange(tips * 2) * math.pi / tips - math.pi / 2
    r = np.where(np.arange(tips * 2) % 2 == 0, 1.0, inner)
    return Polygon(np.column_stack([w / 2 * r * np.cos(t), h / 2 * r * np.sin(t)]))


@extractor("bezier")
def bezier_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    """Anchor points with optional handles: cp2 leaves a point, cp1 enters the next."""
    points = props.get("points") or []
    if len(points) < 2:
        return _box(w, h)

    def local(p: dict[str, Any]) -> complex:
        return complex(float(p["x"]) - w / 2, float(p["y"]) - h / 2)

    pairs = list(zip(points, points[1:]))
    if props.get("is_closed", True):
        pairs.append((points[-1], points[0]))

    segments = []
    for a, b in pairs:
        if a.get("cp2") or b.get("cp1"):
            segments.append(
                svgpathtools.CubicBezier(
                    local(a),
                    local(a.get("cp2") or a),
                    local(b.get("cp1") or b),
                    local(b),
                )
            )
        else:
            segments.append(svgpathtools.Line(local(a), local(b)))
    return Polygon(_sample_path(svgpathtools.Path(*segments), cfg))


@extractor("path")
def path_outline(props: dict[str, Any], w: float, h: float, cfg: EngineConfig) -> Polygon:
    """SVG path data in the shape's top-left frame."""
    d = props.get("d")
    if not d:
        return _box(w, h)
    path = svgpathtools.parse_path(d).translated(complex(-w / 2, -h / 2))
    if len(path) == 0:
        return _box(w, h)
    return Polygon(_sample_path(path, cfg))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def local_outline(shape: ShapeRecord, config: EngineConfig | None = None) -> Polygon:
    cfg = config or EngineConfig()
    w, h = shape_size(shape, cfg)
    fn = _EXTRACTORS.get(shape.type)
    if fn is None:
        logger.info("No outline for shape kind %s (%s); using its bounding box", shape.type, shape.id)
        return _box(w, h)
    try:
        poly = _clean(fn(shape.props, w, h, cfg))
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Outline of %s (%s) failed, using bounding box: %s", shape.id, shape.type, e)
        return _box(w, h)
    if poly.is_empty:
        logger.info("Empty outline for %s (%s); using its bounding box", shape.id, shape.type)
        return _box(w, h)
    return poly


def instance_polygon(
    inst: VirtualInstance,
    shape: ShapeRecord,
    config: EngineConfig | None = None,
) -> Polygon:
    """Outline of ``shape`` placed where ``inst`` puts it, in page space."""
    # Rebuild from the authoritative pose rather than trusting the raw matrix
    m = placement(inst.center, inst.rotation, inst.scale_x, inst.scale_y, inst.flip_x, inst.flip_y)
    return affinity.affine_transform(local_outline(shape, config), to_shapely_params(m))
