from __future__ import annotations

from typing import Optional, Sequence

from math import cos, sin, pi
import numpy as np
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon

from paperfold.config import COLLINEAR_TOLERANCE, OVERLAP_AREA_TOLERANCE
from paperfold.model.geometry_primitives import (
    Point, Point2D, Point3D, PointContext, cross_product, distance, dot_product,
    length, normalize, subtract, point_from_array,
)


def deg2rad(degrees: float) -> float:
    return degrees * pi / 180


def solve_for_scalars(
    v1: Point3D,
    v2: Point3D,
    target: Point3D,
    *,
    tol: float = COLLINEAR_TOLERANCE
) -> Optional[tuple[float, float]]:
    """
    Solve alpha * v1 + beta * v2 = target.

    Args:
        v1: First basis vector.
        v2: Second basis vector.
        target: The vector to decompose.
        tol: Tolerance for the collinearity test and the residual check.

    Returns:
        (alpha, beta), or None when v1 and v2 are collinear or the target does
        not lie in their span.

    Notes:
        Solved as the 3x2 least-squares system [v1 v2] [alpha beta]^T = target.
        A solution is only accepted when the residual is within `tol`, so a
        target off the plane of the basis reports "no solution".
    """
    a = np.column_stack((v1.to_array(), v2.to_array()))
    b = target.to_array()

    if np.linalg.norm(np.cross(a[:, 0], a[:, 1])) < tol:
        return None

    solution, _, rank, _ = np.linalg.lstsq(a, b, rcond=None)
    if rank < 2:
        return None

    residual = np.linalg.norm(a @ solution - b)
    if residual > tol:
        return None

    return float(solution[0]), float(solution[1])


def segment_parameter(point: Point, start: Point, end: Point) -> float:
    """Parameter t of the projection of point onto the line start + t * (end - start)."""
    direction = subtract(end, start)
    denom = dot_product(direction, direction)
    if denom == 0.0:
        return 0.0
    return dot_product(subtract(point, start), direction) / denom


def distance_to_segment(point: Point, start: Point, end: Point) -> float:
    t = min(1.0, max(0.0, segment_parameter(point, start, end)))
    p = point.to_array()
    s = start.to_array()
    e = end.to_array()
    return float(np.linalg.norm(p - (s + t * (e - s))))


def is_point_on_segment(
    point: Point,
    start: Point,
    end: Point,
    *,
    tol: float = COLLINEAR_TOLERANCE
) -> bool:
    return distance_to_segment(point, start, end) <= tol


def is_point_strictly_inside_segment(
    point: Point,
    start: Point,
    end: Point,
    *,
    tol: float = COLLINEAR_TOLERANCE
) -> bool:
    """True if point is on the segment but away from both endpoints."""
    if not is_point_on_segment(point, start, end, tol=tol):
        return False
    return distance(point, start) > tol and distance(point, end) > tol


def segment_intersection(
    p1: Point2D,
    p2: Point2D,
    p3: Point2D,
    p4: Point2D,
    *,
    tol: float = COLLINEAR_TOLERANCE
) -> Optional[Point2D]:
    """
    Proper crossing of segments p1-p2 and p3-p4.

    Returns the crossing point when the segments intersect in a single point
    that lies away from all four endpoints, otherwise None (parallel,
    collinear, touching at an endpoint, or disjoint).
    """
    x1, y1 = p1.x, p1.y
    x2, y2 = p2.x, p2.y
    x3, y3 = p3.x, p3.y
    x4, y4 = p4.x, p4.y

    r = (x2 - x1, y2 - y1)
    s = (x4 - x3, y4 - y3)

    def cross(a, b):
        return a[0]*b[1] - a[1]*b[0]

    rxs = cross(r, s)
    if abs(rxs) < 1e-12:
        return None

    q_p = (x3 - x1, y3 - y1)
    t = cross(q_p, s) / rxs
    u = cross(q_p, r) / rxs

    len_r = np.hypot(*r)
    len_s = np.hypot(*s)
    # Endpoint contacts are handled by the point-on-segment tests instead
    if not (tol / len_r < t < 1.0 - tol / len_r):
        return None
    if not (tol / len_s < u < 1.0 - tol / len_s):
        return None

    return Point2D(x1 + t * r[0], y1 + t * r[1], PointContext.ANNOTATION)


def segments_match(
    a_start: Point,
    a_end: Point,
    b_start: Point,
    b_end: Point,
    *,
    tol: float = COLLINEAR_TOLERANCE
) -> bool:
    """
    Whether two polygon edges are (part of) the same physical edge.

    The shorter segment has to lie on the longer one within `tol` and the
    overlap must have positive length, so edges that merely touch at a corner
    do not match.
    """
    if distance(a_start, a_end) <= distance(b_start, b_end):
        short, long_ = (a_start, a_end), (b_start, b_end)
    else:
        short, long_ = (b_start, b_end), (a_start, a_end)

    if distance(short[0], short[1]) <= tol:
        return False
    return (is_point_on_segment(short[0], *long_, tol=tol)
            and is_point_on_segment(short[1], *long_, tol=tol))


def turning_cosine(previous: Point, vertex: Point, following: Point) -> float:
    """
    Cosine of the angle at `vertex` between the directions to its neighbours.

    -1 means the three points are a straight continuation.
    """
    a = subtract(previous, vertex)
    b = subtract(following, vertex)
    la = length(a)
    lb = length(b)
    if la == 0.0 or lb == 0.0:
        return 1.0
    return dot_product(a, b) / (la * lb)


def rotate_point_about_axis(
    point: Point3D,
    axis_point: Point3D,
    axis_direction: Point3D,
    angle_degrees: float
) -> Point3D:
    """
    Rotate a point about an arbitrary axis (Rodrigues' formula).

    The rotation is right-handed about `axis_direction`.
    """
    k = normalize(axis_direction).to_array()
    v = point.to_array() - axis_point.to_array()
    theta = deg2rad(angle_degrees)
    rotated = (v * cos(theta)
               + np.cross(k, v) * sin(theta)
               + k * np.dot(k, v) * (1.0 - cos(theta)))
    return point_from_array(rotated + axis_point.to_array(), point.context)


def rotate_vector_about_axis(vector: Point3D, axis_direction: Point3D, angle_degrees: float) -> Point3D:
    origin = Point3D(0.0, 0.0, 0.0)
    return rotate_point_about_axis(vector, origin, axis_direction, angle_degrees)


def plane_basis(
    origin: Point3D,
    along: Point3D,
    normal: Point3D
) -> tuple[Point3D, Point3D, Point3D]:
    """
    Orthonormal 2D basis of a plane.

    Returns:
        (origin, e1, e2) where e1 is the unit vector from `origin` to `along`
        and e2 = normal x e1.
    """
    e1 = normalize(subtract(along, origin))
    e2 = normalize(cross_product(normalize(normal), e1))
    return origin, e1, e2


def project_to_basis(point: Point3D, basis: tuple[Point3D, Point3D, Point3D]) -> Point2D:
    origin, e1, e2 = basis
    rel = subtract(point, origin)
    return Point2D(dot_product(rel, e1), dot_product(rel, e2), point.context)


def polygon_area(vertices: Sequence[Point2D]) -> float:
    """Signed area (shoelace). Negative for clockwise polygons."""
    pts = np.array([p.to_tuple() for p in vertices])
    x = pts[:, 0]
    y = pts[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def _to_polygon(vertices: Sequence[Point2D]) -> Polygon:
    poly = Polygon([p.to_tuple() for p in vertices])
    if not poly.is_valid:
        poly = poly.buffer(0)
    return poly


def polygons_overlap(
    a: Sequence[Point2D],
    b: Sequence[Point2D],
    *,
    area_tol: float = OVERLAP_AREA_TOLERANCE
) -> bool:
    """
    Whether two polygons share interior area.

    Polygons that only touch along an edge or at a corner do not overlap.
    """
    return _to_polygon(a).intersection(_to_polygon(b)).area > area_tol


def polygon_contains_point(
    vertices: Sequence[Point2D],
    point: Point2D,
    *,
    tol: float = COLLINEAR_TOLERANCE
) -> bool:
    """Point-in-polygon test that accepts points on the boundary (within tol)."""
    poly = _to_polygon(vertices)
    return poly.buffer(tol).covers(ShapelyPoint(point.x, point.y))


def points_coplanar(points: Sequence[Point3D], *, tol: float = COLLINEAR_TOLERANCE) -> bool:
    """Whether all points lie on one plane (within tol)."""
    if len(points) < 4:
        return True
    arr = np.array([p.to_array() for p in points])
    centered = arr - arr.mean(axis=0)
    # Smallest singular value measures the out-of-plane spread
    singular = np.linalg.svd(centered, compute_uv=False)
    return bool(singular[-1] / np.sqrt(len(points)) <= tol)
