"""
Geometric Primitives
====================
2-D and 3-D points (also used as vectors), and the annotation records that
live on faces.

Points are immutable and tagged with a context: Vertex for polygon corners,
Annotation for everything added later. All arithmetic is dimension-polymorphic
but never mixes a 2-D operand with a 3-D one.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Optional, TypeVar, Union, TYPE_CHECKING
import math

import numpy as np

from paperfold.config import MIN_NORMALIZE_LENGTH
from paperfold.model.errors import InvalidArgumentError

if TYPE_CHECKING:
    import numpy.typing as npt

# Edge id of an annotated point that lies on no polygon edge
NO_EDGE: int = -1


class PointContext(StrEnum):
    VERTEX = "Vertex"
    ANNOTATION = "Annotation"


@dataclass(frozen=True)
class Point2D:
    """A point (or vector) in the flat paper plane."""
    x: float
    y: float
    context: PointContext = PointContext.ANNOTATION

    @property
    def dim(self) -> int:
        return 2

    def __add__(self, other: Point2D) -> Point2D:
        return add(self, other)

    def __sub__(self, other: Point2D) -> Point2D:
        return subtract(self, other)

    def __mul__(self, scalar: float) -> Point2D:
        return scalar_mult(self, scalar)

    def __neg__(self) -> Point2D:
        return scalar_mult(self, -1.0)

    def to_array(self) -> npt.NDArray[np.float64]:
        return np.array([self.x, self.y])

    def to_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Point3D:
    """A point (or vector) in folded 3-D space."""
    x: float
    y: float
    z: float
    context: PointContext = PointContext.ANNOTATION

    @property
    def dim(self) -> int:
        return 3

    def __add__(self, other: Point3D) -> Point3D:
        return add(self, other)

    def __sub__(self, other: Point3D) -> Point3D:
        return subtract(self, other)

    def __mul__(self, scalar: float) -> Point3D:
        return scalar_mult(self, scalar)

    def __neg__(self) -> Point3D:
        return scalar_mult(self, -1.0)

    def to_array(self) -> npt.NDArray[np.float64]:
        return np.array([self.x, self.y, self.z])

    def to_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


Point = Union[Point2D, Point3D]
P = TypeVar("P", Point2D, Point3D)


@dataclass(frozen=True)
class AnnotatedPoint:
    """An annotation point plus the id of the polygon edge it lies on (or NO_EDGE)."""
    point: Point
    edge_id: int = NO_EDGE

    @property
    def on_edge(self) -> bool:
        return self.edge_id != NO_EDGE


@dataclass(frozen=True)
class AnnotatedLine:
    """A line between two point ids of the same face (vertices or annotations)."""
    start_point_id: int
    end_point_id: int

    def endpoints(self) -> frozenset[int]:
        return frozenset((self.start_point_id, self.end_point_id))

    def other_end(self, point_id: int) -> int:
        if point_id == self.start_point_id:
            return self.end_point_id
        if point_id == self.end_point_id:
            return self.start_point_id
        raise ValueError(f"Point {point_id} is not an endpoint of {self}.")


def _check_same_dim(a: Point, b: Point) -> None:
    if a.dim != b.dim:
        raise TypeError(f"Cannot combine a {a.dim}D point with a {b.dim}D point.")


def create_point_2d(x: float, y: float, context: PointContext = PointContext.ANNOTATION) -> Point2D:
    return Point2D(float(x), float(y), context)


def create_point_3d(x: float, y: float, z: float, context: PointContext = PointContext.ANNOTATION) -> Point3D:
    return Point3D(float(x), float(y), float(z), context)


def copy_point(source: P, context: Optional[PointContext] = None) -> P:
    """
    Copy a point, optionally changing its context.

    Args:
        source: The point to copy.
        context: Context of the copy. Defaults to the source's context.
    """
    ctx = source.context if context is None else context
    if isinstance(source, Point2D):
        return Point2D(source.x, source.y, ctx)
    return Point3D(source.x, source.y, source.z, ctx)


def _from_components(template: Point, values: Iterable[float], context: PointContext) -> Point:
    vals = [float(v) for v in values]
    if template.dim == 2:
        return Point2D(vals[0], vals[1], context)
    return Point3D(vals[0], vals[1], vals[2], context)


def _components(p: Point) -> tuple[float, ...]:
    if isinstance(p, Point2D):
        return (p.x, p.y)
    return (p.x, p.y, p.z)


def add(a: P, b: P, context: PointContext = PointContext.ANNOTATION) -> P:
    """Coordinate-wise sum a + b."""
    _check_same_dim(a, b)
    return _from_components(a, (u + v for u, v in zip(_components(a), _components(b))), context)


def subtract(a: P, b: P, context: PointContext = PointContext.ANNOTATION) -> P:
    """Coordinate-wise difference a - b."""
    _check_same_dim(a, b)
    return _from_components(a, (u - v for u, v in zip(_components(a), _components(b))), context)


def dot_product(a: Point, b: Point) -> float:
    _check_same_dim(a, b)
    return sum(u * v for u, v in zip(_components(a), _components(b)))


def cross_product(a: Point3D, b: Point3D, context: PointContext = PointContext.ANNOTATION) -> Point3D:
    if a.dim != 3 or b.dim != 3:
        raise TypeError("Cross product is only defined for 3D points.")
    return Point3D(
        a.y * b.z - a.z * b.y,
        a.z * b.x - a.x * b.z,
        a.x * b.y - a.y * b.x,
        context,
    )


def cross_2d(a: Point2D, b: Point2D) -> float:
    """z-component of the cross product of two 2D vectors."""
    _check_same_dim(a, b)
    return a.x * b.y - a.y * b.x


def scalar_mult(vector: P, scalar: float, context: PointContext = PointContext.ANNOTATION) -> P:
    return _from_components(vector, (c * scalar for c in _components(vector)), context)


def scalar_div(vector: P, scalar: float, context: PointContext = PointContext.ANNOTATION) -> P:
    if scalar == 0:
        raise ZeroDivisionError("Cannot divide Point by 0!")
    return _from_components(vector, (c / scalar for c in _components(vector)), context)


def average(points: Iterable[P], context: PointContext = PointContext.ANNOTATION) -> P:
    """Centroid of a non-empty collection of points of one dimension."""
    pts = list(points)
    if not pts:
        raise InvalidArgumentError("Cannot average an empty collection of points.")
    total = pts[0]
    for p in pts[1:]:
        total = add(total, p)
    return scalar_div(total, len(pts), context)


def distance(a: Point, b: Point) -> float:
    _check_same_dim(a, b)
    return math.sqrt(sum((u - v) ** 2 for u, v in zip(_components(a), _components(b))))


def length(vec: Point) -> float:
    return math.sqrt(sum(c ** 2 for c in _components(vec)))


def normalize(vec: P) -> P:
    """Unit vector in the direction of vec. Rejects vectors that are nearly zero."""
    size = length(vec)
    if size < MIN_NORMALIZE_LENGTH:
        raise InvalidArgumentError("Cannot normalize extremely small Point!", {"vector": _components(vec)})
    return scalar_div(vec, size)


def lift(point: Point2D, z: float = 0.0) -> Point3D:
    """Embed a 2D point in the z = const plane."""
    return Point3D(point.x, point.y, z, point.context)


def point_from_array(values: npt.NDArray[np.float64], context: PointContext = PointContext.ANNOTATION) -> Point:
    if len(values) == 2:
        return Point2D(float(values[0]), float(values[1]), context)
    return Point3D(float(values[0]), float(values[1]), float(values[2]), context)
