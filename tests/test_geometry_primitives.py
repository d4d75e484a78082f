import math

import pytest

from paperfold.model.errors import InvalidArgumentError
from paperfold.model.geometry_primitives import (
    AnnotatedLine, Point2D, Point3D, PointContext, add, average, copy_point, create_point_3d, cross_2d,
    cross_product, distance, dot_product, length, lift, normalize, point_from_array, scalar_div, subtract,
)


def test_arithmetic_is_coordinate_wise():
    a = Point3D(1.0, 2.0, 3.0)
    b = Point3D(0.5, -1.0, 2.0)
    assert add(a, b).to_tuple() == (1.5, 1.0, 5.0)
    assert subtract(a, b).to_tuple() == (0.5, 3.0, 1.0)
    assert (a * 2).to_tuple() == (2.0, 4.0, 6.0)
    assert (-a).to_tuple() == (-1.0, -2.0, -3.0)
    assert dot_product(a, b) == pytest.approx(0.5 - 2.0 + 6.0)


def test_mixing_dimensions_is_rejected():
    with pytest.raises(TypeError):
        add(Point2D(0.0, 0.0), Point3D(0.0, 0.0, 0.0))
    with pytest.raises(TypeError):
        cross_product(Point2D(1.0, 0.0), Point2D(0.0, 1.0))


def test_cross_products():
    z = cross_product(Point3D(1.0, 0.0, 0.0), Point3D(0.0, 1.0, 0.0))
    assert z.to_tuple() == (0.0, 0.0, 1.0)
    assert cross_2d(Point2D(1.0, 0.0), Point2D(0.0, 1.0)) == 1.0


def test_normalize():
    unit = normalize(Point2D(3.0, 4.0))
    assert length(unit) == pytest.approx(1.0)
    assert unit.x == pytest.approx(0.6)


def test_normalize_rejects_tiny_vectors():
    with pytest.raises(InvalidArgumentError):
        normalize(Point3D(0.001, 0.0, 0.0))


def test_scalar_div_by_zero():
    with pytest.raises(ZeroDivisionError):
        scalar_div(Point2D(1.0, 1.0), 0)


def test_copy_point_changes_context_only():
    source = Point2D(1.0, 2.0, PointContext.ANNOTATION)
    copied = copy_point(source, PointContext.VERTEX)
    assert copied.context == PointContext.VERTEX
    assert copied.to_tuple() == source.to_tuple()


def test_lift_and_array_conversion():
    p = lift(Point2D(1.0, 2.0), z=3.0)
    assert p == Point3D(1.0, 2.0, 3.0)
    back = point_from_array(p.to_array())
    assert back.to_tuple() == (1.0, 2.0, 3.0)
    assert distance(Point2D(0.0, 0.0), Point2D(3.0, 4.0)) == pytest.approx(5.0)
    assert math.isclose(length(Point3D(1.0, 2.0, 2.0)), 3.0)


def test_annotated_line_other_end():
    line = AnnotatedLine(4, 7)
    assert line.other_end(4) == 7
    assert line.other_end(7) == 4
    assert line.endpoints() == frozenset((4, 7))
    with pytest.raises(ValueError):
        line.other_end(5)


def test_average_and_factory():
    corners = [create_point_3d(0, 0, 0), create_point_3d(2, 0, 0), create_point_3d(2, 2, 1), create_point_3d(0, 2, 1)]
    assert average(corners).to_tuple() == (1.0, 1.0, 0.5)
    assert corners[0].context == PointContext.ANNOTATION
    with pytest.raises(InvalidArgumentError):
        average([])
