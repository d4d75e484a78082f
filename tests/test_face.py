import pytest

from paperfold.model.errors import ConflictError, InvalidArgumentError, InvariantViolationError, NotFoundError
from paperfold.model.face import Face2D, Face3D, translate_2d_to_3d, translate_3d_to_2d
from paperfold.model.geometry_primitives import NO_EDGE, AnnotatedLine, Point2D, Point3D

from conftest import square


@pytest.fixture
def face():
    return Face2D(0, square(0.0, 0.0))


def test_ids_follow_vertices(face):
    assert face.vertex_count == 4
    assert face.point_ids() == [0, 1, 2, 3]
    assert face.edge(1) == (face.vertices[1], face.vertices[2])
    assert face.edge(3)[1] == face.vertices[0]
    with pytest.raises(NotFoundError):
        face.edge(4)


def test_face_needs_three_vertices():
    with pytest.raises(InvalidArgumentError):
        Face2D(0, [Point2D(0, 0), Point2D(1, 1)])


def test_add_point_detects_edge(face):
    delta = face.add_annotated_point(Point2D(0.5, 1.0))
    assert list(delta.points_added) == [4]
    assert face.annotated_points[4].edge_id == 1
    face.add_annotated_point(Point2D(0.3, 0.3))
    assert face.annotated_points[5].edge_id == NO_EDGE
    assert face.boundary_position(4) == pytest.approx(1.5)


def test_add_point_rejects_outside_and_duplicates(face):
    with pytest.raises(InvalidArgumentError):
        face.add_annotated_point(Point2D(2.0, 2.0))
    face.add_annotated_point(Point2D(0.5, 0.5))
    with pytest.raises(ConflictError):
        face.add_annotated_point(Point2D(0.5, 0.5))
    with pytest.raises(ConflictError):
        face.add_annotated_point(Point2D(1.0, 1.0))


def test_line_requests_are_validated(face):
    with pytest.raises(InvalidArgumentError):
        face.add_annotated_line(1, 1)
    with pytest.raises(NotFoundError):
        face.add_annotated_line(1, 9)
    face.add_annotated_line(0, 2)
    with pytest.raises(ConflictError):
        face.add_annotated_line(2, 0)


def test_line_through_existing_point_is_split(face):
    face.add_annotated_point(Point2D(0.5, 0.5))
    delta = face.add_annotated_line(0, 2)
    assert {line.endpoints() for line in delta.lines_added.values()} == {
        frozenset((0, 4)), frozenset((4, 2)),
    }


def test_crossing_lines_are_split_at_the_crossing(face):
    face.add_annotated_point(Point2D(0.0, 0.5))
    face.add_annotated_point(Point2D(1.0, 0.5))
    face.add_annotated_line(4, 5)
    face.add_annotated_point(Point2D(0.5, 0.0))
    face.add_annotated_point(Point2D(0.5, 1.0))

    delta = face.add_annotated_line(6, 7)

    assert list(delta.points_added) == [8]
    crossing = face.get_point(8)
    assert (crossing.x, crossing.y) == pytest.approx((0.5, 0.5))
    assert delta.lines_removed == [0]
    assert {line.endpoints() for line in face.annotated_lines.values()} == {
        frozenset((4, 8)), frozenset((8, 5)), frozenset((6, 8)), frozenset((8, 7)),
    }


def test_deleting_a_point_removes_its_lines(face):
    face.add_annotated_point(Point2D(0.5, 0.5))
    face.add_annotated_line(4, 0)
    face.add_annotated_line(4, 2)
    face.add_annotated_line(0, 1)

    delta = face.del_annotated_point(4)

    assert delta.points_removed == [4]
    assert sorted(delta.lines_removed) == [0, 1]
    assert list(face.annotated_lines) == [2]


def test_vertices_cannot_be_deleted(face):
    with pytest.raises(InvalidArgumentError):
        face.del_annotated_point(0)
    with pytest.raises(NotFoundError):
        face.del_annotated_point(12)
    with pytest.raises(NotFoundError):
        face.del_annotated_line(0)


def test_find_nearest_point(face):
    face.add_annotated_point(Point2D(0.5, 0.5))
    assert face.find_nearest_point(Point2D(0.45, 0.55)) == 4
    assert face.find_nearest_point(Point2D(0.9, 0.1)) == 3


def test_check_invariants_catches_dangling_line(face):
    face.annotated_lines[0] = AnnotatedLine(0, 42)
    with pytest.raises(InvariantViolationError):
        face.check_invariants()


def test_twin_carries_the_same_ids(face):
    face.add_annotated_point(Point2D(0.25, 0.75))
    face.add_annotated_line(4, 2)
    twin = Face3D.from_face_2d(face)

    assert twin.annotated_points[4].point == Point3D(0.25, 0.75, 0.0)
    assert twin.annotated_lines == face.annotated_lines
    assert twin.next_point_id == face.next_point_id


def test_apply_annotation_delta_mirrors_the_edit(face):
    twin = Face3D.from_face_2d(face)
    delta = face.add_annotated_point(Point2D(0.5, 0.25))
    twin.apply_annotation_delta(delta, face)
    assert twin.annotated_points[4].point.to_tuple() == pytest.approx((0.5, 0.25, 0.0))

    removal = face.del_annotated_point(4)
    twin.apply_annotation_delta(removal, face)
    assert twin.annotated_points == {}


def test_translation_follows_a_rotated_twin(face):
    twin = Face3D.from_face_2d(face)
    twin.rotate(Point3D(0, 0, 0), Point3D(1, 0, 0), 90.0)
    assert twin.principal_normal.to_tuple() == pytest.approx((0.0, -1.0, 0.0))

    lifted = translate_2d_to_3d(face, twin, Point2D(0.5, 0.5))
    assert lifted.to_tuple() == pytest.approx((0.5, 0.0, 0.5))
    flat = translate_3d_to_2d(twin, face, lifted)
    assert flat.to_tuple() == pytest.approx((0.5, 0.5))


def test_3d_containment(face):
    twin = Face3D.from_face_2d(face)
    assert twin.contained_in_face(Point3D(0.5, 0.5, 0.0))
    assert not twin.contained_in_face(Point3D(0.5, 0.5, 0.5))
    assert not twin.contained_in_face(Point3D(1.5, 0.5, 0.0))
