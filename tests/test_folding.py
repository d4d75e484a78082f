import pytest

from paperfold.controller.folding import apply_split, create_split_face, merge_faces
from paperfold.model.errors import ConflictError, InvalidArgumentError, NotFoundError
from paperfold.model.face import Face3D
from paperfold.model.geometry_primitives import NO_EDGE, Point2D

from conftest import square


@pytest.fixture
def sheet(flat_state):
    """Unit square with fold points 4 = (0.5, 1) and 5 = (0.5, 0)."""
    return flat_state([square(0.0, 0.0)], [], {0: [Point2D(0.5, 1.0), Point2D(0.5, 0.0)]})


def _coords(face):
    return [(round(v.x, 6), round(v.y, 6)) for v in face.vertices]


def test_split_builds_children_in_boundary_order(sheet):
    result = create_split_face(sheet, 0, 5, 4)

    assert _coords(result.left) == [(0.5, 1.0), (1.0, 1.0), (1.0, 0.0), (0.5, 0.0)]
    assert _coords(result.right) == [(0.5, 0.0), (0.0, 0.0), (0.0, 1.0), (0.5, 1.0)]
    assert result.left_edge_map == {2: 1}
    assert result.right_edge_map == {0: 1}
    assert result.fold_edge_ids == {1: (0, 2), 3: (2, 0)}
    assert result.left_point_map == {4: 0, 2: 1, 3: 2, 5: 3}
    # Nothing is committed yet
    assert sheet.face_ids() == [0]


def test_apply_split_joins_the_last_edges(sheet):
    result = create_split_face(sheet, 0, 4, 5)
    apply_split(sheet, result, 180.0)
    sheet.correlated.add_group([result.child_ids])
    left, right = result.child_ids

    assert sheet.face_ids() == [left, right]
    entry = sheet.adjacency.get_entry(left, right)
    assert (entry.my_edge_id, entry.other_edge_id) == (3, 3)
    assert sheet.faces3d[left].vertex_count == 4


def test_annotations_go_to_the_side_that_holds_them(flat_state):
    state = flat_state([square(0.0, 0.0)], [], {0: [
        Point2D(0.5, 1.0), Point2D(0.5, 0.0), Point2D(0.75, 0.5), Point2D(0.25, 0.5), Point2D(0.5, 0.5),
    ]})
    face = state.faces2d[0]
    face.add_annotated_line(6, 2)
    face.add_annotated_line(7, 8)
    face.add_annotated_line(4, 5)
    state.faces3d[0] = Face3D.from_face_2d(face)

    result = create_split_face(state, 0, 4, 5)

    left, right = result.left, result.right
    assert left.get_point(result.left_point_map[6]).to_tuple() == (0.75, 0.5)
    assert left.find_line(result.left_point_map[6], 1) is not None
    # The point on the fold is kept by the side whose line uses it
    assert result.right_point_map[8] in right.annotated_points
    assert right.annotated_points[result.right_point_map[8]].edge_id == 3
    assert 8 not in result.left_point_map
    # Lines along the fold are dropped
    assert len(result.discarded_line_ids) == 2
    assert result.discarded_point_ids == []
    assert len(left.annotated_lines) == 1
    assert len(right.annotated_lines) == 1
    assert set(left.annotated_lines) == set(result.left_3d.annotated_lines)


def test_points_left_hanging_on_the_fold_are_dropped(flat_state):
    state = flat_state([square(0.0, 0.0)], [], {0: [Point2D(0.5, 1.0), Point2D(0.5, 0.0), Point2D(0.5, 0.5)]})
    result = create_split_face(state, 0, 4, 5)
    assert result.discarded_point_ids == [6]
    assert result.left.annotated_points == {}
    assert result.discarded_delta().points_removed == [6]


def test_line_across_the_fold_is_a_conflict(flat_state):
    state = flat_state([square(0.0, 0.0)], [], {0: [
        Point2D(0.5, 1.0), Point2D(0.5, 0.0), Point2D(0.25, 0.25), Point2D(0.75, 0.25),
    ]})
    state.faces2d[0].add_annotated_line(6, 7)
    with pytest.raises(ConflictError):
        create_split_face(state, 0, 4, 5)


def test_split_rejects_bad_points(sheet):
    with pytest.raises(InvalidArgumentError):
        create_split_face(sheet, 0, 4, 4)
    with pytest.raises(NotFoundError):
        create_split_face(sheet, 0, 4, 9)
    with pytest.raises(NotFoundError):
        create_split_face(sheet, 3, 4, 5)
    # Adjacent corners would only cut along an edge
    with pytest.raises(InvalidArgumentError):
        create_split_face(sheet, 0, 0, 1)


def test_split_rejects_interior_points(flat_state):
    state = flat_state([square(0.0, 0.0)], [], {0: [Point2D(0.5, 1.0), Point2D(0.5, 0.5)]})
    with pytest.raises(InvalidArgumentError):
        create_split_face(state, 0, 4, 5)


def test_merge_drops_straight_seam_ends(two_squares):
    result = merge_faces(two_squares, 0, 1, {0, 1})

    merged = result.merged
    assert _coords(merged) == [(0.0, 0.0), (0.0, 1.0), (2.0, 1.0), (2.0, 0.0)]
    assert merged.vertex_count == 4 + 4 - 2 - 2
    # The old seam ends survive as boundary annotations
    seam_ends = sorted(p.point.to_tuple() for p in merged.annotated_points.values())
    assert seam_ends == [(1.0, 0.0), (1.0, 1.0)]
    assert {p.edge_id for p in merged.annotated_points.values()} == {1, 3}
    assert result.edge_map_a == {0: 0, 1: 1, 3: 3}
    assert result.edge_map_b == {1: 1, 2: 2, 3: 3}
    assert two_squares.face_ids() == [merged.face_id]


def test_merge_keeps_a_seam_end_that_turns(flat_state):
    triangle = [Point2D(1.0, 0.0), Point2D(1.0, 1.0), Point2D(2.0, 0.0)]
    state = flat_state([square(0.0, 0.0), triangle], [(0, 2, 1, 0)])

    merged = merge_faces(state, 0, 1, {0, 1}).merged

    assert _coords(merged) == [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (2.0, 0.0)]
    assert merged.vertex_count == 4 + 3 - 2 - 1


def test_merge_collapses_nearby_seam_points(flat_state):
    state = flat_state(
        [square(0.0, 0.0), square(1.0, 0.0)],
        [(0, 2, 1, 0)],
        {0: [Point2D(1.0, 0.5), Point2D(0.5, 0.5)], 1: [Point2D(1.0, 0.52), Point2D(1.5, 0.5)]},
    )
    state.faces2d[0].add_annotated_line(4, 5)
    state.faces2d[1].add_annotated_line(4, 5)
    state.faces3d[0] = Face3D.from_face_2d(state.faces2d[0])
    state.faces3d[1] = Face3D.from_face_2d(state.faces2d[1])

    result = merge_faces(state, 0, 1, {0, 1})

    assert result.point_map_b[4] == result.point_map_a[4]
    merged = result.merged
    # Two straight seam ends plus three of the four annotations
    assert len(merged.annotated_points) == 5
    assert merged.annotated_points[result.point_map_a[4]].edge_id == NO_EDGE
    assert len(merged.annotated_lines) == 2
    assert merged.find_line(result.point_map_a[4], result.point_map_b[5]) is not None


def test_merge_requires_a_shared_edge(flat_state):
    state = flat_state([square(0.0, 0.0), square(3.0, 0.0)], [])
    with pytest.raises(NotFoundError):
        merge_faces(state, 0, 1)
