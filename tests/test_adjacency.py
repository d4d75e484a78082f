import pytest

from paperfold.model.adjacency import CorrelatedEdges, FaceAdjacencyGraph
from paperfold.model.errors import (
    ConflictError, InvalidArgumentError, InvariantViolationError, NotFoundError,
)
from paperfold.model.face import Face2D
from paperfold.model.geometry_primitives import Point2D
from paperfold.model.geometry_utils import segments_match

from conftest import square


@pytest.fixture
def graph():
    g = FaceAdjacencyGraph()
    for face_id in (0, 1, 2):
        g.add_face(face_id)
    g.add_edge(0, 2, 1, 0, 180.0)
    return g


def test_add_edge_is_symmetric(graph):
    forward = graph.get_entry(0, 1)
    backward = graph.get_entry(1, 0)
    assert (forward.my_edge_id, forward.other_edge_id) == (2, 0)
    assert (backward.my_edge_id, backward.other_edge_id) == (0, 2)
    graph.check_symmetry()


def test_add_edge_rejects_duplicates_and_loops(graph):
    with pytest.raises(ConflictError):
        graph.add_edge(1, 3, 0, 1, 90.0)
    with pytest.raises(InvalidArgumentError):
        graph.add_edge(2, 0, 2, 1, 90.0)
    with pytest.raises(NotFoundError):
        graph.add_edge(0, 0, 7, 0, 90.0)


def test_set_angle_updates_both_sides(graph):
    graph.set_angle(1, 0, 45.0)
    assert graph.get_entry(0, 1).angle == 45.0
    assert graph.get_entry(1, 0).angle == 45.0


def test_remove_face_drops_mirrors(graph):
    graph.add_edge(1, 2, 2, 0, 180.0)
    graph.remove_face(1)
    assert 1 not in graph
    assert graph.neighbors(0) == []
    assert graph.neighbors(2) == []
    graph.check_symmetry()


def test_check_symmetry_detects_missing_mirror(graph):
    graph.remove_face_from_graph(0, 1)
    with pytest.raises(InvariantViolationError):
        graph.check_symmetry()


def test_rewrite_on_split_moves_whole_edges(graph):
    problems = graph.rewrite_on_split(1, 3, 4, {0: 1}, {}, {})
    assert problems == []
    assert 1 not in graph
    entry = graph.get_entry(3, 0)
    assert (entry.my_edge_id, entry.other_edge_id, entry.angle) == (1, 2, 180.0)
    graph.check_symmetry()


def test_rewrite_on_split_defers_cut_edges(graph):
    problems = graph.rewrite_on_split(1, 3, 4, {}, {}, {0: (0, 2)})
    assert len(problems) == 1
    problem = problems[0]
    assert (problem.left_face_id, problem.left_edge_id) == (3, 0)
    assert (problem.right_face_id, problem.right_edge_id) == (4, 2)
    assert (problem.remote_face_id, problem.remote_edge_id) == (0, 2)
    assert graph.neighbors(0) == []


def test_rewrite_on_split_rejects_lost_edges(graph):
    with pytest.raises(InvariantViolationError):
        graph.rewrite_on_split(1, 3, 4, {}, {}, {})


def test_rewrite_on_merge_removes_seam_and_moves_connections(graph):
    graph.add_edge(1, 1, 2, 3, 90.0)
    correlated = CorrelatedEdges()
    correlated.add_group([(0, 1)])
    correlated.add_group([(1, 2)])

    problems = graph.rewrite_on_merge(0, 1, 5, {0: 0, 1: 1, 3: 3}, {1: 4, 2: 5, 3: 6}, (), correlated)

    assert problems == []
    assert graph.face_ids() == [2, 5]
    entry = graph.get_entry(5, 2)
    assert (entry.my_edge_id, entry.other_edge_id, entry.angle) == (4, 3, 90.0)
    assert correlated.pairs_of(correlated.lookup_group(5, 2)) == [(2, 5)]
    correlated.check_membership(graph)


def test_correlated_groups():
    correlated = CorrelatedEdges()
    group = correlated.add_group([(0, 1), (3, 2)])
    assert correlated.lookup_group(2, 3) == group
    assert correlated.pairs_of(group) == [(0, 1), (2, 3)]
    with pytest.raises(ConflictError):
        correlated.add_group([(1, 0)])
    with pytest.raises(NotFoundError):
        correlated.lookup_group(0, 3)


def test_replace_connection_drops_emptied_groups():
    correlated = CorrelatedEdges()
    group = correlated.add_group([(0, 1)])
    correlated.replace_connection((1, 0), [(0, 4), (0, 5)])
    assert correlated.pairs_of(group) == [(0, 4), (0, 5)]
    correlated.replace_connection((0, 4), [])
    correlated.replace_connection((0, 5), [])
    assert len(correlated) == 0


def test_replace_connection_keeps_pairs_in_one_group():
    correlated = CorrelatedEdges()
    correlated.add_group([(0, 1)])
    correlated.add_group([(2, 3)])
    with pytest.raises(InvariantViolationError):
        correlated.replace_connection((0, 1), [(2, 3)])


def test_membership_requires_a_group_per_edge(graph):
    correlated = CorrelatedEdges()
    with pytest.raises(InvariantViolationError):
        correlated.check_membership(graph)
    correlated.add_group([(0, 1)])
    correlated.check_membership(graph)


def _halves(x0, top_id, bottom_id):
    """Top and bottom halves (clockwise) of the unit square at x0, cut along y = 0.5."""
    top = [Point2D(x0, 0.5), Point2D(x0, 1.0), Point2D(x0 + 1.0, 1.0), Point2D(x0 + 1.0, 0.5)]
    bottom = [Point2D(x0 + 1.0, 0.5), Point2D(x0 + 1.0, 0.0), Point2D(x0, 0.0), Point2D(x0, 0.5)]
    return {top_id: Face2D(top_id, top), bottom_id: Face2D(bottom_id, bottom)}


@pytest.fixture
def cut_pair():
    """Squares 0 and 1 joined along x = 1; face 0 is cut along y = 0.5 into 2 (top) and 3 (bottom)."""
    g = FaceAdjacencyGraph()
    g.add_face(0)
    g.add_face(1)
    g.add_edge(0, 2, 1, 0, 180.0)
    correlated = CorrelatedEdges()
    correlated.add_group([(0, 1)])
    problems = g.rewrite_on_split(0, 2, 3, {}, {}, {2: (2, 0)}, correlated)
    return g, correlated, problems


def test_resolve_cut_edge_against_a_remote_split_by_the_same_fold(cut_pair):
    graph, correlated, problems = cut_pair
    assert graph.rewrite_on_split(1, 4, 5, {}, {}, {0: (0, 2)}, correlated) == []
    faces = {**_halves(0.0, 2, 3), **_halves(1.0, 4, 5)}

    created = graph.resolve_split_problem_edges(problems, faces, {0: (2, 3), 1: (4, 5)}, correlated)

    assert created == [(2, 4), (3, 5)]
    top = graph.get_entry(2, 4)
    assert (top.my_edge_id, top.other_edge_id, top.angle) == (2, 0, 180.0)
    bottom = graph.get_entry(3, 5)
    assert (bottom.my_edge_id, bottom.other_edge_id) == (0, 2)
    assert not graph.has_entry(2, 5)
    assert correlated.pairs_of(correlated.lookup_group(2, 4)) == [(2, 4), (3, 5)]
    graph.check_symmetry()
    correlated.check_membership(graph)


def test_resolve_cut_edge_against_an_unsplit_remote(cut_pair):
    graph, correlated, problems = cut_pair
    faces = {**_halves(0.0, 2, 3), 1: Face2D(1, square(1.0, 0.0))}

    created = graph.resolve_split_problem_edges(problems, faces, {0: (2, 3)}, correlated)

    assert created == [(2, 1), (3, 1)]
    assert graph.get_entry(1, 2).my_edge_id == 0
    assert graph.get_entry(1, 3).my_edge_id == 0
    assert correlated.pairs_of(correlated.lookup_group(1, 2)) == [(1, 2), (1, 3)]
    graph.check_symmetry()
    correlated.check_membership(graph)


@pytest.mark.parametrize("gap, joined", [(0.009, True), (0.011, False)])
def test_edge_matching_tolerance(gap, joined):
    portion = (Point2D(1.0, 1.0), Point2D(1.0, 0.5))
    remote_edge = (Point2D(1.0 + gap, 0.0), Point2D(1.0 + gap, 1.0))
    assert segments_match(*portion, *remote_edge) is joined


def test_resolver_joins_an_edge_just_inside_the_tolerance(cut_pair):
    graph, _, problems = cut_pair
    faces = {**_halves(0.0, 2, 3), 1: Face2D(1, square(1.009, 0.0))}

    assert graph.resolve_split_problem_edges(problems, faces, {0: (2, 3)}) == [(2, 1), (3, 1)]


def test_resolver_fails_when_no_remote_edge_matches(cut_pair):
    graph, _, problems = cut_pair
    faces = {**_halves(0.0, 2, 3), 1: Face2D(1, square(1.011, 0.0))}

    with pytest.raises(InvariantViolationError):
        graph.resolve_split_problem_edges(problems, faces, {0: (2, 3)})
