import pytest

from paperfold.controller.paper_manager import PaperManager
from paperfold.model.face import Face2D, Face3D
from paperfold.model.geometry_primitives import Point2D
from paperfold.model.stack import FaceNode
from paperfold.model.state import PaperState


def square(x0, y0, size=1.0):
    """Clockwise corners of an axis-aligned square whose lower-left corner is (x0, y0)."""
    return [
        Point2D(x0, y0),
        Point2D(x0, y0 + size),
        Point2D(x0 + size, y0 + size),
        Point2D(x0 + size, y0),
    ]


@pytest.fixture
def manager():
    """A manager holding the unit square as face 0."""
    m = PaperManager()
    assert m.create_new_paper(square(0.0, 0.0)).ok
    return m


@pytest.fixture
def halving_points(manager):
    """Points 4 = (0.5, 1) and 5 = (0.5, 0) on the unit square, ready for a vertical fold."""
    assert manager.add_annotated_point(0, Point2D(0.5, 1.0)).ok
    assert manager.add_annotated_point(0, Point2D(0.5, 0.0)).ok
    return 4, 5


@pytest.fixture
def flat_state():
    """
    Builder for a flat sheet made of several faces.

    polygons: vertex lists; face ids follow list order.
    joins: (face_a, edge_a, face_b, edge_b) tuples, each joined at 180 degrees
        and put in a correlated-edge group of its own.
    points: face index -> 2D points to annotate before the twins are made.
    All faces share layer 0 of a single component.
    """
    def build(polygons, joins, points=None):
        points = points or {}
        state = PaperState()
        for index, vertices in enumerate(polygons):
            face_id = state.new_face_id()
            face = Face2D(face_id, vertices)
            for point in points.get(index, ()):
                face.add_annotated_point(point)
            state.add_face_pair(face, Face3D.from_face_2d(face))
            state.adjacency.add_face(face_id)
        for face_a, edge_a, face_b, edge_b in joins:
            state.adjacency.add_edge(face_a, edge_a, face_b, edge_b, 180.0)
            state.correlated.add_group([(face_a, face_b)])
        layer = {face_id: FaceNode(face_id) for face_id in state.face_ids()}
        state.layers.register(state.layers.new_component([layer]))
        state.check_invariants()
        return state

    return build


@pytest.fixture
def two_squares(flat_state):
    """Face 0 = [0,1]x[0,1] and face 1 = [1,2]x[0,1], joined along x = 1."""
    return flat_state([square(0.0, 0.0), square(1.0, 0.0)], [(0, 2, 1, 0)])
