import pytest

from paperfold.controller.layering import FoldCase, classify_fold, is_stable, rotate_faces
from paperfold.model.errors import InvalidArgumentError
from paperfold.model.face import Face2D, Face3D

from conftest import square


@pytest.mark.parametrize("start, end, case", [
    (180.0, 0.0, FoldCase.COMPLETE_SPLIT),
    (180.0, 360.0, FoldCase.COMPLETE_SPLIT),
    (180.0, 90.0, FoldCase.PARTIAL_SPLIT),
    (0.0, 180.0, FoldCase.COMPLETE_MERGE),
    (360.0, 180.0, FoldCase.COMPLETE_MERGE),
    (90.0, 180.0, FoldCase.RESOLVED_MERGE),
    (0.0, 360.0, FoldCase.COMPLETE_ALIGN),
    (0.0, 45.0, FoldCase.PARTIAL_ALIGN),
    (270.0, 360.0, FoldCase.RESOLVED_ALIGN),
    (45.0, 90.0, FoldCase.ADJUSTED_ALIGN),
])
def test_classify_fold(start, end, case):
    assert classify_fold(start, end) == case


@pytest.mark.parametrize("start, end", [
    (180.0, 180.0),
    (-10.0, 0.0),
    (0.0, 400.0),
])
def test_classify_fold_rejects(start, end):
    with pytest.raises(InvalidArgumentError):
        classify_fold(start, end)


def test_stable_angles():
    assert is_stable(0.0)
    assert is_stable(360.0)
    assert not is_stable(179.0)


def test_rotate_faces_about_anchor_edge():
    faces = {
        0: Face3D.from_face_2d(Face2D(0, square(0.0, 0.0))),
        1: Face3D.from_face_2d(Face2D(1, square(1.0, 0.0))),
    }
    rotate_faces(faces, [1], 0, 2, 90.0)

    far_corner = faces[1].vertices[2]
    assert far_corner.to_tuple() == pytest.approx((1.0, 1.0, 1.0))
    assert faces[1].principal_normal.to_tuple() == pytest.approx((-1.0, 0.0, 0.0))
    assert faces[0].vertices[2].to_tuple() == (1.0, 1.0, 0.0)
