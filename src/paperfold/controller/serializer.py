"""
Persistence Records
===================
Builds the JSON-ready payloads the network layer sends after an edit.

Nothing here performs I/O. The in-memory state is the source of truth: a
payload that fails to reach the server does not roll back the edit.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Union, TYPE_CHECKING

from paperfold.model.errors import NotFoundError
from paperfold.model.face import AnnotationDelta
from paperfold.model.geometry_primitives import NO_EDGE

if TYPE_CHECKING:
    from paperfold.controller.paper_manager import FoldReport
    from paperfold.model.face import Face2D
    from paperfold.model.state import PaperState

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]


def _annotations(
    points: Iterable,
    lines: Iterable,
    deleted_points: Iterable[int] = (),
    deleted_lines: Iterable[int] = (),
) -> Payload:
    return {
        "points": [
            {
                "idInFace": point_id,
                "x": annotated.point.x,
                "y": annotated.point.y,
                "onEdgeIdInFace": None if annotated.edge_id == NO_EDGE else annotated.edge_id,
            }
            for point_id, annotated in sorted(points)
        ],
        "lines": [
            {
                "idInFace": line_id,
                "point1IdInOrigami": line.start_point_id,
                "point2IdInOrigami": line.end_point_id,
            }
            for line_id, line in sorted(lines)
        ],
        "deletedPoints": sorted(deleted_points),
        "deletedLines": sorted(deleted_lines),
    }


def serialize_annotation_delta(
    deltas: Union[AnnotationDelta, Iterable[AnnotationDelta]],
    origami_id: Optional[int],
    step_id: int,
) -> Payload:
    """Payload of an annotation edit: one entry per face touched."""
    if isinstance(deltas, AnnotationDelta):
        deltas = [deltas]
    faces = [
        {
            "idInOrigami": delta.face_id,
            "annotations": _annotations(
                delta.points_added.items(),
                delta.lines_added.items(),
                delta.points_removed,
                delta.lines_removed,
            ),
        }
        for delta in deltas
    ]
    return {"origamiId": origami_id, "stepIdInOrigami": step_id, "faces": faces}


def _edges(state: PaperState, face: Face2D) -> List[Payload]:
    joined = {entry.my_edge_id: entry for entry in state.adjacency.neighbors(face.face_id)}
    edges = []
    for edge_id in range(face.vertex_count):
        entry = joined.get(edge_id)
        if entry is None:
            edges.append({"idInFace": edge_id, "isFold": False})
        else:
            edges.append({
                "idInFace": edge_id,
                "isFold": True,
                "idInOtherFace": entry.other_edge_id,
                "otherFaceIdInOrigami": entry.other_face_id,
                "angle": int(round(entry.angle)),
            })
    return edges


def serialize_fold(
    report: FoldReport,
    state: PaperState,
    origami_id: Optional[int],
    step_id: int,
    anchored_face_id: Optional[int] = None,
) -> Payload:
    """Payload of a fold: every face it created, in full, plus the ids it deleted."""
    faces = []
    for descriptor in report.created_faces:
        if descriptor.face_id not in state.faces2d:
            raise NotFoundError(
                f"Face {descriptor.face_id} of the fold is no longer live.", {"face_id": descriptor.face_id}
            )
        face = state.faces2d[descriptor.face_id]
        faces.append({
            "idInOrigami": face.face_id,
            "vertices": [{"x": v.x, "y": v.y, "idInFace": i} for i, v in enumerate(face.vertices)],
            "edges": _edges(state, face),
            "annotations": _annotations(face.annotated_points.items(), face.annotated_lines.items()),
        })
    anchored = report.anchored_face_id if anchored_face_id is None else anchored_face_id
    logger.debug(f"Fold payload for step {step_id}: {len(faces)} face(s), "
                 f"{len(report.removed_face_ids)} deleted.")
    return {
        "origamiId": origami_id,
        "stepIdInOrigami": step_id,
        "anchoredIdInOrigami": anchored,
        "faces": faces,
        "deletedFaces": sorted(report.removed_face_ids),
    }
