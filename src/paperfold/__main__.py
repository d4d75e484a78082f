"""Command-line interface."""
import logging

from paperfold.controller.paper_manager import FoldSegment, PaperManager
from paperfold.controller.serializer import serialize_fold
from paperfold.logging_config import setup_logging
from paperfold.model.geometry_primitives import Point2D

logger = logging.getLogger("paperfold")


def main() -> None:
    setup_logging(level=logging.INFO)

    manager = PaperManager()
    face_id = manager.create_new_paper().value

    # Valley fold the default sheet in half along x = 0
    top = manager.add_annotated_point(face_id, Point2D(0.0, 3.0)).value
    bottom = manager.add_annotated_point(face_id, Point2D(0.0, -3.0)).value
    top_id = next(iter(top.points_added))
    bottom_id = next(iter(bottom.points_added))

    outcome = manager.split_fold([FoldSegment(face_id, top_id, bottom_id)], angle=90.0)
    if not outcome:
        logger.error(f"Fold failed: {outcome.message}")
        return
    report = outcome.value
    stationary = report.anchored_face_id
    mobile = next(d.face_id for d in report.created_faces if d.face_id != stationary)

    outcome = manager.align_fold(stationary, mobile, 0.0)
    logger.info(f"Closed the fold: {outcome.ok} ({outcome.value.fold_case if outcome else outcome.message})")

    state = manager.state
    logger.info(f"Faces: {state.face_ids()}")
    for fid in state.face_ids():
        neighbours = [(e.other_face_id, e.angle) for e in state.adjacency.neighbors(fid)]
        logger.info(f"  face {fid}: {state.faces2d[fid].vertex_count} vertices, joined to {neighbours}")
    for component in state.layers.components.values():
        logger.info(f"  {component!r}")

    payload = serialize_fold(report, state, state.origami_id, state.step_id)
    logger.info(f"Fold payload lists {len(payload['faces'])} face(s), deletes {payload['deletedFaces']}.")


if __name__ == "__main__":
    main()
