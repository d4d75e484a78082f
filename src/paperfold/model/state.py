from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional

from paperfold.model.adjacency import CorrelatedEdges, FaceAdjacencyGraph
from paperfold.model.errors import InvariantViolationError, NotFoundError
from paperfold.model.face import Face2D, Face3D
from paperfold.model.stack import LayeredGraph

logger = logging.getLogger(__name__)


@dataclass
class PaperState:
    """
    Every registry of one sheet of paper.

    Face tables, the adjacency graph with its correlated-edge groups, the LUG
    and the id counters are fields here rather than module globals, so that an
    operation can run on a copy and be swapped in only when it succeeds.
    """
    faces2d: Dict[int, Face2D] = field(default_factory=dict)
    faces3d: Dict[int, Face3D] = field(default_factory=dict)
    adjacency: FaceAdjacencyGraph = field(default_factory=FaceAdjacencyGraph)
    correlated: CorrelatedEdges = field(default_factory=CorrelatedEdges)
    layers: LayeredGraph = field(default_factory=LayeredGraph)
    next_face_id: int = 0
    origami_id: Optional[int] = None
    step_id: int = 0

    def new_face_id(self) -> int:
        face_id = self.next_face_id
        self.next_face_id += 1
        return face_id

    def face_ids(self) -> List[int]:
        return sorted(self.faces2d)

    def get_face_2d(self, face_id: int) -> Face2D:
        if face_id not in self.faces2d:
            raise NotFoundError(f"Face {face_id} does not exist.", {"face_id": face_id})
        return self.faces2d[face_id]

    def get_face_3d(self, face_id: int) -> Face3D:
        if face_id not in self.faces3d:
            raise NotFoundError(f"Face {face_id} does not exist.", {"face_id": face_id})
        return self.faces3d[face_id]

    def add_face_pair(self, face_2d: Face2D, face_3d: Face3D) -> None:
        if face_2d.face_id != face_3d.face_id:
            raise InvariantViolationError(
                f"Twin faces carry different ids {face_2d.face_id} and {face_3d.face_id}.",
                {"face_2d": face_2d.face_id, "face_3d": face_3d.face_id},
            )
        self.faces2d[face_2d.face_id] = face_2d
        self.faces3d[face_3d.face_id] = face_3d

    def remove_face_pair(self, face_id: int) -> None:
        self.get_face_2d(face_id)
        del self.faces2d[face_id]
        del self.faces3d[face_id]

    def check_invariants(self) -> None:
        """Raise InvariantViolationError if any two registries disagree."""
        ids = set(self.faces2d)
        if ids != set(self.faces3d):
            raise InvariantViolationError(
                "2D and 3D face tables differ.", {"face_ids": sorted(ids ^ set(self.faces3d))}
            )
        if ids != set(self.adjacency.face_ids()):
            raise InvariantViolationError(
                "Adjacency graph and face table differ.",
                {"face_ids": sorted(ids ^ set(self.adjacency.face_ids()))},
            )
        for face_id in ids:
            face_2d, face_3d = self.faces2d[face_id], self.faces3d[face_id]
            face_2d.check_invariants()
            face_3d.check_invariants()
            if (set(face_2d.annotated_points) != set(face_3d.annotated_points)
                    or set(face_2d.annotated_lines) != set(face_3d.annotated_lines)
                    or face_2d.vertex_count != face_3d.vertex_count):
                raise InvariantViolationError(
                    f"Twins of face {face_id} are out of step.", {"face_id": face_id}
                )
        self.adjacency.check_symmetry()
        self.correlated.check_membership(self.adjacency)
        self.layers.check_invariants(ids)
