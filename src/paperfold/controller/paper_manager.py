"""
Paper Manager (Public Entry Point)
==================================
The one object the outside world (renderer, input handling, persistence) talks to.

Why is this file needed?
------------------------
1. Atomicity: every edit runs on a deep copy of the PaperState. The copy is
   validated (adjacency symmetry, correlated groups, LUG) and swapped in only
   when the whole edit succeeded.
2. Error boundary: failures inside the core are exceptions; here they become
   an Outcome with a short message. Invariant violations are logged with the
   ids involved.
3. Sequencing: a fold touches faces, adjacency, correlated groups and the LUG
   in a fixed order. This module owns that order.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from paperfold.config import COLLINEAR_TOLERANCE, DEFAULT_PAPER_VERTICES, FLAT_ANGLE
from paperfold.controller.folding import (
    FaceReId, SplitFaceResult, apply_split, create_split_face, merge_faces,
)
from paperfold.controller.layering import (
    MERGE_CASES, SPLIT_CASES, FoldCase, align_fold_layers, classify_fold, face_mutating_fold,
    is_angle, rotate_faces,
)
from paperfold.model.adjacency import MergeProblemEdge
from paperfold.model.errors import InvalidArgumentError, InvariantViolationError, Outcome, PaperError
from paperfold.model.face import (
    AnnotationDelta, Face2D, Face3D, FaceDescriptor, project_point_to_face, translate_3d_to_2d,
)
from paperfold.model.geometry_primitives import Point2D, Point3D, PointContext, create_point_2d
from paperfold.model.geometry_utils import polygon_area
from paperfold.model.state import PaperState

logger = logging.getLogger(__name__)


class FoldSide(StrEnum):
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class FoldSegment:
    """The part of a fold line that crosses one face, as two boundary point ids."""
    face_id: int
    point_a_id: int
    point_b_id: int


@dataclass
class FoldReport:
    """What a fold changed, for the renderer and the persistence layer."""
    fold_case: Optional[FoldCase]
    anchored_face_id: int
    created_faces: List[FaceDescriptor] = field(default_factory=list)
    removed_face_ids: List[int] = field(default_factory=list)
    annotation_deltas: List[AnnotationDelta] = field(default_factory=list)
    offset_deltas: Dict[int, float] = field(default_factory=dict)
    reid_maps: List[FaceReId] = field(default_factory=list)


def _reachable(state: PaperState, seeds: Set[int], blocked: Set[frozenset]) -> Set[int]:
    """Faces reachable from `seeds` through the adjacency graph without crossing a blocked pair."""
    seen = set(seeds)
    frontier = list(seeds)
    while frontier:
        face_id = frontier.pop()
        for entry in state.adjacency.neighbors(face_id):
            other = entry.other_face_id
            if other in seen or frozenset((face_id, other)) in blocked:
                continue
            seen.add(other)
            frontier.append(other)
    return seen


class PaperManager:
    """
    Owns the PaperState of one sheet and runs every edit on it.

    Every public method returns an Outcome; none of them raises for a rejected
    edit.
    """

    def __init__(self, state: Optional[PaperState] = None):
        self._state = state if state is not None else PaperState()

    @property
    def state(self) -> PaperState:
        return self._state

    def faces(self) -> List[int]:
        return self._state.face_ids()

    def get_face_2d(self, face_id: int) -> Outcome[Face2D]:
        return self._query(self._state.get_face_2d, face_id)

    def get_face_3d(self, face_id: int) -> Outcome[Face3D]:
        return self._query(self._state.get_face_3d, face_id)

    # ---------------- Plumbing ----------------

    @staticmethod
    def _query(getter: Callable[[int], Any], face_id: int) -> Outcome:
        try:
            return Outcome.success(getter(face_id))
        except PaperError as exc:
            return Outcome.failure(exc)

    def _run(self, name: str, operation: Callable[..., Any], *args, fresh: bool = False) -> Outcome:
        """Run `operation` on a copy of the state and swap it in if it succeeds."""
        if fresh:
            work = PaperState(origami_id=self._state.origami_id, step_id=self._state.step_id)
        else:
            work = copy.deepcopy(self._state)
        try:
            value = operation(work, *args)
            work.check_invariants()
        except InvariantViolationError as exc:
            logger.error(f"{name} aborted: {exc.message} (details: {exc.details})")
            return Outcome.failure(exc)
        except PaperError as exc:
            logger.warning(f"{name} rejected: {exc.message}")
            return Outcome.failure(exc)

        work.step_id += 1
        self._state = work
        logger.info(f"{name} committed at step {work.step_id}.")
        return Outcome.success(value)

    # ---------------- Paper ----------------

    def create_new_paper(
        self,
        vertices: Optional[Sequence[Union[Point2D, Tuple[float, float]]]] = None,
    ) -> Outcome[int]:
        """Start over with a single flat face (the default 6 x 6 sheet when no vertices are given)."""
        return self._run("create_new_paper", self._create_new_paper, vertices, fresh=True)

    @staticmethod
    def _create_new_paper(work: PaperState, vertices) -> int:
        raw = DEFAULT_PAPER_VERTICES if vertices is None else vertices
        points = [
            v if isinstance(v, Point2D) else create_point_2d(v[0], v[1], PointContext.VERTEX)
            for v in raw
        ]
        if len(points) < 3:
            raise InvalidArgumentError(f"A sheet needs at least 3 vertices, got {len(points)}.")
        area = polygon_area(points)
        if abs(area) <= COLLINEAR_TOLERANCE ** 2:
            raise InvalidArgumentError("The sheet has no area.")
        if area > 0:
            raise InvalidArgumentError("Sheet vertices must be given in clockwise order.")

        face_id = work.new_face_id()
        face_2d = Face2D(face_id, points)
        work.add_face_pair(face_2d, Face3D.from_face_2d(face_2d))
        work.adjacency.add_face(face_id)
        work.layers.add_single_face(face_id)
        logger.debug(f"New sheet with {len(points)} vertices as face {face_id}.")
        return face_id

    # ---------------- Annotations ----------------

    def add_annotated_point(self, face_id: int, point: Point2D) -> Outcome[AnnotationDelta]:
        return self._run("add_annotated_point", self._add_point, face_id, point)

    def add_annotated_point_3d(self, face_id: int, point: Point3D) -> Outcome[AnnotationDelta]:
        """Add a point picked in folded space; it is projected onto the face first."""
        return self._run("add_annotated_point_3d", self._add_point_3d, face_id, point)

    def add_annotated_line(self, face_id: int, start_point_id: int, end_point_id: int) -> Outcome[AnnotationDelta]:
        return self._run("add_annotated_line", self._edit, face_id, "add_annotated_line",
                         (start_point_id, end_point_id))

    def delete_annotated_point(self, face_id: int, point_id: int) -> Outcome[AnnotationDelta]:
        return self._run("delete_annotated_point", self._edit, face_id, "del_annotated_point", (point_id,))

    def delete_annotated_line(self, face_id: int, line_id: int) -> Outcome[AnnotationDelta]:
        return self._run("delete_annotated_line", self._edit, face_id, "del_annotated_line", (line_id,))

    @staticmethod
    def _edit(work: PaperState, face_id: int, method: str, args: tuple) -> AnnotationDelta:
        face_2d = work.get_face_2d(face_id)
        delta = getattr(face_2d, method)(*args)
        work.get_face_3d(face_id).apply_annotation_delta(delta, face_2d)
        return delta

    @classmethod
    def _add_point(cls, work: PaperState, face_id: int, point: Point2D) -> AnnotationDelta:
        return cls._edit(work, face_id, "add_annotated_point", (point,))

    @classmethod
    def _add_point_3d(cls, work: PaperState, face_id: int, point: Point3D) -> AnnotationDelta:
        face_3d = work.get_face_3d(face_id)
        on_face = project_point_to_face(point, face_3d)
        flat = translate_3d_to_2d(face_3d, work.get_face_2d(face_id), on_face)
        return cls._add_point(work, face_id, flat)

    # ---------------- Folds ----------------

    def split_fold(
        self,
        segments: Sequence[FoldSegment],
        angle: float,
        mobile_side: FoldSide = FoldSide.RIGHT,
    ) -> Outcome[FoldReport]:
        """
        Fold flat paper along a line, cutting every face the line crosses.

        The first segment decides which side moves: its `mobile_side` child and
        every face reachable from it without crossing the new fold edges.
        """
        return self._run("split_fold", self._split_fold, list(segments), angle, mobile_side)

    @staticmethod
    def _split_fold(work: PaperState, segments: List[FoldSegment], angle: float, mobile_side: FoldSide) -> FoldReport:
        case = classify_fold(FLAT_ANGLE, angle)
        if not segments:
            raise InvalidArgumentError("A fold needs at least one segment.")
        face_ids = [segment.face_id for segment in segments]
        if len(set(face_ids)) != len(face_ids):
            raise InvalidArgumentError("A fold line crosses each face at most once.", {"face_ids": face_ids})
        results: List[SplitFaceResult] = [
            create_split_face(work, s.face_id, s.point_a_id, s.point_b_id) for s in segments
        ]
        problems = []
        descendants: Dict[int, Tuple[int, int]] = {}
        for result in results:
            problems.extend(apply_split(work, result, angle))
            descendants[result.parent_face_id] = result.child_ids
        work.adjacency.resolve_split_problem_edges(problems, work.faces2d, descendants, work.correlated)
        work.correlated.add_group([result.child_ids for result in results])

        def sides(result: SplitFaceResult) -> Tuple[int, int]:
            left, right = result.child_ids
            return (left, right) if mobile_side == FoldSide.RIGHT else (right, left)

        anchor, seed = sides(results[0])
        blocked = {frozenset(result.child_ids) for result in results}
        mobile = _reachable(work, {seed}, blocked)
        for result in results:
            if set(result.child_ids) <= mobile:
                raise InvalidArgumentError(
                    f"The fold line does not separate face {result.parent_face_id}.",
                    {"face_id": result.parent_face_id},
                )
        if anchor in mobile:
            raise InvalidArgumentError("The fold line does not separate the paper.", {"face_id": anchor})

        fold_edge_id = work.faces2d[anchor].vertex_count - 1
        offsets = face_mutating_fold(
            work, case,
            descendants=descendants,
            mobile=mobile,
            anchor_face_id=anchor,
            fold_edge_id=fold_edge_id,
            end=angle,
        )
        created = [kid for result in results for kid in result.child_ids]
        return FoldReport(
            fold_case=case,
            anchored_face_id=anchor,
            created_faces=[work.faces3d[kid].descriptor() for kid in created],
            removed_face_ids=[result.parent_face_id for result in results],
            annotation_deltas=[result.discarded_delta() for result in results
                               if not result.discarded_delta().is_empty()],
            offset_deltas=offsets,
            reid_maps=[reid for result in results for reid in result.reid_maps()],
        )

    def merge_fold(self, face_a: int, face_b: int) -> Outcome[FoldReport]:
        """
        Unfold the fold between two faces back to 180 degrees and merge every
        pair of faces it created. `face_a` stays put.
        """
        return self._run("merge_fold", self._merge_fold, face_a, face_b)

    @staticmethod
    def _merge_fold(work: PaperState, face_a: int, face_b: int) -> FoldReport:
        entry = work.adjacency.get_entry(face_a, face_b)
        start = entry.angle
        case = None if is_angle(start, FLAT_ANGLE) else classify_fold(start, FLAT_ANGLE)
        pairs = work.correlated.pairs_of(work.correlated.lookup_group(face_a, face_b))
        blocked = {frozenset(pair) for pair in pairs}
        mobile = _reachable(work, {face_b}, blocked)
        if face_a in mobile:
            raise InvalidArgumentError(
                f"Faces {face_a} and {face_b} are joined around the fold; it cannot be undone.",
                {"face_a": face_a, "face_b": face_b},
            )

        oriented: List[Tuple[int, int]] = []
        for x, y in pairs:
            if y in mobile and x not in mobile:
                oriented.append((x, y))
            elif x in mobile and y not in mobile:
                oriented.append((y, x))
            else:
                raise InvalidArgumentError(
                    f"Faces {x} and {y} are on the same side of the fold.", {"pair": [x, y]}
                )
        oriented.sort(key=lambda pair: pair != (face_a, face_b))

        if case is not None:
            rotate_faces(work.faces3d, mobile, face_a, entry.my_edge_id, start - FLAT_ANGLE)
            for x, y in oriented:
                work.adjacency.set_angle(x, y, FLAT_ANGLE)

        excluded = {face for pair in oriented for face in pair}
        problems: List[MergeProblemEdge] = []
        merge_results = {}
        descendants: Dict[int, int] = {}
        results = []
        for stationary_face, mobile_face in oriented:
            result = merge_faces(work, stationary_face, mobile_face, excluded)
            results.append(result)
            problems.extend(result.problems)
            merge_results[stationary_face] = (result.merged_face_id, result.edge_map_a)
            merge_results[mobile_face] = (result.merged_face_id, result.edge_map_b)
            descendants[stationary_face] = descendants[mobile_face] = result.merged_face_id
        work.adjacency.resolve_merge_problem_edges(problems, merge_results, work.correlated)

        offsets = face_mutating_fold(
            work, case,
            descendants=descendants,
            mobile=mobile,
            anchor_face_id=descendants[face_a],
            pairs=oriented,
        )
        return FoldReport(
            fold_case=case,
            anchored_face_id=descendants[face_a],
            created_faces=[work.faces3d[r.merged_face_id].descriptor() for r in results],
            removed_face_ids=sorted(excluded),
            offset_deltas=offsets,
            reid_maps=[reid for result in results for reid in result.reid_maps()],
        )

    def align_fold(self, face_a: int, face_b: int, angle: float) -> Outcome[FoldReport]:
        """Change the angle of an existing fold without changing the face set. `face_a` stays put."""
        return self._run("align_fold", self._align_fold, face_a, face_b, angle)

    @staticmethod
    def _align_fold(work: PaperState, face_a: int, face_b: int, angle: float) -> FoldReport:
        entry = work.adjacency.get_entry(face_a, face_b)
        start = entry.angle
        if is_angle(start, angle):
            raise InvalidArgumentError(
                f"The fold between faces {face_a} and {face_b} is already at {angle} degrees.",
                {"face_a": face_a, "face_b": face_b},
            )
        case = classify_fold(start, angle)
        if case in SPLIT_CASES:
            raise InvalidArgumentError("The faces are flat; use a split fold.", {"face_a": face_a, "face_b": face_b})
        if case in MERGE_CASES:
            raise InvalidArgumentError("Unfolding to 180 degrees is a merge fold.",
                                       {"face_a": face_a, "face_b": face_b})

        pairs = work.correlated.pairs_of(work.correlated.lookup_group(face_a, face_b))
        mobile = _reachable(work, {face_b}, {frozenset(pair) for pair in pairs})
        if face_a in mobile:
            raise InvalidArgumentError(
                f"Faces {face_a} and {face_b} are joined around the fold; it cannot be turned.",
                {"face_a": face_a, "face_b": face_b},
            )
        for x, y in pairs:
            work.adjacency.set_angle(x, y, angle)

        offsets = align_fold_layers(work, case, mobile, face_a, entry.my_edge_id, start, angle)
        return FoldReport(fold_case=case, anchored_face_id=face_a, offset_deltas=offsets)
