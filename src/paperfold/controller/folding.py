"""
Fold Orchestrator
=================
Cuts a face in two along a fold line, or joins two faces back into one.

Why is this file needed?
------------------------
1. Geometry: it builds the child polygons of a split (or the merged polygon)
   from the parent boundary.
2. Re-indexing: no id survives a split or merge. Every vertex, annotation point,
   line and edge of the parent face(s) is mapped to its id in the new face(s).
   The maps drive the adjacency rewrite, the 3D twins and the persistence layer.
3. Annotations: points and lines are handed to the child that contains them.
   Lines along the fold itself (and points left hanging by them) are dropped.

A split is computed first (create_split_face) and committed separately
(apply_split) so that every segment of a fold can be validated on the same
state. A merge is computed and committed in one go.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, List, Sequence, Set, Tuple, TYPE_CHECKING

from paperfold.config import COLLINEAR_TOLERANCE, MERGE_POINT_TOLERANCE, STRAIGHT_ANGLE_COSINE
from paperfold.model.adjacency import MergeProblemEdge, SplitProblemEdge
from paperfold.model.errors import ConflictError, InvalidArgumentError, InvariantViolationError
from paperfold.model.face import AnnotationDelta, Face2D, Face3D
from paperfold.model.geometry_primitives import (
    NO_EDGE, AnnotatedLine, AnnotatedPoint, Point, Point2D, distance, dot_product, normalize, subtract,
)
from paperfold.model.geometry_utils import points_coplanar, turning_cosine

if TYPE_CHECKING:
    from paperfold.model.state import PaperState

logger = logging.getLogger(__name__)

LEFT = 1
RIGHT = -1
ON_FOLD = 0


@dataclass
class FaceReId:
    """How the ids of one destroyed face map onto a face that replaced it."""
    source_face_id: int
    target_face_id: int
    point_ids: Dict[int, int] = field(default_factory=dict)
    line_ids: Dict[int, int] = field(default_factory=dict)


@dataclass
class SplitFaceResult:
    """Both children of a split, computed but not yet committed."""
    parent_face_id: int
    left: Face2D
    right: Face2D
    left_3d: Face3D
    right_3d: Face3D
    left_edge_map: Dict[int, int]
    right_edge_map: Dict[int, int]
    fold_edge_ids: Dict[int, Tuple[int, int]]
    left_point_map: Dict[int, int]
    right_point_map: Dict[int, int]
    left_line_map: Dict[int, int]
    right_line_map: Dict[int, int]
    discarded_point_ids: List[int] = field(default_factory=list)
    discarded_line_ids: List[int] = field(default_factory=list)

    @property
    def child_ids(self) -> Tuple[int, int]:
        return self.left.face_id, self.right.face_id

    def reid_maps(self) -> List[FaceReId]:
        return [
            FaceReId(self.parent_face_id, self.left.face_id, dict(self.left_point_map), dict(self.left_line_map)),
            FaceReId(self.parent_face_id, self.right.face_id, dict(self.right_point_map), dict(self.right_line_map)),
        ]

    def discarded_delta(self) -> AnnotationDelta:
        return AnnotationDelta(
            self.parent_face_id,
            points_removed=list(self.discarded_point_ids),
            lines_removed=list(self.discarded_line_ids),
        )


@dataclass
class MergeFaceResult:
    face_a_id: int
    face_b_id: int
    merged: Face2D
    merged_3d: Face3D
    edge_map_a: Dict[int, int]
    edge_map_b: Dict[int, int]
    point_map_a: Dict[int, int]
    point_map_b: Dict[int, int]
    line_map_a: Dict[int, int]
    line_map_b: Dict[int, int]
    problems: List[MergeProblemEdge] = field(default_factory=list)

    @property
    def merged_face_id(self) -> int:
        return self.merged.face_id

    def reid_maps(self) -> List[FaceReId]:
        return [
            FaceReId(self.face_a_id, self.merged_face_id, dict(self.point_map_a), dict(self.line_map_a)),
            FaceReId(self.face_b_id, self.merged_face_id, dict(self.point_map_b), dict(self.line_map_b)),
        ]


# ---------------- Split ----------------

def _child_edges(face: Face2D, vertex_ids: Sequence[int]) -> Tuple[Dict[int, int], Dict[int, int]]:
    """
    Which parent edge each child edge came from.

    Returns (whole, cut): parent edge -> child edge, for edges carried whole and
    for edges of which the child holds only the portion up to a fold point. The
    last child edge is the fold edge and has no parent.
    """
    whole: Dict[int, int] = {}
    cut: Dict[int, int] = {}
    for k in range(len(vertex_ids) - 1):
        a, b = vertex_ids[k], vertex_ids[k + 1]
        if face.is_vertex(a) and face.is_vertex(b):
            whole[a] = k
        else:
            cut[face.edge_of_point(a)] = k
    return whole, cut


def _build_child(
    face: Face2D,
    twin: Face3D,
    child_id: int,
    vertex_ids: Sequence[int],
    point_ids: Iterable[int],
    on_fold: Set[int],
    lines: Sequence[Tuple[int, AnnotatedLine]],
) -> Tuple[Face2D, Face3D, Dict[int, int], Dict[int, int], Dict[int, int], Dict[int, int]]:
    child = Face2D(child_id, [face.get_point(pid) for pid in vertex_ids])
    child_3d = Face3D(
        child_id,
        [twin.get_point(pid) for pid in vertex_ids],
        principal_normal=twin.principal_normal,
        thickness=twin.thickness,
        offset=twin.offset,
    )
    whole, cut = _child_edges(face, vertex_ids)
    fold_edge = len(vertex_ids) - 1
    point_map = {pid: k for k, pid in enumerate(vertex_ids)}

    for pid in sorted(point_ids):
        annotated = face.annotated_points[pid]
        if pid in on_fold:
            edge = fold_edge
        elif annotated.edge_id == NO_EDGE:
            edge = NO_EDGE
        elif annotated.edge_id in whole:
            edge = whole[annotated.edge_id]
        elif annotated.edge_id in cut:
            edge = cut[annotated.edge_id]
        else:
            edge = child.find_edge_for(annotated.point)
        new_id = child.next_point_id
        child.insert_annotated_point(new_id, AnnotatedPoint(annotated.point, edge))
        child_3d.insert_annotated_point(new_id, AnnotatedPoint(twin.annotated_points[pid].point, edge))
        point_map[pid] = new_id

    line_map: Dict[int, int] = {}
    for line_id, line in lines:
        new_line = AnnotatedLine(point_map[line.start_point_id], point_map[line.end_point_id])
        new_id = child.next_line_id
        child.insert_annotated_line(new_id, new_line)
        child_3d.insert_annotated_line(new_id, new_line)
        line_map[line_id] = new_id

    return child, child_3d, whole, cut, point_map, line_map


def create_split_face(state: PaperState, face_id: int, point_a_id: int, point_b_id: int) -> SplitFaceResult:
    """
    Compute the two children of cutting `face_id` between two boundary points.

    The points are ordered by their position along the boundary (P before Q).
    The left child is P, the vertices strictly between P and Q, then Q; the
    right child is Q, the remaining vertices, then P. Each child closes with
    its fold edge. Nothing is committed to `state` except the two face ids.

    Raises:
        NotFoundError: face or point missing.
        InvalidArgumentError: same point twice, a point off the boundary, or a
            child with fewer than three vertices.
        ConflictError: an annotation line that crosses the fold line.
    """
    face = state.get_face_2d(face_id)
    twin = state.get_face_3d(face_id)
    if point_a_id == point_b_id:
        raise InvalidArgumentError(
            "A fold needs two different points.", {"face_id": face_id, "point_id": point_a_id}
        )
    pos_a = face.boundary_position(point_a_id)
    pos_b = face.boundary_position(point_b_id)
    if distance(face.get_point(point_a_id), face.get_point(point_b_id)) <= COLLINEAR_TOLERANCE:
        raise InvalidArgumentError(
            "The two fold points coincide.", {"face_id": face_id, "points": [point_a_id, point_b_id]}
        )
    if pos_a <= pos_b:
        p_id, q_id, pos_p, pos_q = point_a_id, point_b_id, pos_a, pos_b
    else:
        p_id, q_id, pos_p, pos_q = point_b_id, point_a_id, pos_b, pos_a

    n = face.vertex_count
    inner = [i for i in range(n) if pos_p < i < pos_q]
    outer = [i for i in range(n) if i > pos_q] + [i for i in range(n) if i < pos_p]
    left_ids = [p_id] + inner + [q_id]
    right_ids = [q_id] + outer + [p_id]
    if len(left_ids) < 3 or len(right_ids) < 3:
        raise InvalidArgumentError(
            f"Folding face {face_id} between points {p_id} and {q_id} runs along its boundary.",
            {"face_id": face_id, "points": [p_id, q_id]},
        )

    p = face.get_point(p_id)
    q = face.get_point(q_id)
    direction = normalize(subtract(q, p))
    perpendicular = Point2D(-direction.y, direction.x)
    reference = dot_product(subtract(face.vertices[inner[0]], p), perpendicular)
    if abs(reference) <= COLLINEAR_TOLERANCE:
        raise InvalidArgumentError(
            f"Face {face_id} has a vertex on the fold line.", {"face_id": face_id, "vertex_id": inner[0]}
        )
    left_sign = 1.0 if reference > 0 else -1.0

    def side_of(point: Point) -> int:
        d = dot_product(subtract(point, p), perpendicular) * left_sign
        if d > COLLINEAR_TOLERANCE:
            return LEFT
        if d < -COLLINEAR_TOLERANCE:
            return RIGHT
        return ON_FOLD

    inner_set, outer_set = set(inner), set(outer)

    def side_of_id(pid: int) -> int:
        if pid in (p_id, q_id):
            return ON_FOLD
        if pid in inner_set:
            return LEFT
        if pid in outer_set:
            return RIGHT
        return side_of(face.get_point(pid))

    left_lines: List[Tuple[int, AnnotatedLine]] = []
    right_lines: List[Tuple[int, AnnotatedLine]] = []
    discarded_lines: List[int] = []
    for line_id, line in sorted(face.annotated_lines.items()):
        sides = {side_of_id(line.start_point_id), side_of_id(line.end_point_id)}
        if LEFT in sides and RIGHT in sides:
            raise ConflictError(
                f"Line {line_id} of face {face_id} crosses the fold line.",
                {"face_id": face_id, "line_id": line_id},
            )
        if sides == {ON_FOLD}:
            discarded_lines.append(line_id)
        elif LEFT in sides:
            left_lines.append((line_id, line))
        else:
            right_lines.append((line_id, line))

    def referenced(lines: Sequence[Tuple[int, AnnotatedLine]]) -> Set[int]:
        return {pid for _, line in lines for pid in (line.start_point_id, line.end_point_id)}

    left_refs, right_refs = referenced(left_lines), referenced(right_lines)
    left_points: List[int] = []
    right_points: List[int] = []
    on_fold: Set[int] = set()
    discarded_points: List[int] = []
    for pid, annotated in sorted(face.annotated_points.items()):
        if pid in (p_id, q_id):
            continue
        side = side_of(annotated.point)
        if side == LEFT:
            left_points.append(pid)
        elif side == RIGHT:
            right_points.append(pid)
        else:
            on_fold.add(pid)
            if pid in left_refs:
                left_points.append(pid)
            if pid in right_refs:
                right_points.append(pid)
            if pid not in left_refs and pid not in right_refs:
                discarded_points.append(pid)

    left_id = state.new_face_id()
    right_id = state.new_face_id()
    left, left_3d, left_whole, left_cut, left_pmap, left_lmap = _build_child(
        face, twin, left_id, left_ids, left_points, on_fold, left_lines
    )
    right, right_3d, right_whole, right_cut, right_pmap, right_lmap = _build_child(
        face, twin, right_id, right_ids, right_points, on_fold, right_lines
    )
    if set(left_cut) != set(right_cut):
        raise InvariantViolationError(
            f"Children of face {face_id} disagree on the cut edges.",
            {"face_id": face_id, "left": sorted(left_cut), "right": sorted(right_cut)},
        )
    fold_edge_ids = {edge: (left_cut[edge], right_cut[edge]) for edge in left_cut}

    logger.debug(f"Split of face {face_id} between {p_id} and {q_id}: left {left_id} "
                 f"({left.vertex_count} vertices), right {right_id} ({right.vertex_count} vertices), "
                 f"{len(discarded_lines)} line(s) and {len(discarded_points)} point(s) dropped.")
    return SplitFaceResult(
        parent_face_id=face_id,
        left=left,
        right=right,
        left_3d=left_3d,
        right_3d=right_3d,
        left_edge_map=left_whole,
        right_edge_map=right_whole,
        fold_edge_ids=fold_edge_ids,
        left_point_map=left_pmap,
        right_point_map=right_pmap,
        left_line_map=left_lmap,
        right_line_map=right_lmap,
        discarded_point_ids=discarded_points,
        discarded_line_ids=discarded_lines,
    )


def apply_split(state: PaperState, result: SplitFaceResult, angle: float) -> List[SplitProblemEdge]:
    """
    Commit a split: swap the parent for its children and rewrite the adjacency.

    The new fold edge joins the last edges of the two children at `angle`.
    Connections on cut edges are returned for phase-2 resolution.
    """
    state.add_face_pair(result.left, result.left_3d)
    state.add_face_pair(result.right, result.right_3d)
    problems = state.adjacency.rewrite_on_split(
        result.parent_face_id,
        result.left.face_id,
        result.right.face_id,
        result.left_edge_map,
        result.right_edge_map,
        result.fold_edge_ids,
        state.correlated,
    )
    state.adjacency.add_edge(
        result.left.face_id, result.left.vertex_count - 1,
        result.right.face_id, result.right.vertex_count - 1,
        angle,
    )
    state.remove_face_pair(result.parent_face_id)
    return problems


# ---------------- Merge ----------------

def merge_faces(
    state: PaperState,
    face_a_id: int,
    face_b_id: int,
    excluded_face_ids: Iterable[int] = (),
) -> MergeFaceResult:
    """
    Join two faces along their shared edge and commit the result.

    The merged boundary starts at the far end of the seam on face A, walks A
    round to the near end, then walks B. A seam end that became a straight
    continuation is dropped from the vertices and kept as an annotation point
    on the merged boundary. Face B's annotation points on the seam collapse
    onto face A's when they are within MERGE_POINT_TOLERANCE.

    Raises:
        NotFoundError: a face is missing or the faces are not joined.
        InvalidArgumentError: inconsistent winding along the seam, or folded
            twins that are not coplanar.
    """
    if face_a_id == face_b_id:
        raise InvalidArgumentError("A face cannot be merged with itself.", {"face_id": face_a_id})
    fa, fb = state.get_face_2d(face_a_id), state.get_face_2d(face_b_id)
    ta, tb = state.get_face_3d(face_a_id), state.get_face_3d(face_b_id)
    entry = state.adjacency.get_entry(face_a_id, face_b_id)
    ea, eb = entry.my_edge_id, entry.other_edge_id
    na, nb = fa.vertex_count, fb.vertex_count
    details = {"face_a": face_a_id, "face_b": face_b_id}

    a_start, a_end = fa.edge(ea)
    b_start, b_end = fb.edge(eb)
    if distance(a_start, b_end) > COLLINEAR_TOLERANCE or distance(a_end, b_start) > COLLINEAR_TOLERANCE:
        raise InvalidArgumentError(
            f"Faces {face_a_id} and {face_b_id} do not run their shared edge in opposite directions.", details
        )
    if (not points_coplanar(list(ta.vertices) + list(tb.vertices))
            or dot_product(ta.principal_normal, tb.principal_normal) <= 0):
        raise InvalidArgumentError(f"Faces {face_a_id} and {face_b_id} are not coplanar.", details)

    # Ring entries are (face, vertex); index 0 and na - 1 are the seam ends
    ring: List[Tuple[str, int]] = [("a", (ea + 1 + t) % na) for t in range(na)]
    ring += [("b", (eb + 2 + t) % nb) for t in range(nb - 2)]
    size = len(ring)

    def point_2d(item: Tuple[str, int]) -> Point:
        return (fa if item[0] == "a" else fb).vertices[item[1]]

    def point_3d(item: Tuple[str, int]) -> Point:
        return (ta if item[0] == "a" else tb).vertices[item[1]]

    dropped = set()
    for r in (0, na - 1):
        cosine = turning_cosine(point_2d(ring[(r - 1) % size]), point_2d(ring[r]), point_2d(ring[(r + 1) % size]))
        if cosine < STRAIGHT_ANGLE_COSINE:
            dropped.add(r)
    retained = [r for r in range(size) if r not in dropped]
    if len(retained) < 3:
        raise InvalidArgumentError(f"Merging faces {face_a_id} and {face_b_id} is degenerate.", details)
    merged_index = {r: k for k, r in enumerate(retained)}

    def edge_for_ring(r: int) -> int:
        while r not in merged_index:
            r = (r - 1) % size
        return merged_index[r]

    def ring_of_a(i: int) -> int:
        return (i - ea - 1) % na

    def ring_of_b(j: int) -> int:
        if j == eb:
            return 0
        if j == (eb + 1) % nb:
            return na - 1
        return na + (j - eb - 2) % nb

    merged_id = state.new_face_id()
    merged = Face2D(merged_id, [point_2d(ring[r]) for r in retained])
    merged_3d = Face3D(
        merged_id,
        [point_3d(ring[r]) for r in retained],
        principal_normal=ta.principal_normal,
        thickness=ta.thickness,
        offset=ta.offset,
    )

    def put_point(point_2d_: Point, point_3d_: Point, edge: int) -> int:
        new_id = merged.next_point_id
        merged.insert_annotated_point(new_id, AnnotatedPoint(point_2d_, edge))
        merged_3d.insert_annotated_point(new_id, AnnotatedPoint(point_3d_, edge))
        return new_id

    edge_map_a = {i: edge_for_ring(ring_of_a(i)) for i in range(na) if i != ea}
    edge_map_b = {j: edge_for_ring(ring_of_b(j)) for j in range(nb) if j != eb}

    point_map_a: Dict[int, int] = {}
    for i in range(na):
        r = ring_of_a(i)
        if r in merged_index:
            point_map_a[i] = merged_index[r]
        else:
            point_map_a[i] = put_point(fa.vertices[i], ta.vertices[i], edge_for_ring(r))
    point_map_b: Dict[int, int] = {
        eb: point_map_a[(ea + 1) % na],
        (eb + 1) % nb: point_map_a[ea],
    }
    for j in range(nb):
        if j not in point_map_b:
            point_map_b[j] = merged_index[ring_of_b(j)]

    seam_points: List[Tuple[int, Point]] = []
    for pid, annotated in sorted(fa.annotated_points.items()):
        on_seam = annotated.edge_id == ea
        edge = edge_map_a[annotated.edge_id] if annotated.on_edge and not on_seam else NO_EDGE
        new_id = put_point(annotated.point, ta.annotated_points[pid].point, edge)
        point_map_a[pid] = new_id
        if on_seam:
            seam_points.append((new_id, annotated.point))
    for pid, annotated in sorted(fb.annotated_points.items()):
        if annotated.edge_id == eb:
            match = next((new_id for new_id, point in seam_points
                          if distance(point, annotated.point) <= MERGE_POINT_TOLERANCE), None)
            if match is not None:
                point_map_b[pid] = match
                continue
            new_id = put_point(annotated.point, tb.annotated_points[pid].point, NO_EDGE)
            seam_points.append((new_id, annotated.point))
        else:
            edge = edge_map_b[annotated.edge_id] if annotated.on_edge else NO_EDGE
            new_id = put_point(annotated.point, tb.annotated_points[pid].point, edge)
        point_map_b[pid] = new_id

    line_map_a: Dict[int, int] = {}
    line_map_b: Dict[int, int] = {}
    for source, point_map, line_map in ((fa, point_map_a, line_map_a), (fb, point_map_b, line_map_b)):
        for line_id, line in sorted(source.annotated_lines.items()):
            start, end = point_map[line.start_point_id], point_map[line.end_point_id]
            if start == end:
                continue
            existing = merged.find_line(start, end)
            if existing is not None:
                line_map[line_id] = existing
                continue
            new_line = AnnotatedLine(start, end)
            new_id = merged.next_line_id
            merged.insert_annotated_line(new_id, new_line)
            merged_3d.insert_annotated_line(new_id, new_line)
            line_map[line_id] = new_id

    state.add_face_pair(merged, merged_3d)
    problems = state.adjacency.rewrite_on_merge(
        face_a_id, face_b_id, merged_id, edge_map_a, edge_map_b, excluded_face_ids, state.correlated
    )
    state.remove_face_pair(face_a_id)
    state.remove_face_pair(face_b_id)
    logger.debug(f"Merged faces {face_a_id} and {face_b_id} into {merged_id} "
                 f"({merged.vertex_count} vertices, {len(dropped)} seam end(s) dropped).")
    return MergeFaceResult(
        face_a_id=face_a_id,
        face_b_id=face_b_id,
        merged=merged,
        merged_3d=merged_3d,
        edge_map_a=edge_map_a,
        edge_map_b=edge_map_b,
        point_map_a=point_map_a,
        point_map_b=point_map_b,
        line_map_a=line_map_a,
        line_map_b=line_map_b,
        problems=problems,
    )
