"""
Faces (Data Model)
==================
A face is a flat polygon plus the annotation points and lines drawn on it.

Why is this file needed?
------------------------
1. Identity: ids 0..N-1 of a face are its vertices in polygon order; annotation
   points get ids >= N and lines get their own ids. These ids are what the
   adjacency graph, the LUG and the persistence records refer to.
2. Twins: every face exists twice. Face2D lives in the flat paper map, Face3D
   in folded space. Both carry the same ids and the same annotations, and the
   helpers at the bottom of this module translate coordinates between them.

Classes:
    AnnotationDelta: Points/lines added and removed by one edit.
    Face: Shared vertex and annotation bookkeeping.
    Face2D: Planar face with containment and intersection-aware line drawing.
    Face3D: Folded face with a principal normal, thickness and layer offset.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from paperfold.config import COLLINEAR_TOLERANCE, PAPER_THICKNESS
from paperfold.model.errors import (
    ConflictError, InvalidArgumentError, InvariantViolationError, NotFoundError,
)
from paperfold.model.geometry_primitives import (
    NO_EDGE, AnnotatedLine, AnnotatedPoint, Point, Point2D, Point3D, PointContext,
    add, copy_point, cross_2d, distance, dot_product, lift, normalize, scalar_mult, subtract,
)
from paperfold.model.geometry_utils import (
    is_point_on_segment, is_point_strictly_inside_segment, plane_basis, polygon_contains_point,
    project_to_basis, rotate_point_about_axis, rotate_vector_about_axis, segment_intersection,
    segment_parameter, solve_for_scalars,
)

logger = logging.getLogger(__name__)


@dataclass
class AnnotationDelta:
    """Annotation changes of one face, as consumed by the overlay renderer and the serializer."""
    face_id: int
    points_added: Dict[int, AnnotatedPoint] = field(default_factory=dict)
    points_removed: List[int] = field(default_factory=list)
    lines_added: Dict[int, AnnotatedLine] = field(default_factory=dict)
    lines_removed: List[int] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.points_added or self.points_removed or self.lines_added or self.lines_removed)

    def extend(self, other: AnnotationDelta) -> None:
        if other.face_id != self.face_id:
            raise ValueError(f"Cannot combine deltas of faces {self.face_id} and {other.face_id}.")
        self.points_added.update(other.points_added)
        self.points_removed.extend(other.points_removed)
        self.lines_added.update(other.lines_added)
        self.lines_removed.extend(other.lines_removed)


@dataclass(frozen=True)
class FaceDescriptor:
    """What the renderer needs to (re)build the mesh of one face."""
    face_id: int
    vertices: Tuple[Point3D, ...]
    thickness: float
    offset: float
    principal_normal: Point3D


class Face:
    """
    Vertex list and annotation maps shared by the 2D and 3D faces.
    """

    def __init__(self, face_id: int, vertices: Sequence[Point]) -> None:
        """
        Args:
            face_id: Unique id, shared with the twin face.
            vertices: Polygon corners in order (the paper map uses clockwise order).
        """
        if len(vertices) < 3:
            raise InvalidArgumentError(
                f"A face needs at least 3 vertices, got {len(vertices)}.", {"face_id": face_id}
            )
        self.face_id = face_id
        self.vertices: Tuple[Point, ...] = tuple(copy_point(v, PointContext.VERTEX) for v in vertices)
        self.annotated_points: Dict[int, AnnotatedPoint] = {}
        self.annotated_lines: Dict[int, AnnotatedLine] = {}
        self.next_point_id = len(self.vertices)
        self.next_line_id = 0

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(id={self.face_id}, vertices={len(self.vertices)}, "
                f"points={len(self.annotated_points)}, lines={len(self.annotated_lines)})")

    # ---------------- Points ----------------

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def is_vertex(self, point_id: int) -> bool:
        return 0 <= point_id < len(self.vertices)

    def has_point(self, point_id: int) -> bool:
        return self.is_vertex(point_id) or point_id in self.annotated_points

    def get_point(self, point_id: int) -> Point:
        """Coordinates of a vertex or annotation point."""
        if self.is_vertex(point_id):
            return self.vertices[point_id]
        if point_id in self.annotated_points:
            return self.annotated_points[point_id].point
        raise NotFoundError(
            f"Point {point_id} does not exist on face {self.face_id}.",
            {"face_id": self.face_id, "point_id": point_id},
        )

    def point_ids(self) -> List[int]:
        return list(range(len(self.vertices))) + sorted(self.annotated_points)

    def edge_of_point(self, point_id: int) -> int:
        """Edge the point lies on; a vertex reports the edge it starts."""
        if self.is_vertex(point_id):
            return point_id
        self.get_point(point_id)
        return self.annotated_points[point_id].edge_id

    # ---------------- Edges ----------------

    def edge(self, edge_id: int) -> Tuple[Point, Point]:
        """Edge i runs from vertex i to vertex i+1 (wrapping)."""
        if not 0 <= edge_id < len(self.vertices):
            raise NotFoundError(
                f"Edge {edge_id} does not exist on face {self.face_id}.",
                {"face_id": self.face_id, "edge_id": edge_id},
            )
        return self.vertices[edge_id], self.vertices[(edge_id + 1) % len(self.vertices)]

    def edges(self) -> List[Tuple[Point, Point]]:
        return [self.edge(i) for i in range(len(self.vertices))]

    def boundary_position(self, point_id: int) -> float:
        """
        Position of a boundary point in traversal order from vertex 0.

        Vertex i is at position i; a point on edge e sits between e and e+1.
        """
        if self.is_vertex(point_id):
            return float(point_id)
        annotated = self.annotated_points.get(point_id)
        if annotated is None:
            self.get_point(point_id)
        if not annotated.on_edge:
            raise InvalidArgumentError(
                f"Point {point_id} is not on the boundary of face {self.face_id}.",
                {"face_id": self.face_id, "point_id": point_id},
            )
        start, end = self.edge(annotated.edge_id)
        t = segment_parameter(annotated.point, start, end)
        return annotated.edge_id + min(max(t, 0.0), 1.0)

    # ---------------- Lines ----------------

    def find_line(self, start_point_id: int, end_point_id: int) -> Optional[int]:
        wanted = frozenset((start_point_id, end_point_id))
        for line_id, line in self.annotated_lines.items():
            if line.endpoints() == wanted:
                return line_id
        return None

    def lines_at(self, point_id: int) -> List[int]:
        return [line_id for line_id, line in self.annotated_lines.items()
                if point_id in (line.start_point_id, line.end_point_id)]

    # ---------------- Raw insertion ----------------

    def insert_annotated_point(self, point_id: int, annotated: AnnotatedPoint) -> None:
        """Store an annotation under a caller-chosen id (used by re-indexing and twin mirroring)."""
        if point_id < len(self.vertices) or point_id in self.annotated_points:
            raise ConflictError(
                f"Point id {point_id} is already used on face {self.face_id}.",
                {"face_id": self.face_id, "point_id": point_id},
            )
        point = copy_point(annotated.point, PointContext.ANNOTATION)
        self.annotated_points[point_id] = AnnotatedPoint(point, annotated.edge_id)
        self.next_point_id = max(self.next_point_id, point_id + 1)

    def insert_annotated_line(self, line_id: int, line: AnnotatedLine) -> None:
        if line_id in self.annotated_lines:
            raise ConflictError(
                f"Line id {line_id} is already used on face {self.face_id}.",
                {"face_id": self.face_id, "line_id": line_id},
            )
        self.annotated_lines[line_id] = line
        self.next_line_id = max(self.next_line_id, line_id + 1)

    # ---------------- Editing ----------------

    def add_annotated_point(self, point: Point, edge_id: Optional[int] = None) -> AnnotationDelta:
        """Add an annotation point. Returns the delta holding its new id."""
        if point.dim != self.vertices[0].dim:
            raise InvalidArgumentError(
                f"Face {self.face_id} stores {self.vertices[0].dim}D points, got a {point.dim}D point.",
                {"face_id": self.face_id},
            )
        edge = NO_EDGE if edge_id is None else edge_id
        if edge != NO_EDGE and not 0 <= edge < len(self.vertices):
            raise InvalidArgumentError(
                f"Edge {edge} does not exist on face {self.face_id}.",
                {"face_id": self.face_id, "edge_id": edge},
            )
        point_id = self.next_point_id
        annotated = AnnotatedPoint(copy_point(point, PointContext.ANNOTATION), edge)
        self.insert_annotated_point(point_id, annotated)
        return AnnotationDelta(self.face_id, points_added={point_id: annotated})

    def _check_line_request(self, start_point_id: int, end_point_id: int) -> None:
        if start_point_id == end_point_id:
            raise InvalidArgumentError(
                "Cannot draw a line from a point to itself.",
                {"face_id": self.face_id, "point_id": start_point_id},
            )
        self.get_point(start_point_id)
        self.get_point(end_point_id)
        if self.find_line(start_point_id, end_point_id) is not None:
            raise ConflictError(
                f"A line between points {start_point_id} and {end_point_id} already exists.",
                {"face_id": self.face_id, "start_point_id": start_point_id, "end_point_id": end_point_id},
            )

    def add_annotated_line(self, start_point_id: int, end_point_id: int) -> AnnotationDelta:
        self._check_line_request(start_point_id, end_point_id)
        line_id = self.next_line_id
        line = AnnotatedLine(start_point_id, end_point_id)
        self.insert_annotated_line(line_id, line)
        return AnnotationDelta(self.face_id, lines_added={line_id: line})

    def del_annotated_line(self, line_id: int) -> AnnotationDelta:
        if line_id not in self.annotated_lines:
            raise NotFoundError(
                f"Line {line_id} does not exist on face {self.face_id}.",
                {"face_id": self.face_id, "line_id": line_id},
            )
        del self.annotated_lines[line_id]
        return AnnotationDelta(self.face_id, lines_removed=[line_id])

    def del_annotated_point(self, point_id: int) -> AnnotationDelta:
        """Delete an annotation point together with every line that uses it."""
        if self.is_vertex(point_id):
            raise InvalidArgumentError(
                f"Point {point_id} is a vertex of face {self.face_id} and cannot be deleted.",
                {"face_id": self.face_id, "point_id": point_id},
            )
        if point_id not in self.annotated_points:
            raise NotFoundError(
                f"Point {point_id} does not exist on face {self.face_id}.",
                {"face_id": self.face_id, "point_id": point_id},
            )
        delta = AnnotationDelta(self.face_id)
        for line_id in self.lines_at(point_id):
            delta.extend(self.del_annotated_line(line_id))
        del self.annotated_points[point_id]
        delta.points_removed.append(point_id)
        return delta

    # ---------------- Queries ----------------

    def find_nearest_point(self, point: Point) -> int:
        """Id of the vertex or annotation point closest to `point`."""
        best_id = 0
        best = float("inf")
        for point_id in self.point_ids():
            d = distance(self.get_point(point_id), point)
            if d < best:
                best_id, best = point_id, d
        return best_id

    def check_invariants(self) -> None:
        """Every line endpoint exists here, every edge id is valid or NO_EDGE."""
        n = len(self.vertices)
        for point_id, annotated in self.annotated_points.items():
            if point_id < n:
                raise InvariantViolationError(
                    f"Annotation id {point_id} collides with a vertex id on face {self.face_id}.",
                    {"face_id": self.face_id, "point_id": point_id},
                )
            if annotated.edge_id != NO_EDGE and not 0 <= annotated.edge_id < n:
                raise InvariantViolationError(
                    f"Annotation {point_id} references missing edge {annotated.edge_id}.",
                    {"face_id": self.face_id, "point_id": point_id, "edge_id": annotated.edge_id},
                )
        for line_id, line in self.annotated_lines.items():
            for end in (line.start_point_id, line.end_point_id):
                if not self.has_point(end):
                    raise InvariantViolationError(
                        f"Line {line_id} references missing point {end} on face {self.face_id}.",
                        {"face_id": self.face_id, "line_id": line_id, "point_id": end},
                    )


class Face2D(Face):
    """A face in the flat paper map."""

    vertices: Tuple[Point2D, ...]

    def contained_in_face(self, point: Point2D) -> bool:
        return polygon_contains_point(self.vertices, point)

    def find_edge_for(self, point: Point2D, *, tol: float = COLLINEAR_TOLERANCE) -> int:
        """Edge the point lies on, or NO_EDGE."""
        for edge_id, (start, end) in enumerate(self.edges()):
            if is_point_on_segment(point, start, end, tol=tol):
                return edge_id
        return NO_EDGE

    def find_point_at(self, point: Point2D, *, tol: float = COLLINEAR_TOLERANCE) -> Optional[int]:
        for point_id in self.point_ids():
            if distance(self.get_point(point_id), point) <= tol:
                return point_id
        return None

    def add_annotated_point(self, point: Point2D, edge_id: Optional[int] = None) -> AnnotationDelta:
        """
        Add an annotation point inside (or on the boundary of) the face.

        The edge is detected from the coordinates when not given.
        """
        if not isinstance(point, Point2D):
            raise InvalidArgumentError(f"Face2D {self.face_id} only accepts 2D points.", {"face_id": self.face_id})
        if not self.contained_in_face(point):
            raise InvalidArgumentError(
                f"Point ({point.x:.3f}, {point.y:.3f}) is outside face {self.face_id}.",
                {"face_id": self.face_id},
            )
        existing = self.find_point_at(point)
        if existing is not None:
            raise ConflictError(
                f"Point {existing} already exists at ({point.x:.3f}, {point.y:.3f}).",
                {"face_id": self.face_id, "point_id": existing},
            )
        if edge_id is None:
            edge_id = self.find_edge_for(point)
        return super().add_annotated_point(point, edge_id)

    def add_annotated_line(self, start_point_id: int, end_point_id: int) -> AnnotationDelta:
        """
        Draw a line between two existing points.

        Existing points lying on the new line, and crossings with existing
        lines, become intermediate points: the new line is stored as the chain
        of segments between them and every crossed line is split in two.
        """
        self._check_line_request(start_point_id, end_point_id)
        start = self.get_point(start_point_id)
        end = self.get_point(end_point_id)
        if distance(start, end) <= COLLINEAR_TOLERANCE:
            raise InvalidArgumentError(
                "The two points of the line coincide.",
                {"face_id": self.face_id, "start_point_id": start_point_id, "end_point_id": end_point_id},
            )

        # Existing points in the interior of the new segment
        stops: Dict[int, float] = {}
        for point_id in self.point_ids():
            if point_id in (start_point_id, end_point_id):
                continue
            p = self.get_point(point_id)
            if is_point_strictly_inside_segment(p, start, end):
                stops[point_id] = segment_parameter(p, start, end)

        # Proper crossings with existing lines
        crossings: List[Tuple[int, Point2D]] = []
        for line_id, line in self.annotated_lines.items():
            a = self.get_point(line.start_point_id)
            b = self.get_point(line.end_point_id)
            hit = segment_intersection(start, end, a, b)
            if hit is not None and self.find_point_at(hit) is None:
                crossings.append((line_id, hit))

        delta = AnnotationDelta(self.face_id)
        for line_id, hit in crossings:
            line = self.annotated_lines[line_id]
            point_delta = Face.add_annotated_point(self, hit, self.find_edge_for(hit))
            new_point_id = next(iter(point_delta.points_added))
            delta.extend(point_delta)
            delta.extend(self.del_annotated_line(line_id))
            for a_id, b_id in ((line.start_point_id, new_point_id), (new_point_id, line.end_point_id)):
                piece = AnnotatedLine(a_id, b_id)
                piece_id = self.next_line_id
                self.insert_annotated_line(piece_id, piece)
                delta.lines_added[piece_id] = piece
            stops[new_point_id] = segment_parameter(hit, start, end)

        chain = [start_point_id] + sorted(stops, key=stops.get) + [end_point_id]
        added = 0
        for a_id, b_id in zip(chain[:-1], chain[1:]):
            if self.find_line(a_id, b_id) is not None:
                continue
            piece = AnnotatedLine(a_id, b_id)
            piece_id = self.next_line_id
            self.insert_annotated_line(piece_id, piece)
            delta.lines_added[piece_id] = piece
            added += 1

        if added == 0:
            raise ConflictError(
                f"Every segment between points {start_point_id} and {end_point_id} already exists.",
                {"face_id": self.face_id, "start_point_id": start_point_id, "end_point_id": end_point_id},
            )
        logger.debug(f"Face {self.face_id}: line {start_point_id}-{end_point_id} stored as "
                      f"{added} segment(s), {len(crossings)} crossing(s).")
        return delta


class Face3D(Face):
    """
    A face in folded 3D space.

    Besides the polygon it knows which way its principal normal points, how
    thick the paper is and how many thicknesses it is offset along the normal
    to keep stacked layers apart.
    """

    vertices: Tuple[Point3D, ...]

    def __init__(
        self,
        face_id: int,
        vertices: Sequence[Point3D],
        principal_normal: Optional[Point3D] = None,
        thickness: float = PAPER_THICKNESS,
        offset: float = 0.0,
    ) -> None:
        super().__init__(face_id, vertices)
        if principal_normal is None:
            principal_normal = Point3D(0.0, 0.0, 1.0)
        self.principal_normal: Point3D = normalize(principal_normal)
        self.thickness = thickness
        self.offset = offset

    @classmethod
    def from_face_2d(cls, face: Face2D, z: float = 0.0, **kwargs) -> Face3D:
        """Twin of a flat face lying in the z = const plane."""
        twin = cls(face.face_id, [lift(v, z) for v in face.vertices], **kwargs)
        for point_id, annotated in face.annotated_points.items():
            twin.insert_annotated_point(point_id, AnnotatedPoint(lift(annotated.point, z), annotated.edge_id))
        for line_id, line in face.annotated_lines.items():
            twin.insert_annotated_line(line_id, line)
        twin.next_point_id = face.next_point_id
        twin.next_line_id = face.next_line_id
        return twin

    def basis(self) -> Tuple[Point3D, Point3D, Point3D]:
        """Orthonormal in-plane basis anchored at vertex 0."""
        return plane_basis(self.vertices[0], self.vertices[1], self.principal_normal)

    def projected_polygon(self, basis: Tuple[Point3D, Point3D, Point3D]) -> List[Point2D]:
        return [project_to_basis(v, basis) for v in self.vertices]

    def contained_in_face(self, point: Point3D) -> bool:
        """On the face plane (within tolerance) and inside the polygon."""
        origin = self.vertices[0]
        height = dot_product(subtract(point, origin), self.principal_normal)
        if abs(height) > COLLINEAR_TOLERANCE:
            return False
        basis = self.basis()
        return polygon_contains_point(self.projected_polygon(basis), project_to_basis(point, basis))

    def rotate(self, axis_point: Point3D, axis_direction: Point3D, angle_degrees: float) -> None:
        """Rigidly rotate the face, its annotations and its normal about an axis."""
        self.vertices = tuple(
            rotate_point_about_axis(v, axis_point, axis_direction, angle_degrees) for v in self.vertices
        )
        self.annotated_points = {
            point_id: AnnotatedPoint(
                rotate_point_about_axis(ap.point, axis_point, axis_direction, angle_degrees), ap.edge_id
            )
            for point_id, ap in self.annotated_points.items()
        }
        self.principal_normal = normalize(
            rotate_vector_about_axis(self.principal_normal, axis_direction, angle_degrees)
        )

    def apply_annotation_delta(self, delta: AnnotationDelta, face_2d: Face2D) -> None:
        """Mirror a delta produced on the 2D twin, keeping the same ids."""
        for line_id in delta.lines_removed:
            self.annotated_lines.pop(line_id, None)
        for point_id in delta.points_removed:
            self.annotated_points.pop(point_id, None)
        for point_id, annotated in delta.points_added.items():
            p3 = translate_2d_to_3d(face_2d, self, annotated.point)
            self.insert_annotated_point(point_id, AnnotatedPoint(p3, annotated.edge_id))
        for line_id, line in delta.lines_added.items():
            self.insert_annotated_line(line_id, line)
        self.next_point_id = max(self.next_point_id, face_2d.next_point_id)
        self.next_line_id = max(self.next_line_id, face_2d.next_line_id)

    def descriptor(self) -> FaceDescriptor:
        return FaceDescriptor(
            face_id=self.face_id,
            vertices=tuple(self.vertices),
            thickness=self.thickness,
            offset=self.offset,
            principal_normal=self.principal_normal,
        )


def _affine_frame(vertices: Sequence[Point]) -> Tuple[int, int]:
    """
    Indices (i, k) such that vertex 0 -> vertex i and vertex 0 -> vertex k
    span the face; picks the pair with the largest cross product.
    """
    origin = vertices[0]
    best = (1, 2)
    best_area = -1.0
    for i in range(1, len(vertices)):
        for k in range(i + 1, len(vertices)):
            a = subtract(vertices[i], origin)
            b = subtract(vertices[k], origin)
            if a.dim == 2:
                area = abs(cross_2d(a, b))
            else:
                area = abs(dot_product(a, a) * dot_product(b, b) - dot_product(a, b) ** 2)
            if area > best_area:
                best, best_area = (i, k), area
    return best


def translate_2d_to_3d(face_2d: Face2D, face_3d: Face3D, point: Point2D) -> Point3D:
    """Map a paper-map point onto the folded twin using the shared vertex frame."""
    i, k = _affine_frame(face_2d.vertices)
    o2 = face_2d.vertices[0]
    scalars = solve_for_scalars(
        lift(subtract(face_2d.vertices[i], o2)),
        lift(subtract(face_2d.vertices[k], o2)),
        lift(subtract(point, o2)),
    )
    if scalars is None:
        raise InvalidArgumentError(f"Face {face_2d.face_id} is degenerate.", {"face_id": face_2d.face_id})
    alpha, beta = scalars
    o3 = face_3d.vertices[0]
    result = add(
        o3,
        add(scalar_mult(subtract(face_3d.vertices[i], o3), alpha),
            scalar_mult(subtract(face_3d.vertices[k], o3), beta)),
    )
    return copy_point(result, point.context)


def translate_3d_to_2d(face_3d: Face3D, face_2d: Face2D, point: Point3D) -> Point2D:
    """Map a point on the folded face back to paper-map coordinates."""
    i, k = _affine_frame(face_2d.vertices)
    o3 = face_3d.vertices[0]
    scalars = solve_for_scalars(
        subtract(face_3d.vertices[i], o3),
        subtract(face_3d.vertices[k], o3),
        subtract(point, o3),
    )
    if scalars is None:
        raise InvalidArgumentError(
            f"Point is not on the plane of face {face_3d.face_id}.", {"face_id": face_3d.face_id}
        )
    alpha, beta = scalars
    o2 = face_2d.vertices[0]
    result = add(
        o2,
        add(scalar_mult(subtract(face_2d.vertices[i], o2), alpha),
            scalar_mult(subtract(face_2d.vertices[k], o2), beta)),
    )
    return copy_point(result, point.context)


def project_point_to_face(point: Point3D, face_3d: Face3D) -> Point3D:
    """
    Project a 3D hit point (e.g. from a ray cast on an offset layer) onto the
    face plane. Fails when the projection falls outside the face.
    """
    if not isinstance(point, Point3D):
        raise InvalidArgumentError(
            f"Face {face_3d.face_id} is picked with 3D points only.", {"face_id": face_3d.face_id}
        )
    normal = face_3d.principal_normal
    height = dot_product(subtract(point, face_3d.vertices[0]), normal)
    projected = subtract(point, scalar_mult(normal, height))
    if not face_3d.contained_in_face(projected):
        raise InvalidArgumentError(
            f"Point is not on face {face_3d.face_id} when projected.", {"face_id": face_3d.face_id}
        )
    return projected
