"""
Face Adjacency Graph
====================
Which face edges are physically joined, and at what dihedral angle.

Why is this file needed?
------------------------
1. Symmetry: every entry A -> B has a mirror entry B -> A with the two edge ids
   swapped. Every operation here restores this before returning.
2. Re-indexing: a split or merge destroys faces. The rewrite operations move the
   connections of the destroyed faces onto their children (or onto the merged
   face) using the edge maps produced by the fold orchestrator.
3. Deferred connections: a connection whose edge is cut by the fold (split) or
   whose remote face is itself being merged (merge) cannot be rewritten yet. It
   is returned as a problem edge and resolved in a second phase once every face
   of the fold exists.
4. Correlated edges: the fold edges created by one fold event form a group that
   is later unfolded or re-angled together.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from paperfold.model.errors import (
    ConflictError, InvalidArgumentError, InvariantViolationError, NotFoundError,
)
from paperfold.model.geometry_utils import segments_match

if TYPE_CHECKING:
    from paperfold.model.face import Face2D

logger = logging.getLogger(__name__)

FacePair = Tuple[int, int]


@dataclass(frozen=True)
class EdgeAdjacency:
    """One side of a joined edge, stored in the list of the face that owns `my_edge_id`."""
    other_face_id: int
    angle: float
    my_edge_id: int
    other_edge_id: int


@dataclass(frozen=True)
class SplitProblemEdge:
    """
    A connection of a split face whose edge was cut by the fold.

    Both portions of the cut edge are named; the remote side is left as it was
    before the fold (it may have been split by the same fold as well).
    """
    parent_face_id: int
    parent_edge_id: int
    left_face_id: int
    left_edge_id: int
    right_face_id: int
    right_edge_id: int
    remote_face_id: int
    remote_edge_id: int
    angle: float


@dataclass(frozen=True)
class MergeProblemEdge:
    """A connection of a merged face whose remote face is being merged by the same fold."""
    source_face_id: int
    source_edge_id: int
    merged_face_id: int
    merged_edge_id: int
    remote_face_id: int
    remote_edge_id: int
    angle: float


def _pair(face_a: int, face_b: int) -> FrozenSet[int]:
    return frozenset((face_a, face_b))


class CorrelatedEdges:
    """
    Groups of face pairs whose shared edges were created by the same fold.

    A pair is unordered; every adjacency edge belongs to exactly one group.
    """

    def __init__(self) -> None:
        self.groups: Dict[int, Set[FrozenSet[int]]] = {}
        self._next_group_id = 0

    def __len__(self) -> int:
        return len(self.groups)

    def add_group(self, pairs: Iterable[FacePair]) -> int:
        members = {_pair(a, b) for a, b in pairs}
        if not members:
            raise InvalidArgumentError("A correlated-edge group needs at least one pair.")
        for member in members:
            if self._find(member) is not None:
                raise ConflictError(
                    f"Faces {sorted(member)} already belong to a correlated-edge group.",
                    {"pair": sorted(member)},
                )
        group_id = self._next_group_id
        self._next_group_id += 1
        self.groups[group_id] = members
        logger.debug(f"Correlated group {group_id} created with {len(members)} pair(s).")
        return group_id

    def _find(self, pair: FrozenSet[int]) -> Optional[int]:
        for group_id, members in self.groups.items():
            if pair in members:
                return group_id
        return None

    def lookup_group(self, face_a: int, face_b: int) -> int:
        group_id = self._find(_pair(face_a, face_b))
        if group_id is None:
            raise NotFoundError(
                f"Faces {face_a} and {face_b} are not in any correlated-edge group.",
                {"face_a": face_a, "face_b": face_b},
            )
        return group_id

    def pairs_of(self, group_id: int) -> List[FacePair]:
        if group_id not in self.groups:
            raise NotFoundError(f"Correlated-edge group {group_id} does not exist.", {"group_id": group_id})
        return sorted(tuple(sorted(member)) for member in self.groups[group_id])

    def replace_connection(self, old_pair: FacePair, new_pairs: Iterable[FacePair]) -> None:
        """Swap one pair of a group for any number of pairs. An emptied group is removed."""
        group_id = self.lookup_group(*old_pair)
        new_members = {_pair(a, b) for a, b in new_pairs}
        for member in new_members:
            owner = self._find(member)
            if owner is not None and owner != group_id:
                raise InvariantViolationError(
                    f"Faces {sorted(member)} would belong to groups {owner} and {group_id}.",
                    {"pair": sorted(member), "groups": [owner, group_id]},
                )
        members = self.groups[group_id]
        members.discard(_pair(*old_pair))
        members.update(new_members)
        if not members:
            del self.groups[group_id]
            logger.debug(f"Correlated group {group_id} emptied and removed.")

    def remove_face_pairs(self, face_id: int) -> None:
        for group_id in list(self.groups):
            self.groups[group_id] = {m for m in self.groups[group_id] if face_id not in m}
            if not self.groups[group_id]:
                del self.groups[group_id]

    def check_membership(self, graph: FaceAdjacencyGraph) -> None:
        """Every adjacency edge is in exactly one group and every grouped pair is an edge."""
        seen: Dict[FrozenSet[int], int] = {}
        for group_id, members in self.groups.items():
            for member in members:
                if member in seen:
                    raise InvariantViolationError(
                        f"Faces {sorted(member)} belong to groups {seen[member]} and {group_id}.",
                        {"pair": sorted(member)},
                    )
                seen[member] = group_id
                a, b = sorted(member)
                if not graph.has_entry(a, b):
                    raise InvariantViolationError(
                        f"Group {group_id} lists faces {a} and {b}, which are not joined.",
                        {"group_id": group_id, "pair": [a, b]},
                    )
        for face_id in graph.face_ids():
            for entry in graph.neighbors(face_id):
                if _pair(face_id, entry.other_face_id) not in seen:
                    raise InvariantViolationError(
                        f"Edge between faces {face_id} and {entry.other_face_id} has no group.",
                        {"pair": sorted((face_id, entry.other_face_id))},
                    )


class FaceAdjacencyGraph:
    """Id-keyed map from face to the faces joined to its edges."""

    def __init__(self) -> None:
        self.adjacency: Dict[int, List[EdgeAdjacency]] = {}

    def __contains__(self, face_id: int) -> bool:
        return face_id in self.adjacency

    def face_ids(self) -> List[int]:
        return sorted(self.adjacency)

    def add_face(self, face_id: int) -> None:
        if face_id in self.adjacency:
            raise ConflictError(f"Face {face_id} is already in the adjacency graph.", {"face_id": face_id})
        self.adjacency[face_id] = []

    def remove_face(self, face_id: int) -> List[EdgeAdjacency]:
        """Drop a face and every mirror entry pointing at it. Returns its own entries."""
        entries = self.neighbors(face_id)
        for entry in entries:
            self.remove_face_from_graph(face_id, entry.other_face_id)
        del self.adjacency[face_id]
        return entries

    def neighbors(self, face_id: int) -> List[EdgeAdjacency]:
        if face_id not in self.adjacency:
            raise NotFoundError(f"Face {face_id} is not in the adjacency graph.", {"face_id": face_id})
        return list(self.adjacency[face_id])

    def has_entry(self, face_id: int, other_face_id: int) -> bool:
        return any(e.other_face_id == other_face_id for e in self.adjacency.get(face_id, ()))

    def get_entry(self, face_id: int, other_face_id: int) -> EdgeAdjacency:
        for entry in self.neighbors(face_id):
            if entry.other_face_id == other_face_id:
                return entry
        raise NotFoundError(
            f"Face {face_id} has no edge joined to face {other_face_id}.",
            {"face_id": face_id, "other_face_id": other_face_id},
        )

    def add_edge(self, face_a: int, edge_a: int, face_b: int, edge_b: int, angle: float) -> None:
        """Join edge_a of face_a to edge_b of face_b (both directions)."""
        if face_a == face_b:
            raise InvalidArgumentError(f"Face {face_a} cannot be joined to itself.", {"face_id": face_a})
        self.neighbors(face_a)
        self.neighbors(face_b)
        if self.has_entry(face_a, face_b) or self.has_entry(face_b, face_a):
            raise ConflictError(
                f"Faces {face_a} and {face_b} are already joined.",
                {"face_a": face_a, "face_b": face_b},
            )
        self.adjacency[face_a].append(EdgeAdjacency(face_b, angle, edge_a, edge_b))
        self.adjacency[face_b].append(EdgeAdjacency(face_a, angle, edge_b, edge_a))

    def remove_face_from_graph(self, face_id: int, neighbor_face_id: int) -> EdgeAdjacency:
        """Delete the one entry of `neighbor_face_id` that points at `face_id`."""
        entries = self.neighbors(neighbor_face_id)
        for index, entry in enumerate(entries):
            if entry.other_face_id == face_id:
                del self.adjacency[neighbor_face_id][index]
                return entry
        raise NotFoundError(
            f"Face {neighbor_face_id} has no entry pointing at face {face_id}.",
            {"face_id": face_id, "neighbor_face_id": neighbor_face_id},
        )

    def set_angle(self, face_a: int, face_b: int, angle: float) -> None:
        for owner, other in ((face_a, face_b), (face_b, face_a)):
            entry = self.get_entry(owner, other)
            index = self.adjacency[owner].index(entry)
            self.adjacency[owner][index] = replace(entry, angle=angle)

    # ---------------- Split ----------------

    def rewrite_on_split(
        self,
        old_face_id: int,
        left_face_id: int,
        right_face_id: int,
        left_edge_map: Mapping[int, int],
        right_edge_map: Mapping[int, int],
        fold_edge_ids: Mapping[int, Tuple[int, int]],
        correlated: Optional[CorrelatedEdges] = None,
    ) -> List[SplitProblemEdge]:
        """
        Move the connections of a split face onto its children (phase 1).

        Args:
            left_edge_map / right_edge_map: parent edge id -> child edge id for
                parent edges that survive whole in that child.
            fold_edge_ids: parent edge id -> (left edge id, right edge id) for
                the parent edges cut by the fold points.

        Returns:
            Connections on cut edges, to be resolved by resolve_split_problem_edges.
        """
        for child in (left_face_id, right_face_id):
            if child not in self.adjacency:
                self.add_face(child)

        problems: List[SplitProblemEdge] = []
        for entry in self.neighbors(old_face_id):
            remote = entry.other_face_id
            self.remove_face_from_graph(old_face_id, remote)
            if entry.my_edge_id in left_edge_map:
                child, child_edge = left_face_id, left_edge_map[entry.my_edge_id]
            elif entry.my_edge_id in right_edge_map:
                child, child_edge = right_face_id, right_edge_map[entry.my_edge_id]
            elif entry.my_edge_id in fold_edge_ids:
                left_edge, right_edge = fold_edge_ids[entry.my_edge_id]
                problems.append(SplitProblemEdge(
                    old_face_id, entry.my_edge_id,
                    left_face_id, left_edge,
                    right_face_id, right_edge,
                    remote, entry.other_edge_id, entry.angle,
                ))
                continue
            else:
                raise InvariantViolationError(
                    f"Edge {entry.my_edge_id} of face {old_face_id} is not carried by any child.",
                    {"face_id": old_face_id, "edge_id": entry.my_edge_id},
                )
            self.add_edge(child, child_edge, remote, entry.other_edge_id, entry.angle)
            if correlated is not None:
                correlated.replace_connection((old_face_id, remote), [(child, remote)])

        del self.adjacency[old_face_id]
        logger.debug(f"Split rewrite of face {old_face_id}: {len(problems)} problem edge(s) deferred.")
        return problems

    def resolve_split_problem_edges(
        self,
        problems: Sequence[SplitProblemEdge],
        faces: Mapping[int, Face2D],
        descendants: Mapping[int, Sequence[int]],
        correlated: Optional[CorrelatedEdges] = None,
    ) -> List[FacePair]:
        """
        Re-derive the connections of cut edges by matching coordinates (phase 2).

        The remote face is looked up in `descendants` in case the same fold split
        it too. Each portion of the cut edge is joined to every remote edge it
        lies along.
        """
        created: List[FacePair] = []
        for problem in problems:
            candidates = [c for c in descendants.get(problem.remote_face_id, (problem.remote_face_id,))
                          if c in faces]
            new_pairs: List[FacePair] = []
            for child, child_edge in ((problem.left_face_id, problem.left_edge_id),
                                      (problem.right_face_id, problem.right_edge_id)):
                start, end = faces[child].edge(child_edge)
                for candidate in candidates:
                    for remote_edge, (r_start, r_end) in enumerate(faces[candidate].edges()):
                        if not segments_match(start, end, r_start, r_end):
                            continue
                        if not self.has_entry(child, candidate):
                            self.add_edge(child, child_edge, candidate, remote_edge, problem.angle)
                            created.append((child, candidate))
                        new_pairs.append((child, candidate))
            if not new_pairs:
                raise InvariantViolationError(
                    f"Cut edge {problem.parent_edge_id} of face {problem.parent_face_id} "
                    f"matches no edge of face {problem.remote_face_id}.",
                    {"face_id": problem.parent_face_id, "edge_id": problem.parent_edge_id,
                     "remote_face_id": problem.remote_face_id},
                )
            if correlated is not None:
                correlated.replace_connection((problem.parent_face_id, problem.remote_face_id), new_pairs)
            logger.debug(f"Resolved cut edge of face {problem.parent_face_id} into {new_pairs}.")
        return created

    # ---------------- Merge ----------------

    def rewrite_on_merge(
        self,
        face_a: int,
        face_b: int,
        merged_face_id: int,
        edge_map_a: Mapping[int, int],
        edge_map_b: Mapping[int, int],
        excluded_face_ids: Iterable[int] = (),
        correlated: Optional[CorrelatedEdges] = None,
    ) -> List[MergeProblemEdge]:
        """
        Move the connections of two merged faces onto the merged face (phase 1).

        The seam between face_a and face_b disappears. Connections to faces in
        `excluded_face_ids` are returned for resolve_merge_problem_edges. A
        remote face joined to both sources ends up joined once.
        """
        excluded = set(excluded_face_ids)
        if merged_face_id not in self.adjacency:
            self.add_face(merged_face_id)

        self.remove_face_from_graph(face_b, face_a)
        self.remove_face_from_graph(face_a, face_b)
        if correlated is not None:
            correlated.replace_connection((face_a, face_b), [])

        problems: List[MergeProblemEdge] = []
        for source, edge_map in ((face_a, edge_map_a), (face_b, edge_map_b)):
            for entry in self.neighbors(source):
                remote = entry.other_face_id
                if entry.my_edge_id not in edge_map:
                    raise InvariantViolationError(
                        f"Edge {entry.my_edge_id} of face {source} is not carried by the merged face.",
                        {"face_id": source, "edge_id": entry.my_edge_id},
                    )
                merged_edge = edge_map[entry.my_edge_id]
                self.remove_face_from_graph(source, remote)
                if remote in excluded:
                    problems.append(MergeProblemEdge(
                        source, entry.my_edge_id, merged_face_id, merged_edge,
                        remote, entry.other_edge_id, entry.angle,
                    ))
                    continue
                if self.has_entry(merged_face_id, remote):
                    if correlated is not None:
                        correlated.replace_connection((source, remote), [])
                    continue
                self.add_edge(merged_face_id, merged_edge, remote, entry.other_edge_id, entry.angle)
                if correlated is not None:
                    correlated.replace_connection((source, remote), [(merged_face_id, remote)])

        del self.adjacency[face_a]
        del self.adjacency[face_b]
        logger.debug(f"Merge rewrite {face_a}+{face_b} -> {merged_face_id}: "
                     f"{len(problems)} problem edge(s) deferred.")
        return problems

    def resolve_merge_problem_edges(
        self,
        problems: Sequence[MergeProblemEdge],
        merge_results: Mapping[int, Tuple[int, Mapping[int, int]]],
        correlated: Optional[CorrelatedEdges] = None,
    ) -> List[FacePair]:
        """
        Re-join deferred merge connections once every merge of the fold is done (phase 2).

        Args:
            merge_results: source face id -> (merged face id, source edge -> merged edge)
                for every face merged by the fold.
        """
        created: List[FacePair] = []
        for problem in problems:
            remote, remote_edge = problem.remote_face_id, problem.remote_edge_id
            if remote in merge_results:
                merged_remote, edge_map = merge_results[remote]
                if remote_edge not in edge_map:
                    raise InvariantViolationError(
                        f"Edge {remote_edge} of face {remote} is not carried by merged face {merged_remote}.",
                        {"face_id": remote, "edge_id": remote_edge},
                    )
                remote, remote_edge = merged_remote, edge_map[remote_edge]
            new_pair = (problem.merged_face_id, remote)
            if not self.has_entry(problem.merged_face_id, remote):
                self.add_edge(problem.merged_face_id, problem.merged_edge_id, remote, remote_edge, problem.angle)
                created.append(new_pair)
            if correlated is not None:
                correlated.replace_connection((problem.source_face_id, problem.remote_face_id), [new_pair])
        return created

    # ---------------- Validation ----------------

    def check_symmetry(self) -> None:
        """Raise InvariantViolationError unless every entry has its mirror."""
        for face_id, entries in self.adjacency.items():
            others = [e.other_face_id for e in entries]
            if len(others) != len(set(others)):
                raise InvariantViolationError(
                    f"Face {face_id} has duplicate entries.", {"face_id": face_id, "neighbors": others}
                )
            for entry in entries:
                details = {"face_id": face_id, "other_face_id": entry.other_face_id}
                if entry.other_face_id not in self.adjacency:
                    raise InvariantViolationError(
                        f"Face {face_id} points at missing face {entry.other_face_id}.", details
                    )
                mirrors = [m for m in self.adjacency[entry.other_face_id] if m.other_face_id == face_id]
                if not mirrors:
                    raise InvariantViolationError(
                        f"Entry {face_id} -> {entry.other_face_id} has no mirror.", details
                    )
                mirror = mirrors[0]
                if (mirror.my_edge_id, mirror.other_edge_id) != (entry.other_edge_id, entry.my_edge_id):
                    raise InvariantViolationError(
                        f"Entries between faces {face_id} and {entry.other_face_id} disagree on edges.", details
                    )
                if mirror.angle != entry.angle:
                    raise InvariantViolationError(
                        f"Entries between faces {face_id} and {entry.other_face_id} disagree on the angle.",
                        details,
                    )
