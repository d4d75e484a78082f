"""
Fold-Case Driver
================
Restructures the LUG (and moves the folded faces) for each kind of fold.

Why is this file needed?
------------------------
1. Classification: a fold is one of eight cases, decided by whether its start and
   end angles are stable (0, 180 or 360 degrees).
2. Sequencing: each case is a fixed recipe of component operations (split,
   partition, stack, merge) plus a rotation of the mobile faces.
3. Offsets: after restructuring, every face of a touched component gets a new
   offset along its normal. The change per face is reported to the renderer.

Angles are dihedral angles measured on the principal-normal side of the
stationary (anchor) face. Ending at 0 puts the mobile side on the anchor's
normal side, ending at 360 on the opposite side.
"""
from __future__ import annotations

from enum import StrEnum
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from paperfold.config import ANGLE_TOLERANCE, FLAT_ANGLE, STABLE_ANGLES
from paperfold.model.errors import InvalidArgumentError
from paperfold.model.stack import PaperComponent, fold_axis

if TYPE_CHECKING:
    from paperfold.model.face import Face3D
    from paperfold.model.state import PaperState

logger = logging.getLogger(__name__)


class FoldCase(StrEnum):
    COMPLETE_SPLIT = "complete_split"
    COMPLETE_MERGE = "complete_merge"
    PARTIAL_SPLIT = "partial_split"
    RESOLVED_MERGE = "resolved_merge"
    COMPLETE_ALIGN = "complete_align"
    PARTIAL_ALIGN = "partial_align"
    RESOLVED_ALIGN = "resolved_align"
    ADJUSTED_ALIGN = "adjusted_align"


SPLIT_CASES = (FoldCase.COMPLETE_SPLIT, FoldCase.PARTIAL_SPLIT)
MERGE_CASES = (FoldCase.COMPLETE_MERGE, FoldCase.RESOLVED_MERGE)


def is_angle(angle: float, target: float) -> bool:
    return abs(angle - target) <= ANGLE_TOLERANCE


def is_stable(angle: float) -> bool:
    return any(is_angle(angle, stable) for stable in STABLE_ANGLES)


def classify_fold(start: float, end: float) -> FoldCase:
    """
    Map a (start, end) dihedral angle pair onto its fold case.

    Raises:
        InvalidArgumentError: angles outside [0, 360], or 180 -> 180.
    """
    for angle in (start, end):
        if not -ANGLE_TOLERANCE <= angle <= 360.0 + ANGLE_TOLERANCE:
            raise InvalidArgumentError(f"Fold angle {angle} is outside [0, 360].", {"angle": angle})
    start_flat, end_flat = is_angle(start, FLAT_ANGLE), is_angle(end, FLAT_ANGLE)
    if start_flat and end_flat:
        raise InvalidArgumentError("A fold from 180 to 180 degrees changes nothing.", {"start": start, "end": end})
    if start_flat:
        return FoldCase.COMPLETE_SPLIT if is_stable(end) else FoldCase.PARTIAL_SPLIT
    if end_flat:
        return FoldCase.COMPLETE_MERGE if is_stable(start) else FoldCase.RESOLVED_MERGE
    if is_stable(start):
        return FoldCase.COMPLETE_ALIGN if is_stable(end) else FoldCase.PARTIAL_ALIGN
    return FoldCase.RESOLVED_ALIGN if is_stable(end) else FoldCase.ADJUSTED_ALIGN


def rotate_faces(
    faces3d: Mapping[int, Face3D],
    face_ids: Iterable[int],
    anchor_face_id: int,
    fold_edge_id: int,
    delta_angle: float,
) -> None:
    """Rotate faces about the anchor's fold edge; positive delta closes the fold toward the anchor's normal."""
    axis_point, axis_direction = fold_axis(faces3d[anchor_face_id], fold_edge_id)
    for face_id in face_ids:
        faces3d[face_id].rotate(axis_point, axis_direction, delta_angle)


def _snapshot_offsets(state: PaperState) -> Dict[int, float]:
    return {face_id: face.offset for face_id, face in state.faces3d.items()}


def _apply_offsets(
    state: PaperState,
    components: Iterable[PaperComponent],
    old_offsets: Mapping[int, float],
    ancestors: Mapping[int, int],
) -> Dict[int, float]:
    """Store the new offsets of every face in `components` and return new - old."""
    deltas: Dict[int, float] = {}
    for component in components:
        for face_id, offset in component.compute_offsets().items():
            source = face_id if face_id in old_offsets else ancestors.get(face_id, face_id)
            old = old_offsets.get(source, 0.0)
            state.faces3d[face_id].offset = offset
            deltas[face_id] = offset - old
    return deltas


def _live_components(state: PaperState, face_ids: Iterable[int]) -> List[PaperComponent]:
    seen: Dict[int, PaperComponent] = {}
    for face_id in face_ids:
        if state.layers.has_face(face_id):
            component = state.layers.component_of(face_id)
            seen[component.component_id] = component
    return list(seen.values())


def _stack_mobile(
    state: PaperState,
    mobile_pieces: Sequence[PaperComponent],
    anchor_face_id: int,
    fold_edge_id: int,
    delta_angle: float,
    end: float,
) -> None:
    """Lay every mobile piece on the component that holds the anchor."""
    bottom = state.layers.component_of(anchor_face_id)
    lands_on_normal_side = is_angle(end, 0.0)
    if lands_on_normal_side != bottom.orientation_of(anchor_face_id):
        bottom.invert()
    for piece in mobile_pieces:
        result = state.layers.stack(bottom, piece, anchor_face_id, fold_edge_id, delta_angle, state.faces3d)
        bottom = result[0]


def _cut_components(
    state: PaperState,
    face_ids: Iterable[int],
    descendants: Mapping[int, Sequence[int]],
    mobile: Set[int],
    invert_mobile: bool,
) -> List[PaperComponent]:
    """Split (or partition) every component holding one of `face_ids`; returns the mobile pieces."""
    pieces: List[PaperComponent] = []
    for component in _live_components(state, face_ids):
        kids = {kid for face_id in component.faces() for kid in descendants.get(face_id, (face_id,))}
        stationary = kids - mobile
        if invert_mobile:
            _, mobile_piece = state.layers.partition(component.component_id, stationary)
        else:
            _, mobile_piece = state.layers.split(component.component_id, descendants, stationary)
        if mobile_piece is not None:
            pieces.append(mobile_piece)
    return pieces


def split_fold_layers(
    state: PaperState,
    case: FoldCase,
    descendants: Mapping[int, Sequence[int]],
    mobile: Set[int],
    anchor_face_id: int,
    fold_edge_id: int,
    end: float,
) -> Dict[int, float]:
    """
    LUG side of a split fold (start angle 180).

    Every component holding a split parent or a mobile face is split. For a
    partial split the mobile faces are only rotated; for a complete split the
    mobile pieces are stacked on the anchor's piece.

    Args:
        descendants: parent face id -> its two children.
        mobile: post-split ids of every face that moves.
    """
    old_offsets = _snapshot_offsets(state)
    ancestors = {kid: parent for parent, kids in descendants.items() for kid in kids}
    delta_angle = FLAT_ANGLE - end
    touched = set(descendants) | {ancestors.get(face_id, face_id) for face_id in mobile}

    mobile_pieces = _cut_components(state, touched, descendants, mobile, invert_mobile=False)
    if case == FoldCase.COMPLETE_SPLIT:
        _stack_mobile(state, mobile_pieces, anchor_face_id, fold_edge_id, delta_angle, end)
    else:
        rotate_faces(state.faces3d, mobile, anchor_face_id, fold_edge_id, delta_angle)

    results = _live_components(state, [kid for kids in descendants.values() for kid in kids] + list(mobile))
    deltas = _apply_offsets(state, results, old_offsets, ancestors)
    logger.debug(f"{case}: {len(results)} component(s) after the fold.")
    return deltas


def merge_fold_layers(
    state: PaperState,
    descendants: Mapping[int, int],
    pairs: Sequence[Tuple[int, int]],
    mobile: Set[int],
) -> Dict[int, float]:
    """
    LUG side of a merge fold (end angle 180). Mobile faces are already flat.

    Every component holding a merged face or a mobile face is partitioned; then
    each mobile piece is merged into the stationary piece it is hinged to, the
    mobile piece being inverted first if its first pair disagrees on
    orientation. Every pair of the fold is a hinge, so a stack unfolded through
    several layers lands each merged face on the layer of its stationary half.
    This mirrors the complete split step for step in reverse.

    Args:
        descendants: source face id -> merged face id.
        pairs: (stationary face, mobile face) of every merged pair, source ids.
        mobile: source ids of every face that moved.
    """
    old_offsets = _snapshot_offsets(state)
    touched = set(descendants) | mobile
    _cut_components(state, touched, {}, mobile, invert_mobile=True)

    layers = state.layers

    def owner(face_id: int) -> PaperComponent:
        return layers.component_of(face_id if layers.has_face(face_id) else descendants[face_id])

    for stationary_face, mobile_face in pairs:
        first, second = owner(stationary_face), owner(mobile_face)
        if first is second:
            continue
        first_face = stationary_face if stationary_face in first else descendants[stationary_face]
        second_face = mobile_face if mobile_face in second else descendants[mobile_face]
        if first.orientation_of(first_face) != second.orientation_of(second_face):
            second.invert()
        layers.merge(first, second, descendants, pairs)

    # A merged face starts from the offset of its stationary source
    ancestors = {descendants[stationary_face]: stationary_face for stationary_face, _ in pairs}
    results = _live_components(state, set(descendants.values()) | (mobile - set(descendants)))
    return _apply_offsets(state, results, old_offsets, ancestors)


def align_fold_layers(
    state: PaperState,
    case: FoldCase,
    mobile: Set[int],
    anchor_face_id: int,
    fold_edge_id: int,
    start: float,
    end: float,
) -> Dict[int, float]:
    """
    LUG side of a fold that keeps the face set (neither angle is 180).

    Partial align: partition and rotate. Complete and resolved align: partition
    and stack. Adjusted align: rotate only.
    """
    old_offsets = _snapshot_offsets(state)
    delta_angle = start - end
    if case == FoldCase.ADJUSTED_ALIGN:
        rotate_faces(state.faces3d, mobile, anchor_face_id, fold_edge_id, delta_angle)
    else:
        pieces = _cut_components(state, mobile | {anchor_face_id}, {}, mobile, invert_mobile=True)
        if case == FoldCase.PARTIAL_ALIGN:
            rotate_faces(state.faces3d, mobile, anchor_face_id, fold_edge_id, delta_angle)
        else:
            _stack_mobile(state, pieces, anchor_face_id, fold_edge_id, delta_angle, end)

    results = _live_components(state, mobile | {anchor_face_id})
    deltas = _apply_offsets(state, results, old_offsets, {})
    logger.debug(f"{case}: {len(results)} component(s) after the fold.")
    return deltas


def face_mutating_fold(
    state: PaperState,
    case: Optional[FoldCase],
    *,
    descendants: Mapping,
    mobile: Set[int],
    anchor_face_id: int,
    fold_edge_id: Optional[int] = None,
    end: float = FLAT_ANGLE,
    pairs: Sequence[Tuple[int, int]] = (),
) -> Dict[int, float]:
    """Dispatch a split or merge fold to its LUG recipe."""
    if case in SPLIT_CASES:
        return split_fold_layers(state, case, descendants, mobile, anchor_face_id, fold_edge_id, end)
    return merge_fold_layers(state, descendants, pairs, mobile)
