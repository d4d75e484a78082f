"""
Layered Stack Graph (LUG)
=========================
Which faces lie on top of which other faces in folded space.

Why is this file needed?
------------------------
1. Layering: a component is an ordered stack of layers. Faces in adjacent layers
   that overlap are linked up/down. The renderer nudges each face along its
   normal by its layer so that stacked faces do not z-fight.
2. Orientation: every node remembers whether the face's principal normal points
   toward increasing layer index. Flipping a component (invert) flips all bits.
3. Restructuring: split / partition cut a component into a stationary and a
   mobile piece, stack lays a folded-over piece on top of another, and merge
   unites two pieces when a fold is undone.

Classes:
    FaceNode: One face in one layer.
    PaperComponent: Layers of overlapping faces.
    LayeredGraph: Registry of live components.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from paperfold.model.errors import InvalidArgumentError, InvariantViolationError, NotFoundError
from paperfold.model.geometry_primitives import (
    Point3D, average, cross_product, dot_product, normalize, scalar_mult, subtract,
)
from paperfold.model.geometry_utils import plane_basis, polygons_overlap

if TYPE_CHECKING:
    from paperfold.model.face import Face3D

logger = logging.getLogger(__name__)


@dataclass
class FaceNode:
    face_id: int
    up_links: Set[int] = field(default_factory=set)
    down_links: Set[int] = field(default_factory=set)
    # True: principal normal points toward increasing layer index
    orientation: bool = True


class PaperComponent:
    """An ordered stack of layers; layer 0 is the bottom."""

    def __init__(self, component_id: int, layers: Optional[List[Dict[int, FaceNode]]] = None) -> None:
        self.component_id = component_id
        self.layers: List[Dict[int, FaceNode]] = layers if layers is not None else []
        self.layer_map: Dict[int, int] = {}
        self.set_layer_map()

    def __repr__(self) -> str:
        return f"PaperComponent(id={self.component_id}, layers={[sorted(layer) for layer in self.layers]})"

    @property
    def layer_count(self) -> int:
        return len(self.layers)

    def faces(self) -> List[int]:
        return sorted(self.layer_map)

    def __contains__(self, face_id: int) -> bool:
        return face_id in self.layer_map

    def node(self, face_id: int) -> FaceNode:
        if face_id not in self.layer_map:
            raise NotFoundError(
                f"Face {face_id} is not in component {self.component_id}.",
                {"face_id": face_id, "component_id": self.component_id},
            )
        return self.layers[self.layer_map[face_id]][face_id]

    def orientation_of(self, face_id: int) -> bool:
        return self.node(face_id).orientation

    def ensure_layer(self, index: int) -> Dict[int, FaceNode]:
        while len(self.layers) <= index:
            self.layers.append({})
        return self.layers[index]

    def set_layer_map(self) -> None:
        self.layer_map = {face_id: index for index, layer in enumerate(self.layers) for face_id in layer}

    def clean(self) -> None:
        """Trim empty layers off the top and bottom."""
        while self.layers and not self.layers[-1]:
            self.layers.pop()
        while self.layers and not self.layers[0]:
            self.layers.pop(0)
        self.set_layer_map()

    def invert(self) -> None:
        """Turn the component over: reverse the layers, swap links, flip orientations."""
        self.layers.reverse()
        for layer in self.layers:
            for node in layer.values():
                node.up_links, node.down_links = node.down_links, node.up_links
                node.orientation = not node.orientation
        self.set_layer_map()

    def link(self, lower_face_id: int, upper_face_id: int) -> None:
        self.node(lower_face_id).up_links.add(upper_face_id)
        self.node(upper_face_id).down_links.add(lower_face_id)

    def compute_offsets(self) -> Dict[int, float]:
        """
        Offset of every face along its principal normal, in paper thicknesses.

        Layers are centred on the middle of the stack.
        """
        middle = (len(self.layers) - 1) / 2
        offsets = {}
        for index, layer in enumerate(self.layers):
            for face_id, node in layer.items():
                sign = 1.0 if node.orientation else -1.0
                offsets[face_id] = (index - middle) * sign
        return offsets

    def check_invariants(self) -> None:
        details = {"component_id": self.component_id}
        if not self.layers or not self.layers[0] or not self.layers[-1]:
            raise InvariantViolationError(f"Component {self.component_id} is not compressed.", details)
        seen: Set[int] = set()
        for index, layer in enumerate(self.layers):
            for face_id, node in layer.items():
                if face_id in seen or node.face_id != face_id:
                    raise InvariantViolationError(
                        f"Face {face_id} is listed twice in component {self.component_id}.", details
                    )
                seen.add(face_id)
                if self.layer_map.get(face_id) != index:
                    raise InvariantViolationError(
                        f"Layer map of component {self.component_id} is stale for face {face_id}.", details
                    )
                for up in node.up_links:
                    if self.layer_map.get(up) != index + 1 or face_id not in self.node(up).down_links:
                        raise InvariantViolationError(
                            f"Link {face_id} -> {up} in component {self.component_id} is broken.", details
                        )
                for down in node.down_links:
                    if self.layer_map.get(down) != index - 1 or face_id not in self.node(down).up_links:
                        raise InvariantViolationError(
                            f"Link {down} -> {face_id} in component {self.component_id} is broken.", details
                        )
        if seen != set(self.layer_map):
            raise InvariantViolationError(f"Layer map of component {self.component_id} is stale.", details)


def fold_axis(anchor: Face3D, fold_edge_id: int) -> Tuple[Point3D, Point3D]:
    """
    Rotation axis along an edge of the anchor face.

    The direction u is chosen so that (w x u) . n > 0, where w points from the
    edge into the anchor and n is the anchor's principal normal. A positive
    rotation about u then swings the far side toward n, which is what
    decreasing the dihedral angle does.
    """
    start, end = anchor.edge(fold_edge_id)
    u = normalize(subtract(end, start))
    inward = subtract(average(anchor.vertices), start)
    inward = subtract(inward, scalar_mult(u, dot_product(inward, u)))
    if dot_product(cross_product(inward, u), anchor.principal_normal) < 0:
        u = scalar_mult(u, -1.0)
    return start, u


def _up_direction(component: PaperComponent, faces3d: Mapping[int, Face3D]) -> Point3D:
    face_id = component.faces()[0]
    normal = faces3d[face_id].principal_normal
    return normal if component.orientation_of(face_id) else scalar_mult(normal, -1.0)


class LayeredGraph:
    """Registry of the live components and the component each face belongs to."""

    def __init__(self) -> None:
        self.components: Dict[int, PaperComponent] = {}
        self.face_to_component: Dict[int, int] = {}
        self._next_component_id = 0

    def __len__(self) -> int:
        return len(self.components)

    def new_component(self, layers: Optional[List[Dict[int, FaceNode]]] = None) -> PaperComponent:
        component = PaperComponent(self._next_component_id, layers)
        self._next_component_id += 1
        return component

    def register(self, component: PaperComponent) -> PaperComponent:
        self.components[component.component_id] = component
        for face_id in component.faces():
            self.face_to_component[face_id] = component.component_id
        return component

    def discard(self, component_id: int) -> None:
        component = self.components.pop(component_id, None)
        if component is None:
            raise NotFoundError(f"Component {component_id} does not exist.", {"component_id": component_id})
        for face_id in component.faces():
            if self.face_to_component.get(face_id) == component_id:
                del self.face_to_component[face_id]

    def component_of(self, face_id: int) -> PaperComponent:
        if face_id not in self.face_to_component:
            raise NotFoundError(f"Face {face_id} is not in any component.", {"face_id": face_id})
        return self.components[self.face_to_component[face_id]]

    def has_face(self, face_id: int) -> bool:
        return face_id in self.face_to_component

    def add_single_face(self, face_id: int, orientation: bool = True) -> PaperComponent:
        if face_id in self.face_to_component:
            raise InvalidArgumentError(f"Face {face_id} is already layered.", {"face_id": face_id})
        component = self.new_component([{face_id: FaceNode(face_id, orientation=orientation)}])
        return self.register(component)

    # ---------------- Split / partition ----------------

    def split(
        self,
        component_id: int,
        descendants: Mapping[int, Sequence[int]],
        stationary: Set[int],
    ) -> Tuple[Optional[PaperComponent], Optional[PaperComponent]]:
        """
        Cut a component into a stationary and a mobile piece.

        Faces are fanned out to their descendants (a face without an entry is
        its own descendant); a descendant in `stationary` goes to the
        stationary piece, every other one to the mobile piece. A link survives
        between descendants that land in the same piece. Either piece may come
        back as None when it is empty.
        """
        component = self.components[component_id]
        stat = self.new_component()
        mobile = self.new_component()

        def kids(face_id: int) -> Sequence[int]:
            return descendants.get(face_id, (face_id,))

        def target(face_id: int) -> PaperComponent:
            return stat if face_id in stationary else mobile

        for index, layer in enumerate(component.layers):
            stat.ensure_layer(index)
            mobile.ensure_layer(index)
            for face_id, node in layer.items():
                for kid in kids(face_id):
                    target(kid).layers[index][kid] = FaceNode(kid, orientation=node.orientation)
        stat.set_layer_map()
        mobile.set_layer_map()

        for layer in component.layers:
            for face_id, node in layer.items():
                for upper in node.up_links:
                    for kid_low in kids(face_id):
                        for kid_up in kids(upper):
                            piece = target(kid_low)
                            if piece is target(kid_up):
                                piece.link(kid_low, kid_up)

        self.discard(component_id)
        result = []
        for piece in (stat, mobile):
            piece.clean()
            result.append(self.register(piece) if piece.layers else None)
        logger.debug(f"Split component {component_id} -> stationary {result[0]!r}, mobile {result[1]!r}.")
        return result[0], result[1]

    def partition(
        self,
        component_id: int,
        stationary: Set[int],
    ) -> Tuple[Optional[PaperComponent], Optional[PaperComponent]]:
        """
        Split without creating faces; the mobile piece is inverted so it can be
        stacked back from its own bottom.
        """
        stat, mobile = self.split(component_id, {}, stationary)
        if mobile is not None:
            mobile.invert()
        return stat, mobile

    # ---------------- Stack ----------------

    def stack(
        self,
        bottom: PaperComponent,
        top: PaperComponent,
        anchor_face_id: int,
        fold_edge_id: int,
        delta_angle: float,
        faces3d: Mapping[int, Face3D],
    ) -> List[PaperComponent]:
        """
        Fold `top` over by `delta_angle` about the anchor's fold edge and lay it
        on `bottom`.

        `top` is inverted first if its up direction disagrees with the bottom's.
        Each layer j of `top` goes to layer j + k of the result, with k the
        smallest shift that keeps every overlapping pair apart. Overlapping faces
        in adjacent layers are linked.

        Returns:
            [combined] when the pieces overlap, otherwise [bottom, top] unchanged
            apart from the rotation.
        """
        anchor = faces3d[anchor_face_id]
        axis_point, axis_direction = fold_axis(anchor, fold_edge_id)
        for face_id in top.faces():
            faces3d[face_id].rotate(axis_point, axis_direction, delta_angle)

        if dot_product(_up_direction(bottom, faces3d), _up_direction(top, faces3d)) < 0:
            top.invert()

        basis = plane_basis(anchor.vertices[0], anchor.vertices[1], anchor.principal_normal)
        polygons = {face_id: faces3d[face_id].projected_polygon(basis)
                    for face_id in bottom.faces() + top.faces()}

        overlaps: List[Tuple[int, int]] = []
        shift: Optional[int] = None
        for low in bottom.faces():
            for high in top.faces():
                if polygons_overlap(polygons[low], polygons[high]):
                    overlaps.append((low, high))
                    k = bottom.layer_map[low] - top.layer_map[high] + 1
                    shift = k if shift is None else max(shift, k)
        if shift is None:
            logger.debug(f"Components {bottom.component_id} and {top.component_id} do not overlap.")
            return [bottom, top]

        bottom_shift = max(0, -shift)
        top_shift = shift + bottom_shift
        combined = self.new_component()
        for piece, offset in ((bottom, bottom_shift), (top, top_shift)):
            for index, layer in enumerate(piece.layers):
                combined.ensure_layer(index + offset).update(layer)
        combined.set_layer_map()

        for low in bottom.faces():
            for high in top.faces():
                pairs = ((low, high), (high, low))
                for lower, upper in pairs:
                    if (combined.layer_map[upper] == combined.layer_map[lower] + 1
                            and polygons_overlap(polygons[lower], polygons[upper])):
                        combined.link(lower, upper)

        self.discard(bottom.component_id)
        self.discard(top.component_id)
        combined.clean()
        self.register(combined)
        logger.debug(f"Stacked {len(overlaps)} overlapping pair(s) into {combined!r}.")
        return [combined]

    # ---------------- Merge ----------------

    def merge(
        self,
        first: PaperComponent,
        second: PaperComponent,
        descendants: Mapping[int, int],
        pairs: Sequence[Tuple[int, int]],
    ) -> PaperComponent:
        """
        Unite two components when a fold is undone.

        Every (first face, second face) pair of `pairs` whose faces sit in
        `first` and `second` is a hinge: its merge descendant takes the layer of
        the first face. A face of `second` that is not a hinge keeps its distance
        to the nearest hinge face of `second`. Layers left empty are squeezed
        out, and links survive between faces that end up in adjacent layers.
        """
        def resolve(component: PaperComponent, face_id: int) -> Optional[int]:
            if face_id in component:
                return face_id
            new_id = descendants.get(face_id)
            return new_id if new_id is not None and new_id in component else None

        hinges: Dict[int, int] = {}
        for pair in pairs:
            face_a, face_b = resolve(first, pair[0]), resolve(second, pair[1])
            if face_a is None or face_b is None:
                continue
            if first.orientation_of(face_a) != second.orientation_of(face_b):
                raise InvariantViolationError(
                    f"Faces {pair[0]} and {pair[1]} disagree on orientation.",
                    {"face_a": pair[0], "face_b": pair[1]},
                )
            hinges[face_b] = first.layer_map[face_a]
        if not hinges:
            raise InvariantViolationError(
                f"Components {first.component_id} and {second.component_id} share no merged pair.",
                {"pairs": [list(pair) for pair in pairs]},
            )

        placed: Dict[int, int] = dict(first.layer_map)
        for face_id, index in second.layer_map.items():
            if face_id in hinges:
                placed[face_id] = hinges[face_id]
                continue
            nearest = min(hinges, key=lambda h: (abs(second.layer_map[h] - index), h))
            placed[face_id] = hinges[nearest] + index - second.layer_map[nearest]

        targets: Dict[int, int] = {}
        for face_id, index in placed.items():
            new_id = descendants.get(face_id, face_id)
            if targets.setdefault(new_id, index) != index:
                raise InvariantViolationError(
                    f"Merged face {new_id} would sit in layers {targets[new_id]} and {index}.",
                    {"face_id": new_id},
                )
        squeezed = {index: rank for rank, index in enumerate(sorted(set(targets.values())))}

        merged = self.new_component()
        for piece in (first, second):
            for face_id, node in (item for layer in piece.layers for item in layer.items()):
                new_id = descendants.get(face_id, face_id)
                target = merged.ensure_layer(squeezed[targets[new_id]])
                if new_id not in target:
                    target[new_id] = FaceNode(new_id, orientation=node.orientation)
        merged.set_layer_map()

        for piece in (first, second):
            for layer in piece.layers:
                for face_id, node in layer.items():
                    for other in node.up_links:
                        low = descendants.get(face_id, face_id)
                        high = descendants.get(other, other)
                        if merged.layer_map[low] > merged.layer_map[high]:
                            low, high = high, low
                        if merged.layer_map[high] == merged.layer_map[low] + 1:
                            merged.link(low, high)

        self.discard(first.component_id)
        self.discard(second.component_id)
        merged.clean()
        self.register(merged)
        logger.debug(f"Merged components over {len(hinges)} hinge(s) into {merged!r}.")
        return merged

    # ---------------- Validation ----------------

    def all_faces(self) -> Set[int]:
        return set(self.face_to_component)

    def check_invariants(self, face_ids: Optional[Iterable[int]] = None) -> None:
        """Each component compressed and consistent; each face in exactly one component."""
        owners: Dict[int, int] = {}
        for component_id, component in self.components.items():
            component.check_invariants()
            for face_id in component.faces():
                if face_id in owners:
                    raise InvariantViolationError(
                        f"Face {face_id} is in components {owners[face_id]} and {component_id}.",
                        {"face_id": face_id},
                    )
                owners[face_id] = component_id
        if owners != self.face_to_component:
            raise InvariantViolationError("Face-to-component map is stale.")
        if face_ids is not None and set(face_ids) != set(owners):
            missing = sorted(set(face_ids) ^ set(owners))
            raise InvariantViolationError(
                f"Faces {missing} are not layered exactly once.", {"face_ids": missing}
            )
