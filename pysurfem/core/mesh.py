import numpy as np
from typing import Tuple, List, Dict, Callable

from pysurfem.core.topology import Facet


class SurfaceMesh:
    """
    Topology of a mesh embedded in 3-D.

    Surfaces are made of triangles or quadrilaterals whose local node order
    is counter-clockwise in the reference (u, v) plane. Line meshes (curves)
    and hexahedral meshes (solids) use the same machinery, so the Laplacian
    can be posed on a mesh of any topological dimension. The class builds the
    facet graph, identifies open boundary facets (closed surfaces have none),
    counts the number of elements around each vertex and splits the element
    range into contiguous ownership blocks.
    """
    # Local-corner indices of each facet. Surface facets are edges in CCW order.
    _FACET_TABLE = {
        'line': ((0,), (1,)),
        'tri':  ((0, 1), (1, 2), (2, 0)),
        'quad': ((0, 1), (1, 2), (2, 3), (3, 0)),
        'hex':  ((0, 3, 2, 1), (4, 5, 6, 7), (0, 1, 5, 4),
                 (1, 2, 6, 5), (2, 3, 7, 6), (3, 0, 4, 7)),
    }
    _NODES_PER_ELEMENT = {'line': 2, 'tri': 3, 'quad': 4, 'hex': 8}
    _DIMENSION = {'line': 1, 'tri': 2, 'quad': 2, 'hex': 3}

    def __init__(self, coords: np.ndarray, connectivity: np.ndarray, *, element_type: str = 'tri'):
        if element_type not in self._FACET_TABLE:
            raise KeyError(element_type)
        coords = np.asarray(coords, dtype=float)
        if coords.ndim != 2 or coords.shape[1] not in (1, 2, 3):
            raise ValueError(f"coords must be (n, 1), (n, 2) or (n, 3), got {coords.shape}")
        if coords.shape[1] < 3:
            coords = np.column_stack([coords, np.zeros((len(coords), 3 - coords.shape[1]))])
        connectivity = np.asarray(connectivity, dtype=int)
        if connectivity.ndim != 2 or connectivity.shape[1] != self._NODES_PER_ELEMENT[element_type]:
            raise ValueError(f"{element_type} connectivity must have "
                             f"{self._NODES_PER_ELEMENT[element_type]} columns, got {connectivity.shape}")

        self.element_type = element_type
        self.coords = coords
        self.elements_connectivity = connectivity
        self.n_nodes = len(coords)
        self.n_elements = len(connectivity)
        self.facets: List[Facet] = []
        self._build_topology()
        self._valence = np.bincount(connectivity.ravel(), minlength=self.n_nodes)

    def _build_topology(self):
        facet_defs = self._FACET_TABLE[self.element_type]
        incidences: Dict[Tuple[int, ...], List[Tuple[int, int]]] = {}
        for eid, nodes in enumerate(self.elements_connectivity):
            for lid, corners in enumerate(facet_defs):
                key = tuple(sorted(int(nodes[c]) for c in corners))
                incidences.setdefault(key, []).append((eid, lid))

        for gid, (key, shared) in enumerate(incidences.items()):
            if len(shared) > 2:
                raise ValueError(f"Non-manifold facet {key} shared by {len(shared)} elements.")
            left, lid = shared[0]
            right = shared[1][0] if len(shared) > 1 else None
            self.facets.append(Facet(gid=gid, nodes=key, left=left, right=right, lid=lid))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def dim(self) -> int:
        """Topological dimension of the elements."""
        return self._DIMENSION[self.element_type]

    @property
    def is_closed(self) -> bool:
        return not any(f.is_boundary for f in self.facets)

    def element_nodes(self, eid: int) -> np.ndarray:
        return self.elements_connectivity[eid]

    def element_coords(self, eid: int) -> np.ndarray:
        """(n_loc, 3) nodal coordinates of element *eid*."""
        return self.coords[self.elements_connectivity[eid]]

    def vertex_valence(self, node_id=None):
        """Number of elements sharing each vertex (or a single vertex)."""
        if node_id is None:
            return self._valence
        return int(self._valence[node_id])

    def tag_boundary_faces(self, face_functions: Dict[int, Callable[[float, float, float], bool]]):
        """Assigns integer face ids to boundary facets based on their centroid.

        Facets matched by no function keep face id 0.
        """
        for facet in self.facets:
            if not facet.is_boundary:
                continue
            centroid = self.coords[list(facet.nodes)].mean(axis=0)
            for face_id, func in face_functions.items():
                if func(centroid[0], centroid[1], centroid[2]):
                    facet.face = int(face_id)
                    break

    def node_faces(self) -> Dict[int, List[int]]:
        """Face ids touching each boundary node, in facet order."""
        faces: Dict[int, List[int]] = {}
        for facet in self.facets:
            if not facet.is_boundary:
                continue
            for n in facet.nodes:
                lst = faces.setdefault(n, [])
                if facet.face not in lst:
                    lst.append(facet.face)
        return faces

    # ------------------------------------------------------------------
    # Ownership ranges
    # ------------------------------------------------------------------
    def element_offset(self, n_parts: int = 1) -> np.ndarray:
        """Contiguous ownership offsets: part *r* owns ``[off[r], off[r+1])``."""
        if n_parts < 1:
            raise ValueError(n_parts)
        base, extra = divmod(self.n_elements, n_parts)
        sizes = np.full(n_parts, base, dtype=int)
        sizes[:extra] += 1
        return np.concatenate([[0], np.cumsum(sizes)])

    def owned_elements(self, rank: int = 0, n_parts: int = 1) -> range:
        if not 0 <= rank < n_parts:
            raise IndexError(rank)
        off = self.element_offset(n_parts)
        return range(int(off[rank]), int(off[rank + 1]))

    def __repr__(self):
        return (f"<SurfaceMesh {self.element_type}: {self.n_nodes} nodes, "
                f"{self.n_elements} elements, {len(self.facets)} facets>")
