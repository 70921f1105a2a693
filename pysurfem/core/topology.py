from dataclasses import dataclass
from typing import Tuple, Optional


@dataclass(slots=True)
class Facet:
    """Codimension-one piece of the element boundary.

    An end point of a line element, an edge of a triangle or quadrilateral,
    a face of a hexahedron.
    """
    gid: int
    nodes: Tuple[int, ...]      # sorted global node indices
    left: int                   # first element that references the facet
    right: Optional[int]        # None on an open boundary
    face: int = 0               # boundary face id, 0 for interior facets
    lid: Optional[int] = None   # local facet index within the left element

    @property
    def is_boundary(self) -> bool:
        return self.right is None
