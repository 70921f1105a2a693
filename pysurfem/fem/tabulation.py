"""Shape functions and parametric derivatives evaluated at quadrature points."""
from dataclasses import dataclass
from functools import lru_cache

import numpy as np

from pysurfem.fem.reference import get_reference
from pysurfem.integration.quadrature import volume


@dataclass(frozen=True)
class Tabulation:
    points: np.ndarray      # (nq, dim) reference coordinates
    weights: np.ndarray     # (nq,)
    phi: np.ndarray         # (nq, n_loc)
    dphi: np.ndarray        # (nq, n_loc, dim) d/du, d/dv, ...

    @property
    def n_qp(self) -> int:
        return len(self.weights)

    @property
    def n_loc(self) -> int:
        return self.phi.shape[1]


@lru_cache(maxsize=None)
def tabulate(element_type: str, poly_order: int = 1, quad_order: int = 2) -> Tabulation:
    ref = get_reference(element_type, poly_order)
    pts, wts = volume(element_type, quad_order)
    phi = np.array([ref.shape(*(float(c) for c in p)) for p in pts])
    dphi = np.array([ref.grad(*(float(c) for c in p)) for p in pts])
    for arr in (pts, wts, phi, dphi):
        arr.setflags(write=False)
    return Tabulation(pts, wts, phi, dphi)


def map_to_planar_element(tab: Tabulation, vertices: np.ndarray) -> Tabulation:
    """Re-express a P1 triangle tabulation on a planar triangle.

    *vertices* is (2, 3): column i holds the (u, v) position of vertex i.
    Weights pick up |det J| and derivatives become d/du, d/dv of the planar
    element, which is how an affine reference triangle other than the unit
    one is used as parameter domain.
    """
    vertices = np.asarray(vertices, dtype=float)
    J = np.einsum('ai,qib->qab', vertices, tab.dphi)   # (nq, 2, 2)
    detJ = np.linalg.det(J)
    if np.any(np.abs(detJ) <= 1e-14):
        raise ValueError("Degenerate parameter triangle.")
    Jinv = np.linalg.inv(J)
    dphi = np.einsum('qib,qba->qia', tab.dphi, Jinv)
    return Tabulation(tab.points, tab.weights * np.abs(detJ), tab.phi, dphi)
