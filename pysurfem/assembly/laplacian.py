"""pysurfem.assembly.laplacian
Scalar Laplace(-Beltrami) problem  -Δu = f  with first-order elements on
curves, surfaces or solids embedded in 3-D.

The form is linear, so the element Jacobian is the stiffness matrix itself
and no tape is recorded. The residual is R = K u - F and the scattered
right-hand side is RES = -R.
"""
from typing import Callable, Union

import numpy as np

from pysurfem.assembly.system import GlobalSystem
from pysurfem.core.dofhandler import DofHandler, FieldId
from pysurfem.fem.geometry import check_element
from pysurfem.fem.tabulation import tabulate

Source = Union[float, Callable[[np.ndarray], float]]


def element_system(x_nodes: np.ndarray, tab, source: Source = 1.0, eid=None):
    """Stiffness ``Ke`` and load ``Fe`` of one element.

    ``x_nodes`` is (3, n_loc). Gradients are tangential to the element, so the
    same code serves line, surface and volume elements in any orientation:
    with k reference directions x_uv is (3, k), g = x_uvᵀx_uv is k x k and
    g⁻¹x_uvᵀ maps reference derivatives to 3-D gradients.
    """
    check_element(x_nodes, tab.dphi, eid)
    n_loc = tab.n_loc
    Ke = np.zeros((n_loc, n_loc))
    Fe = np.zeros(n_loc)
    for N, dN, w in zip(tab.phi, tab.dphi, tab.weights):
        x_uv = x_nodes @ dN                         # (3, k)
        g = x_uv.T @ x_uv
        detg = np.linalg.det(g)
        Jir = np.linalg.solve(g, x_uv.T)            # (k, 3) g^{-1} x_uv^T
        grad = dN @ Jir                             # (n_loc, 3)
        dA = w * np.sqrt(detg)
        Ke += dA * grad @ grad.T
        f = source(x_nodes @ N) if callable(source) else source
        Fe += dA * f * N
    return Ke, Fe


def assemble_laplacian(dh: DofHandler, system: GlobalSystem, source: Source = 1.0,
                       *, quad_order: int = 2, rank: int = 0, n_parts: int = 1):
    if dh.unknowns != (FieldId.POTENTIAL,):
        raise ValueError("The Laplacian is assembled for the single unknown 'u'.")
    mesh = dh.mesh
    tab = tabulate(mesh.element_type, 1, quad_order)
    u = dh.registry[FieldId.POTENTIAL]
    system.zero()
    for eid in mesh.owned_elements(rank, n_parts):
        Ke, Fe = element_system(mesh.element_coords(eid).T, tab, source, eid)
        dofs = dh.element_dofs(eid)
        ue = u.values[u.local_dofs(eid), 0]
        system.add_vector_blocked(Fe - Ke @ ue, dofs)
        system.add_matrix_blocked(Ke, dofs, dofs)
    system.close()
    return {}
