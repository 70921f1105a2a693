"""pysurfem.mls.builder

Moving-least-squares interpolation with a Chebyshev reproducing basis on a
structured tensor grid. Every background node i owns a small normal-equations
system

    Σ_p W_i(x_p) T(z_ip) T(z_ip)ᵀ α_i = T(0),   z_ip = (X_i - x_p) / h_i,

accumulated over the sample points of the cells around the node. With the
solved α_i, the MLS value at node i of data f sampled at the points is

    U_i = Σ_p W_i(x_p) (α_i · T(z_ip)) f(x_p),

which reproduces every polynomial up to the basis degree exactly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
import numba

from pysurfem.mls.grid import element_dofs, multi_index
from pysurfem.mls.linalg import DegenerateSystemError, gaussian_elimination
from pysurfem.mls.polynomials import chebyshev, compute_index_set, tensor_basis

logger = logging.getLogger(__name__)

ON_DEGENERATE = ("raise", "skip")


# ----------------------------------------------------------------------------
#  numba kernels
# ----------------------------------------------------------------------------
@numba.jit(nopython=True, cache=True)
def _weight_and_basis(xp, node_multi, el_size, Xv, hv, index_set, degree):
    dim = xp.shape[0]
    z = np.empty(dim)
    W = 1.0
    for d in range(dim):
        r = Xv[node_multi[d]] - xp[d]
        z[d] = r / hv[node_multi[d]]
        W *= 1.0 - abs(r) / el_size[d]
    return W, tensor_basis(z, index_set, degree)


@numba.jit(nopython=True, cache=True)
def _accumulate_moments(points, point_cells, cell_dofs, cell_multi, node_multi,
                        Xv, hv, sizes, index_set, degree, n_nodes):
    nb = index_set.shape[0]
    dim = points.shape[1]
    M = np.zeros((n_nodes, nb, nb))
    el_size = np.empty(dim)
    for p in range(points.shape[0]):
        c = point_cells[p]
        for d in range(dim):
            el_size[d] = sizes[cell_multi[c, d]]
        for a in range(cell_dofs.shape[1]):
            i = cell_dofs[c, a]
            W, B = _weight_and_basis(points[p], node_multi[i], el_size, Xv, hv, index_set, degree)
            for k in range(nb):
                for l in range(nb):
                    M[i, k, l] += W * B[k] * B[l]
    return M


@numba.jit(nopython=True, cache=True)
def _reconstruct(points, values, point_cells, cell_dofs, cell_multi, node_multi,
                 Xv, hv, sizes, index_set, degree, alpha):
    dim = points.shape[1]
    U = np.zeros(alpha.shape[0])
    el_size = np.empty(dim)
    for p in range(points.shape[0]):
        c = point_cells[p]
        for d in range(dim):
            el_size[d] = sizes[cell_multi[c, d]]
        for a in range(cell_dofs.shape[1]):
            i = cell_dofs[c, a]
            W, B = _weight_and_basis(points[p], node_multi[i], el_size, Xv, hv, index_set, degree)
            s = 0.0
            for k in range(B.shape[0]):
                s += alpha[i, k] * B[k]
            U[i] += W * s * values[p]
    return U


# ----------------------------------------------------------------------------
#  Background grid
# ----------------------------------------------------------------------------
@dataclass
class TensorGrid:
    """Structured grid with the same node positions *Xv* in every direction and
    a support radius *hv* per 1-D node."""
    Xv: np.ndarray
    hv: np.ndarray
    dim: int = 2

    def __post_init__(self):
        self.Xv = np.asarray(self.Xv, dtype=float)
        self.hv = np.asarray(self.hv, dtype=float)
        if self.Xv.ndim != 1 or self.Xv.shape != self.hv.shape:
            raise ValueError("Xv and hv must be 1-D arrays of equal length.")
        if np.any(np.diff(self.Xv) <= 0.0):
            raise ValueError("Grid nodes must be strictly increasing.")
        if np.any(self.hv <= 0.0):
            raise ValueError("Support sizes must be positive.")

    @property
    def nve1d(self) -> int:
        return self.Xv.size

    @property
    def nel1d(self) -> int:
        return self.Xv.size - 1

    @property
    def n_nodes(self) -> int:
        return self.nve1d ** self.dim

    @property
    def n_elements(self) -> int:
        return self.nel1d ** self.dim

    @property
    def element_sizes(self) -> np.ndarray:
        return np.diff(self.Xv)

    def node_multi_indices(self) -> np.ndarray:
        return np.array([multi_index(i, self.dim, self.nve1d) for i in range(self.n_nodes)])

    def element_multi_indices(self) -> np.ndarray:
        return np.array([multi_index(e, self.dim, self.nel1d) for e in range(self.n_elements)])

    def element_dofs(self) -> np.ndarray:
        return np.array([element_dofs(idx, self.nve1d) for idx in self.element_multi_indices()])

    def node_coords(self) -> np.ndarray:
        return self.Xv[self.node_multi_indices()]

    def sample_points(self, n_per_element: int, rng: np.random.Generator | int | None = None):
        """Uniformly random points, *n_per_element* in every cell.

        Returns ``(points, cells)`` with ``points`` of shape (N, dim).
        """
        rng = np.random.default_rng(rng)
        lo = self.Xv[self.element_multi_indices()]                    # (n_el, dim)
        h = self.element_sizes[self.element_multi_indices()]
        u = rng.random((self.n_elements, n_per_element, self.dim))
        points = lo[:, None, :] + u * h[:, None, :]
        cells = np.repeat(np.arange(self.n_elements), n_per_element)
        return points.reshape(-1, self.dim), cells


# ----------------------------------------------------------------------------
#  Interpolator
# ----------------------------------------------------------------------------
class MLSInterpolator:
    """Per-node MLS coefficients for one cloud of sample points.

    Parameters
    ----------
    grid : TensorGrid
    degree : int
        Total degree of the Chebyshev reproducing basis.
    on_degenerate : {"raise", "skip"}
        What to do when a node's moment matrix is singular: propagate
        :class:`DegenerateSystemError`, or log a warning and store NaN
        coefficients for that node.
    """

    def __init__(self, grid: TensorGrid, degree: int = 3, *,
                 on_degenerate: str = "raise", pivot_tol: float = 1e-14):
        if on_degenerate not in ON_DEGENERATE:
            raise ValueError(f"on_degenerate must be one of {ON_DEGENERATE}, got '{on_degenerate}'.")
        self.grid = grid
        self.degree = int(degree)
        self.on_degenerate = on_degenerate
        self.pivot_tol = pivot_tol
        self.index_set = compute_index_set(self.degree, grid.dim)

        self._node_multi = grid.node_multi_indices()
        self._cell_multi = grid.element_multi_indices()
        self._cell_dofs = grid.element_dofs()

        self.points: Optional[np.ndarray] = None
        self.cells: Optional[np.ndarray] = None
        self.alpha: Optional[np.ndarray] = None
        self.degenerate_nodes: list[int] = []

    @property
    def n_basis(self) -> int:
        return self.index_set.shape[0]

    def moment_rhs(self) -> np.ndarray:
        """Π_d T_{α_d}(0) for every multi-index α."""
        T0 = chebyshev(self.degree, 0.0)
        return np.prod(T0[self.index_set], axis=1)

    def _kernel_args(self):
        g = self.grid
        return (self.cells, self._cell_dofs, self._cell_multi, self._node_multi,
                g.Xv, g.hv, g.element_sizes, self.index_set, self.degree)

    def moment_matrices(self) -> np.ndarray:
        if self.points is None:
            raise RuntimeError("fit() must be called before the moment matrices are available.")
        return _accumulate_moments(self.points, *self._kernel_args(), self.grid.n_nodes)

    def fit(self, points, cells) -> "MLSInterpolator":
        """Assemble and solve the moment system of every background node."""
        points = np.ascontiguousarray(points, dtype=float)
        cells = np.ascontiguousarray(cells, dtype=np.int64)
        if points.ndim != 2 or points.shape[1] != self.grid.dim:
            raise ValueError(f"points must have shape (N, {self.grid.dim}).")
        if cells.shape != (points.shape[0],):
            raise ValueError("Need one cell index per sample point.")
        self.points, self.cells = points, cells

        M = self.moment_matrices()
        rhs = self.moment_rhs()
        alpha = np.empty((self.grid.n_nodes, self.n_basis))
        self.degenerate_nodes = []
        for i in range(self.grid.n_nodes):
            try:
                alpha[i] = gaussian_elimination(M[i], rhs, tol=self.pivot_tol)
            except DegenerateSystemError as exc:
                if self.on_degenerate == "raise":
                    raise
                logger.warning("MLS node %d skipped: %s", i, exc)
                alpha[i] = np.nan
                self.degenerate_nodes.append(i)
        self.alpha = alpha
        logger.debug("MLS fit: %d nodes, %d points, %d basis functions, %d degenerate",
                     self.grid.n_nodes, points.shape[0], self.n_basis, len(self.degenerate_nodes))
        return self

    def reconstruct(self, values) -> np.ndarray:
        """Nodal MLS values of data sampled at the fitted points."""
        if self.alpha is None:
            raise RuntimeError("fit() must be called before reconstruct().")
        values = np.ascontiguousarray(values, dtype=float)
        if values.shape != (self.points.shape[0],):
            raise ValueError("Need one value per sample point.")
        return _reconstruct(self.points, values, *self._kernel_args(), self.alpha)


def build_mls(grid: TensorGrid, f: Callable, *, degree: int = 3, extra_points: int = 5,
              rng=None, on_degenerate: str = "raise"):
    """Sample *f* at random points in every cell and return ``(interp, U)``.

    Each cell receives as many points as there are basis functions plus
    *extra_points*. *f* is called with the (N, dim) point array.
    """
    interp = MLSInterpolator(grid, degree, on_degenerate=on_degenerate)
    points, cells = grid.sample_points(interp.n_basis + extra_points, rng)
    interp.fit(points, cells)
    return interp, interp.reconstruct(f(points))
