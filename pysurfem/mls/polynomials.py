"""Multi-index sets and Chebyshev polynomials for tensor-product bases."""
from math import comb

import numpy as np
import numba


def compute_index_set(degree: int, dim: int) -> np.ndarray:
    """All multi-indices of total degree <= *degree* in *dim* variables.

    The enumeration runs an odometer of *dim* counters, each in
    ``0..degree``, with the first counter turning fastest; admissible states
    are stored with the counters reversed, so the *last* entry of a
    multi-index varies fastest::

        degree=3, dim=2 -> [0,0],[0,1],[0,2],[0,3],[1,0],[1,1],[1,2],[2,0],[2,1],[3,0]

    The result has C(dim + degree, degree) rows.
    """
    if degree < 0 or dim < 1:
        raise ValueError(f"Invalid degree {degree} / dimension {dim}.")
    out = np.empty((comb(dim + degree, degree), dim), dtype=np.int64)
    counters = [0] * (dim + 1)
    index = 0
    while not counters[dim]:
        if sum(counters[:dim]) <= degree:
            out[index] = counters[dim - 1::-1]
            index += 1
        i = 0
        while i < dim and counters[i] == degree:
            counters[i] = 0
            i += 1
        counters[i] += 1
    return out


@numba.jit(nopython=True, cache=True)
def chebyshev(n, x):
    """T_0(x) .. T_n(x) by the three-term recurrence."""
    T = np.empty(n + 1)
    T[0] = 1.0
    if n >= 1:
        T[1] = x
    for i in range(2, n + 1):
        T[i] = 2.0 * x * T[i - 1] - T[i - 2]
    return T


@numba.jit(nopython=True, cache=True)
def tensor_basis(z, index_set, degree):
    """Π_d T_{α_d}(z_d) for every multi-index α of *index_set*."""
    dim = z.shape[0]
    nb = index_set.shape[0]
    T = np.empty((dim, degree + 1))
    for d in range(dim):
        T[d] = chebyshev(degree, z[d])
    B = np.ones(nb)
    for k in range(nb):
        for d in range(dim):
            B[k] *= T[d, index_set[k, d]]
    return B
