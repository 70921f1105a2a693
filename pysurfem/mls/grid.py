"""Index arithmetic on structured tensor grids of arbitrary dimension."""
import numpy as np


def multi_index(i: int, dim: int, n: int) -> np.ndarray:
    """Digits of *i* in base *n*, most significant first (length *dim*)."""
    return np.array([(i % n ** (dim - d)) // n ** (dim - 1 - d) for d in range(dim)], dtype=np.int64)


def element_dofs(idx, nve1d: int) -> np.ndarray:
    """Global node numbers of the 2^dim corners of the cell with multi-index *idx*.

    Corner j takes offset bit (dim-1-d) of j in direction d, so the last
    direction alternates fastest: in 2-D the corners are
    (i0, i1), (i0, i1+1), (i0+1, i1), (i0+1, i1+1).
    """
    idx = np.asarray(idx, dtype=np.int64)
    dim = idx.size
    size = 2 ** dim
    dofs = np.zeros(size, dtype=np.int64)
    for d in range(dim):
        stride = nve1d ** (dim - 1 - d)
        bit = dim - 1 - d
        for j in range(size):
            dofs[j] += (idx[d] + ((j >> bit) & 1)) * stride
    return dofs
