"""Dense Gaussian elimination for the small MLS moment systems."""
import numpy as np


class DegenerateSystemError(ArithmeticError):
    """A (numerically) singular matrix was met during elimination."""

    def __init__(self, column, pivot):
        super().__init__(f"The matrix is singular: pivot {pivot:.3e} in column {column}.")
        self.column = column
        self.pivot = pivot


def gaussian_elimination(A, b, tol: float = 1e-14):
    """Solve ``A x = b`` by elimination with partial (max-abs) pivoting.

    Raises :class:`DegenerateSystemError` when the best available pivot is
    below ``tol * max|A|``. The inputs are not modified.
    """
    A = np.array(A, dtype=float)
    b = np.array(b, dtype=float)
    n = A.shape[0]
    if A.shape != (n, n) or b.shape != (n,):
        raise ValueError(f"Incompatible shapes {A.shape} and {b.shape}.")
    M = np.column_stack([A, b])             # augmented n x (n+1)
    thresh = tol * max(float(np.abs(A).max(initial=0.0)), np.finfo(float).tiny)

    for i in range(n):
        p = i + int(np.argmax(np.abs(M[i:, i])))
        if abs(M[p, i]) <= thresh:
            raise DegenerateSystemError(i, M[p, i])
        if p != i:
            M[[i, p]] = M[[p, i]]
        m = M[i + 1:, i] / M[i, i]
        M[i + 1:, i:] -= np.outer(m, M[i, i:])

    x = np.empty(n)
    for i in range(n - 1, -1, -1):
        x[i] = (M[i, n] - M[i, i + 1:n] @ x[i + 1:]) / M[i, i]
    return x
