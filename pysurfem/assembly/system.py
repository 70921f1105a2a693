"""pysurfem.assembly.system

Global residual vector and sparse Jacobian with accumulate-only access:
element blocks are added with ``add_*_blocked`` and the matrix becomes
available after ``close()``.
"""
import numpy as np, scipy.sparse as sp


class GlobalSystem:
    def __init__(self, n_dofs: int):
        self.n_dofs = int(n_dofs)
        self.zero()

    def zero(self):
        self._rows, self._cols, self._data = [], [], []
        self._rhs = np.zeros(self.n_dofs)
        self._matrix = None

    def add_vector_blocked(self, values, dofs):
        values = np.asarray(values, dtype=float).ravel()
        dofs = np.asarray(dofs, dtype=int)
        if values.size != dofs.size:
            raise ValueError(f"Block of {values.size} values for {dofs.size} dofs.")
        np.add.at(self._rhs, dofs, values)

    def add_matrix_blocked(self, block, rows, cols):
        """Add a dense block, given row-major or already shaped (len(rows), len(cols))."""
        rows = np.asarray(rows, dtype=int)
        cols = np.asarray(cols, dtype=int)
        block = np.asarray(block, dtype=float).reshape(rows.size, cols.size)
        r, c = np.meshgrid(rows, cols, indexing="ij")
        self._rows.append(r.ravel())
        self._cols.append(c.ravel())
        self._data.append(block.ravel())
        self._matrix = None

    def close(self):
        if self._data:
            rows = np.concatenate(self._rows)
            cols = np.concatenate(self._cols)
            data = np.concatenate(self._data)
        else:
            rows = cols = np.zeros(0, dtype=int)
            data = np.zeros(0)
        # duplicates are summed by the COO -> CSR conversion
        self._matrix = sp.coo_matrix((data, (rows, cols)), shape=(self.n_dofs, self.n_dofs)).tocsr()
        return self

    @property
    def matrix(self) -> sp.csr_matrix:
        if self._matrix is None:
            raise RuntimeError("GlobalSystem.matrix requested before close().")
        return self._matrix

    @property
    def rhs(self) -> np.ndarray:
        return self._rhs
