r"""
nonlinear_solver.py  --  Newton driver for pysurfem
===================================================
Repeatedly assembles ``KK dU = RES`` through an assembler callback,
imposes Dirichlet rows, solves with scipy and updates the unknown fields
until the residual's max-norm drops below tolerance.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from pysurfem.assembly.local_assembler import ElementKernel, assemble_nonlinear
from pysurfem.assembly.system import GlobalSystem
from pysurfem.core.dofhandler import DofHandler

logger = logging.getLogger(__name__)

Assembler = Callable[[GlobalSystem], Dict[str, float]]


# ----------------------------------------------------------------------------
#  Parameter dataclasses
# ----------------------------------------------------------------------------

@dataclass
class NewtonParameters:
    """Settings that govern a *single* Newton solve."""

    newton_tol: float = 1e-10           # ‖R‖_∞ convergence threshold
    max_newton_iter: int = 15           # hard cap on Newton iterations
    require_convergence: bool = True    # raise if the cap is reached


@dataclass
class LinearSolverParameters:
    backend: str = "scipy"              # "scipy" (direct) or "gmres"
    tol: float = 1e-12
    maxit: int = 1000


@dataclass
class NewtonResult:
    converged: bool
    iterations: int
    residual_norm: float
    diagnostics: Dict[str, float]


def _zero_rows_cols(A: sp.csr_matrix, rows: np.ndarray) -> sp.csr_matrix:
    """Zero out rows *and* columns and put 1.0 on the diagonal."""
    A = A.tolil()
    A[rows, :] = 0.0
    A[:, rows] = 0.0
    A[rows, rows] = 1.0
    return A.tocsr()


class NewtonSolver:
    def __init__(self, assembler: Assembler, dh: DofHandler,
                 newton_params: NewtonParameters | None = None,
                 lin_params: LinearSolverParameters | None = None,
                 *, name: str = "Newton"):
        self.assembler = assembler
        self.dh = dh
        self.np = newton_params or NewtonParameters()
        self.lp = lin_params or LinearSolverParameters()
        self.name = name
        self.system = GlobalSystem(dh.total_dofs)

    @classmethod
    def for_kernel(cls, kernel: ElementKernel, dh: DofHandler, *args, **kwargs) -> "NewtonSolver":
        def assembler(system):
            return assemble_nonlinear(kernel, dh, system)
        kwargs.setdefault("name", type(kernel).__name__)
        return cls(assembler, dh, *args, **kwargs)

    # ------------------------------------------------------------------
    def _assemble(self, bc_dofs: np.ndarray):
        diagnostics = self.assembler(self.system)
        A = self.system.matrix
        R = self.system.rhs.copy()
        if bc_dofs.size:
            R[bc_dofs] = 0.0
            A = _zero_rows_cols(A, bc_dofs)
        return A, R, diagnostics

    def _solve_linear_system(self, A: sp.csr_matrix, rhs: np.ndarray) -> np.ndarray:
        if self.lp.backend == "scipy":
            dU = spla.spsolve(A.tocsc(), rhs)
        elif self.lp.backend == "gmres":
            dU, info = spla.gmres(A, rhs, rtol=self.lp.tol, maxiter=self.lp.maxit)
            if info != 0:
                raise RuntimeError(f"{self.name}: GMRES did not converge (info={info}).")
        else:
            raise ValueError(f"Unknown linear solver backend '{self.lp.backend}'.")
        if not np.all(np.isfinite(dU)):
            raise RuntimeError(f"{self.name}: linear solve returned non-finite values "
                               "(singular Jacobian?).")
        return dU

    def solve(self, time_now: float = 0.0) -> NewtonResult:
        """Run Newton iterations on the dof handler's fields in place."""
        bc_data = self.dh.apply_bcs(time_now)
        bc_dofs = np.fromiter(bc_data.keys(), dtype=int, count=len(bc_data))

        norm_R = np.inf
        diagnostics: Dict[str, float] = {}
        for it in range(self.np.max_newton_iter):
            t0 = time.perf_counter()
            A, R, diagnostics = self._assemble(bc_dofs)
            norm_R = float(np.linalg.norm(R, ord=np.inf))
            logger.info("%s %d: |R|_inf = %.2e, assembly = %.3fs",
                        self.name, it + 1, norm_R, time.perf_counter() - t0)
            if norm_R < self.np.newton_tol:
                return NewtonResult(True, it, norm_R, diagnostics)

            dU = self._solve_linear_system(A, R)
            self.dh.add_to_fields(dU)

        if not self.np.require_convergence:
            return NewtonResult(False, self.np.max_newton_iter, norm_R, diagnostics)

        A, R, diagnostics = self._assemble(bc_dofs)
        norm_R = float(np.linalg.norm(R, ord=np.inf))
        logger.info("%s final: |R|_inf = %.2e", self.name, norm_R)
        if norm_R < self.np.newton_tol:
            return NewtonResult(True, self.np.max_newton_iter, norm_R, diagnostics)
        raise RuntimeError(f"{self.name}: Newton did not converge after "
                           f"{self.np.max_newton_iter} iterations (|R|_inf = {norm_R:.2e}).")
