import numpy as np
import pytest
from pysurfem.assembly.curvature import CurvatureKernel, CurvatureParameters, PowerLaw
from pysurfem.assembly.laplacian import assemble_laplacian
from pysurfem.core.dofhandler import P1, DofHandler, FieldId, FieldRegistry
from pysurfem.solvers.nonlinear_solver import LinearSolverParameters, NewtonParameters, NewtonSolver
from pysurfem.utils.meshgen import icosphere, structured_quad


def _quartic_init(newton):
    reg = FieldRegistry(icosphere(1))
    reg.add(FieldId.CURVATURE, P1, 3)
    reg.add(FieldId.AUXILIARY, P1, 3)
    kernel = CurvatureKernel(CurvatureParameters(energy=PowerLaw((4,), (1.0,))))
    return NewtonSolver.for_kernel(kernel, DofHandler(reg, kernel.unknowns), newton)


def test_non_convergence_raises():
    solver = _quartic_init(NewtonParameters(newton_tol=1e-12, max_newton_iter=1))
    with pytest.raises(RuntimeError):
        solver.solve()


def test_capped_solve_returns_unconverged():
    solver = _quartic_init(NewtonParameters(newton_tol=1e-12, max_newton_iter=1,
                                            require_convergence=False))
    result = solver.solve()
    assert not result.converged
    assert result.iterations == 1
    assert solver.name == "CurvatureKernel"


def test_gmres_backend_matches_direct():
    values = []
    for backend in ("scipy", "gmres"):
        mesh = structured_quad(1.0, 1.0, nx=4, ny=4)
        reg = FieldRegistry(mesh)
        reg.add(FieldId.POTENTIAL, P1, 1)
        reg.attach_boundary_condition(lambda name, face, x, t: (True, x[0]))
        dh = DofHandler(reg, [FieldId.POTENTIAL])
        solver = NewtonSolver(lambda system: assemble_laplacian(dh, system, 0.0), dh,
                              NewtonParameters(newton_tol=1e-9, max_newton_iter=3),
                              LinearSolverParameters(backend=backend, tol=1e-13))
        assert solver.solve().converged
        values.append(reg[FieldId.POTENTIAL].values[:, 0].copy())
        # harmonic data: u = x everywhere
        assert np.allclose(values[-1], mesh.coords[:, 0], atol=1e-8)
    assert np.allclose(values[0], values[1], atol=1e-8)


def test_unknown_backend():
    solver = _quartic_init(NewtonParameters(max_newton_iter=1))
    solver.lp = LinearSolverParameters(backend="petsc")
    with pytest.raises(ValueError):
        solver.solve()
