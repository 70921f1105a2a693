import numpy as np
import pytest
from pysurfem.assembly.laplacian import assemble_laplacian, element_system
from pysurfem.core import SurfaceMesh
from pysurfem.core.dofhandler import P1, DofHandler, FieldId, FieldRegistry
from pysurfem.fem.tabulation import tabulate
from pysurfem.solvers.nonlinear_solver import NewtonParameters, NewtonSolver
from pysurfem.utils.meshgen import (BOX_FACES, FLAT_FACES, LINE_FACES, structured_hex, structured_line,
                                    structured_quad, structured_triangles)


def _all_faces(name, face, x, t):
    return True, 0.0


def _face_one(name, face, x, t):
    return face == 1, 0.0


def _poisson(mesh, source=1.0, bc=_all_faces):
    reg = FieldRegistry(mesh)
    reg.add(FieldId.POTENTIAL, P1, 1)
    reg.attach_boundary_condition(bc)
    dh = DofHandler(reg, [FieldId.POTENTIAL])
    solver = NewtonSolver(lambda system: assemble_laplacian(dh, system, source), dh,
                          NewtonParameters(newton_tol=1e-12, max_newton_iter=3), name="Laplace")
    result = solver.solve()
    return reg[FieldId.POTENTIAL].values[:, 0], result


def test_q1_stiffness_matrix():
    tab = tabulate('quad', 1, 2)
    x = np.array([[0.0, 1.0, 1.0, 0.0], [0.0, 0.0, 1.0, 1.0], [0.0, 0.0, 0.0, 0.0]])
    Ke, Fe = element_system(x, tab, 1.0)
    expected = np.array([[4, -1, -2, -1], [-1, 4, -1, -2], [-2, -1, 4, -1], [-1, -2, -1, 4]]) / 6.0
    assert np.allclose(Ke, expected)
    assert np.allclose(Fe, 0.25)


def test_single_element_all_dirichlet():
    u, result = _poisson(structured_quad(1.0, 1.0, nx=1, ny=1))
    assert result.converged
    assert np.allclose(u, 0.0)


def test_two_by_two_centre_value():
    u, result = _poisson(structured_quad(1.0, 1.0, nx=2, ny=2))
    assert result.converged and result.iterations == 1
    assert np.isclose(u[4], 3.0 / 32.0)
    assert np.allclose(np.delete(u, 4), 0.0)


def test_rotated_plane_gives_same_solution():
    flat = structured_triangles(1.0, 1.0, nx_quads=4, ny_quads=4)
    u_flat, _ = _poisson(flat)
    c, s = np.cos(0.7), np.sin(0.7)
    R = np.array([[1, 0, 0], [0, c, -s], [0, s, c]])
    tilted = SurfaceMesh(flat.coords @ R.T, flat.elements_connectivity, element_type='tri')
    u_tilted, _ = _poisson(tilted)
    assert np.allclose(u_flat, u_tilted)
    assert u_flat.max() > 0.0


def test_wrong_unknowns_rejected():
    mesh = structured_quad(1.0, 1.0, nx=1, ny=1)
    reg = FieldRegistry(mesh)
    reg.add(FieldId.CURVATURE, P1, 1)
    dh = DofHandler(reg, [FieldId.CURVATURE])
    with pytest.raises(ValueError):
        assemble_laplacian(dh, None)


def test_line_element_system():
    tab = tabulate('line', 1, 2)
    x = np.array([[0.0, 0.0], [0.0, 0.0], [0.5, 0.75]])     # along z, h = 0.25
    Ke, Fe = element_system(x, tab, 1.0)
    assert np.allclose(Ke, np.array([[1.0, -1.0], [-1.0, 1.0]]) / 0.25)
    assert np.allclose(Fe, 0.125)


@pytest.mark.parametrize("axis", ["x", "y", "z"])
def test_line_dirichlet_on_one_end(axis):
    # -u'' = 1, u(0) = 0, u'(1) = 0  ->  u = s - s^2/2, exact at the nodes
    mesh = structured_line(1.0, n=8, axis=axis)
    assert LINE_FACES["start"] == 1
    u, result = _poisson(mesh, bc=_face_one)
    assert result.converged
    s = mesh.coords[:, "xyz".index(axis)]
    assert np.allclose(u, s - 0.5 * s**2, atol=1e-10)
    assert np.isclose(u[np.argmax(s)], 0.5)


@pytest.mark.parametrize("plane", ["xy", "xz", "yz"])
def test_plane_dirichlet_on_bottom_face(plane):
    # u depends on the second in-plane coordinate only
    mesh = structured_quad(1.0, 1.0, nx=3, ny=4, plane=plane)
    assert FLAT_FACES["bottom"] == 1
    u, result = _poisson(mesh, bc=_face_one)
    assert result.converged
    b = mesh.coords[:, "xyz".index(plane[1])]
    assert np.allclose(u, b - 0.5 * b**2, atol=1e-10)


def test_cube_dirichlet_on_bottom_face():
    mesh = structured_hex(1.0, 1.0, 1.0, nx=2, ny=2, nz=4)
    assert BOX_FACES["bottom"] == 1
    u, result = _poisson(mesh, bc=_face_one)
    assert result.converged
    z = mesh.coords[:, 2]
    assert np.allclose(u, z - 0.5 * z**2, atol=1e-10)


def test_cube_all_dirichlet_is_symmetric():
    mesh = structured_hex(1.0, 1.0, 1.0, nx=2, ny=2, nz=2)
    u, _ = _poisson(mesh)
    centre = np.flatnonzero(np.all(np.isclose(mesh.coords, 0.5), axis=1))
    assert len(centre) == 1
    assert u[centre[0]] > 0.0
    assert np.isclose(u.max(), u[centre[0]])
    assert np.allclose(np.delete(u, centre), 0.0)
