import numpy as np
import pytest
from pysurfem.mls import (DegenerateSystemError, MLSInterpolator, TensorGrid, build_mls,
                          chebyshev, compute_index_set, element_dofs, gaussian_elimination,
                          multi_index)

XV = [0.0, 0.1, 0.5, 1.0, 1.3]
HV = [0.1, 0.4, 0.5, 0.5, 0.3]


def test_index_set_order():
    idx = compute_index_set(3, 2)
    assert idx.tolist() == [[0, 0], [0, 1], [0, 2], [0, 3], [1, 0],
                            [1, 1], [1, 2], [2, 0], [2, 1], [3, 0]]


@pytest.mark.parametrize("degree,dim,count", [(3, 2, 10), (2, 3, 10), (4, 1, 5), (0, 3, 1)])
def test_index_set_size(degree, dim, count):
    idx = compute_index_set(degree, dim)
    assert idx.shape == (count, dim)
    assert len({tuple(r) for r in idx}) == count
    assert idx.sum(axis=1).max() == degree


def test_chebyshev_closed_forms():
    for x in np.linspace(-1.5, 1.5, 7):
        T = chebyshev(4, x)
        assert np.allclose(T, [1.0, x, 2*x**2 - 1, 4*x**3 - 3*x, 8*x**4 - 8*x**2 + 1])
    theta = 0.3
    assert np.isclose(chebyshev(6, np.cos(theta))[6], np.cos(6 * theta))
    assert np.allclose(chebyshev(0, 0.7), [1.0])


def test_gaussian_elimination():
    A = np.array([[0.0, 2.0, 1.0], [1.0, -1.0, 0.0], [3.0, 0.0, 2.0]])
    x = np.array([1.0, -2.0, 0.5])
    assert np.allclose(gaussian_elimination(A, A @ x), x)
    assert A[0, 0] == 0.0              # inputs untouched


def test_gaussian_elimination_singular():
    A = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [1.0, 1.0, 1.0]])
    with pytest.raises(DegenerateSystemError):
        gaussian_elimination(A, np.ones(3))


def test_grid_maps():
    assert multi_index(7, 2, 4).tolist() == [1, 3]
    assert multi_index(13, 3, 3).tolist() == [1, 1, 1]
    assert sorted(element_dofs([0, 0], 4)) == [0, 1, 4, 5]
    assert element_dofs([1, 2], 4).tolist() == [6, 7, 10, 11]
    dofs = element_dofs([0, 0, 0], 3)
    assert dofs.tolist() == [0, 1, 3, 4, 9, 10, 12, 13]


def test_reproduces_cubic():
    grid = TensorGrid(XV, HV, dim=2)
    interp, U = build_mls(grid, lambda p: p[:, 0] ** 3, degree=3, rng=1234)
    assert interp.n_basis == 10
    assert interp.points.shape == (grid.n_elements * 15, 2)
    assert not interp.degenerate_nodes
    expected = grid.node_coords()[:, 0] ** 3
    assert np.allclose(U, expected, rtol=1e-6, atol=1e-8)


def test_degenerate_node_handling():
    grid = TensorGrid([0.0, 1.0], [1.0, 1.0], dim=1)
    points = np.array([[0.5]])                      # one point for a 4-term basis
    cells = np.array([0])
    with pytest.raises(DegenerateSystemError):
        MLSInterpolator(grid, 3).fit(points, cells)
    interp = MLSInterpolator(grid, 3, on_degenerate="skip").fit(points, cells)
    assert interp.degenerate_nodes == [0, 1]
    assert np.isnan(interp.reconstruct(np.ones(1))).all()


def test_grid_validation():
    with pytest.raises(ValueError):
        TensorGrid([0.0, 0.5, 0.4], [1.0, 1.0, 1.0])
    with pytest.raises(ValueError):
        MLSInterpolator(TensorGrid(XV, HV), on_degenerate="ignore")
