import numpy as np
from pysurfem.integration import quadrature as q
from pysurfem.fem.reference import get_reference
from pysurfem.fem.tabulation import tabulate, map_to_planar_element

def integrate_ref_tri(func, order):
    pts, wts = q.volume('tri', order)
    fvals = np.array([func(xy) for xy in pts])
    return (fvals * wts).sum()

def integrate_ref_quad(func, order):
    pts, wts = q.volume('quad', order)
    fvals = np.array([func(xy) for xy in pts])
    return (fvals * wts).sum()

def test_constant_volume():
    for et, exact in (('line', 2.0), ('tri', 0.5), ('quad', 4.0), ('hex', 8.0)):
        pts,wts=q.volume(et,3)
        assert np.isclose(wts.sum(), exact, rtol=1e-12)
        assert pts.shape == (len(wts), {'line': 1, 'hex': 3}.get(et, 2))

def test_linear_exact_tri():
    # ∫_T r dA  over reference triangle  = 1/6
    val = integrate_ref_tri(lambda xy: xy[0], order=4)
    assert np.isclose(val, 1/6, rtol=1e-12)

def test_cubic_exact_quad():
    # ∫ x^2 y^2 over [-1,1]^2 = 4/9
    val = integrate_ref_quad(lambda xy: xy[0]**2 * xy[1]**2, order=2)
    assert np.isclose(val, 4/9, rtol=1e-12)

def test_partition_of_unity():
    for et in ('line', 'tri', 'quad', 'hex'):
        tab = tabulate(et, 1, 3)
        assert np.allclose(tab.phi.sum(axis=1), 1.0)
        assert np.allclose(tab.dphi.sum(axis=1), 0.0)

def test_p0_reference():
    ref = get_reference('tri', 0)
    assert np.allclose(ref.shape(0.2, 0.3), [1.0])
    assert np.allclose(ref.grad(0.2, 0.3), 0.0)

def test_tabulation_is_read_only():
    tab = tabulate('quad', 1, 2)
    assert not tab.phi.flags.writeable

def test_map_to_planar_element_area():
    tab = tabulate('tri', 1, 2)
    verts = np.array([[0.0, 2.0, 0.0], [0.0, 0.0, 3.0]])
    mapped = map_to_planar_element(tab, verts)
    assert np.isclose(mapped.weights.sum(), 3.0)
    # gradients of the linear shape functions of the stretched triangle
    assert np.allclose(mapped.dphi[0], [[-0.5, -1/3], [0.5, 0.0], [0.0, 1/3]])

def test_hex_shape_functions_are_nodal():
    ref = get_reference('hex', 1)
    corners = [(-1,-1,-1),(1,-1,-1),(1,1,-1),(-1,1,-1),(-1,-1,1),(1,-1,1),(1,1,1),(-1,1,1)]
    vals = np.array([ref.shape(*map(float, c)) for c in corners])
    assert np.allclose(vals, np.eye(8))
    assert ref.grad(0.0, 0.0, 0.0).shape == (8, 3)

def test_line_shape_functions():
    ref = get_reference('line', 1)
    assert np.allclose(ref.shape(-1.0), [1.0, 0.0])
    assert np.allclose(ref.grad(0.3), [[-0.5], [0.5]])
