import numpy as np
import pytest
from pysurfem.core import SurfaceMesh
from pysurfem.utils.meshgen import (BOX_FACES, FLAT_FACES, LINE_FACES, cube_sphere, icosphere,
                                    structured_hex, structured_line, structured_quad,
                                    structured_triangles, torus)

def _signed_volume(mesh):
    tris = mesh.elements_connectivity
    if mesh.element_type == 'quad':
        tris = np.vstack([tris[:, [0, 1, 2]], tris[:, [0, 2, 3]]])
    a, b, c = (mesh.coords[tris[:, k]] for k in range(3))
    return np.einsum('ij,ij->i', a, np.cross(b, c)).sum() / 6.0

def test_facets_and_neighbours():
    nodes=np.array([[0,0],[1,0],[1,1],[0,1]])
    mesh=SurfaceMesh(nodes, np.array([[0,1,2],[0,2,3]]), element_type='tri')
    assert mesh.coords.shape == (4, 3)
    assert mesh.dim == 2
    assert len(mesh.facets)==5
    interior = [f for f in mesh.facets if not f.is_boundary]
    assert len(interior) == 1
    assert interior[0].nodes == (0, 2)
    assert {interior[0].left, interior[0].right} == {0, 1}
    assert not mesh.is_closed

def test_non_manifold_edge_rejected():
    coords = np.array([[0,0,0],[1,0,0],[0,1,0],[0,-1,0],[0,0,1]], dtype=float)
    with pytest.raises(ValueError):
        SurfaceMesh(coords, np.array([[0,1,2],[1,0,3],[0,1,4]]))

def test_vertex_valence():
    mesh = structured_quad(1.0, 1.0, nx=2, ny=2)
    assert mesh.vertex_valence(4) == 4
    assert mesh.vertex_valence(0) == 1
    assert mesh.vertex_valence().sum() == 4 * mesh.n_elements

def _nodes_on_face(mesh, face):
    return sorted(n for n, faces in mesh.node_faces().items() if face in faces)

def test_flat_boundary_faces():
    mesh = structured_triangles(2.0, 1.0, nx_quads=2, ny_quads=2)
    assert _nodes_on_face(mesh, FLAT_FACES['bottom']) == [0, 1, 2]
    assert _nodes_on_face(mesh, FLAT_FACES['left']) == [0, 3, 6]
    assert sorted(mesh.node_faces()) == [0, 1, 2, 3, 5, 6, 7, 8]
    assert set(mesh.node_faces()[0]) == {FLAT_FACES['bottom'], FLAT_FACES['left']}

def test_rectangle_in_xz_plane():
    mesh = structured_quad(1.0, 2.0, nx=2, ny=2, plane="xz")
    assert np.allclose(mesh.coords[:, 1], 0.0)
    bottom = _nodes_on_face(mesh, FLAT_FACES['bottom'])
    assert np.allclose(mesh.coords[bottom, 2], 0.0)
    top = _nodes_on_face(mesh, FLAT_FACES['top'])
    assert np.allclose(mesh.coords[top, 2], 2.0)
    with pytest.raises(ValueError):
        structured_quad(1.0, 1.0, nx=1, ny=1, plane="xx")

def test_line_mesh_end_points_are_faces():
    mesh = structured_line(2.0, n=4, axis="y", offset=1.0)
    assert mesh.dim == 1 and mesh.n_elements == 4
    assert np.allclose(mesh.coords[:, [0, 2]], 0.0)
    assert len(mesh.facets) == 5
    assert mesh.node_faces() == {0: [LINE_FACES['start']], 4: [LINE_FACES['end']]}

def test_box_mesh_faces():
    mesh = structured_hex(1.0, 2.0, 3.0, nx=2, ny=2, nz=2)
    assert mesh.dim == 3 and mesh.n_nodes == 27 and mesh.n_elements == 8
    assert len(mesh.facets) == 36
    boundary = [f for f in mesh.facets if f.is_boundary]
    assert len(boundary) == 24
    assert sorted({f.face for f in boundary}) == sorted(BOX_FACES.values())
    top = _nodes_on_face(mesh, BOX_FACES['top'])
    assert len(top) == 9 and np.allclose(mesh.coords[top, 2], 3.0)
    assert 13 not in mesh.node_faces()      # centre node

def test_ownership_ranges():
    mesh = structured_quad(1.0, 1.0, nx=3, ny=3)
    off = mesh.element_offset(4)
    assert off[0] == 0 and off[-1] == mesh.n_elements
    assert list(np.diff(off)) == [3, 2, 2, 2]
    owned = [e for r in range(4) for e in mesh.owned_elements(r, 4)]
    assert owned == list(range(mesh.n_elements))

@pytest.mark.parametrize("mesh", [cube_sphere(3), cube_sphere(2, element_type='tri'),
                                  icosphere(2), torus(nu=12, nv=6)])
def test_closed_surfaces_are_outward(mesh):
    assert mesh.is_closed
    assert _signed_volume(mesh) > 0.0

def test_sphere_nodes_on_radius():
    mesh = cube_sphere(4, radius=2.0)
    assert mesh.n_nodes == 6 * 16 + 2
    assert np.allclose(np.linalg.norm(mesh.coords, axis=1), 2.0)
    assert icosphere(1).n_elements == 80
