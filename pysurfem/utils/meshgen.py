"""pysurfem.utils.meshgen
Meshes for tests and examples: straight lines, flat rectangles in any
coordinate plane, boxes of bricks and a few closed analytic surfaces.
Elements of closed surfaces are oriented so that x_u × x_v points outward.
"""
import numpy as np
import numba

from pysurfem.core.mesh import SurfaceMesh

__all__ = ["structured_line", "structured_quad", "structured_triangles", "structured_hex",
           "cube_sphere", "icosphere", "torus", "LINE_FACES", "FLAT_FACES", "BOX_FACES"]

# Face ids of the structured generators.
LINE_FACES = {"start": 1, "end": 2}
FLAT_FACES = {"bottom": 1, "right": 2, "top": 3, "left": 4}
BOX_FACES = {"bottom": 1, "top": 2, "front": 3, "right": 4, "back": 5, "left": 6}

_AXES = {"x": 0, "y": 1, "z": 2}


@numba.jit(nopython=True, cache=True)
def _grid_quads(nx, ny, node_offset, periodic_x, periodic_y):
    """CCW quads (bl, br, tr, tl) of an nx x ny cell grid whose nodes are numbered
    row by row. A periodic direction wraps its last row/column onto the first."""
    npx = nx if periodic_x else nx + 1
    npy = ny if periodic_y else ny + 1
    quads = np.empty((nx * ny, 4), dtype=np.int64)
    for j in range(ny):
        for i in range(nx):
            i1 = (i + 1) % npx
            j1 = (j + 1) % npy
            e = j * nx + i
            quads[e, 0] = node_offset + j * npx + i
            quads[e, 1] = node_offset + j * npx + i1
            quads[e, 2] = node_offset + j1 * npx + i1
            quads[e, 3] = node_offset + j1 * npx + i
    return quads


def _split_quads(quads: np.ndarray) -> np.ndarray:
    """Two orientation-preserving triangles per quad."""
    tris = np.empty((2 * len(quads), 3), dtype=quads.dtype)
    tris[0::2] = quads[:, [0, 1, 2]]
    tris[1::2] = quads[:, [0, 2, 3]]
    return tris


def _merge_nodes(coords: np.ndarray, conn: np.ndarray, decimals: int = 10):
    """Identify coincident nodes and renumber the connectivity."""
    _, first, inverse = np.unique(np.round(coords, decimals), axis=0,
                                  return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)
    return coords[first], inverse[conn]


@numba.jit(nopython=True, cache=True)
def _grid_hexes(nx, ny, nz):
    """Bricks of an nx x ny x nz cell grid, nodes numbered x fastest then y then z.
    Local order: bottom face CCW seen from above, then the top face."""
    npx, npy = nx + 1, ny + 1
    hexes = np.empty((nx * ny * nz, 8), dtype=np.int64)
    for k in range(nz):
        for j in range(ny):
            for i in range(nx):
                e = (k * ny + j) * nx + i
                for layer in range(2):
                    base = (k + layer) * npx * npy
                    hexes[e, 4 * layer + 0] = base + j * npx + i
                    hexes[e, 4 * layer + 1] = base + j * npx + i + 1
                    hexes[e, 4 * layer + 2] = base + (j + 1) * npx + i + 1
                    hexes[e, 4 * layer + 3] = base + (j + 1) * npx + i
    return hexes


def _plane_axes(plane: str):
    if len(plane) != 2 or plane[0] == plane[1] or any(a not in _AXES for a in plane):
        raise ValueError(f"plane must be one of 'xy', 'xz', 'yz', got {plane!r}")
    return _AXES[plane[0]], _AXES[plane[1]]


def _tag_rectangle(mesh: SurfaceMesh, Lx, Ly, offset, plane):
    ia, ib = _plane_axes(plane)
    a0, b0 = offset
    tol = 1e-12 * max(Lx, Ly)
    mesh.tag_boundary_faces({
        FLAT_FACES["bottom"]: lambda *p: abs(p[ib] - b0) < tol,
        FLAT_FACES["right"]: lambda *p: abs(p[ia] - a0 - Lx) < tol,
        FLAT_FACES["top"]: lambda *p: abs(p[ib] - b0 - Ly) < tol,
        FLAT_FACES["left"]: lambda *p: abs(p[ia] - a0) < tol,
    })
    return mesh


def _rectangle_nodes(Lx, Ly, nx, ny, offset, plane):
    ia, ib = _plane_axes(plane)
    X, Y = np.meshgrid(np.linspace(0.0, Lx, nx + 1), np.linspace(0.0, Ly, ny + 1))
    coords = np.zeros((X.size, 3))
    coords[:, ia] = X.ravel() + offset[0]
    coords[:, ib] = Y.ravel() + offset[1]
    return coords


def structured_line(L: float, *, n: int, axis: str = "x", offset: float = 0.0) -> SurfaceMesh:
    """n two-node elements on [offset, offset + L] along a coordinate axis.

    The end points are tagged with :data:`LINE_FACES`.
    """
    if n < 1:
        raise ValueError("n must be positive.")
    if axis not in _AXES:
        raise ValueError(f"axis must be 'x', 'y' or 'z', got {axis!r}")
    k = _AXES[axis]
    coords = np.zeros((n + 1, 3))
    coords[:, k] = offset + np.linspace(0.0, L, n + 1)
    conn = np.column_stack([np.arange(n), np.arange(1, n + 1)])
    mesh = SurfaceMesh(coords, conn, element_type="line")
    tol = 1e-12 * L
    mesh.tag_boundary_faces({
        LINE_FACES["start"]: lambda *p: abs(p[k] - offset) < tol,
        LINE_FACES["end"]: lambda *p: abs(p[k] - offset - L) < tol,
    })
    return mesh


def structured_quad(Lx: float, Ly: float, *, nx: int, ny: int, offset=(0.0, 0.0),
                    plane: str = "xy") -> SurfaceMesh:
    """Flat nx x ny Q1 mesh of [0, Lx] x [0, Ly] in a coordinate plane.

    ``plane="xz"`` puts the first direction along x and the second along z.
    Boundary edges are tagged with :data:`FLAT_FACES`.
    """
    if nx < 1 or ny < 1:
        raise ValueError("nx and ny must be positive.")
    coords = _rectangle_nodes(Lx, Ly, nx, ny, offset, plane)
    mesh = SurfaceMesh(coords, _grid_quads(nx, ny, 0, False, False), element_type="quad")
    return _tag_rectangle(mesh, Lx, Ly, offset, plane)


def structured_triangles(Lx: float, Ly: float, *, nx_quads: int, ny_quads: int, offset=(0.0, 0.0),
                         plane: str = "xy") -> SurfaceMesh:
    """Flat P1 mesh, every cell of an nx_quads x ny_quads grid split along its diagonal."""
    if nx_quads < 1 or ny_quads < 1:
        raise ValueError("nx_quads and ny_quads must be positive.")
    coords = _rectangle_nodes(Lx, Ly, nx_quads, ny_quads, offset, plane)
    tris = _split_quads(_grid_quads(nx_quads, ny_quads, 0, False, False))
    mesh = SurfaceMesh(coords, tris, element_type="tri")
    return _tag_rectangle(mesh, Lx, Ly, offset, plane)


def structured_hex(Lx: float, Ly: float, Lz: float, *, nx: int, ny: int, nz: int,
                   offset=(0.0, 0.0, 0.0)) -> SurfaceMesh:
    """Box [0, Lx] x [0, Ly] x [0, Lz] of trilinear bricks, faces tagged with :data:`BOX_FACES`."""
    if min(nx, ny, nz) < 1:
        raise ValueError("nx, ny and nz must be positive.")
    x0, y0, z0 = offset
    Z, Y, X = np.meshgrid(np.linspace(0.0, Lz, nz + 1), np.linspace(0.0, Ly, ny + 1),
                          np.linspace(0.0, Lx, nx + 1), indexing="ij")
    coords = np.column_stack([X.ravel() + x0, Y.ravel() + y0, Z.ravel() + z0])
    mesh = SurfaceMesh(coords, _grid_hexes(nx, ny, nz), element_type="hex")
    tol = 1e-12 * max(Lx, Ly, Lz)
    mesh.tag_boundary_faces({
        BOX_FACES["bottom"]: lambda x, y, z: abs(z - z0) < tol,
        BOX_FACES["top"]: lambda x, y, z: abs(z - z0 - Lz) < tol,
        BOX_FACES["front"]: lambda x, y, z: abs(y - y0) < tol,
        BOX_FACES["right"]: lambda x, y, z: abs(x - x0 - Lx) < tol,
        BOX_FACES["back"]: lambda x, y, z: abs(y - y0 - Ly) < tol,
        BOX_FACES["left"]: lambda x, y, z: abs(x - x0) < tol,
    })
    return mesh


# Cube faces as (outward axis, a, b) with a x b = axis.
_CUBE_FACES = (
    ((1, 0, 0), (0, 1, 0), (0, 0, 1)),
    ((-1, 0, 0), (0, 0, 1), (0, 1, 0)),
    ((0, 1, 0), (0, 0, 1), (1, 0, 0)),
    ((0, -1, 0), (1, 0, 0), (0, 0, 1)),
    ((0, 0, 1), (1, 0, 0), (0, 1, 0)),
    ((0, 0, -1), (0, 1, 0), (1, 0, 0)),
)


def cube_sphere(n: int, radius: float = 1.0, *, element_type: str = "quad") -> SurfaceMesh:
    """Sphere obtained by projecting an n x n grid on every face of a cube.

    With ``element_type="tri"`` each quad is split in two triangles.
    """
    if n < 1:
        raise ValueError("n must be positive.")
    s = np.linspace(-1.0, 1.0, n + 1)
    S, T = np.meshgrid(s, s)
    blocks, conns = [], []
    for k, (c, a, b) in enumerate(_CUBE_FACES):
        c, a, b = (np.asarray(v, dtype=float) for v in (c, a, b))
        pts = c + S.ravel()[:, None] * a + T.ravel()[:, None] * b
        blocks.append(pts)
        conns.append(_grid_quads(n, n, k * (n + 1) ** 2, False, False))
    coords, conn = _merge_nodes(np.vstack(blocks), np.vstack(conns))
    coords = radius * coords / np.linalg.norm(coords, axis=1, keepdims=True)
    if element_type == "tri":
        return SurfaceMesh(coords, _split_quads(conn), element_type="tri")
    return SurfaceMesh(coords, conn, element_type=element_type)


_PHI = (1.0 + np.sqrt(5.0)) / 2.0
_ICO_VERTICES = np.array([
    (-1, _PHI, 0), (1, _PHI, 0), (-1, -_PHI, 0), (1, -_PHI, 0),
    (0, -1, _PHI), (0, 1, _PHI), (0, -1, -_PHI), (0, 1, -_PHI),
    (_PHI, 0, -1), (_PHI, 0, 1), (-_PHI, 0, -1), (-_PHI, 0, 1),
])
_ICO_FACES = np.array([
    (0, 11, 5), (0, 5, 1), (0, 1, 7), (0, 7, 10), (0, 10, 11),
    (1, 5, 9), (5, 11, 4), (11, 10, 2), (10, 7, 6), (7, 1, 8),
    (3, 9, 4), (3, 4, 2), (3, 2, 6), (3, 6, 8), (3, 8, 9),
    (4, 9, 5), (2, 4, 11), (6, 2, 10), (8, 6, 7), (9, 8, 1),
])


def icosphere(subdivisions: int = 2, radius: float = 1.0) -> SurfaceMesh:
    """Triangulated sphere from a recursively bisected icosahedron."""
    verts = [v / np.linalg.norm(v) for v in _ICO_VERTICES]
    faces = [tuple(f) for f in _ICO_FACES]
    for _ in range(subdivisions):
        cache = {}

        def midpoint(i, j):
            key = (i, j) if i < j else (j, i)
            if key not in cache:
                m = verts[i] + verts[j]
                verts.append(m / np.linalg.norm(m))
                cache[key] = len(verts) - 1
            return cache[key]

        refined = []
        for a, b, c in faces:
            ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
            refined += [(a, ab, ca), (b, bc, ab), (c, ca, bc), (ab, bc, ca)]
        faces = refined
    return SurfaceMesh(radius * np.array(verts), np.array(faces), element_type="tri")


def torus(R: float = 1.0, r: float = 0.4, *, nu: int = 24, nv: int = 12,
          element_type: str = "quad") -> SurfaceMesh:
    """Torus of revolution around the z axis, nu cells around the axis and
    nv cells around the tube."""
    if r <= 0.0 or R <= r:
        raise ValueError("Need 0 < r < R.")
    u = 2.0 * np.pi * np.arange(nu) / nu
    v = 2.0 * np.pi * np.arange(nv) / nv
    V, U = np.meshgrid(v, u, indexing="ij")          # row j <-> v_j, column i <-> u_i
    rho = R + r * np.cos(V)
    coords = np.column_stack([(rho * np.cos(U)).ravel(), (rho * np.sin(U)).ravel(),
                              (r * np.sin(V)).ravel()])
    quads = _grid_quads(nu, nv, 0, True, True)
    if element_type == "tri":
        return SurfaceMesh(coords, _split_quads(quads), element_type="tri")
    return SurfaceMesh(coords, quads, element_type=element_type)
