"""Example: -Δu = f with u = 0 on the boundary.

By default the unit square is solved against a manufactured solution. With
``--all-dims`` -Δu = 1 is solved on lines along x, y and z, on unit squares
in the xy, xz and yz planes and on the unit cube, with u = 0 on face 1 only.
"""
import argparse
import logging

import numpy as np

from pysurfem.assembly.laplacian import assemble_laplacian
from pysurfem.core.dofhandler import P1, DofHandler, FieldId, FieldRegistry
from pysurfem.io.visualization import plot_surface
from pysurfem.solvers.nonlinear_solver import NewtonParameters, NewtonSolver
from pysurfem.utils.meshgen import structured_hex, structured_line, structured_quad, structured_triangles

parser = argparse.ArgumentParser(description="Poisson problem on structured meshes")
parser.add_argument("--nx", type=int, default=16, help="Cells per direction.")
parser.add_argument("--tri", action="store_true", help="Use triangles instead of quads.")
parser.add_argument("--all-dims", action="store_true", help="Loop over 1-D, 2-D and 3-D meshes.")
parser.add_argument("--plot", action="store_true")
args = parser.parse_args()
logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")


def solve(mesh, source, bc):
    reg = FieldRegistry(mesh)
    reg.add(FieldId.POTENTIAL, P1, 1)
    reg.attach_boundary_condition(bc)
    dh = DofHandler(reg, [FieldId.POTENTIAL])
    solver = NewtonSolver(lambda system: assemble_laplacian(dh, system, source), dh,
                          NewtonParameters(newton_tol=1e-10, max_newton_iter=3), name="Laplace")
    solver.solve()
    return reg[FieldId.POTENTIAL].values[:, 0]


if args.all_dims:
    n = args.nx
    meshes = {
        "1_x": structured_line(1.0, n=n, axis="x"),
        "1_y": structured_line(1.0, n=n, axis="y"),
        "1_z": structured_line(1.0, n=n, axis="z"),
        "2_xy": structured_quad(1.0, 1.0, nx=n, ny=n, plane="xy"),
        "2_xz": structured_quad(1.0, 1.0, nx=n, ny=n, plane="xz"),
        "2_yz": structured_quad(1.0, 1.0, nx=n, ny=n, plane="yz"),
        "3_xyz": structured_hex(1.0, 1.0, 1.0, nx=max(n // 2, 1), ny=max(n // 2, 1), nz=max(n // 2, 1)),
    }
    for name, mesh in meshes.items():
        uh = solve(mesh, 1.0, lambda cname, face, x, t: (face == 1, 0.0))
        print(f"{name:6s} {mesh}  max u = {uh.max():.6f}")
else:
    if args.tri:
        mesh = structured_triangles(1.0, 1.0, nx_quads=args.nx, ny_quads=args.nx)
    else:
        mesh = structured_quad(1.0, 1.0, nx=args.nx, ny=args.nx)

    u_exact = lambda x: np.sin(np.pi * x[0]) * np.sin(np.pi * x[1])
    f_rhs = lambda x: 2.0 * np.pi**2 * u_exact(x)
    uh = solve(mesh, f_rhs, lambda name, face, x, t: (True, 0.0))
    err = np.abs(uh - np.array([u_exact(x) for x in mesh.coords])).max()
    print(f"{mesh}  max nodal error = {err:.3e}")
    if args.plot:
        plot_surface(mesh, values=uh, title="u_h")
