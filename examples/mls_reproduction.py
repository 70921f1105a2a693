"""Example: MLS reconstruction of x^p from random samples on a 2-D grid."""
import argparse
import logging

import numpy as np

from pysurfem.mls import TensorGrid, build_mls

parser = argparse.ArgumentParser(description="Moving-least-squares reproduction check")
parser.add_argument("--degree", type=int, default=3)
parser.add_argument("--dim", type=int, default=2)
parser.add_argument("--extra", type=int, default=5, help="Points per cell beyond the basis size.")
parser.add_argument("--seed", type=int, default=0)
args = parser.parse_args()
logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

grid = TensorGrid([0.0, 0.1, 0.5, 1.0, 1.3], [0.1, 0.4, 0.5, 0.5, 0.3], dim=args.dim)
p = args.degree
interp, U = build_mls(grid, lambda x: x[:, 0] ** p, degree=p, extra_points=args.extra,
                      rng=args.seed, on_degenerate="skip")
exact = grid.node_coords()[:, 0] ** p
for i, (u, e) in enumerate(zip(U, exact)):
    print(f"node {i:3d}  {u: .12f}  {e: .12f}")
print(f"max error {np.nanmax(np.abs(U - exact)):.3e}, degenerate nodes: {interp.degenerate_nodes}")
