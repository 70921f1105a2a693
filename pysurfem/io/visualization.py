"""pysurfem.io.visualization"""
import numpy as np
import matplotlib.pyplot as plt
from matplotlib import cm, colors
from mpl_toolkits.mplot3d.art3d import Poly3DCollection
from typing import Dict, List, Optional, Sequence


def _set_equal_3d(ax, pts):
    lo, hi = pts.min(axis=0), pts.max(axis=0)
    centre = 0.5 * (lo + hi)
    half = 0.5 * max(float(np.max(hi - lo)), 1e-12)
    ax.set_xlim(centre[0] - half, centre[0] + half)
    ax.set_ylim(centre[1] - half, centre[1] + half)
    ax.set_zlim(centre[2] - half, centre[2] + half)
    ax.set_box_aspect((1, 1, 1))


def plot_surface(mesh, *, positions: Optional[np.ndarray] = None,
                 values: Optional[np.ndarray] = None, cmap: str = "viridis",
                 plot_edges: bool = True, title: str = "Surface",
                 show: bool = True, ax=None):
    """
    Draws the elements of a surface mesh in 3-D.

    Args:
        mesh (SurfaceMesh): connectivity of the surface.
        positions (np.ndarray, optional): (n_nodes, 3) node positions to draw
            instead of ``mesh.coords``, e.g. the deformed surface x̂ + Dx.
        values (np.ndarray, optional): nodal scalar; each element is coloured
            by the mean over its nodes.
        plot_edges (bool): outline the elements.
        show (bool): call ``plt.show()`` at the end.
        ax: an existing 3-D axes object.
    Returns:
        matplotlib.axes.Axes: the axes that were drawn on.
    """
    if mesh.dim != 2:
        raise ValueError(f"plot_surface draws surface meshes, got {mesh.element_type!r} elements.")
    pts = mesh.coords if positions is None else np.asarray(positions, dtype=float)
    if pts.shape != mesh.coords.shape:
        raise ValueError(f"positions must have shape {mesh.coords.shape}, got {pts.shape}.")
    if ax is None:
        fig = plt.figure(figsize=(8, 8))
        ax = fig.add_subplot(projection="3d")

    polys = pts[mesh.elements_connectivity]
    edgecolor = (0.1, 0.1, 0.1, 0.4) if plot_edges else "none"
    coll = Poly3DCollection(polys, edgecolors=edgecolor, linewidths=0.4)
    if values is not None:
        values = np.asarray(values, dtype=float)
        if values.shape != (mesh.n_nodes,):
            raise ValueError("values must hold one entry per mesh node.")
        elem_vals = values[mesh.elements_connectivity].mean(axis=1)
        norm = colors.Normalize(vmin=elem_vals.min(), vmax=elem_vals.max())
        mapper = cm.ScalarMappable(norm=norm, cmap=cmap)
        coll.set_facecolor(mapper.to_rgba(elem_vals))
        plt.colorbar(mapper, ax=ax, shrink=0.6)
    else:
        coll.set_facecolor((0.4, 0.6, 1.0, 0.7))
    ax.add_collection3d(coll)

    _set_equal_3d(ax, pts)
    ax.set_title(title)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_zlabel("z")
    if show:
        plt.show()
    return ax


def plot_flow_history(history: List[Dict[str, float]],
                      keys: Sequence[str] = ("surface_drift", "volume_drift", "energy"),
                      *, show: bool = True, axes=None):
    """One panel per diagnostic of :attr:`FlowState.history` against time."""
    if not history:
        raise ValueError("Empty history: run at least one flow step first.")
    t = np.array([rec["time"] for rec in history])
    if axes is None:
        fig, axes = plt.subplots(len(keys), 1, figsize=(7, 2.5 * len(keys)), sharex=True)
    axes = np.atleast_1d(axes)
    for ax, key in zip(axes, keys):
        ax.plot(t, [rec[key] for rec in history], "o-", markersize=3)
        ax.set_ylabel(key)
        ax.grid(True, alpha=0.3)
    axes[-1].set_xlabel("time")
    if show:
        plt.show()
    return axes
