"""
Differential geometry of a parametric surface patch x(u, v) in R^3.

All functions take the parametric derivative matrix ``x_uv`` (3, 2), whose
columns are the tangents x_u and x_v, and are written with ``jax.numpy`` so
that they can be traced inside element residuals. The same functions accept
plain numpy input for data that is not differentiated.
"""
from typing import NamedTuple

import numpy as np
import jax.numpy as jnp


class DegenerateElementError(ValueError):
    """Raised when an element's metric determinant is (numerically) zero or negative."""

    def __init__(self, eid, detg):
        super().__init__(f"Element {eid}: metric determinant {detg:.3e} is degenerate.")
        self.eid = eid
        self.detg = detg


class Metric(NamedTuple):
    g: jnp.ndarray          # (2, 2) covariant metric g_ij = x_i . x_j
    det: jnp.ndarray        # scalar
    inv: jnp.ndarray        # (2, 2) g^{ij}

    @property
    def sqrt_det(self):
        return jnp.sqrt(self.det)


def metric(x_uv) -> Metric:
    g = x_uv.T @ x_uv
    det = g[0, 0] * g[1, 1] - g[0, 1] * g[1, 0]
    inv = jnp.array([[g[1, 1], -g[0, 1]],
                     [-g[1, 0], g[0, 0]]]) / det
    return Metric(g, det, inv)


def cross(a, b):
    return jnp.array([a[1] * b[2] - a[2] * b[1],
                      a[2] * b[0] - a[0] * b[2],
                      a[0] * b[1] - a[1] * b[0]])


class SurfaceFrame(NamedTuple):
    """Tangents, metric, unit normal and contravariant basis at one point."""
    x_uv: jnp.ndarray       # (3, 2)
    metric: Metric
    normal: jnp.ndarray     # (3,)
    Jir: jnp.ndarray        # (2, 3) rows g^{ik} x_k

    @property
    def detg(self):
        return self.metric.det

    @property
    def area_element(self):
        return self.metric.sqrt_det

    @property
    def projector(self):
        """Tangential projector I - N N^T, equal to the tangential gradient of x."""
        return self.x_uv @ self.Jir


def surface_frame(x_uv, normal_sign: float = 1.0) -> SurfaceFrame:
    m = metric(x_uv)
    n = normal_sign * cross(x_uv[:, 0], x_uv[:, 1]) / jnp.sqrt(m.det)
    Jir = m.inv @ x_uv.T
    return SurfaceFrame(x_uv, m, n, Jir)


def tangential_gradient(f_uv, frame: SurfaceFrame):
    """Surface gradient of a field from its parametric derivatives.

    ``f_uv`` is (m, 2) for an m-component field; the result is (m, 3) with
    rows g^{ij} (df/du_i) x_j.
    """
    return f_uv @ frame.Jir


def shape_tangential_gradient(dphi, frame: SurfaceFrame):
    """(n_loc, 2) shape derivatives -> (n_loc, 3) tangential gradients."""
    return dphi @ frame.Jir


def check_element(x_nodes: np.ndarray, dphi: np.ndarray, eid=None, tol: float = 1e-14):
    """Numerically evaluate detg at every quadrature point and refuse degenerate cells.

    ``x_nodes`` is (3, n_loc) and ``dphi`` (nq, n_loc, k) for an element of
    topological dimension k.
    """
    x_uv = np.einsum('ki,qij->qkj', x_nodes, dphi)
    g = np.einsum('qki,qkj->qij', x_uv, x_uv)
    detg = np.linalg.det(g)
    scale = float(np.max(np.abs(g))) ** g.shape[-1]
    worst = float(detg.min())
    if not np.isfinite(worst) or worst <= tol * scale:
        raise DegenerateElementError(eid, worst)
    return detg
