"""pysurfem.integration.quadrature
Quadrature provider for the reference line, triangle, quadrilateral and
hexahedron.

``order`` is the number of 1-D Gauss points per direction, so a rule of order
n integrates polynomials of degree 2n-1 exactly on the tensor-product cells
and in each collapsed direction on the triangle.
"""
import numpy as np
from functools import lru_cache
from numpy.polynomial.legendre import leggauss


# -------------------------------------------------------------------------
# 1-D Gauss-Legendre
# -------------------------------------------------------------------------
def gauss_legendre(order: int):
    if order < 1:
        raise ValueError(order)
    return leggauss(order)  # (points, weights)


def _gl01(order: int):
    """Gauss-Legendre nodes and weights mapped to [0,1]."""
    xi, w = gauss_legendre(int(order))
    return 0.5 * (xi + 1.0), 0.5 * w


# -------------------------------------------------------------------------
# Tensor-product construction helpers
# -------------------------------------------------------------------------
@lru_cache(maxsize=None)
def quad_rule(order: int):
    xi, wi = gauss_legendre(order)
    pts = np.array([[x, y] for x in xi for y in xi])
    wts = np.array([wx * wy for wx in wi for wy in wi])
    return pts, wts


@lru_cache(maxsize=None)
def line_rule(order: int):
    xi, wi = gauss_legendre(order)
    return xi.reshape(-1, 1), wi


@lru_cache(maxsize=None)
def hex_rule(order: int):
    xi, wi = gauss_legendre(order)
    pts = np.array([[x, y, z] for x in xi for y in xi for z in xi])
    wts = np.array([wx * wy * wz for wx in wi for wy in wi for wz in wi])
    return pts, wts


@lru_cache(maxsize=None)
def tri_rule(order: int):
    """Collapsed (Duffy) Gauss rule on the triangle (0,0),(1,0),(0,1)."""
    u, w_u = _gl01(order)
    pts = []
    wts = []
    for i, ui in enumerate(u):
        for j, vj in enumerate(u):
            pts.append([ui, vj * (1.0 - ui)])
            wts.append(w_u[i] * w_u[j] * (1.0 - ui))
    return np.array(pts), np.array(wts)


# -------------------------------------------------------------------------
# Public API
# -------------------------------------------------------------------------
def volume(element_type: str, order: int = 2):
    if element_type == 'line':
        return line_rule(order)
    if element_type == 'tri':
        return tri_rule(order)
    if element_type == 'quad':
        return quad_rule(order)
    if element_type == 'hex':
        return hex_rule(order)
    raise KeyError(element_type)
