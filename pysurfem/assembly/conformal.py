"""pysurfem.assembly.conformal

Conformal reparametrization: move the mesh nodes tangentially so that the
parametrization of the current surface x = x̂ + Dx becomes (discretely)
conformal, without changing the surface itself to first order.

Unknowns are the new displacement nDx and a piecewise-constant multiplier λ
enforcing ∫ (Dx - nDx).N_M = 0 per element, where N_M is the unnormalised
normal of the midpoint configuration x̂ + (Dx + nDx)/2. A small penalty ε λ
regularises the multiplier equation.

On triangles, parametric derivatives are taken with respect to an ideal
planar triangle whose angles are 2π/valence at each vertex, redistributed by
one of two heuristics so that they sum to π, and scaled to area √3/4.
"""
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import jax
import jax.numpy as jnp

from pysurfem.assembly.local_assembler import ElementKernel, gather_nodes
from pysurfem.core.dofhandler import FieldId
from pysurfem.fem.geometry import check_element, cross, shape_tangential_gradient, surface_frame, tangential_gradient
from pysurfem.fem.tabulation import map_to_planar_element, tabulate

TRIANGLE_MODES = (0, 1, 2)


def change_triangle_configuration_1(valence: Sequence[int], angle: Sequence[float]):
    """Rescale the angles of the vertices with larger valence so that the angle
    sum is π, keeping the angle of the vertex with the smallest valence."""
    v0, v1, v2 = valence
    a = list(angle)
    if v0 < v1 and v0 < v2:
        scale = (np.pi - a[0]) / (a[1] + a[2])
        a[1] *= scale
        a[2] *= scale
    elif v0 < v1 and v0 == v2:
        a[1] = np.pi - 2.0 * a[0]
    elif v0 <= v1 and v0 > v2:
        scale = (np.pi - a[2]) / (a[1] + a[0])
        a[1] *= scale
        a[0] *= scale
    elif v0 == v1 and v0 < v2:
        a[2] = np.pi - 2.0 * a[0]
    elif v0 == v1 and v0 == v2:
        a = [np.pi / 3.0] * 3
    elif v0 > v1 and v0 <= v2:
        scale = (np.pi - a[1]) / (a[0] + a[2])
        a[0] *= scale
        a[2] *= scale
    elif v0 > v1 and v0 > v2:
        if v1 < v2:
            scale = (np.pi - a[1]) / (a[0] + a[2])
            a[0] *= scale
            a[2] *= scale
        elif v1 == v2:
            a[0] = np.pi - 2.0 * a[1]
        else:
            scale = (np.pi - a[2]) / (a[0] + a[1])
            a[0] *= scale
            a[1] *= scale
    return a


def change_triangle_configuration_2(valence: Sequence[int], angle: Sequence[float]):
    """Keep the angle of a unique smallest-valence ("leading") vertex and rescale
    the other two; without a unique leader rescale all three uniformly."""
    v0, v1, v2 = valence
    lead = None
    if v0 < v1:
        if v0 < v2:
            lead = 0
        elif v0 > v2:
            lead = 2
    elif v0 > v1:
        if v1 < v2:
            lead = 1
        elif v1 > v2:
            lead = 2
    elif v0 > v2:
        lead = 2

    a = list(angle)
    if lead is None:
        scale = np.pi / sum(a)
        return [ai * scale for ai in a]
    others = [k for k in range(3) if k != lead]
    scale = (np.pi - a[lead]) / (a[others[0]] + a[others[1]])
    for k in others:
        a[k] *= scale
    return a


def triangle_angles(valence: Sequence[int], mode: int = 1):
    """Target angles of a triangle from the valences of its vertices."""
    if mode not in TRIANGLE_MODES:
        raise ValueError(f"Unknown triangle mode {mode}, expected one of {TRIANGLE_MODES}.")
    angle = [2.0 * np.pi / v for v in valence]
    if mode == 1:
        return change_triangle_configuration_1(valence, angle)
    if mode == 2:
        return change_triangle_configuration_2(valence, angle)
    return [np.pi / 3.0] * 3


def ideal_triangle(angle: Sequence[float]) -> np.ndarray:
    """(2, 3) vertices of a triangle with angles angle[0], angle[1] at the first two
    vertices, base on the u axis starting at u = -1/2 and area √3/4."""
    a0, a1 = angle[0], angle[1]
    l = 1.0
    d = l * np.sin(a0) * np.sin(a1) / np.sin(a0 + a1)
    scale = np.sqrt((np.sqrt(3.0) / 2.0) / (l * d))
    l *= scale
    d *= scale
    x0 = -0.5
    return np.array([[x0, x0 + l, x0 + d / np.tan(a0)],
                     [0.0, 0.0, d]])


@dataclass
class ConformalParameters:
    eps: float = 1e-5           # multiplier penalty
    delta: float = 0.0          # tangential smoothing of the new position
    triangle_mode: int = 1
    quad_order: int = 2

    def __post_init__(self):
        if self.triangle_mode not in TRIANGLE_MODES:
            raise ValueError(f"Unknown triangle mode {self.triangle_mode}, expected one of {TRIANGLE_MODES}.")


class ConformalKernel(ElementKernel):
    unknowns = (FieldId.NEW_DISPLACEMENT, FieldId.CONFORMAL_MULTIPLIER)

    def __init__(self, params: ConformalParameters = None):
        self.params = params or ConformalParameters()

    def element_tabulation(self, eid, mesh):
        tab = tabulate(mesh.element_type, 1, self.params.quad_order)
        if mesh.element_type != "tri":
            return tab
        valence = [mesh.vertex_valence(n) for n in mesh.element_nodes(eid)]
        return map_to_planar_element(tab, ideal_triangle(triangle_angles(valence, self.params.triangle_mode)))

    def element_data(self, eid, dh):
        mesh = dh.mesh
        tab = self.element_tabulation(eid, mesh)
        xhat = mesh.element_coords(eid).T
        Dx = gather_nodes(dh, FieldId.DISPLACEMENT, eid)
        check_element(xhat + Dx, tab.dphi, eid)
        return {"xhat": xhat, "Dx": Dx, "phi": tab.phi, "dphi": tab.dphi, "w": tab.weights}

    def residual(self, unknowns, data):
        p = self.params
        nDx = unknowns[FieldId.NEW_DISPLACEMENT.value]
        L = unknowns[FieldId.CONFORMAL_MULTIPLIER.value][0, 0]
        xhat, Dx = data["xhat"], data["Dx"]
        x = xhat + Dx
        xM = xhat + 0.5 * (Dx + nDx)
        xNew = xhat + nDx

        def at_point(phi, dphi, w):
            frame = surface_frame(x @ dphi)
            n = frame.normal
            gi = frame.metric.inv
            area = w * frame.area_element
            area2 = w                   # equal weight per element

            Nx_uv = xNew @ dphi
            Nu, Nv = Nx_uv[:, 0], Nx_uv[:, 1]
            V = Nv - cross(n, Nu)
            W = Nu + cross(n, Nv)
            nV, nW = cross(n, V), cross(n, W)
            Q = jnp.stack([gi[1, 1] * W + gi[0, 0] * nV - gi[0, 1] * (nW + V),
                           gi[0, 0] * V - gi[1, 1] * nW + gi[0, 1] * (nV - W)], axis=1)   # (3, 2)

            Mx_uv = xM @ dphi
            nM = cross(Mx_uv[:, 0], Mx_uv[:, 1])

            phi_t = shape_tangential_gradient(dphi, frame)
            Nx_t = tangential_gradient(Nx_uv, frame)
            rX = (Q @ dphi.T + p.delta * Nx_t @ phi_t.T) * area + L * jnp.outer(nM, phi) * area2
            rL = ((Dx - nDx) @ phi) @ nM * area2 + p.eps * L * area
            return rX, rL

        rX, rL = jax.vmap(at_point)(data["phi"], data["dphi"], data["w"])
        return {FieldId.NEW_DISPLACEMENT.value: rX.sum(0),
                FieldId.CONFORMAL_MULTIPLIER.value: rL.sum(0).reshape(1, 1)}, {}
