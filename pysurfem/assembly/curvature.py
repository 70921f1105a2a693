"""pysurfem.assembly.curvature

Curvature initialisation on a fixed surface: solve jointly

    Y = Δ_Γ x                 (mean-curvature vector, |Y| = 2H)
    W = Σ_p a_p p |Y|^{p-2} Y

so that the P-Willmore flow starts from curvature fields consistent with the
current position.
"""
from dataclasses import dataclass, field
from typing import Tuple

import jax
import jax.numpy as jnp

from pysurfem.assembly.local_assembler import ElementKernel, gather_nodes
from pysurfem.core.dofhandler import FieldId
from pysurfem.fem.geometry import check_element, shape_tangential_gradient, surface_frame, tangential_gradient
from pysurfem.fem.tabulation import tabulate


@dataclass(frozen=True)
class PowerLaw:
    """Energy density Σ_p a_p |Y|^p of the curvature vector, |Y| = 2H."""
    exponents: Tuple[int, ...] = (2, 3, 4)
    coefficients: Tuple[float, ...] = (1.0, 0.0, 0.0)

    def __post_init__(self):
        if len(self.exponents) != len(self.coefficients):
            raise ValueError("exponents and coefficients must have the same length.")

    def terms(self, YdotY, YdotN):
        """Return (Σ s a p |Y|^{p-2}, Σ s a (1-p) |Y|^p, Σ s a |Y|^p).

        Odd powers take the sign s of Y.N; the sign is piecewise constant and
        carries no derivative. Vanishing coefficients are skipped and a zero
        exponent is the constant 1, so no derivative of |Y|^0 at Y = 0 is ever
        formed.
        """
        sign = jnp.where(jax.lax.stop_gradient(YdotN) >= 0.0, 1.0, -1.0)
        s1 = s2 = s3 = 0.0
        for p, a in zip(self.exponents, self.coefficients):
            if a == 0:
                continue
            s = 1.0 if p % 2 == 0 else sign
            s1 = s1 + s * a * p * _pow(YdotY, (p - 2) / 2)
            s2 = s2 + s * a * (1 - p) * _pow(YdotY, p / 2)
            s3 = s3 + s * a * _pow(YdotY, p / 2)
        return s1, s2, s3

    def initial_scale(self) -> float:
        """W/Y ratio on the unit sphere for the highest exponent: P·2^(P-2)."""
        p = self.exponents[-1]
        return p * 2.0 ** (p - 2)


def _pow(x, e):
    if e == 0:
        return 1.0
    if e == 1:
        return x
    return x ** e


@dataclass
class CurvatureParameters:
    energy: PowerLaw = field(default_factory=PowerLaw)
    normal_sign: float = -1.0
    delta: float = 0.0          # Laplacian smoothing of Y
    quad_order: int = 2


class CurvatureKernel(ElementKernel):
    unknowns = (FieldId.CURVATURE, FieldId.AUXILIARY)

    def __init__(self, params: CurvatureParameters = None):
        self.params = params or CurvatureParameters()

    def element_data(self, eid, dh):
        mesh = dh.mesh
        tab = tabulate(mesh.element_type, 1, self.params.quad_order)
        x = mesh.element_coords(eid).T
        if FieldId.DISPLACEMENT in dh.registry:
            x = x + gather_nodes(dh, FieldId.DISPLACEMENT, eid)
        check_element(x, tab.dphi, eid)
        return {"x": x, "phi": tab.phi, "dphi": tab.dphi, "w": tab.weights}

    def residual(self, unknowns, data):
        p = self.params
        Y = unknowns[FieldId.CURVATURE.value]
        W = unknowns[FieldId.AUXILIARY.value]
        x = data["x"]

        def at_point(phi, dphi, w):
            frame = surface_frame(x @ dphi, p.normal_sign)
            area = w * frame.area_element
            Yg = Y @ phi
            Wg = W @ phi
            sum1, _, _ = p.energy.terms(Yg @ Yg, Yg @ frame.normal)
            phi_t = shape_tangential_gradient(dphi, frame)
            x_t = tangential_gradient(frame.x_uv, frame)
            Y_t = tangential_gradient(Y @ dphi, frame)
            rY = (jnp.outer(Yg, phi) + p.delta * Y_t @ phi_t.T + x_t @ phi_t.T) * area
            rW = jnp.outer(Wg - sum1 * Yg, phi) * w
            return rY, rW

        rY, rW = jax.vmap(at_point)(data["phi"], data["dphi"], data["w"])
        return {FieldId.CURVATURE.value: rY.sum(0), FieldId.AUXILIARY.value: rW.sum(0)}, {}
