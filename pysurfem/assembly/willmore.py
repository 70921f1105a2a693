"""pysurfem.assembly.willmore

P-Willmore flow of a closed surface,  x_t = -δE/δx  for  E = ∫ Σ_p a_p |Y|^p,
written as a mixed system in the displacement Dx (x = x̂ + Dx), the curvature
vector Y = Δ_Γ x and the auxiliary field W, optionally with two global
Lagrange multipliers that keep the enclosed volume and the surface area
fixed.

The surface metric is always evaluated at the time midpoint
x_m = (x_new + x_old)/2. Two time-centerings of the curvature terms are
available:

* ``"midpoint"``: Y and W enter at the midpoint and |Y|, sign(Y.N) come from
  the midpoint Y;
* ``"backward"``: Y and W enter at the new level while |Y| and sign(Y.N) are
  lagged at the old level.

In both schemes the term ∇φ:(∇x_oldᵀ∇W_old + ∇W_oldᵀ∇x_old) is explicit.
"""
from dataclasses import dataclass, field

import jax
import jax.numpy as jnp

from pysurfem.assembly.curvature import PowerLaw
from pysurfem.assembly.local_assembler import ElementKernel, gather_nodes
from pysurfem.core.dofhandler import FieldId
from pysurfem.fem.geometry import check_element, shape_tangential_gradient, surface_frame, tangential_gradient
from pysurfem.fem.tabulation import tabulate

SCHEMES = ("midpoint", "backward")


@dataclass
class PWillmoreParameters:
    energy: PowerLaw = field(default_factory=PowerLaw)
    normal_sign: float = -1.0
    volume_constraint: bool = True
    area_constraint: bool = True
    scheme: str = "backward"
    quad_order: int = 2

    def __post_init__(self):
        if self.scheme not in SCHEMES:
            raise ValueError(f"Unknown time-centering scheme '{self.scheme}', expected one of {SCHEMES}.")

    @property
    def n_constraints(self) -> int:
        return int(self.volume_constraint) + int(self.area_constraint)


class PWillmoreKernel(ElementKernel):
    """Element residual of the P-Willmore system.

    Diagnostics summed over elements: ``surface`` (∫ dA), ``volume``
    (⅓∫ x.n dA with n the orientation normal) and ``energy`` (∫ Σ a_p |Y|^p dA),
    all at the time midpoint geometry and new position.
    """

    def __init__(self, params: PWillmoreParameters = None, dt: float = 5e-5):
        self.params = params or PWillmoreParameters()
        self.dt = dt

    @property
    def unknowns(self):
        base = (FieldId.DISPLACEMENT, FieldId.CURVATURE, FieldId.AUXILIARY)
        if self.params.n_constraints:
            return base + (FieldId.CONSTRAINT,)
        return base

    def element_data(self, eid, dh):
        mesh = dh.mesh
        tab = tabulate(mesh.element_type, 1, self.params.quad_order)
        xhat = mesh.element_coords(eid).T
        x_old = xhat + gather_nodes(dh, FieldId.DISPLACEMENT, eid, old=True)
        check_element(x_old, tab.dphi, eid)
        check_element(xhat + gather_nodes(dh, FieldId.DISPLACEMENT, eid), tab.dphi, eid)
        return {
            "xhat": xhat,
            "Dx_old": x_old - xhat,
            "Y_old": gather_nodes(dh, FieldId.CURVATURE, eid, old=True),
            "W_old": gather_nodes(dh, FieldId.AUXILIARY, eid, old=True),
            "dt": self.dt,
            "phi": tab.phi, "dphi": tab.dphi, "w": tab.weights,
        }

    def residual(self, unknowns, data):
        p = self.params
        midpoint = p.scheme == "midpoint"
        xN = data["xhat"] + unknowns[FieldId.DISPLACEMENT.value]
        xO = data["xhat"] + data["Dx_old"]
        YN = unknowns[FieldId.CURVATURE.value]
        WN = unknowns[FieldId.AUXILIARY.value]
        YO, WO = data["Y_old"], data["W_old"]
        dt = data["dt"]

        lam_vol = lam_area = 0.0
        if p.n_constraints:
            lam = unknowns[FieldId.CONSTRAINT.value][0]
            if p.volume_constraint:
                lam_vol = lam[0]
            if p.area_constraint:
                lam_area = lam[int(p.volume_constraint)]

        def at_point(phi, dphi, w):
            xN_uv, xO_uv = xN @ dphi, xO @ dphi
            xm_uv = 0.5 * (xN_uv + xO_uv)
            frame = surface_frame(xm_uv, p.normal_sign)
            N = frame.normal
            area = w * frame.area_element

            xN_g, xO_g = xN @ phi, xO @ phi
            if midpoint:
                Yc = 0.5 * (YN + YO) @ phi
                Wc = 0.5 * (WN + WO) @ phi
                Yk = Yc
            else:
                Yc = YN @ phi
                Wc = WN @ phi
                Yk = YO @ phi
            sum1, sum2, sum3 = p.energy.terms(Yk @ Yk, Yk @ N)

            phi_t = shape_tangential_gradient(dphi, frame)        # (n_loc, 3)
            xN_t = tangential_gradient(xN_uv, frame)
            xO_t = tangential_gradient(xO_uv, frame)
            xm_t = frame.projector
            WN_t = tangential_gradient(WN @ dphi, frame)
            WO_t = tangential_gradient(WO @ dphi, frame)

            # Y = Δx, tested against the new position
            rx = (jnp.outer(Yc, phi) + xN_t @ phi_t.T) * area
            # W = Σ p|Y|^{p-2} Y
            rY = jnp.outer(Wc - sum1 * Yc, phi) * area

            if midpoint:
                x1_t = xm_t
                divW = jnp.trace(0.5 * (WN_t + WO_t))
            else:
                x1_t = xN_t
                divW = jnp.trace(WN_t)
            term0 = WN_t @ phi_t.T
            term1 = x1_t @ phi_t.T
            S = xO_t.T @ WO_t + WO_t.T @ xO_t                    # (J, K)
            term3 = (phi_t @ S).T
            rW = (jnp.outer(lam_vol * N + (xN_g - xO_g) / dt, phi)
                  + lam_area * term1
                  - term0
                  + sum2 * term1
                  - divW * phi_t.T
                  + term3) * area

            rL = []
            if p.volume_constraint:
                rL.append(((xN_g - xO_g) @ N) * area)
            if p.area_constraint:
                rL.append(jnp.sum(xm_t * (xN_t - xO_t)) * area)

            aux = {
                "surface": area,
                "volume": p.normal_sign * (xN_g @ N) * area / 3.0,
                "energy": sum3 * area,
            }
            return rx, rY, rW, jnp.array(rL), aux

        rx, rY, rW, rL, aux = jax.vmap(at_point)(data["phi"], data["dphi"], data["w"])
        res = {
            FieldId.DISPLACEMENT.value: rx.sum(0),
            FieldId.CURVATURE.value: rY.sum(0),
            FieldId.AUXILIARY.value: rW.sum(0),
        }
        if p.n_constraints:
            res[FieldId.CONSTRAINT.value] = rL.sum(0)[None, :]
        return res, {k: v.sum() for k, v in aux.items()}
