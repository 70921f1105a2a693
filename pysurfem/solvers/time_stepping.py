"""pysurfem.solvers.time_stepping

Driver of the P-Willmore flow of a closed surface. Three systems share one
field registry:

* ``init``      -- curvature initialisation (Y, W) on the current surface;
* ``willmore``  -- one implicit time step (Dx, Y, W [, Lambda]);
* ``conformal`` -- tangential reparametrization (nDx, Lambda1).

A run is ``initialize()`` followed by ``step()`` calls. After every
``reparametrize_every`` steps the mesh is conformally reparametrized and the
curvatures are re-initialised on the moved nodes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from pysurfem.assembly.conformal import ConformalKernel, ConformalParameters
from pysurfem.assembly.curvature import CurvatureKernel, CurvatureParameters
from pysurfem.assembly.local_assembler import assemble_nonlinear
from pysurfem.assembly.system import GlobalSystem
from pysurfem.assembly.willmore import PWillmoreKernel, PWillmoreParameters
from pysurfem.core.dofhandler import GLOBAL, P0, P1, DofHandler, FieldId, FieldRegistry
from pysurfem.core.mesh import SurfaceMesh
from pysurfem.solvers.nonlinear_solver import LinearSolverParameters, NewtonParameters, NewtonSolver

logger = logging.getLogger(__name__)


@dataclass
class FlowParameters:
    dt0: float = 5e-5
    dt_growth: float = 1.1
    reparametrize_every: int = 1        # 0 disables reparametrization
    willmore_newton: NewtonParameters = field(
        default_factory=lambda: NewtonParameters(newton_tol=1e-10, max_newton_iter=15))
    init_newton: NewtonParameters = field(
        default_factory=lambda: NewtonParameters(newton_tol=1e-12, max_newton_iter=1,
                                                 require_convergence=False))
    conformal_newton: NewtonParameters = field(
        default_factory=lambda: NewtonParameters(newton_tol=1e-10, max_newton_iter=1,
                                                 require_convergence=False))
    linear: LinearSolverParameters = field(default_factory=LinearSolverParameters)


@dataclass
class FlowState:
    """Everything that changes between time steps."""
    time: float = 0.0
    step: int = 0
    dt: float = 5e-5
    surface0: Optional[float] = None    # reference quantities captured at step 0
    volume0: Optional[float] = None
    energy0: Optional[float] = None
    history: List[Dict[str, float]] = field(default_factory=list)

    @property
    def has_reference(self) -> bool:
        return self.surface0 is not None

    def capture_reference(self, diagnostics: Dict[str, float]):
        self.surface0 = diagnostics["surface"]
        self.volume0 = diagnostics["volume"]
        self.energy0 = diagnostics["energy"]

    def relative_drift(self, diagnostics: Dict[str, float]) -> Dict[str, float]:
        return {
            "surface": (diagnostics["surface"] - self.surface0) / self.surface0,
            "volume": (diagnostics["volume"] - self.volume0) / self.volume0,
        }


def sphere_initial_curvature(energy):
    """Y and W of a unit sphere centred at the origin, for the given power law."""
    scale = energy.initial_scale()

    def Y0(x):
        return -2.0 * np.asarray(x)

    def W0(x):
        return -2.0 * scale * np.asarray(x)
    return Y0, W0


class PWillmoreFlow:
    def __init__(self, mesh: SurfaceMesh,
                 willmore: PWillmoreParameters | None = None,
                 curvature: CurvatureParameters | None = None,
                 conformal: ConformalParameters | None = None,
                 flow: FlowParameters | None = None,
                 *,
                 initial_Y: Optional[Callable] = None,
                 initial_W: Optional[Callable] = None):
        if mesh.dim != 2:
            raise ValueError(f"The P-Willmore flow needs a surface mesh, got {mesh.element_type!r} elements.")
        if not mesh.is_closed:
            raise ValueError("The P-Willmore flow needs a closed surface mesh.")
        self.mesh = mesh
        self.willmore_params = willmore or PWillmoreParameters()
        self.curvature_params = curvature or CurvatureParameters(
            energy=self.willmore_params.energy, normal_sign=self.willmore_params.normal_sign)
        self.conformal_params = conformal or ConformalParameters()
        self.flow_params = flow or FlowParameters()
        self.state = FlowState(dt=self.flow_params.dt0)

        reg = FieldRegistry(mesh)
        reg.add(FieldId.DISPLACEMENT, P1, 3)
        reg.add(FieldId.CURVATURE, P1, 3)
        reg.add(FieldId.AUXILIARY, P1, 3)
        if self.willmore_params.n_constraints:
            reg.add(FieldId.CONSTRAINT, GLOBAL, 1, n_global=self.willmore_params.n_constraints)
        reg.add(FieldId.NEW_DISPLACEMENT, P1, 3)
        reg.add(FieldId.CONFORMAL_MULTIPLIER, P0, 1)
        Y0, W0 = sphere_initial_curvature(self.willmore_params.energy)
        reg.initialize(FieldId.CURVATURE, initial_Y or Y0)
        reg.initialize(FieldId.AUXILIARY, initial_W or W0)
        self.registry = reg

        fp = self.flow_params
        self.willmore_kernel = PWillmoreKernel(self.willmore_params, dt=self.state.dt)
        self.willmore_dh = DofHandler(reg, self.willmore_kernel.unknowns)
        self.willmore_solver = NewtonSolver.for_kernel(
            self.willmore_kernel, self.willmore_dh, fp.willmore_newton, fp.linear, name="PWillmore")

        init_kernel = CurvatureKernel(self.curvature_params)
        self.init_dh = DofHandler(reg, init_kernel.unknowns)
        self.init_solver = NewtonSolver.for_kernel(
            init_kernel, self.init_dh, fp.init_newton, fp.linear, name="Init")

        conformal_kernel = ConformalKernel(self.conformal_params)
        self.conformal_dh = DofHandler(reg, conformal_kernel.unknowns)
        self.conformal_solver = NewtonSolver.for_kernel(
            conformal_kernel, self.conformal_dh, fp.conformal_newton, fp.linear, name="Conformal")

    # ------------------------------------------------------------------
    @property
    def positions(self) -> np.ndarray:
        return self.mesh.coords + self.registry[FieldId.DISPLACEMENT].values

    def copy_displacement(self, forward: bool):
        """forward: nDx <- Dx; backward: Dx <- nDx."""
        if forward:
            self.registry.copy(FieldId.DISPLACEMENT, FieldId.NEW_DISPLACEMENT)
        else:
            self.registry.copy(FieldId.NEW_DISPLACEMENT, FieldId.DISPLACEMENT)

    def reparametrize(self):
        self.copy_displacement(True)
        self.conformal_solver.solve(self.state.time)
        self.copy_displacement(False)

    def reinitialize_curvature(self):
        self.willmore_dh.copy_to_old()
        self.init_solver.solve(self.state.time)

    def measure(self) -> Dict[str, float]:
        """Surface, volume and energy of the current configuration."""
        self.willmore_kernel.dt = self.state.dt
        system = GlobalSystem(self.willmore_dh.total_dofs)
        return assemble_nonlinear(self.willmore_kernel, self.willmore_dh, system)

    def initialize(self):
        if self.flow_params.reparametrize_every:
            self.reparametrize()
        self.reinitialize_curvature()
        self.state.capture_reference(self.measure())
        logger.info("step 0  SURFACE = %.10g  VOLUME = %.10g  ENERGY = %.10g",
                    self.state.surface0, self.state.volume0, self.state.energy0)
        return self

    def step(self) -> Dict[str, float]:
        st = self.state
        if not st.has_reference:
            raise RuntimeError("PWillmoreFlow.step() called before initialize().")
        self.willmore_dh.copy_to_old()
        self.willmore_kernel.dt = st.dt
        result = self.willmore_solver.solve(st.time + st.dt)
        diag = dict(result.diagnostics)

        st.time += st.dt
        st.step += 1
        drift = st.relative_drift(diag)
        logger.info("step %d t=%.4e dt=%.3e  SURFACE = %.10g (%+.2e)  VOLUME = %.10g (%+.2e)  ENERGY = %.10g",
                    st.step, st.time, st.dt, diag["surface"], drift["surface"],
                    diag["volume"], drift["volume"], diag["energy"])
        record = {"step": st.step, "time": st.time, "dt": st.dt,
                  "newton_iterations": result.iterations, **diag,
                  "surface_drift": drift["surface"], "volume_drift": drift["volume"]}
        st.history.append(record)
        st.dt *= self.flow_params.dt_growth

        every = self.flow_params.reparametrize_every
        if every and st.step % every == 0:
            self.reparametrize()
            self.reinitialize_curvature()
        return record

    def run(self, n_steps: int) -> List[Dict[str, float]]:
        for _ in range(n_steps):
            self.step()
        return self.state.history
