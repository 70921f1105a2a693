"""pysurfem.assembly.local_assembler

Generic element loop shared by every AD-based weak form: gather the
element's unknowns, record them on a fresh :class:`ElementTape`, evaluate the
kernel's residual with its exact Jacobian and scatter both into the global
system with the convention ``RES = -R``, ``KK = dR/dU``.
"""
import logging
from typing import Dict, Tuple

import numpy as np

from pysurfem.assembly.system import GlobalSystem
from pysurfem.assembly.tape import ElementTape, TapeMismatchError
from pysurfem.core.dofhandler import DofHandler, FieldId

logger = logging.getLogger(__name__)


class ElementKernel:
    """
    Base class of element weak forms.

    Subclasses list their unknown fields in :attr:`unknowns` and implement

    * :meth:`element_data` -- numpy arrays for one element that are *not*
      differentiated (fixed geometry, old values, shape functions);
    * :meth:`residual` -- a pure ``jax.numpy`` function of the unknown
      blocks (keyed by field name, each shaped (n_components, n_loc)) and the
      element data, returning residual blocks of the same shapes plus a dict
      of scalar diagnostics to be summed over elements.

    Kernels are compared by identity, which is what lets the traced residual
    be cached per kernel instance.
    """
    unknowns: Tuple[FieldId, ...] = ()

    def prepare(self, dh: DofHandler):
        """Hook run once per assembly pass, before the element loop."""

    def element_data(self, eid: int, dh: DofHandler) -> dict:
        raise NotImplementedError

    def residual(self, unknowns: dict, data: dict):
        raise NotImplementedError


def assemble_nonlinear(kernel: ElementKernel, dh: DofHandler, system: GlobalSystem,
                       *, rank: int = 0, n_parts: int = 1) -> Dict[str, float]:
    """Assemble RES and KK over the elements owned by *rank*.

    Returns the kernel's diagnostics summed over those elements.
    """
    if tuple(kernel.unknowns) != dh.unknowns:
        raise TapeMismatchError(
            f"Kernel unknowns {[u.value for u in kernel.unknowns]} differ from the "
            f"dof handler's {[u.value for u in dh.unknowns]}.")
    if system.n_dofs != dh.total_dofs:
        raise ValueError(f"System size {system.n_dofs} != {dh.total_dofs} dofs.")

    registry = dh.registry
    system.zero()
    kernel.prepare(dh)
    diagnostics: Dict[str, float] = {}
    for eid in dh.mesh.owned_elements(rank, n_parts):
        dofs = dh.element_dofs(eid)
        data = kernel.element_data(eid, dh)
        with ElementTape() as tape:
            for fid in dh.unknowns:
                tape.independent(fid.value, registry[fid].element_values(eid))
            for fid in dh.unknowns:
                tape.dependent(fid.value)
            res, jac, aux = tape.jacobian(kernel.residual, data, n_dofs=dofs.size)

        system.add_vector_blocked(-res, dofs)
        system.add_matrix_blocked(jac, dofs, dofs)
        for key, val in aux.items():
            diagnostics[key] = diagnostics.get(key, 0.0) + float(val)
    system.close()
    logger.debug("%s: assembled %d dofs", type(kernel).__name__, dh.total_dofs)
    return diagnostics


def gather_nodes(dh: DofHandler, field_id: FieldId, eid: int, old: bool = False) -> np.ndarray:
    """(n_components, n_loc) values of a (possibly non-unknown) field on element *eid*."""
    return dh.registry[field_id].element_values(eid, old=old)
