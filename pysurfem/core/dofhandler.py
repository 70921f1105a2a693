# dofhandler.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Sequence, Tuple, Union

import numpy as np

from pysurfem.core.mesh import SurfaceMesh

logger = logging.getLogger(__name__)

# (component name, face id, position, time) -> (is_dirichlet, value)
BoundaryPredicate = Callable[[str, int, np.ndarray, float], Tuple[bool, float]]
Initializer = Union[float, Callable[[np.ndarray], "np.ndarray | float"]]


class Family(Enum):
    LAGRANGE = "lagrange"            # nodal, continuous
    DISCONTINUOUS = "discontinuous"  # one constant per element
    GLOBAL = "global"                # scalars shared by every element


@dataclass(frozen=True)
class FiniteElement:
    family: Family
    order: int = 1


P1 = FiniteElement(Family.LAGRANGE, 1)
P0 = FiniteElement(Family.DISCONTINUOUS, 0)
GLOBAL = FiniteElement(Family.GLOBAL, 0)


class FieldId(str, Enum):
    DISPLACEMENT = "Dx"
    CURVATURE = "Y"
    AUXILIARY = "W"
    CONSTRAINT = "Lambda"
    NEW_DISPLACEMENT = "nDx"
    CONFORMAL_MULTIPLIER = "Lambda1"
    POTENTIAL = "u"


class Field:
    """
    Nodal (or element, or global) values of one named quantity.

    ``values`` holds the current Newton iterate and ``old`` the value at the
    previous time level, both shaped ``(n_dofs, n_components)``.
    """

    def __init__(self, field_id: FieldId, fe: FiniteElement, mesh: SurfaceMesh,
                 n_components: int = 1, n_global: int = 1):
        self.id = FieldId(field_id)
        self.fe = fe
        self.mesh = mesh
        self.n_components = int(n_components)
        if fe.family is Family.LAGRANGE:
            self.n_dofs = mesh.n_nodes
        elif fe.family is Family.DISCONTINUOUS:
            self.n_dofs = mesh.n_elements
        else:
            self.n_dofs = int(n_global)
        self.values = np.zeros((self.n_dofs, self.n_components))
        self.old = np.zeros_like(self.values)

    @property
    def name(self) -> str:
        return self.id.value

    @property
    def component_names(self) -> List[str]:
        if self.n_components == 1:
            return [self.name]
        return [f"{self.name}{k + 1}" for k in range(self.n_components)]

    def dof_coords(self) -> np.ndarray:
        """Positions the field's dofs live at (nodes or element centroids)."""
        if self.fe.family is Family.LAGRANGE:
            return self.mesh.coords
        if self.fe.family is Family.DISCONTINUOUS:
            return self.mesh.coords[self.mesh.elements_connectivity].mean(axis=1)
        raise TypeError(f"Global field '{self.name}' has no dof positions.")

    def interpolate(self, init: Initializer) -> "Field":
        """Set values from a constant or from a function of position."""
        if callable(init):
            pts = self.dof_coords()
            vals = np.array([np.atleast_1d(init(p)) for p in pts], dtype=float)
            if vals.shape[1] not in (1, self.n_components):
                raise ValueError(f"Initializer for '{self.name}' returned {vals.shape[1]} "
                                 f"components, expected {self.n_components}.")
            self.values[:] = vals
        else:
            self.values[:] = float(init)
        return self

    def copy_to_old(self):
        self.old[:] = self.values

    def assign(self, other: "Field"):
        if other.values.shape != self.values.shape:
            raise ValueError(f"Cannot copy '{other.name}' {other.values.shape} into "
                             f"'{self.name}' {self.values.shape}.")
        self.values[:] = other.values

    def local_dofs(self, eid: int) -> np.ndarray:
        if self.fe.family is Family.LAGRANGE:
            return self.mesh.elements_connectivity[eid]
        if self.fe.family is Family.DISCONTINUOUS:
            return np.array([eid])
        return np.arange(self.n_dofs)

    def element_values(self, eid: int, old: bool = False) -> np.ndarray:
        """(n_components, n_loc) element-local values."""
        src = self.old if old else self.values
        return src[self.local_dofs(eid)].T.copy()

    def __repr__(self):
        return f"<Field {self.name} {self.fe.family.value} x{self.n_components}, {self.n_dofs} dofs>"


class FieldRegistry:
    """Fields of a run, resolved once by :class:`FieldId` at setup."""

    def __init__(self, mesh: SurfaceMesh):
        self.mesh = mesh
        self._fields: Dict[FieldId, Field] = {}
        self._bc: BoundaryPredicate | None = None

    def add(self, field_id: FieldId, fe: FiniteElement = P1, n_components: int = 1,
            n_global: int = 1) -> Field:
        field_id = FieldId(field_id)
        if field_id in self._fields:
            raise KeyError(f"Field '{field_id.value}' already registered.")
        fld = Field(field_id, fe, self.mesh, n_components, n_global)
        self._fields[field_id] = fld
        return fld

    def __getitem__(self, field_id: FieldId) -> Field:
        return self._fields[FieldId(field_id)]

    def __contains__(self, field_id) -> bool:
        return FieldId(field_id) in self._fields

    def __iter__(self):
        return iter(self._fields.values())

    def initialize(self, field_id: FieldId, init: Initializer = 0.0):
        self[field_id].interpolate(init)

    def attach_boundary_condition(self, predicate: BoundaryPredicate):
        self._bc = predicate

    @property
    def boundary_condition(self) -> BoundaryPredicate | None:
        return self._bc

    def copy(self, src: FieldId, dst: FieldId):
        self[dst].assign(self[src])


class DofHandler:
    """
    Global dof numbering of a set of unknown fields.

    Blocks are laid out field by field and, inside a field, component by
    component: ``gdof = offset(field) + comp * n_dofs + local``. Element dof
    lists follow the same order, which is also the order the element
    kernels declare their unknowns and residuals in.
    """

    def __init__(self, registry: FieldRegistry, unknowns: Sequence[FieldId]):
        self.registry = registry
        self.mesh = registry.mesh
        self.unknowns: Tuple[FieldId, ...] = tuple(FieldId(u) for u in unknowns)
        self.offsets: Dict[FieldId, int] = {}
        off = 0
        for fid in self.unknowns:
            fld = registry[fid]
            self.offsets[fid] = off
            off += fld.n_dofs * fld.n_components
        self.total_dofs = off

    def field_slice(self, field_id: FieldId) -> slice:
        fld = self.registry[field_id]
        start = self.offsets[FieldId(field_id)]
        return slice(start, start + fld.n_dofs * fld.n_components)

    def field_dofs(self, field_id: FieldId, eid: int) -> np.ndarray:
        fld = self.registry[field_id]
        base = self.offsets[FieldId(field_id)]
        loc = fld.local_dofs(eid)
        return np.concatenate([base + k * fld.n_dofs + loc for k in range(fld.n_components)])

    def element_dofs(self, eid: int) -> np.ndarray:
        return np.concatenate([self.field_dofs(fid, eid) for fid in self.unknowns])

    def get_vector(self) -> np.ndarray:
        out = np.empty(self.total_dofs)
        for fid in self.unknowns:
            out[self.field_slice(fid)] = self.registry[fid].values.T.ravel()
        return out

    def set_vector(self, vec: np.ndarray):
        vec = np.asarray(vec, dtype=float)
        if vec.shape != (self.total_dofs,):
            raise ValueError(f"Vector of shape {vec.shape} does not match {self.total_dofs} dofs.")
        for fid in self.unknowns:
            fld = self.registry[fid]
            fld.values[:] = vec[self.field_slice(fid)].reshape(fld.n_components, fld.n_dofs).T

    def add_to_fields(self, delta: np.ndarray):
        """Add a global increment (solver update) to the unknown fields."""
        if delta.shape[0] != self.total_dofs:
            raise ValueError(f"Shape of delta vector ({delta.shape[0]}) does not match "
                             f"total DOFs in handler ({self.total_dofs}).")
        self.set_vector(self.get_vector() + delta)

    def copy_to_old(self):
        for fid in self.unknowns:
            self.registry[fid].copy_to_old()

    def get_dirichlet_data(self, time: float = 0.0) -> Dict[int, float]:
        """
        Build {global_dof -> value} by asking the registry's boundary predicate
        about every boundary node of each nodal unknown, once per touching face.
        """
        predicate = self.registry.boundary_condition
        out: Dict[int, float] = {}
        if predicate is None:
            return out
        node_faces = self.mesh.node_faces()
        if not node_faces:
            return out
        for fid in self.unknowns:
            fld = self.registry[fid]
            if fld.fe.family is not Family.LAGRANGE:
                continue
            base = self.offsets[fid]
            for k, cname in enumerate(fld.component_names):
                for node, faces in node_faces.items():
                    x = self.mesh.coords[node]
                    for face in faces:
                        is_dirichlet, value = predicate(cname, face, x, time)
                        if is_dirichlet:
                            out[base + k * fld.n_dofs + node] = float(value)
                            break
        return out

    def apply_bcs(self, time: float = 0.0) -> Dict[int, float]:
        """Write Dirichlet values into the fields; returns the data used."""
        data = self.get_dirichlet_data(time)
        if data:
            vec = self.get_vector()
            vec[np.fromiter(data.keys(), dtype=int)] = np.fromiter(data.values(), dtype=float)
            self.set_vector(vec)
            logger.debug("Applied %d Dirichlet values at t=%g", len(data), time)
        return data
