import numpy as np
import jax.numpy as jnp
import pytest
from pysurfem.assembly.curvature import PowerLaw
from pysurfem.assembly.local_assembler import assemble_nonlinear
from pysurfem.assembly.system import GlobalSystem
from pysurfem.assembly.tape import ElementTape
from pysurfem.assembly.willmore import PWillmoreKernel, PWillmoreParameters
from pysurfem.core.dofhandler import GLOBAL, P1, DofHandler, FieldId, FieldRegistry
from pysurfem.utils.meshgen import icosphere


def _setup(params, mesh, perturb=0.0, seed=0):
    rng = np.random.default_rng(seed)
    reg = FieldRegistry(mesh)
    for fid in (FieldId.DISPLACEMENT, FieldId.CURVATURE, FieldId.AUXILIARY):
        reg.add(fid, P1, 3)
    if params.n_constraints:
        reg.add(FieldId.CONSTRAINT, GLOBAL, 1, n_global=params.n_constraints)
    reg.initialize(FieldId.CURVATURE, lambda x: -2.0 * x)
    reg.initialize(FieldId.AUXILIARY, lambda x: -4.0 * x)
    kernel = PWillmoreKernel(params, dt=1e-2)
    dh = DofHandler(reg, kernel.unknowns)
    dh.copy_to_old()
    if perturb:
        dh.add_to_fields(perturb * rng.standard_normal(dh.total_dofs))
    return reg, kernel, dh


def _flat_residual(kernel, dh, eid, data, flat):
    reg = dh.registry
    unknowns, start = {}, 0
    for fid in dh.unknowns:
        shape = reg[fid].element_values(eid).shape
        size = int(np.prod(shape))
        unknowns[fid.value] = jnp.asarray(flat[start:start + size].reshape(shape))
        start += size
    res, _ = kernel.residual(unknowns, data)
    return np.concatenate([np.ravel(res[fid.value]) for fid in dh.unknowns])


@pytest.mark.parametrize("scheme", ["backward", "midpoint"])
def test_jacobian_matches_finite_differences(scheme):
    params = PWillmoreParameters(energy=PowerLaw((2, 3, 4), (1.0, 0.5, 0.25)), scheme=scheme)
    reg, kernel, dh = _setup(params, icosphere(1), perturb=1e-2)
    eid = 5
    data = kernel.element_data(eid, dh)
    with ElementTape() as tape:
        for fid in dh.unknowns:
            tape.independent(fid.value, reg[fid].element_values(eid))
        for fid in dh.unknowns:
            tape.dependent(fid.value)
        res, jac, _ = tape.jacobian(kernel.residual, data, n_dofs=dh.element_dofs(eid).size)

    z0 = np.concatenate([reg[fid].element_values(eid).ravel() for fid in dh.unknowns])
    assert np.allclose(res, _flat_residual(kernel, dh, eid, data, z0))
    h = 1e-6
    fd = np.empty_like(jac)
    for k in range(z0.size):
        e = np.zeros_like(z0)
        e[k] = h
        fd[:, k] = (_flat_residual(kernel, dh, eid, data, z0 + e)
                    - _flat_residual(kernel, dh, eid, data, z0 - e)) / (2 * h)
    assert np.allclose(jac, fd, rtol=1e-5, atol=1e-6 * np.abs(jac).max())


def test_constraints_vanish_without_motion():
    params = PWillmoreParameters()
    mesh = icosphere(2)
    reg, kernel, dh = _setup(params, mesh)
    system = GlobalSystem(dh.total_dofs)
    diag = assemble_nonlinear(kernel, dh, system)
    lam = dh.field_slice(FieldId.CONSTRAINT)
    assert np.allclose(system.rhs[lam], 0.0, atol=1e-14)

    tris = mesh.coords[mesh.elements_connectivity]
    a, b, c = tris[:, 0], tris[:, 1], tris[:, 2]
    area = 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1).sum()
    vol = np.einsum('ij,ij->i', a, np.cross(b, c)).sum() / 6.0
    assert np.isclose(diag["surface"], area)
    assert np.isclose(diag["volume"], vol)
    assert diag["energy"] > 0.0


def test_unconstrained_kernel_has_no_multiplier():
    params = PWillmoreParameters(volume_constraint=False, area_constraint=False)
    assert params.n_constraints == 0
    assert FieldId.CONSTRAINT not in PWillmoreKernel(params).unknowns
    only_volume = PWillmoreParameters(area_constraint=False)
    assert only_volume.n_constraints == 1


def test_unknown_scheme_rejected():
    with pytest.raises(ValueError):
        PWillmoreParameters(scheme="crank")
