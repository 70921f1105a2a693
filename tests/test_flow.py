import numpy as np
import pytest
from pysurfem.assembly.willmore import PWillmoreParameters
from pysurfem.solvers.time_stepping import FlowParameters, PWillmoreFlow
from pysurfem.utils.meshgen import icosphere, structured_hex, structured_quad


@pytest.mark.parametrize("scheme", ["backward", "midpoint"])
def test_sphere_flow_smoke(scheme):
    flow = PWillmoreFlow(icosphere(1), PWillmoreParameters(scheme=scheme))
    with pytest.raises(RuntimeError):
        flow.step()
    flow.initialize()
    assert flow.state.has_reference
    history = flow.run(2)
    assert len(history) == 2
    assert history[-1]["step"] == 2
    assert np.isclose(flow.state.dt, 5e-5 * 1.1 ** 2)
    for rec in history:
        assert all(np.isfinite(v) for v in rec.values())
        assert abs(rec["volume_drift"]) < 5e-2
        assert abs(rec["surface_drift"]) < 5e-2
    assert np.all(np.isfinite(flow.positions))


def test_flow_without_reparametrization_keeps_nodes():
    flow = PWillmoreFlow(icosphere(1), flow=FlowParameters(reparametrize_every=0))
    flow.initialize()
    flow.step()
    r = np.linalg.norm(flow.positions, axis=1)
    assert np.allclose(r, r.mean(), rtol=1e-2)


def test_open_mesh_rejected():
    with pytest.raises(ValueError):
        PWillmoreFlow(structured_quad(1.0, 1.0, nx=1, ny=1))


def test_volume_mesh_rejected():
    with pytest.raises(ValueError, match="'hex' elements"):
        PWillmoreFlow(structured_hex(1.0, 1.0, 1.0, nx=1, ny=1, nz=1))
