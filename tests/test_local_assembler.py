import numpy as np
import pytest
from pysurfem.assembly.curvature import CurvatureKernel
from pysurfem.assembly.local_assembler import assemble_nonlinear
from pysurfem.assembly.system import GlobalSystem
from pysurfem.assembly.tape import TapeMismatchError
from pysurfem.core.dofhandler import P1, DofHandler, FieldId, FieldRegistry
from pysurfem.fem.geometry import DegenerateElementError
from pysurfem.utils.meshgen import cube_sphere


@pytest.fixture
def curvature_problem():
    mesh = cube_sphere(2)
    reg = FieldRegistry(mesh)
    reg.add(FieldId.CURVATURE, P1, 3)
    reg.add(FieldId.AUXILIARY, P1, 3)
    reg.initialize(FieldId.CURVATURE, lambda x: -2.0 * x)
    kernel = CurvatureKernel()
    return reg, kernel, DofHandler(reg, kernel.unknowns)


def test_partitioned_assembly_sums_to_serial(curvature_problem):
    reg, kernel, dh = curvature_problem
    full = GlobalSystem(dh.total_dofs)
    assemble_nonlinear(kernel, dh, full)
    rhs = np.zeros(dh.total_dofs)
    mats = []
    for rank in range(3):
        part = GlobalSystem(dh.total_dofs)
        assemble_nonlinear(kernel, dh, part, rank=rank, n_parts=3)
        rhs += part.rhs
        mats.append(part.matrix)
    mat = mats[0] + mats[1] + mats[2]
    assert np.allclose(rhs, full.rhs)
    assert np.allclose((mat - full.matrix).toarray(), 0.0)


def test_kernel_and_handler_must_agree(curvature_problem):
    reg, kernel, _ = curvature_problem
    dh = DofHandler(reg, [FieldId.CURVATURE])
    with pytest.raises(TapeMismatchError):
        assemble_nonlinear(kernel, dh, GlobalSystem(dh.total_dofs))


def test_collapsed_element_raises(curvature_problem):
    reg, kernel, dh = curvature_problem
    mesh = dh.mesh
    nodes = mesh.elements_connectivity[0]
    mesh.coords[nodes[1:]] = mesh.coords[nodes[0]]
    with pytest.raises(DegenerateElementError):
        assemble_nonlinear(kernel, dh, GlobalSystem(dh.total_dofs))
