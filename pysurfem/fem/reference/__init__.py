# pysurfem.fem.reference
"""
Reference-element factory.

Lagrange order 1 lives on the nodes (line: [-1,1]; tri: (0,0),(1,0),(0,1);
quad: [-1,1]^2, counter-clockwise; hex: [-1,1]^3, bottom face then top
face); order 0 is one discontinuous constant per surface element.
"""
from functools import lru_cache
from importlib import import_module
import numpy as np

_MODULES = {
    ("line", 1): "pysurfem.fem.reference.line_p1",
    ("tri", 1): "pysurfem.fem.reference.tri_p1",
    ("quad", 1): "pysurfem.fem.reference.quad_q1",
    ("hex", 1): "pysurfem.fem.reference.hex_q1",
    ("tri", 0): "pysurfem.fem.reference.p0",
    ("quad", 0): "pysurfem.fem.reference.p0",
}


class Ref:
    def __init__(self, shape_lambda, grad_lambda, n_loc, dim):
        self.shape_lambda = shape_lambda
        self.grad_lambda = grad_lambda
        self.n_loc = n_loc
        self.dim = dim

    @lru_cache(maxsize=None)
    def shape(self, *xi):
        return np.broadcast_to(np.asarray(self.shape_lambda(*xi), dtype=float),
                               (self.n_loc, 1)).ravel().copy()

    @lru_cache(maxsize=None)
    def grad(self, *xi):
        """(n_loc, dim) derivatives with respect to the reference coordinates."""
        return np.broadcast_to(np.asarray(self.grad_lambda(*xi), dtype=float),
                               (self.n_loc, self.dim)).copy()


@lru_cache(maxsize=None)
def get_reference(element_type: str, poly_order: int = 1):
    try:
        mod = import_module(_MODULES[(element_type, poly_order)])
    except KeyError:
        raise KeyError(f"No reference element for ({element_type!r}, order {poly_order}).") from None
    return Ref(mod.shape, mod.grad, mod.N_sym.shape[0], mod.dN_sym.shape[1])
