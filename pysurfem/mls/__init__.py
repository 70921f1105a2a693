"""Moving-least-squares interpolation on structured background grids."""
from .builder import MLSInterpolator, TensorGrid, build_mls
from .grid import element_dofs, multi_index
from .linalg import DegenerateSystemError, gaussian_elimination
from .polynomials import chebyshev, compute_index_set

__all__ = [
    "MLSInterpolator", "TensorGrid", "build_mls",
    "element_dofs", "multi_index",
    "DegenerateSystemError", "gaussian_elimination",
    "chebyshev", "compute_index_set",
]
