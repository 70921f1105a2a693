from .mesh import SurfaceMesh
from .topology import Facet
__all__ = ['SurfaceMesh', 'Facet']
