"""pysurfem: finite-element assembly for geometric flows of surfaces in 3-D.

Element Jacobians are obtained with JAX forward-mode differentiation, which
needs double precision to match the scipy solves it feeds.
"""
import jax

jax.config.update("jax_enable_x64", True)

__version__ = "0.1.0"
