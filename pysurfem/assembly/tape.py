"""
Per-element automatic-differentiation record.

An :class:`ElementTape` lives for exactly one element: the assembler opens it,
declares the element's unknown blocks as independent variables and its
residual blocks as dependent variables, extracts the dense local Jacobian
(row-major, rows ordered like the dependents and columns like the
independents) and closes it. Nothing is shared between elements.

The Jacobian is computed by forward-mode differentiation: one JVP per
independent variable, batched with ``jax.vmap`` over the identity basis.
"""
from __future__ import annotations

import functools
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import jax
import jax.numpy as jnp

ResidualFn = Callable[[Dict[str, jnp.ndarray], dict], Tuple[Dict[str, jnp.ndarray], dict]]


class TapeMismatchError(ValueError):
    """Independent/dependent blocks do not line up with the dofs being scattered."""


def value_and_jacfwd(f, x):
    """Value, Jacobian and auxiliary output of ``f(x) -> (y, aux)`` at a flat ``x``."""
    pushfwd = functools.partial(jax.jvp, f, (x,), has_aux=True)
    basis = jnp.eye(x.size, dtype=x.dtype)
    y, jac, aux = jax.vmap(pushfwd, out_axes=(None, -1, None))((basis,))
    return y, jac, aux


@functools.partial(jax.jit, static_argnums=(0, 1, 2))
def _evaluate(residual_fn: ResidualFn, in_spec, out_names, flat, data):
    def flat_residual(z):
        unknowns = {}
        start = 0
        for name, shape in in_spec:
            size = int(np.prod(shape))
            unknowns[name] = z[start:start + size].reshape(shape)
            start += size
        res, aux = residual_fn(unknowns, data)
        return jnp.concatenate([jnp.ravel(res[n]) for n in out_names]), aux

    return value_and_jacfwd(flat_residual, flat)


class ElementTape:
    """Recording of one element's residual evaluation.

    Usage::

        with ElementTape() as tape:
            tape.independent("x", xe)
            tape.dependent("x")
            res, jac, aux = tape.jacobian(kernel.residual, data, n_dofs=len(dofs))
    """

    def __init__(self):
        self._independent: List[Tuple[str, np.ndarray]] = []
        self._dependent: List[str] = []
        self._recording = False

    # ------------------------------------------------------------------
    def new_recording(self):
        self.clear()
        self._recording = True
        return self

    def clear(self):
        self._independent = []
        self._dependent = []
        self._recording = False

    def __enter__(self):
        return self.new_recording()

    def __exit__(self, *exc):
        self.clear()
        return False

    # ------------------------------------------------------------------
    def independent(self, name: str, values):
        if not self._recording:
            raise RuntimeError("ElementTape: call new_recording() before declaring variables.")
        if any(n == name for n, _ in self._independent):
            raise TapeMismatchError(f"Independent block '{name}' declared twice.")
        self._independent.append((name, np.asarray(values, dtype=float)))

    def dependent(self, name: str):
        if not self._recording:
            raise RuntimeError("ElementTape: call new_recording() before declaring variables.")
        if name in self._dependent:
            raise TapeMismatchError(f"Dependent block '{name}' declared twice.")
        self._dependent.append(name)

    @property
    def n_independent(self) -> int:
        return int(sum(v.size for _, v in self._independent))

    @property
    def independents(self) -> Dict[str, np.ndarray]:
        return {n: v for n, v in self._independent}

    # ------------------------------------------------------------------
    def jacobian(self, residual_fn: ResidualFn, data: dict, n_dofs: Optional[int] = None):
        """Evaluate the residual and its exact Jacobian.

        Returns ``(res, jac, aux)`` with ``res`` of length n_dependent and
        ``jac`` of shape (n_dependent, n_independent). When *n_dofs* is given
        both counts must equal it, since the blocks are scattered with one
        list of global dofs.
        """
        if not self._independent or not self._dependent:
            raise TapeMismatchError("ElementTape: no independent or dependent variables declared.")
        n_in = self.n_independent
        if n_dofs is not None and n_in != n_dofs:
            raise TapeMismatchError(
                f"{n_in} independent variables recorded but {n_dofs} dofs are scattered.")
        in_spec = tuple((n, v.shape) for n, v in self._independent)
        flat = jnp.asarray(np.concatenate([v.ravel() for _, v in self._independent]))
        res, jac, aux = _evaluate(residual_fn, in_spec, tuple(self._dependent), flat, data)
        res = np.asarray(res)
        jac = np.asarray(jac)
        if n_dofs is not None and res.size != n_dofs:
            raise TapeMismatchError(
                f"{res.size} dependent residuals recorded but {n_dofs} dofs are scattered.")
        return res, jac, jax.tree_util.tree_map(np.asarray, aux)
