"""pysurfem.fem.reference.p0 -- one constant mode per element (tri or quad)."""
import sympy as sp
xi,eta=sp.symbols('xi eta')
N_sym=sp.Matrix([1 + 0*xi])
dN_sym=N_sym.jacobian([xi,eta])
shape=sp.lambdify((xi,eta),N_sym,'numpy')
grad=sp.lambdify((xi,eta),dN_sym,'numpy')
