"""pysurfem.fem.reference.hex_q1 -- trilinear brick on [-1,1]^3, bottom face first."""
import sympy as sp
xi,eta,zeta=sp.symbols('xi eta zeta')
_corners=[(-1,-1,-1),(1,-1,-1),(1,1,-1),(-1,1,-1),(-1,-1,1),(1,-1,1),(1,1,1),(-1,1,1)]
N_sym=sp.Matrix([(1+a*xi)*(1+b*eta)*(1+c*zeta) for a,b,c in _corners])/8
dN_sym=N_sym.jacobian([xi,eta,zeta])
shape=sp.lambdify((xi,eta,zeta),N_sym,'numpy')
grad=sp.lambdify((xi,eta,zeta),dN_sym,'numpy')
