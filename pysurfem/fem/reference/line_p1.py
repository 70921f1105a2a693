"""pysurfem.fem.reference.line_p1"""
import sympy as sp
xi=sp.symbols('xi')
N_sym=sp.Matrix([(1-xi)/2,(1+xi)/2])
dN_sym=N_sym.jacobian([xi])
shape=sp.lambdify((xi,),N_sym,'numpy')
grad=sp.lambdify((xi,),dN_sym,'numpy')
