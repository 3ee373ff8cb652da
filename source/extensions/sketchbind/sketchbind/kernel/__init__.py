from .ids import IdAllocator
from .vertices import Vertex, VertexStore
from .constraints import Constraint, ConstraintStore, ConstraintType
from .errors import DegenerateConstraint, DidNotConverge, MissingVertex, SolveError
from .variable_index import VariableIndex
from .residuals import ResidualModel
from .constraint_solver import (
    ConstraintSolver,
    SolveReport,
    SolverResult,
    commit,
    solve,
)
