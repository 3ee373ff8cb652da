from .core import DegeneratePolicy, DistanceMode, SolverSettings
from .kernel import (
    Constraint,
    ConstraintStore,
    ConstraintType,
    DegenerateConstraint,
    DidNotConverge,
    IdAllocator,
    MissingVertex,
    SolveError,
    SolveReport,
    Vertex,
    VertexStore,
    solve,
)
from .api import SketchBindAPI
