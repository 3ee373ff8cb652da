from .logger import logger, set_debug
from .settings import DegeneratePolicy, DistanceMode, SolverSettings

__all__ = ["logger", "set_debug", "DegeneratePolicy", "DistanceMode", "SolverSettings"]
