"""
Solver settings — tolerances, iteration cap and residual policies.

Defaults match the interactive sketcher: a residual norm of ``1e-6`` is
considered solved and the solver gives up after 100 iterations.  Values can
be overridden per call with :meth:`SolverSettings.with_overrides` or read
from ``SKETCHBIND_*`` environment variables with :meth:`SolverSettings.from_env`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Mapping, Optional


class DistanceMode(Enum):
    SIGNED = auto()       # dist_sq - target_sq
    ABSOLUTE = auto()     # |dist_sq - target_sq| (legacy form)


class DegeneratePolicy(Enum):
    RAISE = auto()
    SKIP = auto()


@dataclass(frozen=True)
class SolverSettings:
    """Tunable parameters for a single solve call."""
    tolerance: float = 1e-6
    max_iterations: int = 100
    distance_mode: DistanceMode = DistanceMode.SIGNED
    degenerate_policy: DegeneratePolicy = DegeneratePolicy.RAISE
    # Passed to least_squares as ftol / xtol / gtol
    step_tolerance: float = 1e-12
    debug: bool = False

    def __post_init__(self):
        if self.tolerance <= 0.0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")

    def with_overrides(self, **kwargs) -> "SolverSettings":
        return replace(self, **kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SolverSettings":
        """
        Build settings from environment variables.

        Recognised keys: ``SKETCHBIND_TOLERANCE``, ``SKETCHBIND_MAX_ITERATIONS``,
        ``SKETCHBIND_DISTANCE_MODE`` (``signed`` / ``absolute``) and
        ``SKETCHBIND_DEBUG`` (``1`` / ``true`` / ``yes``).  Missing keys keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        if "SKETCHBIND_TOLERANCE" in env:
            kwargs["tolerance"] = float(env["SKETCHBIND_TOLERANCE"])
        if "SKETCHBIND_MAX_ITERATIONS" in env:
            kwargs["max_iterations"] = int(env["SKETCHBIND_MAX_ITERATIONS"])
        if "SKETCHBIND_DISTANCE_MODE" in env:
            kwargs["distance_mode"] = DistanceMode[env["SKETCHBIND_DISTANCE_MODE"].upper()]
        if "SKETCHBIND_DEBUG" in env:
            kwargs["debug"] = env["SKETCHBIND_DEBUG"].strip().lower() in ("1", "true", "yes")
        return cls(**kwargs)
