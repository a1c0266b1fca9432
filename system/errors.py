"""errors.py
Runtime failures a caller may catch, log or retry. Bad arguments are not in
here: those raise ValueError / IndexError straight away.
"""

from __future__ import annotations


class SimulationError(RuntimeError):
    """Base class for recoverable failures during minimization or propagation."""


class EvaluatorError(SimulationError):
    """The singlepoint evaluator raised, or returned non-finite or misshapen output."""


class ConvergenceError(SimulationError):
    """Minimization ran out of iterations before the force tolerance was met.

    Parameters
    ----------
    message : str
        Human readable summary.
    trajectory : Trajectory
        Frames recorded before giving up. Not a relaxed geometry.
    iterations : int
        Number of iterations performed.
    max_force : float
        Largest force magnitude on a mobile atom at the last iteration.
    """

    def __init__(self, message: str, *, trajectory, iterations: int, max_force: float):
        super().__init__(message)
        self.trajectory = trajectory
        self.iterations = iterations
        self.max_force = max_force


class SerializationError(ValueError):
    """A serialized trajectory could not be decoded."""
