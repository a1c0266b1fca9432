import logging
from typing import Callable, Iterable, Sequence

import torch

from forces.evaluator import Singlepoint, evaluate
from integrators.FIRE import FIRE
from system.atoms import Atom, Frame, Trajectory, relaxation_mass
from system.constraints import ConstraintGroup, anchor_indices
from system.errors import ConvergenceError

logger = logging.getLogger(__name__)

# Bump whenever the relaxation procedure changes, so cached trajectories from
# the old procedure stop matching.
ALGORITHM_VERSION = "fire-constrained-1"


class ConstrainedMinimizer:
    """
    Relax a geometry to a local minimum while a symmetry constraint holds.

    Every iteration the constrained atoms share the mean force component along
    the constraint axis, FIRE takes one step, and their positions along that
    axis are snapped back to the mean so the step cannot break the symmetry.

    Parameters
    ----------
    evaluator : Singlepoint
        positions (N, 3) -> (forces (N, 3), energy).
    constraint : ConstraintGroup, optional
        Atoms tied together along one axis.
    max_iterations : int
        Iteration budget; running out raises ConvergenceError.
    force_tolerance : float
        Largest force on a mobile atom accepted as converged.
    fire_options : dict, optional
        Extra keyword arguments for FIRE (dt_start, max_displacement, ...).
    """
    def __init__(self, evaluator: Singlepoint, constraint: ConstraintGroup | None = None, *,
                 max_iterations: int = 1000, force_tolerance: float = 10.0, fire_options: dict | None = None):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")
        if not force_tolerance > 0:
            raise ValueError(f"force_tolerance must be positive, got {force_tolerance}")
        self.evaluator = evaluator
        self.constraint = constraint
        self.max_iterations = int(max_iterations)
        self.force_tolerance = float(force_tolerance)
        self.fire_options = dict(fire_options or {})

    def fingerprint(self) -> str:
        """Identifies everything besides the atoms that decides the result. Goes into cache keys."""
        options = ",".join(f"{k}={v!r}" for k, v in sorted(self.fire_options.items()))
        constraint = "none" if self.constraint is None else f"{list(self.constraint.indices)}@{self.constraint.axis}"
        evaluator = getattr(self.evaluator, "version", type(self.evaluator).__name__)
        return (f"{ALGORITHM_VERSION};tol={self.force_tolerance!r};budget={self.max_iterations};"
                f"constraint={constraint};fire={options};evaluator={evaluator}")

    def run(self, atoms: Sequence[Atom], *, mass: torch.Tensor | None = None,
            anchors: Iterable[int] | None = None, mass_fn: Callable[[int], float] = relaxation_mass) -> Trajectory:
        """
        Minimize `atoms` and return every frame visited, last frame relaxed.

        Parameters
        ----------
        atoms : sequence of Atom
            Raw geometry.
        mass : torch.Tensor, optional
            Fictitious masses (N,). Defaults to `mass_fn` of each element.
        anchors : iterable of int, optional
            Extra atoms held fixed. Zero-mass atoms are always anchors.
        """
        initial = Frame.from_atoms(atoms)
        N = len(initial)
        if N == 0:
            raise ValueError("Nothing to minimize: no atoms.")
        z = initial.atomic_numbers
        if mass is None:
            mass = torch.tensor([mass_fn(zi) for zi in z.tolist()], dtype=torch.float32)
        mass = torch.as_tensor(mass, dtype=torch.float32)
        if mass.shape != (N,):
            raise ValueError(f"mass must be ({N},), got {tuple(mass.shape)}")
        # Zero-mass atoms are anchors whether or not they are listed.
        anchors = tuple(sorted(set(anchor_indices(mass)) | {int(i) for i in (anchors or ())}))
        if anchors and (anchors[0] < 0 or anchors[-1] >= N):
            raise IndexError(f"Anchor indices {anchors} out of range for {N} atoms.")
        if self.constraint is not None:
            self.constraint.validate(N)
            overlap = set(self.constraint.indices) & set(anchors)
            if overlap:
                raise ValueError(f"Atoms {sorted(overlap)} are both anchored and constrained.")

        fire = FIRE(mass, initial.positions, anchors, force_tolerance=self.force_tolerance, **self.fire_options)
        frames = []
        max_force = float("inf")
        for iteration in range(self.max_iterations):
            frames.append(Frame(z, fire.pos))
            forces, energy = evaluate(self.evaluator, fire.pos)
            if self.constraint is not None:
                self.constraint.apply(forces)

            max_force = fire.max_force(forces)
            converged = fire.step(forces)
            logger.debug(f"iteration: {iteration} | time: {fire.time:.4f} | energy: {energy:.3f} | "
                         f"max force: {max_force:.3f} | Δt: {fire.dt:.3g}")

            if self.constraint is not None:
                self.constraint.apply(fire.pos)

            if converged:
                frames.append(Frame(z, fire.pos))
                logger.info(f"Minimization converged after {iteration + 1} iterations, max force {max_force:.3f}")
                return Trajectory(frames)

        raise ConvergenceError(
            f"Minimization did not converge in {self.max_iterations} iterations "
            f"(max force {max_force:.3f}, tolerance {self.force_tolerance:.3f})",
            trajectory=Trajectory(frames),
            iterations=self.max_iterations,
            max_force=max_force,
        )

    def __repr__(self) -> str:
        return f"ConstrainedMinimizer(budget={self.max_iterations}, tol={self.force_tolerance:.3g}, constraint={self.constraint})"


def minimize_cached(atoms: Sequence[Atom], minimizer: ConstrainedMinimizer, cache, **run_kwargs) -> Trajectory:
    """Minimize through `cache`: a geometry already relaxed once is read back instead of recomputed."""
    version = minimizer.fingerprint()
    for key, value in sorted(run_kwargs.items()):
        if isinstance(value, torch.Tensor):
            value = value.tolist()
        elif callable(value):
            value = getattr(value, "__qualname__", type(value).__name__)
        elif value is not None:
            value = sorted(value) if key == "anchors" else value
        version += f";{key}={value!r}"
    return cache.load_or_compute(atoms, lambda: minimizer.run(atoms, **run_kwargs), version=version)
