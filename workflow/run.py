import logging
from dataclasses import dataclass
from typing import Sequence

import torch

from forces.evaluator import Singlepoint
from integrators.NVT import NVT
from integrators.minimize import ConstrainedMinimizer, minimize_cached
from storage.cache import TrajectoryCache
from storage.store import DirectoryStore, Store
from system.atoms import Atom, Trajectory, dynamics_mass
from system.constraints import ConstraintGroup
from system.system import ParticleSystem
from workflow.config import RunConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    relaxation: Trajectory
    trajectory: Trajectory
    equilibration_temperatures: tuple[float, ...]


def run_simulation(atoms: Sequence[Atom], evaluator: Singlepoint, constraint: ConstraintGroup | None = None,
                   config: RunConfig | None = None, store: Store | None = None) -> RunResult:
    """
    Relax `atoms` (through the cache), heat, equilibrate and record production frames.

    Parameters
    ----------
    atoms : sequence of Atom
        Raw geometry from a geometry builder.
    evaluator : Singlepoint
        positions -> (forces, energy), used for both relaxation and dynamics.
    constraint : ConstraintGroup, optional
        Symmetry held during relaxation only.
    config : RunConfig
        Run parameters; defaults to `RunConfig()`.
    store : Store, optional
        Cache backend; defaults to a DirectoryStore at `config.cache_dir`.

    Returns
    -------
    RunResult
        The relaxation trajectory, the production trajectory (initial frame plus
        `config.frame_count` frames) and the temperature seen before each
        equilibration rescale.
    """
    config = config if config is not None else RunConfig()
    cache = TrajectoryCache(store if store is not None else DirectoryStore(config.cache_dir))

    minimizer = ConstrainedMinimizer(evaluator, constraint, max_iterations=config.max_iterations,
                                     force_tolerance=config.force_tolerance)
    relaxation = minimize_cached(atoms, minimizer, cache)
    system = ParticleSystem.from_atoms(relaxation.last.to_atoms(), mass_fn=dynamics_mass)
    logger.info(f"Relaxed geometry ready: {system}")

    generator = None
    if config.seed is not None:
        generator = torch.Generator().manual_seed(config.seed)

    nvt = NVT(config.time_step, config.temperature)
    nvt.thermalize(system, factor=config.heat_factor, generator=generator)
    temperatures = nvt.equilibrate(system, evaluator, intervals=config.equilibration_intervals,
                                   interval_duration=config.equilibration_interval)
    logger.info(f"Equilibrated to {system.temperature():.1f} K after {config.equilibration_intervals} intervals")

    integrator = nvt.integrator
    frames = [system.frame()]
    for frame_id in range(1, config.frame_count + 1):
        integrator.time_label = frame_id * config.frame_time
        integrator.simulate(system, config.frame_time, evaluator)
        frames.append(system.frame())
    integrator.time_label = None

    return RunResult(relaxation=relaxation, trajectory=Trajectory(frames),
                     equilibration_temperatures=tuple(temperatures))
