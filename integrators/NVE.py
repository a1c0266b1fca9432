import logging
import math
from dataclasses import dataclass

import torch

from forces.evaluator import Singlepoint, evaluate
from integrators.velocities import instantaneous_temperature
from system.errors import EvaluatorError

logger = logging.getLogger(__name__)

# Relative distance from an integer below which a ratio is floating-point noise.
_STEP_RTOL = 1e-9


@dataclass(frozen=True)
class StepReport:
    """Diagnostics of one step. Logged, never used for control flow."""
    dt: float
    energy: float
    temperature: float
    max_force: float


def step_count(duration: float, time_step: float) -> int:
    """Number of equal sub-steps covering `duration` with none longer than `time_step`."""
    ratio = duration / time_step
    nearest = round(ratio)
    if nearest > 0 and math.isclose(ratio, nearest, rel_tol=_STEP_RTOL):
        return int(nearest)
    return max(1, math.ceil(ratio))


class NVE:
    """
    Velocity-Verlet (V.V.) integrator for an NVE ensemble with adaptive sub-stepping.

    Parameters
    ----------
    time_step : float
        Largest step that may be taken (ps with the default units). Some steps are shorter.

    Expected `system` interface
    ---------------------------
    system.pos    : (N, 3) tensor – current positions
    system.vel    : (N, 3) tensor – current velocities
    system.mass   : (N,)   tensor – masses, zero for anchors
    system.forces : (N, 3) tensor or None – forces of the current positions, if known
    system.units  : UnitSystem providing kB
    """
    def __init__(self, time_step: float = 0.0025):
        if not time_step > 0:
            raise ValueError(f"time_step must be positive, got {time_step}")
        self.time_step = float(time_step)
        self.time_label = None

    def simulate(self, system, duration: float, evaluator: Singlepoint) -> list[float]:
        """
        Propagate `system` by `duration`, split into equal sub-steps.

        Returns the list of sub-step sizes taken; they sum to `duration`.
        """
        if duration == 0:
            return []
        if not (duration > 0 and math.isfinite(duration)):
            raise ValueError(f"duration must be non-negative and finite, got {duration}")
        n = step_count(duration, self.time_step)
        dt = duration / n
        for _ in range(n):
            self.step(system, dt, evaluator)
        return [dt] * n

    def step(self, system, dt: float, evaluator: Singlepoint) -> StepReport:
        if system.forces is None:
            system.forces, system.energy = evaluate(evaluator, system.pos)

        mobile = system.mass > 0
        inv_mass = torch.zeros_like(system.mass)
        inv_mass[mobile] = 1.0 / system.mass[mobile]
        inv_mass = inv_mass.unsqueeze(-1)

        pos, vel = system.pos.clone(), system.vel.clone()
        system.vel.add_(0.5 * dt * system.forces * inv_mass)
        system.pos[mobile] += dt * system.vel[mobile]
        try:
            system.forces, system.energy = evaluate(evaluator, system.pos)
        except EvaluatorError:
            # Roll back so the cached forces still match the positions.
            system.pos.copy_(pos)
            system.vel.copy_(vel)
            raise
        system.vel.add_(0.5 * dt * system.forces * inv_mass)

        return self._report(system, dt)

    def _report(self, system, dt: float) -> StepReport:
        mobile = system.mass > 0
        if mobile.any():
            max_force = torch.norm(system.forces[mobile], dim=-1).max().item()
        else:
            max_force = 0.0
        report = StepReport(
            dt=dt,
            energy=system.energy,
            temperature=instantaneous_temperature(system.vel, system.mass, system.units.kB),
            max_force=max_force,
        )
        prefix = f"time: {self.time_label:.4f} | " if self.time_label is not None else ""
        logger.info(
            f"{prefix}energy: {report.energy:.3f} | temp: {report.temperature:.1f} K | "
            f"max force: {report.max_force:.3f} | Δt: {dt:.3g}"
        )
        return report

    def __repr__(self) -> str:
        return f"NVE(time_step={self.time_step:.3g})"
