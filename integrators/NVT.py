import torch

from forces.evaluator import Singlepoint
from integrators.NVE import NVE
from integrators.velocities import maxwell_boltzmann, rescale


class NVT:
    """
    Exact velocity-rescale thermostat wrapped around the velocity-Verlet integrator.

    Not a stochastic thermostat: after every rescale the instantaneous
    temperature equals `T` to floating-point precision. Meant for an
    equilibration phase, after which the system is propagated with plain NVE.

    Parameters
    ----------
    time_step : float
        Largest velocity-Verlet sub-step.
    T : float
        Target temperature in kelvin.
    """
    def __init__(self, time_step: float, T: float):
        if T < 0:
            raise ValueError(f"T must be non-negative, got {T}")
        self.integrator = NVE(time_step)
        self.T = float(T)

    def thermalize(self, system, *, factor: float = 2.0, generator: torch.Generator | None = None) -> None:
        """Draw Maxwell-Boltzmann velocities at factor * T and rescale them to exactly that."""
        T = factor * self.T
        vel = maxwell_boltzmann(system.mass, T, system.units.kB, generator=generator)
        rescale(vel, system.mass, T, system.units.kB)
        system.set_velocities(vel)

    def rescale(self, system) -> None:
        rescale(system.vel, system.mass, self.T, system.units.kB)

    def equilibrate(self, system, evaluator: Singlepoint, *, intervals: int = 10, interval_duration: float = 0.010) -> list[float]:
        """Alternate `interval_duration` of NVE with an exact rescale, `intervals` times.

        Returns the temperature reached just before each rescale.
        """
        if intervals < 0:
            raise ValueError(f"intervals must be non-negative, got {intervals}")
        temperatures = []
        for _ in range(intervals):
            self.integrator.simulate(system, interval_duration, evaluator)
            temperatures.append(system.temperature())
            self.rescale(system)
        return temperatures

    def __repr__(self) -> str:
        return f"NVT(time_step={self.integrator.time_step:.3g}, T={self.T:.3g})"
