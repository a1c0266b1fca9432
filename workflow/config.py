"""config.py
One immutable value carrying every run parameter. Nothing here is read from
module globals; callers build a `RunConfig` and pass it in.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path


@dataclass(frozen=True)
class RunConfig:
    """Parameters of a minimize -> thermalize -> equilibrate -> propagate run.

    Times are in ps, temperatures in K, forces in pN (default nm / zJ / yg units).

    Parameters
    ----------
    temperature : float
        Target temperature of the equilibrated system.
    heat_factor : float
        Velocities are first drawn at heat_factor * temperature.
    time_step : float
        Largest velocity-Verlet sub-step.
    frame_time : float
        Simulated time between recorded frames; frames are played back at 60 FPS.
    frame_count : int
        Production frames recorded after the initial one.
    equilibration_intervals : int
        Number of NVE + rescale cycles.
    equilibration_interval : float
        Simulated time per equilibration cycle.
    max_iterations : int
        Minimization budget.
    force_tolerance : float
        Minimization convergence threshold.
    cache_dir : str
        Directory of the trajectory cache.
    seed : int or None
        Seed of the velocity draw; None draws from the global generator.
    """
    temperature: float = 300.0
    heat_factor: float = 2.0
    time_step: float = 0.0025
    frame_time: float = 0.25 / 60
    frame_count: int = 120
    equilibration_intervals: int = 10
    equilibration_interval: float = 0.010
    max_iterations: int = 1000
    force_tolerance: float = 10.0
    cache_dir: str = ".build/trajectories"
    seed: int | None = None

    def __post_init__(self):
        if self.temperature < 0:
            raise ValueError(f"temperature must be non-negative, got {self.temperature}")
        if self.heat_factor <= 0:
            raise ValueError(f"heat_factor must be positive, got {self.heat_factor}")
        for name in ("time_step", "frame_time", "equilibration_interval", "force_tolerance"):
            if not getattr(self, name) > 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.frame_count < 0 or self.equilibration_intervals < 0:
            raise ValueError("frame_count and equilibration_intervals must be non-negative")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")

    @classmethod
    def from_toml(cls, path: str | Path) -> "RunConfig":
        """Defaults overridden by the `[run]` table of a TOML file. Unknown keys are rejected."""
        with open(path, "rb") as f:
            table = tomllib.load(f).get("run", {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(table) - known)
        if unknown:
            raise ValueError(f"Unknown run settings in {path}: {', '.join(unknown)}")
        return cls(**table)

    def with_overrides(self, **changes) -> "RunConfig":
        return replace(self, **changes)
