"""units.py
Unit system for the integrators. Nothing inside the integrators converts units,
so every quantity handed to them must already be expressed in one of these.

* Pick three base-unit scale factors (L, E, M) as conversion factors to SI.
* `UnitSystem.nzy()` is the default: nm, zJ, yg, which makes the time unit 1 ps.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
import math

# --- SI constants --------------------------------------------------------
_BOLTZMANN = 1.380_649e-23          # J K^{-1}  (per particle)
_AMU       = 1.660_539_066_60e-27   # kg

YG_PER_AMU = _AMU / 1.0e-27         # yoctograms per dalton


@dataclass(frozen=True)
class UnitSystem:
    """Define one simulation unit for length, energy, mass and kB.

    Parameters (all are conversion factors)
    ----------
    L : float
        Metres per simulation length-unit.
    E : float
        Joules per simulation energy-unit.
    M : float
        Kilograms per simulation mass-unit.
    kB : float
        Simulation-energy units per kelvin.
    """

    L: float = 1.0
    E: float = 1.0
    M: float = 1.0
    kB: float = 1.0

    # --- derived scales --------------------------------------------------------
    @cached_property
    def time(self) -> float:              # seconds per sim time-unit
        return math.sqrt(self.M * self.L ** 2 / self.E)

    # --- convenient defaults --------------------------------------------------------
    @classmethod
    def from_SI(cls, *, L: float, E: float, M: float) -> "UnitSystem":
        """Create UnitSystem and derive kB from SI constants."""
        return cls(L=L, E=E, M=M, kB=_BOLTZMANN / E)

    @classmethod
    def nzy(cls) -> "UnitSystem":
        """nm, zJ, yg with Kelvin. One time unit is one picosecond."""
        return cls.from_SI(L=1.0e-9, E=1.0e-21, M=1.0e-27)

    # --- misc --------------------------------------------------------
    def __repr__(self):
        return (
            f"UnitSystem(L={self.L:.3g} m/uL, E={self.E:.3g} J/uE, "
            f"M={self.M:.3g} kg/um, kB={self.kB:.3g} uE/K)"
        )
