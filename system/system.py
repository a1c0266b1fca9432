import torch
from typing import Callable, Sequence

from integrators.velocities import instantaneous_temperature, kinetic_energy
from system.atoms import Atom, Frame, dynamics_mass
from system.units import UnitSystem


class ParticleSystem:
    def __init__(self, atomic_numbers: torch.Tensor, mass: torch.Tensor, pos: torch.Tensor, vel: torch.Tensor | None = None, units: UnitSystem | None = None, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float32):
        """
        Initialize the state propagated by the integrators.

        Every per-particle array is indexed by the same particle id and is
        allocated here, once. Integrators mutate them in place.

        Parameters
        ----------
        atomic_numbers : torch.Tensor
            Element of each atom, shape (N,).
        mass : torch.Tensor
            Atomic masses of shape (N,). Zero marks an anchor that never moves.
        pos : torch.Tensor
            Atomic positions of shape (N, 3).
        vel : torch.Tensor, optional
            Atomic velocities of shape (N, 3). Zero when omitted.
        units : UnitSystem
            Unit system every array is expressed in. Defaults to nm / zJ / yg.
        """

        # --- shape checks -------------------------------------------------
        atomic_numbers = torch.as_tensor(atomic_numbers, dtype=torch.long, device=device)
        mass = torch.as_tensor(mass, dtype=dtype, device=device)
        pos = torch.as_tensor(pos, dtype=dtype, device=device)
        if pos.ndim != 2 or pos.shape[-1] != 3:
            raise ValueError(f"pos must be (N, 3), got {tuple(pos.shape)}")
        N = pos.shape[0]
        if vel is None:
            vel = torch.zeros_like(pos)
        vel = torch.as_tensor(vel, dtype=dtype, device=device)
        if vel.shape != pos.shape:
            raise ValueError(f"vel must match pos {tuple(pos.shape)}, got {tuple(vel.shape)}")
        if mass.shape != (N,):
            raise ValueError(f"mass must be ({N},), got {tuple(mass.shape)}")
        if atomic_numbers.shape != (N,):
            raise ValueError(f"atomic_numbers must be ({N},), got {tuple(atomic_numbers.shape)}")
        if torch.any(mass < 0) or not torch.all(torch.isfinite(mass)):
            raise ValueError("mass must be finite and non-negative")

        # --- store --------------------------------------------------------
        self.atomic_numbers = atomic_numbers.clone()
        self.mass = mass.clone()
        self.pos = pos.clone()
        self.vel = vel.clone()
        self.forces = None
        self.energy = None
        self.units = units if units is not None else UnitSystem.nzy()
        self.device = torch.device(device)
        self.dtype = dtype

    @classmethod
    def from_atoms(cls, atoms: Sequence[Atom], mass_fn: Callable[[int], float] = dynamics_mass, **kwargs) -> "ParticleSystem":
        """Build a system from atoms, taking each mass from `mass_fn(atomic_number)`."""
        if len(atoms) == 0:
            raise ValueError("A particle system needs at least one atom.")
        frame = Frame.from_atoms(atoms)
        mass = torch.tensor([mass_fn(z) for z in frame.atomic_numbers.tolist()])
        return cls(frame.atomic_numbers, mass, frame.positions, **kwargs)

    # --- masks --------------------------------------------------------
    @property
    def mobile(self) -> torch.Tensor:
        """Boolean (N,) mask of atoms with non-zero mass."""
        return self.mass > 0

    @property
    def n_mobile(self) -> int:
        return int(self.mobile.sum().item())

    # --- state updates --------------------------------------------------------
    def set_positions(self, pos: torch.Tensor) -> None:
        """Overwrite positions in place and drop the cached forces."""
        self.pos.copy_(torch.as_tensor(pos, dtype=self.dtype, device=self.device))
        self.reset_cache()

    def set_velocities(self, vel: torch.Tensor) -> None:
        self.vel.copy_(torch.as_tensor(vel, dtype=self.dtype, device=self.device))

    def reset_cache(self):
        """Forget forces and energy; the next step re-evaluates them."""
        self.forces = None
        self.energy = None

    # --- observables --------------------------------------------------------
    def kinetic_energy(self) -> float:
        """Kinetic energy summed over mobile particles."""
        return kinetic_energy(self.vel, self.mass)

    def temperature(self) -> float:
        """Instantaneous temperature via equipartition over mobile particles."""
        return instantaneous_temperature(self.vel, self.mass, self.units.kB)

    def frame(self) -> Frame:
        return Frame(self.atomic_numbers, self.pos)

    def __len__(self) -> int:
        return self.pos.shape[0]

    def __repr__(self):
        return f"ParticleSystem(Atoms: {len(self)}, Anchors: {len(self) - self.n_mobile}, Units: {self.units})"
