import torch
from typing import Iterable


class FIRE:
    """
    Fast Inertial Relaxation Engine. 10.1103/PhysRevLett.97.170201

    Inertia-assisted descent: velocities are mixed towards the force direction
    while the power F.v stays positive, and the time step grows; as soon as the
    system moves uphill the velocities are zeroed and the time step shrinks.

    Parameters
    ----------
    mass : torch.Tensor
        Fictitious masses of shape (N,). Zero-mass atoms never move.
    pos : torch.Tensor
        Starting positions of shape (N, 3). Copied; the copy is updated in place.
    anchors : iterable of int, optional
        Extra atoms held fixed regardless of mass.
    force_tolerance : float
        Converged once the largest force on a mobile atom is below this.
    dt_start : float
        Initial time step. `dt_max` defaults to ten times this.
    max_displacement : float
        Largest distance any atom may move in one step.
    """
    def __init__(self, mass: torch.Tensor, pos: torch.Tensor, anchors: Iterable[int] = (), *,
                 force_tolerance: float = 10.0, dt_start: float = 0.002, dt_max: float | None = None,
                 max_displacement: float = 0.01, n_min: int = 5, f_inc: float = 1.1, f_dec: float = 0.5,
                 alpha_start: float = 0.1, f_alpha: float = 0.99):
        mass = torch.as_tensor(mass)
        pos = torch.as_tensor(pos, dtype=mass.dtype, device=mass.device)
        if pos.ndim != 2 or pos.shape[-1] != 3 or pos.shape[0] != mass.shape[0]:
            raise ValueError(f"pos must be ({mass.shape[0]}, 3), got {tuple(pos.shape)}")
        if not (force_tolerance > 0 and dt_start > 0 and max_displacement > 0):
            raise ValueError("force_tolerance, dt_start and max_displacement must be positive")

        self.mass = mass.clone()
        self.pos = pos.clone()
        self.vel = torch.zeros_like(self.pos)

        self.mobile = self.mass > 0
        anchors = list(anchors)
        if anchors:
            self.mobile[torch.as_tensor(anchors, dtype=torch.long, device=self.mass.device)] = False
        self.anchors = tuple(torch.nonzero(~self.mobile).flatten().tolist())
        self._inv_mass = torch.zeros_like(self.mass)
        self._inv_mass[self.mobile] = 1.0 / self.mass[self.mobile]

        self.force_tolerance = force_tolerance
        self.dt = dt_start
        self.dt_max = dt_max if dt_max is not None else 10 * dt_start
        self.max_displacement = max_displacement
        self.n_min = n_min
        self.f_inc = f_inc
        self.f_dec = f_dec
        self.alpha_start = alpha_start
        self.alpha = alpha_start
        self.f_alpha = f_alpha

        self.n_positive = 0
        self.n_steps = 0
        self.time = 0.0

    def max_force(self, forces: torch.Tensor) -> float:
        """Largest force magnitude over mobile atoms."""
        if not self.mobile.any():
            return 0.0
        return torch.norm(forces[self.mobile], dim=-1).max().item()

    def step(self, forces: torch.Tensor) -> bool:
        """Advance one FIRE step. Returns True, without moving, once converged."""
        forces = torch.where(self.mobile.unsqueeze(-1), forces, torch.zeros_like(forces))
        if self.max_force(forces) < self.force_tolerance:
            return True

        power = torch.sum(forces * self.vel).item()
        if self.n_steps == 0:
            # starting from rest
            pass
        elif power > 0:
            v_norm = torch.norm(self.vel)
            f_norm = torch.norm(forces)
            self.vel.mul_(1 - self.alpha).add_(self.alpha * v_norm * forces / f_norm)
            self.n_positive += 1
            if self.n_positive > self.n_min:
                self.dt = min(self.dt * self.f_inc, self.dt_max)
                self.alpha *= self.f_alpha
        else:
            self.vel.zero_()
            self.dt *= self.f_dec
            self.alpha = self.alpha_start
            self.n_positive = 0

        self.vel.add_(self.dt * forces * self._inv_mass.unsqueeze(-1))
        displacement = self.dt * self.vel
        longest = torch.norm(displacement, dim=-1).max().item()
        if longest > self.max_displacement:
            displacement.mul_(self.max_displacement / longest)
        self.pos.add_(displacement)
        self.time += self.dt
        self.n_steps += 1
        return False

    def __repr__(self) -> str:
        return f"FIRE(dt={self.dt:.3g}, alpha={self.alpha:.3g}, tol={self.force_tolerance:.3g})"
