import torch


def kinetic_energy(vel: torch.Tensor, mass: torch.Tensor) -> float:
    """Kinetic energy of the mobile (mass > 0) particles, accumulated in float64."""
    mobile = mass > 0
    m = mass[mobile].to(torch.float64)
    v = vel[mobile].to(torch.float64)
    return torch.sum(0.5 * m * v.pow(2).sum(dim=-1)).item()


def instantaneous_temperature(vel: torch.Tensor, mass: torch.Tensor, kB: float) -> float:
    """T = 2 KE / (3 N_mobile kB). Zero when nothing can move."""
    n_mobile = int((mass > 0).sum().item())
    if n_mobile == 0:
        return 0.0
    return 2 * kinetic_energy(vel, mass) / (3 * n_mobile * kB)


def maxwell_boltzmann(mass: torch.Tensor, T: float, kB: float, *, generator: torch.Generator | None = None) -> torch.Tensor:
    """
    Draw velocities from the Maxwell-Boltzmann distribution.

    Parameters
    ----------
    mass : torch.Tensor
        Masses of shape (N,). Zero-mass anchors get a zero velocity.
    T : float
        Temperature in kelvin.
    kB : float
        Boltzmann constant in simulation units.
    generator : torch.Generator, optional
        Source of randomness, for reproducible draws.

    Returns
    -------
    torch.Tensor
        Velocities of shape (N, 3), same dtype and device as `mass`.
    """
    if T < 0:
        raise ValueError(f"Temperature must be non-negative, got {T}")
    mobile = mass > 0
    sigma = torch.zeros_like(mass)
    sigma[mobile] = torch.sqrt(kB * T / mass[mobile])
    noise = torch.randn((mass.shape[0], 3), generator=generator, dtype=mass.dtype, device=mass.device)
    return noise * sigma.unsqueeze(-1)


def rescale(vel: torch.Tensor, mass: torch.Tensor, T: float, kB: float) -> torch.Tensor:
    """
    Scale `vel` in place so the instantaneous temperature equals `T` exactly.

    The expected kinetic energy is 1.5 kB T per mobile particle; every velocity
    is multiplied by sqrt(expected / actual). Returns `vel`.
    """
    if T < 0:
        raise ValueError(f"Temperature must be non-negative, got {T}")
    n_mobile = int((mass > 0).sum().item())
    if n_mobile == 0:
        return vel
    actual = kinetic_energy(vel, mass)
    expected = 1.5 * kB * T * n_mobile
    if actual == 0:
        if expected == 0:
            return vel
        raise ValueError("Cannot rescale zero velocities to a positive temperature.")
    vel.mul_((expected / actual) ** 0.5)
    return vel
