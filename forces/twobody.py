from __future__ import annotations
import torch
from torch.func import grad_and_value
from typing import Sequence


def _pair_tensor(pairs: Sequence[tuple[int, int]] | torch.Tensor, device) -> torch.Tensor:
    idx = torch.as_tensor(pairs, dtype=torch.long, device=device)
    if idx.ndim != 2 or idx.shape[-1] != 2:
        raise ValueError(f"pairs must be (M, 2), got {tuple(idx.shape)}")
    return idx


class HarmonicBond:
    """Harmonic bond E = kappa (r - r_0)^2 over a list of index pairs.
    """

    def __init__(self, pairs: Sequence[tuple[int, int]] | torch.Tensor, r_0: float | torch.Tensor, kappa: float | torch.Tensor, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float32):
        self.device = torch.device(device)
        self.dtype = dtype

        self.pairs = _pair_tensor(pairs, self.device)
        self.r_0 = torch.as_tensor(r_0, device=self.device, dtype=self.dtype)
        self.kappa = torch.as_tensor(kappa, device=self.device, dtype=self.dtype)

        if self.r_0.ndim != 0 or self.kappa.ndim != 0:
            raise ValueError("r_0 and kappa must be scalar (0D) tensors")

    def energy(self, pos: torch.Tensor) -> torch.Tensor:
        vecs = pos[self.pairs]                                     # (M, 2, 3)
        r = torch.norm(vecs[:, 1] - vecs[:, 0], dim=-1)            # (M,)
        return self.kappa * (r - self.r_0) ** 2                    # (M,)


class LennardJones:
    """12-6 Lennard-Jones pair potential over a list of index pairs.
    """

    def __init__(self, pairs: Sequence[tuple[int, int]] | torch.Tensor, sigma: float | torch.Tensor, epsilon: float | torch.Tensor, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float32):
        self.device = torch.device(device)
        self.dtype = dtype

        self.pairs = _pair_tensor(pairs, self.device)
        self.sigma = torch.as_tensor(sigma, device=self.device, dtype=self.dtype)
        self.epsilon = torch.as_tensor(epsilon, device=self.device, dtype=self.dtype)

        if self.sigma.ndim != 0 or self.epsilon.ndim != 0:
            raise ValueError("LJ parameters must be scalar (0D) tensors")

    def energy(self, pos: torch.Tensor, eps: float = 1e-12) -> torch.Tensor:
        vecs = pos[self.pairs]                                     # (M, 2, 3)
        r = torch.norm(vecs[:, 1] - vecs[:, 0], dim=-1)            # (M,)
        sigma_over_r = self.sigma / (r + eps)                      # avoid div-by-zero
        sr6 = sigma_over_r ** 6
        return 4 * self.epsilon * (sr6 ** 2 - sr6)                 # (M,)


class PotentialEvaluator:
    """
    Singlepoint evaluator built from pair terms, forces by autodiff.

    Parameters
    ----------
    terms : sequence
        Objects with `.energy(pos) -> (M,)`. Their sum is the potential.

    Calling the evaluator with positions (N, 3) returns (forces (N, 3), energy).
    """

    def __init__(self, terms: Sequence, *, device: str | torch.device = "cpu", dtype: torch.dtype = torch.float32):
        if len(terms) == 0:
            raise ValueError("PotentialEvaluator needs at least one energy term.")
        self.terms = list(terms)
        self.device = torch.device(device)
        self.dtype = dtype
        self._grad_fn = grad_and_value(self._potential_energy)
        self.calls = 0

    def _potential_energy(self, pos: torch.Tensor) -> torch.Tensor:
        return torch.stack([term.energy(pos).sum() for term in self.terms]).sum()

    def __call__(self, positions: torch.Tensor) -> tuple[torch.Tensor, float]:
        self.calls += 1
        pos = torch.as_tensor(positions, device=self.device, dtype=self.dtype)
        gradient, energy = self._grad_fn(pos)
        return -gradient, energy.item()

    def __repr__(self) -> str:
        return f"PotentialEvaluator(terms={[type(t).__name__ for t in self.terms]})"
