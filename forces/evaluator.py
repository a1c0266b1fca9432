"""evaluator.py
The single seam to the physics backend. A singlepoint evaluator maps positions
(N, 3) to forces (N, 3) and a scalar potential energy. Everything the
integrators receive from it passes through `evaluate`, which refuses NaN / inf
before it can reach velocities or positions.
"""

from __future__ import annotations

import math
from typing import Protocol

import torch

from system.errors import EvaluatorError


class Singlepoint(Protocol):
    def __call__(self, positions: torch.Tensor) -> tuple[torch.Tensor, float]:
        ...


def evaluate(evaluator: Singlepoint, positions: torch.Tensor) -> tuple[torch.Tensor, float]:
    """
    Call `evaluator` and validate its output.

    Parameters
    ----------
    evaluator : Singlepoint
        Callable returning (forces, energy).
    positions : torch.Tensor
        Positions of shape (N, 3). A detached copy is passed so the evaluator
        cannot alias integrator state.

    Returns
    -------
    forces : torch.Tensor
        Shape (N, 3), same dtype and device as `positions`.
    energy : float
    """
    try:
        forces, energy = evaluator(positions.detach().clone())
    except EvaluatorError:
        raise
    except Exception as e:
        raise EvaluatorError(f"Singlepoint evaluator failed: {e}") from e

    forces = torch.as_tensor(forces).detach().to(device=positions.device, dtype=positions.dtype)
    if forces.shape != positions.shape:
        raise EvaluatorError(f"Evaluator returned forces of shape {tuple(forces.shape)} for positions {tuple(positions.shape)}")
    if not torch.all(torch.isfinite(forces)):
        bad = torch.nonzero(~torch.isfinite(forces).all(dim=-1)).flatten().tolist()
        raise EvaluatorError(f"Evaluator returned non-finite forces on atoms {bad}")
    energy = torch.as_tensor(energy)
    if energy.numel() != 1:
        raise EvaluatorError(f"Evaluator returned an energy of shape {tuple(energy.shape)}, expected a scalar")
    energy = float(energy.item())
    if not math.isfinite(energy):
        raise EvaluatorError(f"Evaluator returned non-finite energy {energy}")
    return forces, energy
