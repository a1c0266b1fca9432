"""
Pytest configuration and fixtures shared by the simulation tests.
"""

import pytest
import torch

from forces.twobody import HarmonicBond, PotentialEvaluator
from storage.store import MemoryStore
from system.atoms import Atom


class CountingEvaluator:
    """Wraps an evaluator and counts calls."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    def __call__(self, positions):
        self.calls += 1
        return self.inner(positions)


def zero_forces(positions):
    return torch.zeros_like(positions), 0.0


@pytest.fixture
def spring_atoms():
    """Two carbons 0.17 nm apart, stretched from a 0.15 nm rest length."""
    return [Atom(6, (0.0, 0.0, 0.0)), Atom(6, (0.17, 0.0, 0.0))]


@pytest.fixture
def spring_evaluator():
    return CountingEvaluator(PotentialEvaluator([HarmonicBond([(0, 1)], r_0=0.15, kappa=1000.0)]))


@pytest.fixture
def tripod_atoms():
    """Anchored centre with three legs whose y components disagree."""
    return [
        Atom(6, (0.0, 0.0, 0.0)),
        Atom(16, (0.20, 0.05, 0.0)),
        Atom(16, (-0.10, -0.02, 0.17)),
        Atom(16, (-0.10, 0.01, -0.17)),
    ]


@pytest.fixture
def tripod_evaluator():
    return PotentialEvaluator([HarmonicBond([(0, 1), (0, 2), (0, 3)], r_0=0.2, kappa=500.0)])


@pytest.fixture
def memory_store():
    return MemoryStore()
