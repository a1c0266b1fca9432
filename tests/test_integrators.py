"""
Tests for velocity initialization, the velocity-Verlet integrator and the rescale thermostat.
"""

import pytest
import torch

from conftest import CountingEvaluator, zero_forces
from forces.twobody import HarmonicBond, LennardJones, PotentialEvaluator
from integrators.NVE import NVE, step_count
from integrators.NVT import NVT
from integrators.velocities import instantaneous_temperature, kinetic_energy, maxwell_boltzmann, rescale
from system.errors import EvaluatorError
from system.system import ParticleSystem
from system.units import UnitSystem

KB = UnitSystem.nzy().kB


def make_system(pos, mass, vel=None):
    pos = torch.as_tensor(pos, dtype=torch.float32)
    return ParticleSystem(torch.full((pos.shape[0],), 6), torch.as_tensor(mass, dtype=torch.float32), pos, vel)


class TestVelocities:

    def test_anchors_get_zero_velocity(self):
        mass = torch.tensor([20.0, 0.0, 10.0, 0.0])
        vel = maxwell_boltzmann(mass, 300.0, KB, generator=torch.Generator().manual_seed(1))
        assert torch.all(vel[1] == 0) and torch.all(vel[3] == 0)
        assert torch.all(vel[0] != 0)

    def test_seeded_draw_is_reproducible(self):
        mass = torch.full((5,), 20.0)
        a = maxwell_boltzmann(mass, 300.0, KB, generator=torch.Generator().manual_seed(7))
        b = maxwell_boltzmann(mass, 300.0, KB, generator=torch.Generator().manual_seed(7))
        assert torch.equal(a, b)

    def test_sampled_temperature_is_close(self):
        mass = torch.full((20000,), 20.0)
        vel = maxwell_boltzmann(mass, 300.0, KB, generator=torch.Generator().manual_seed(0))
        assert instantaneous_temperature(vel, mass, KB) == pytest.approx(300.0, rel=0.03)

    def test_rescale_is_exact(self):
        mass = torch.tensor([20.0, 0.0, 33.0, 1.7])
        vel = maxwell_boltzmann(mass, 900.0, KB, generator=torch.Generator().manual_seed(3))
        rescale(vel, mass, 300.0, KB)
        assert instantaneous_temperature(vel, mass, KB) == pytest.approx(300.0, rel=1e-5)

    def test_rescale_zero_velocities(self):
        mass = torch.tensor([20.0])
        with pytest.raises(ValueError):
            rescale(torch.zeros(1, 3), mass, 300.0, KB)
        assert torch.all(rescale(torch.zeros(1, 3), mass, 0.0, KB) == 0)

    def test_temperature_ignores_anchors(self):
        mass = torch.tensor([2.0, 0.0])
        vel = torch.tensor([[1.0, 0.0, 0.0], [5.0, 5.0, 5.0]])
        assert kinetic_energy(vel, mass) == pytest.approx(1.0)
        assert instantaneous_temperature(vel, mass, KB) == pytest.approx(2.0 / (3 * KB))
        assert instantaneous_temperature(vel, torch.zeros(2), KB) == 0.0


class TestStepSplitting:

    @pytest.mark.parametrize("duration, time_step, expected", [
        (0.01, 0.0025, 4),
        (0.0025, 0.0025, 1),
        (0.001, 0.0025, 1),
        (0.007, 0.0025, 3),
        (0.25 / 60, 0.0025, 2),
        (0.1, 0.0025, 40),
        (0.0100002, 0.0025, 5),
        (0.0075001, 0.0025, 4),
    ])
    def test_step_count(self, duration, time_step, expected):
        assert step_count(duration, time_step) == expected
        assert duration / expected <= time_step * (1 + 1e-12)

    def test_simulate_splits_evenly(self):
        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        steps = NVE(0.0025).simulate(system, 0.01, zero_forces)
        assert len(steps) == 4
        assert all(dt == pytest.approx(0.0025) for dt in steps)
        assert sum(steps) == pytest.approx(0.01)

    def test_uneven_duration(self):
        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        steps = NVE(0.0025).simulate(system, 0.007, zero_forces)
        assert len(steps) == 3
        assert all(dt <= 0.0025 for dt in steps)
        assert sum(steps) == pytest.approx(0.007)

    def test_usage_errors(self):
        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        with pytest.raises(ValueError):
            NVE(0.0)
        with pytest.raises(ValueError):
            NVE(-1.0)
        with pytest.raises(ValueError):
            NVE(0.0025).simulate(system, -0.01, zero_forces)
        with pytest.raises(ValueError):
            NVE(0.0025).simulate(system, float("inf"), zero_forces)
        with pytest.raises(ValueError):
            NVE(0.0025).simulate(system, float("nan"), zero_forces)

    def test_zero_duration_is_a_no_op(self):
        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        evaluator = CountingEvaluator(zero_forces)
        assert NVE(0.0025).simulate(system, 0.0, evaluator) == []
        assert evaluator.calls == 0
        assert system.forces is None


class TestNVE:

    def test_zero_force_leaves_positions_unchanged(self):
        pos = [[0.1, 0.2, 0.3], [1.0, -1.0, 0.5]]
        system = make_system(pos, [20.0, 10.0])
        NVE(0.0025).simulate(system, 0.137, zero_forces)
        assert torch.equal(system.pos, torch.tensor(pos, dtype=torch.float32))

    def test_cold_start_evaluates_once_extra(self):
        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        evaluator = CountingEvaluator(zero_forces)
        integrator = NVE(0.0025)
        integrator.simulate(system, 0.01, evaluator)
        assert evaluator.calls == 5
        integrator.simulate(system, 0.01, evaluator)
        assert evaluator.calls == 9

    def test_anchor_never_moves(self):
        def push(positions):
            return torch.full_like(positions, 50.0), 0.0

        system = make_system([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]], [0.0, 20.0], vel=[[0.0, 0.0, 0.0], [0.1, 0.0, 0.0]])
        NVE(0.0025).simulate(system, 0.5, push)
        assert system.pos[0].tolist() == [0.0, 0.0, 0.0]
        assert system.vel[0].tolist() == [0.0, 0.0, 0.0]
        assert system.pos[1, 0].item() > 1.0

    def test_constant_force_matches_kinematics(self):
        def push(positions):
            return torch.tensor([[2.0, 0.0, 0.0]]), 0.0

        system = make_system([[0.0, 0.0, 0.0]], [4.0])
        NVE(0.0025).simulate(system, 0.1, push)
        # x = a t^2 / 2 with a = 0.5
        assert system.pos[0, 0].item() == pytest.approx(0.5 * 0.5 * 0.1 ** 2, rel=1e-4)
        assert system.vel[0, 0].item() == pytest.approx(0.05, rel=1e-4)

    def test_harmonic_energy_is_conserved(self, spring_atoms, spring_evaluator):
        system = ParticleSystem.from_atoms(spring_atoms)
        forces, e0 = spring_evaluator(system.pos)
        NVE(0.0025).simulate(system, 0.5, spring_evaluator)
        total = system.energy + system.kinetic_energy()
        assert total == pytest.approx(e0, rel=1e-2)

    def test_non_finite_forces_are_rejected(self):
        def broken(positions):
            forces = torch.zeros_like(positions)
            forces[0, 1] = float("nan")
            return forces, 0.0

        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        with pytest.raises(EvaluatorError):
            NVE(0.0025).simulate(system, 0.01, broken)
        assert torch.all(torch.isfinite(system.vel))

    def test_non_finite_energy_and_bad_shape(self):
        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        with pytest.raises(EvaluatorError):
            NVE(0.0025).step(system, 0.001, lambda p: (torch.zeros_like(p), float("inf")))
        with pytest.raises(EvaluatorError):
            NVE(0.0025).step(system, 0.001, lambda p: (torch.zeros(2, 3), 0.0))

    def test_evaluator_exception_is_wrapped(self):
        def failing(positions):
            raise RuntimeError("SCF did not converge")

        system = make_system([[0.0, 0.0, 0.0]], [20.0])
        with pytest.raises(EvaluatorError, match="SCF"):
            NVE(0.0025).step(system, 0.001, failing)

    def test_step_report(self, spring_atoms, spring_evaluator):
        system = ParticleSystem.from_atoms(spring_atoms)
        report = NVE(0.0025).step(system, 0.001, spring_evaluator)
        assert report.dt == 0.001
        assert report.max_force == pytest.approx(40.0, rel=1e-2)
        assert report.temperature == pytest.approx(system.temperature())


class TestNVT:

    def test_thermalize_hits_heated_temperature(self, spring_atoms):
        system = ParticleSystem.from_atoms(spring_atoms)
        NVT(0.0025, 300.0).thermalize(system, factor=2.0, generator=torch.Generator().manual_seed(0))
        assert system.temperature() == pytest.approx(600.0, rel=1e-5)

    def test_equilibrate_ends_at_target(self, spring_atoms, spring_evaluator):
        system = ParticleSystem.from_atoms(spring_atoms)
        nvt = NVT(0.0025, 300.0)
        nvt.thermalize(system, generator=torch.Generator().manual_seed(0))
        temperatures = nvt.equilibrate(system, spring_evaluator, intervals=3, interval_duration=0.01)
        assert len(temperatures) == 3
        assert system.temperature() == pytest.approx(300.0, rel=1e-5)

    def test_anchors_stay_put_during_equilibration(self, tripod_atoms, tripod_evaluator):
        # sulfur legs carry zero dynamics mass
        system = ParticleSystem.from_atoms(tripod_atoms)
        start = system.pos.clone()
        nvt = NVT(0.0025, 300.0)
        nvt.thermalize(system, generator=torch.Generator().manual_seed(0))
        nvt.equilibrate(system, tripod_evaluator, intervals=2, interval_duration=0.01)
        assert torch.equal(system.pos[1:], start[1:])
        assert torch.all(system.vel[1:] == 0)


class TestPotentialEvaluator:

    def lj_evaluator(self):
        return PotentialEvaluator([LennardJones([(0, 1)], sigma=0.3, epsilon=1.0)])

    def test_lennard_jones_minimum_has_no_force(self):
        r_min = 2 ** (1 / 6) * 0.3
        forces, energy = self.lj_evaluator()(torch.tensor([[0.0, 0.0, 0.0], [r_min, 0.0, 0.0]]))
        assert torch.allclose(forces, torch.zeros(2, 3), atol=1e-3)
        assert energy == pytest.approx(-1.0, rel=1e-4)

    def test_lennard_jones_repels_at_short_range(self):
        forces, energy = self.lj_evaluator()(torch.tensor([[0.0, 0.0, 0.0], [0.3, 0.0, 0.0]]))
        assert energy == pytest.approx(0.0, abs=1e-4)
        assert forces[1, 0].item() > 0
        assert forces[0, 0].item() == pytest.approx(-forces[1, 0].item())

    def test_terms_are_summed(self):
        bond = HarmonicBond([(0, 1)], r_0=0.1, kappa=100.0)
        evaluator = PotentialEvaluator([bond, bond])
        _, energy = evaluator(torch.tensor([[0.0, 0.0, 0.0], [0.2, 0.0, 0.0]]))
        assert energy == pytest.approx(2.0, rel=1e-5)
        assert evaluator.calls == 1

    def test_rejects_bad_pairs(self):
        with pytest.raises(ValueError):
            HarmonicBond([0, 1], r_0=0.1, kappa=1.0)
        with pytest.raises(ValueError):
            PotentialEvaluator([])


class TestEvaluatorFailure:

    def flaky_spring(self, fail_on):
        calls = []

        def evaluator(positions):
            calls.append(1)
            if len(calls) == fail_on:
                raise RuntimeError("backend crashed")
            return -100.0 * positions, 0.5 * 100.0 * float((positions ** 2).sum())
        return evaluator

    def test_failed_step_restores_state(self):
        system = make_system([[1.0, 0.0, 0.0]], [20.0], vel=[[0.5, 0.0, 0.0]])
        integrator = NVE(0.1)
        with pytest.raises(EvaluatorError):
            integrator.step(system, 0.1, self.flaky_spring(fail_on=2))
        assert system.pos.tolist() == [[1.0, 0.0, 0.0]]
        assert system.vel.tolist() == [[0.5, 0.0, 0.0]]
        assert torch.allclose(system.forces, -100.0 * system.pos)

    def test_retry_after_failure_matches_clean_step(self):
        clean = make_system([[1.0, 0.0, 0.0]], [20.0], vel=[[0.5, 0.0, 0.0]])
        NVE(0.1).step(clean, 0.1, self.flaky_spring(fail_on=0))

        retried = make_system([[1.0, 0.0, 0.0]], [20.0], vel=[[0.5, 0.0, 0.0]])
        evaluator = self.flaky_spring(fail_on=2)
        with pytest.raises(EvaluatorError):
            NVE(0.1).step(retried, 0.1, evaluator)
        NVE(0.1).step(retried, 0.1, evaluator)
        assert torch.equal(retried.pos, clean.pos)
        assert torch.equal(retried.vel, clean.vel)
        assert torch.equal(retried.forces, clean.forces)
