"""
Tests for SPH kernels, density/pressure and forces.
"""

import numpy as np
import pytest

import fluid_sph
from fluid_sph import FluidConfig, FluidKernels, ParticleArrays, NeighborGrid
from fluid_sph.physics import compute_pressure


def _prepare(particles, config, backend):
    grid = NeighborGrid.allocate(particles.n_particles, config.cell_size)
    fluid_sph.build_neighbor_grid(particles, grid, config, backend=backend)
    return grid


def _isolated_particles(n=6, spacing=1.0):
    particles = ParticleArrays.allocate(n)
    particles.position_x[:] = spacing * np.arange(n) - 2.0
    particles.position_y[:] = 0.3
    return particles


class TestKernels:
    """Smoothing kernel properties."""

    def test_poly6_normalized(self):
        for h in (0.05, 0.1, 0.5):
            assert FluidKernels(h).normalization_integral() == pytest.approx(1.0, rel=1e-3)

    def test_kernels_vanish_outside_support(self):
        kernels = FluidKernels(0.1)
        r = np.array([0.1, 0.1000001, 0.2, 5.0])
        np.testing.assert_allclose(kernels.poly6_vectorized(r * r), 0.0, atol=1e-12)
        np.testing.assert_allclose(kernels.spiky_gradient_vectorized(r), 0.0, atol=1e-12)
        np.testing.assert_allclose(kernels.viscosity_laplacian_vectorized(r), 0.0, atol=1e-12)

    def test_kernel_signs_and_peak(self):
        kernels = FluidKernels(0.1)
        r = np.linspace(0.0, 0.099, 50)
        w = kernels.poly6_vectorized(r * r)
        assert w[0] == pytest.approx(kernels.W_self())
        assert np.all(np.diff(w) < 0)
        assert np.all(kernels.spiky_gradient_vectorized(r) < 0)
        assert np.all(kernels.viscosity_laplacian_vectorized(r) > 0)

    def test_rejects_nonpositive_radius(self):
        with pytest.raises(ValueError):
            FluidKernels(0.0)


class TestDensityPressure:
    """Density summation and equation of state."""

    def test_isolated_particle_density(self, backend):
        config = FluidConfig(particle_mass=2.0, gas_constant=3.0)
        particles = _isolated_particles()
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)

        expected = config.particle_mass * FluidKernels(config.smoothing_radius).W_self()
        np.testing.assert_allclose(particles.density, expected, rtol=1e-5)
        np.testing.assert_allclose(particles.pressure, config.gas_constant * expected, rtol=1e-5)

    def test_rest_density_shifts_pressure(self, backend):
        config = FluidConfig(gas_constant=2.0, rest_density=5000.0)
        particles = _isolated_particles()
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)

        expected = 2.0 * (particles.density.astype(np.float64) - 5000.0)
        np.testing.assert_allclose(particles.pressure, expected, rtol=1e-5)
        assert np.all(particles.pressure < 0)

    def test_density_positive_in_block(self, backend, fluid_block):
        config, particles = fluid_block
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)

        w_self = config.particle_mass * FluidKernels(config.smoothing_radius).W_self()
        assert np.all(np.isfinite(particles.density))
        assert np.all(particles.density >= w_self * (1.0 - 1e-5))
        # The squeezed block has real neighbors
        assert np.max(particles.density) > w_self * 1.001

    def test_two_particle_density(self, backend):
        config = FluidConfig()
        particles = ParticleArrays.allocate(2)
        particles.position_x[1] = 0.05
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)

        kernels = FluidKernels(config.smoothing_radius)
        r2 = np.float64(np.float32(0.05)) ** 2
        expected = kernels.W_self() + kernels.poly6_vectorized(r2)
        np.testing.assert_allclose(particles.density, expected, rtol=1e-5)

    def test_compute_pressure(self):
        np.testing.assert_allclose(compute_pressure([0.0, 1.0, 4.0], 2.0, 1.0), [-2.0, 0.0, 6.0])


class TestForces:
    """Pressure, viscosity and gravity forces."""

    def test_gravity_only_for_isolated_particles(self, backend):
        config = FluidConfig(particle_mass=1.5, gravity_y=9.8)
        particles = _isolated_particles()
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)
        fluid_sph.compute_forces(particles, grid, config, backend=backend)

        np.testing.assert_allclose(particles.force_x, 0.0)
        np.testing.assert_allclose(particles.force_y, -1.5 * 9.8, rtol=1e-6)
        np.testing.assert_allclose(particles.force_z, 0.0)

    def test_pressure_pushes_pair_apart(self, backend):
        config = FluidConfig(gas_constant=2.0, viscosity=0.0, gravity_y=0.0)
        particles = ParticleArrays.allocate(2)
        particles.position_x[1] = 0.05
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)
        fluid_sph.compute_forces(particles, grid, config, backend=backend)

        assert particles.force_x[0] < 0.0
        assert particles.force_x[1] > 0.0
        assert particles.force_x[0] == pytest.approx(-particles.force_x[1], rel=1e-5)
        np.testing.assert_allclose(particles.force_y, 0.0, atol=1e-6)
        np.testing.assert_allclose(particles.force_z, 0.0, atol=1e-6)

    def test_viscosity_pulls_velocities_together(self, backend):
        config = FluidConfig(gas_constant=0.0, viscosity=0.5, gravity_y=0.0)
        particles = ParticleArrays.allocate(2)
        particles.position_x[1] = 0.05
        particles.velocity_z[0] = 1.0
        particles.velocity_z[1] = -1.0
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)
        fluid_sph.compute_forces(particles, grid, config, backend=backend)

        assert particles.force_z[0] < 0.0
        assert particles.force_z[1] > 0.0
        np.testing.assert_allclose(particles.force_x, 0.0, atol=1e-6)

    def test_zero_density_neighbors_are_skipped(self, backend):
        config = FluidConfig(gas_constant=2.0, viscosity=0.1, gravity_y=9.8)
        particles = ParticleArrays.allocate(3)
        particles.position_x[1] = 0.05
        particles.position_x[2] = -0.05
        grid = _prepare(particles, config, backend)
        particles.pressure[:] = 1.0
        particles.density[:] = 0.0

        fluid_sph.compute_forces(particles, grid, config, backend=backend)

        assert np.all(np.isfinite(particles.get_forces()))
        np.testing.assert_allclose(particles.force_x, 0.0)
        np.testing.assert_allclose(particles.force_y, -config.particle_mass * 9.8, rtol=1e-6)

    def test_coincident_particles_stay_finite(self, backend):
        config = FluidConfig()
        particles = ParticleArrays.allocate(2)
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)
        fluid_sph.compute_forces(particles, grid, config, backend=backend)

        assert np.all(np.isfinite(particles.get_forces()))
        np.testing.assert_allclose(particles.force_x, 0.0)

    def test_block_forces_finite(self, backend, fluid_block):
        config, particles = fluid_block
        config = FluidConfig.from_dict({**config.to_dict(), 'viscosity': 0.0})
        grid = _prepare(particles, config, backend)

        fluid_sph.compute_density_pressure(particles, grid, config, backend=backend)
        fluid_sph.compute_forces(particles, grid, config, backend=backend)

        assert np.all(np.isfinite(particles.get_forces()))
        assert np.any(np.abs(particles.force_x) > 0.0)


class TestBackendAgreement:
    """Numba kernels against the NumPy reference."""

    def test_density_and_forces_agree(self, fluid_block):
        if not fluid_sph.is_backend_available('numba'):
            pytest.skip("Backend numba not available")
        config, particles = fluid_block
        reference = ParticleArrays.from_records(particles.to_records())
        rng = np.random.default_rng(9)
        velocities = rng.normal(scale=0.3, size=(particles.n_particles, 3))
        particles.set_velocities(velocities)
        reference.set_velocities(velocities)

        for p, backend in ((reference, 'cpu'), (particles, 'numba')):
            grid = _prepare(p, config, backend)
            fluid_sph.compute_density_pressure(p, grid, config, backend=backend)
            fluid_sph.compute_forces(p, grid, config, backend=backend)

        np.testing.assert_allclose(particles.density, reference.density, rtol=1e-4)
        np.testing.assert_allclose(particles.pressure, reference.pressure, rtol=1e-4)
        forces, ref_forces = particles.get_forces(), reference.get_forces()
        np.testing.assert_allclose(forces, ref_forces, rtol=1e-3,
                                   atol=1e-4 * np.max(np.abs(ref_forces)))
