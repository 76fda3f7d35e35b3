"""Pytest configuration for fluid_sph tests."""
import numpy as np
import pytest

import fluid_sph
from fluid_sph import FluidConfig, ParticleArrays


@pytest.fixture(params=['cpu', 'numba'])
def backend(request):
    """Parametrize tests over all available backends."""
    backend_name = request.param
    if not fluid_sph.is_backend_available(backend_name):
        pytest.skip(f"Backend {backend_name} not available")
    return backend_name


@pytest.fixture
def null_forcing_config():
    """No pressure, viscosity or gravity and elastic walls."""
    return FluidConfig(
        num_to_spawn=(4, 4, 4),
        spawn_center=(-0.3, -0.3, -0.3),
        particle_radius=0.1,
        spawn_jitter=0.2,
        seed=7,
        box_size=(4.0, 4.0, 4.0),
        bound_damping=1.0,
        viscosity=0.0,
        gas_constant=0.0,
        gravity_y=0.0,
        timestep=0.005,
    )


@pytest.fixture
def fluid_block():
    """Jittered 6x5x4 block (120 particles, not a power of two)."""
    config = FluidConfig(
        num_to_spawn=(6, 5, 4),
        spawn_center=(-0.5, -0.5, -0.4),
        particle_radius=0.1,
        spawn_jitter=0.4,
        seed=1234,
        box_size=(3.0, 3.0, 3.0),
        viscosity=0.05,
        gas_constant=2.0,
        timestep=0.002,
    )
    # Squeeze the lattice so particles overlap within h
    particles = ParticleArrays.spawn_lattice(
        config.num_to_spawn, config.spawn_center, 0.045, 0.4,
        rng=np.random.default_rng(config.seed)
    )
    return config, particles

