"""
Unified API for the SPH pipeline with automatic backend dispatch.

Every stage has one implementation per backend, registered here under a
common signature:

    hash_particles(particles, grid, config)
    sort_pairs(grid, config)
    compute_cell_offsets(grid, config)
    compute_density_pressure(particles, grid, config)
    compute_forces(particles, grid, config)
    integrate(particles, config, collider)

The public wrappers below dispatch to the current (or an explicitly given)
backend. Stage calls return only once every task has finished.
"""

import logging
from typing import Optional

import numpy as np

from .config import FluidConfig, SphereCollider
from .core.backend import (dispatch, set_backend, get_backend, list_backends,
                           is_backend_available, log_backend_info,
                           backend_function, for_backend, Backend)
from .core.particles import ParticleArrays
from .core.neighbor_grid import NeighborGrid
from .core.kernel_vectorized import FluidKernels

# CPU implementations
from .core.spatial_hash_vectorized import (hash_particles_vectorized, compute_cell_offsets_vectorized,
                                           find_neighbor_pairs_vectorized)
from .core.sort_vectorized import sort_grid_vectorized
from .core.integrator_vectorized import integrate_euler_vectorized
from .physics.density_vectorized import compute_density_pressure_vectorized
from .physics.forces_vectorized import compute_forces_vectorized

logger = logging.getLogger(__name__)

__all__ = [
    'hash_particles', 'sort_pairs', 'compute_cell_offsets',
    'compute_density_pressure', 'compute_forces', 'integrate',
    'find_neighbors', 'set_backend', 'get_backend', 'list_backends',
    'is_backend_available', 'log_backend_info',
]


@backend_function("hash_particles")
@for_backend(Backend.CPU)
def _hash_particles_cpu(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig):
    hash_particles_vectorized(particles, grid)


@backend_function("sort_pairs")
@for_backend(Backend.CPU)
def _sort_pairs_cpu(grid: NeighborGrid, config: FluidConfig):
    sort_grid_vectorized(grid)


@backend_function("compute_cell_offsets")
@for_backend(Backend.CPU)
def _compute_cell_offsets_cpu(grid: NeighborGrid, config: FluidConfig):
    compute_cell_offsets_vectorized(grid)


@backend_function("compute_density_pressure")
@for_backend(Backend.CPU)
def _compute_density_pressure_cpu(particles: ParticleArrays, grid: NeighborGrid,
                                  config: FluidConfig):
    compute_density_pressure_vectorized(
        particles, grid, FluidKernels(config.smoothing_radius),
        config.particle_mass, config.gas_constant, config.rest_density
    )


@backend_function("compute_forces")
@for_backend(Backend.CPU)
def _compute_forces_cpu(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig):
    compute_forces_vectorized(
        particles, grid, FluidKernels(config.smoothing_radius),
        config.particle_mass, config.viscosity, config.gravity_y
    )


@backend_function("integrate")
@for_backend(Backend.CPU)
def _integrate_cpu(particles: ParticleArrays, config: FluidConfig, collider: SphereCollider):
    integrate_euler_vectorized(
        particles, config.timestep, config.box_size, config.bound_damping,
        collider.center, collider.radius
    )


# Try to import and register Numba implementations
try:
    from .core.spatial_hash_numba import (hash_particles_numba_wrapper,
                                          compute_cell_offsets_numba_wrapper)
    from .core.sort_numba import sort_grid_numba_wrapper
    from .core.integrator_numba import integrate_euler_numba_wrapper
    from .physics.density_numba import compute_density_pressure_numba_wrapper
    from .physics.forces_numba import compute_forces_numba_wrapper

    @backend_function("hash_particles")
    @for_backend(Backend.NUMBA)
    def _hash_particles_numba(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig):
        hash_particles_numba_wrapper(particles, grid, config.work_group_size)

    @backend_function("sort_pairs")
    @for_backend(Backend.NUMBA)
    def _sort_pairs_numba(grid: NeighborGrid, config: FluidConfig):
        sort_grid_numba_wrapper(grid, config.work_group_size)

    @backend_function("compute_cell_offsets")
    @for_backend(Backend.NUMBA)
    def _compute_cell_offsets_numba(grid: NeighborGrid, config: FluidConfig):
        compute_cell_offsets_numba_wrapper(grid, config.work_group_size)

    @backend_function("compute_density_pressure")
    @for_backend(Backend.NUMBA)
    def _compute_density_pressure_numba(particles: ParticleArrays, grid: NeighborGrid,
                                        config: FluidConfig):
        compute_density_pressure_numba_wrapper(
            particles, grid, config.smoothing_radius, config.particle_mass,
            config.gas_constant, config.rest_density, config.work_group_size
        )

    @backend_function("compute_forces")
    @for_backend(Backend.NUMBA)
    def _compute_forces_numba(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig):
        compute_forces_numba_wrapper(
            particles, grid, config.smoothing_radius, config.particle_mass,
            config.viscosity, config.gravity_y, config.work_group_size
        )

    @backend_function("integrate")
    @for_backend(Backend.NUMBA)
    def _integrate_numba(particles: ParticleArrays, config: FluidConfig, collider: SphereCollider):
        integrate_euler_numba_wrapper(
            particles, config.timestep, config.box_size, config.bound_damping,
            collider.center, collider.radius, config.work_group_size
        )

except ImportError:
    logger.debug("Numba not installed; only the cpu backend is registered")


# Public API functions that dispatch to appropriate backend
def hash_particles(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig,
                   backend: Optional[str] = None):
    """Fill ``grid`` with one (index, cell key) pair per particle."""
    dispatch("hash_particles", particles, grid, config, backend=backend)


def sort_pairs(grid: NeighborGrid, config: FluidConfig, backend: Optional[str] = None):
    """Bitonic-sort the grid's pairs ascending by cell key."""
    dispatch("sort_pairs", grid, config, backend=backend)


def compute_cell_offsets(grid: NeighborGrid, config: FluidConfig, backend: Optional[str] = None):
    """Rebuild the cell offset table from the sorted pairs."""
    dispatch("compute_cell_offsets", grid, config, backend=backend)


def build_neighbor_grid(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig,
                        backend: Optional[str] = None):
    """Run hash, sort and offset stages in order."""
    hash_particles(particles, grid, config, backend=backend)
    sort_pairs(grid, config, backend=backend)
    compute_cell_offsets(grid, config, backend=backend)


def compute_density_pressure(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig,
                             backend: Optional[str] = None):
    """Compute SPH density and pressure using current or specified backend.

    Args:
        particles: Particle arrays
        grid: Neighbor grid built for the current positions
        config: Simulation parameters
        backend: Override backend ('cpu', 'numba', or None for current)
    """
    dispatch("compute_density_pressure", particles, grid, config, backend=backend)


def compute_forces(particles: ParticleArrays, grid: NeighborGrid, config: FluidConfig,
                   backend: Optional[str] = None):
    """Compute pressure, viscosity and gravity forces."""
    dispatch("compute_forces", particles, grid, config, backend=backend)


def integrate(particles: ParticleArrays, config: FluidConfig,
              collider: Optional[SphereCollider] = None, backend: Optional[str] = None):
    """Advance velocities and positions and resolve collisions."""
    if collider is None:
        collider = SphereCollider.none()
    dispatch("integrate", particles, config, collider, backend=backend)


def find_neighbors(particles: ParticleArrays, grid: NeighborGrid, index: int,
                   radius: float) -> np.ndarray:
    """Indices of particles within ``radius`` of particle ``index`` (itself included).

    ``grid`` must be built for the current positions. Only the 27 cells
    around the particle are scanned, so ``radius`` must not exceed
    ``grid.cell_size``.
    """
    if radius > grid.cell_size:
        raise ValueError(f"radius {radius} exceeds the grid cell size {grid.cell_size}")
    pairs = find_neighbor_pairs_vectorized(particles, grid, radius)
    return np.sort(pairs.j[pairs.i == index])
