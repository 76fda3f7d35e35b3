"""SPH (Smoothed Particle Hydrodynamics) fluid simulation with a hashed-grid neighbor search."""

from . import core
from . import physics

# Import API to trigger backend registration
from . import api

from .api import (
    # Pipeline stages
    hash_particles,
    sort_pairs,
    compute_cell_offsets,
    build_neighbor_grid,
    compute_density_pressure,
    compute_forces,
    integrate,
    find_neighbors,

    # Backend management
    set_backend,
    get_backend,
    list_backends,
    is_backend_available,
    log_backend_info,
)
from .config import FluidConfig, SphereCollider
from .core import ParticleArrays, NeighborGrid, FluidKernels, PARTICLE_DTYPE
from .errors import SPHError, ConfigurationError, SimulationDivergedError
from .simulation import FluidSimulation, StepStats, FrameSnapshot

__version__ = "0.1.0"

__all__ = [
    # Modules
    'core',
    'physics',

    # API functions
    'hash_particles',
    'sort_pairs',
    'compute_cell_offsets',
    'build_neighbor_grid',
    'compute_density_pressure',
    'compute_forces',
    'integrate',
    'find_neighbors',

    # Backend management
    'set_backend',
    'get_backend',
    'list_backends',
    'is_backend_available',
    'log_backend_info',

    # Core classes
    'FluidConfig',
    'SphereCollider',
    'ParticleArrays',
    'NeighborGrid',
    'FluidKernels',
    'PARTICLE_DTYPE',
    'FluidSimulation',
    'StepStats',
    'FrameSnapshot',

    # Errors
    'SPHError',
    'ConfigurationError',
    'SimulationDivergedError'
]
