"""Core SPH components: particles, kernels, spatial hashing, sorting and integration."""

from .particles import ParticleArrays, PARTICLE_DTYPE
from .kernel_vectorized import FluidKernels
from .neighbor_grid import NeighborGrid, EMPTY_CELL
from .spatial_hash_vectorized import (
    hash_particles_vectorized,
    compute_cell_offsets_vectorized,
    find_neighbor_pairs_vectorized,
    NeighborPairs
)
from .sort_vectorized import bitonic_sort_vectorized, bitonic_stages, SENTINEL_KEY
from .integrator_vectorized import (
    integrate_euler_vectorized,
    apply_box_boundaries_vectorized,
    apply_sphere_collider_vectorized
)
from .backend import dispatch_size, next_power_of_two, is_power_of_two

__all__ = [
    'ParticleArrays',
    'PARTICLE_DTYPE',
    'FluidKernels',
    'NeighborGrid',
    'EMPTY_CELL',
    'hash_particles_vectorized',
    'compute_cell_offsets_vectorized',
    'find_neighbor_pairs_vectorized',
    'NeighborPairs',
    'bitonic_sort_vectorized',
    'bitonic_stages',
    'SENTINEL_KEY',
    'integrate_euler_vectorized',
    'apply_box_boundaries_vectorized',
    'apply_sphere_collider_vectorized',
    'dispatch_size',
    'next_power_of_two',
    'is_power_of_two'
]
