"""
Vectorized density and pressure computation for SPH.

Direct summation over the hashed neighborhood:
    rho_i = sum_j m W_poly6(|x_i - x_j|^2, h)      (j = i included)
    p_i   = k (rho_i - rho_0)
"""

import numpy as np
from ..core.particles import ParticleArrays
from ..core.kernel_vectorized import FluidKernels
from ..core.neighbor_grid import NeighborGrid
from ..core.spatial_hash_vectorized import find_neighbor_pairs_vectorized


def compute_density_pressure_vectorized(particles: ParticleArrays, grid: NeighborGrid,
                                        kernels: FluidKernels, particle_mass: float,
                                        gas_constant: float, rest_density: float = 0.0):
    """Fully vectorized density and equation-of-state update.

    Args:
        particles: Particle arrays (positions read, density/pressure written)
        grid: Sorted neighbor grid with cell offsets for the current positions
        kernels: Kernel set for the smoothing radius
        particle_mass: Mass shared by every particle
        gas_constant: Stiffness k of the equation of state
        rest_density: Rest density rho_0 (0 reproduces p = k rho)
    """
    n = particles.n_particles
    pairs = find_neighbor_pairs_vectorized(particles, grid, kernels.h)

    weights = particle_mass * kernels.poly6_vectorized(pairs.r2)
    density = np.bincount(pairs.i, weights=weights, minlength=n)

    particles.density[:] = density
    particles.pressure[:] = compute_pressure(density, gas_constant, rest_density)


def compute_pressure(density: np.ndarray, gas_constant: float,
                     rest_density: float = 0.0) -> np.ndarray:
    """Linear equation of state p = k (rho - rho_0)."""
    return gas_constant * (np.asarray(density, dtype=np.float64) - rest_density)
