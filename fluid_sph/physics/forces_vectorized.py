"""
Vectorized SPH force computation.

For each neighbor j of particle i with 0 < r <= h:
    f_pressure  = -m (p_i + p_j) / (2 rho_j) * gradW_spiky(r) * (x_i - x_j) / r
    f_viscosity =  mu m (v_j - v_i) / rho_j * lapW_visc(r)
plus gravity (0, -m g, 0). Neighbors with rho_j == 0 contribute nothing.
"""

import numpy as np
from ..core.particles import ParticleArrays
from ..core.kernel_vectorized import FluidKernels
from ..core.neighbor_grid import NeighborGrid
from ..core.spatial_hash_vectorized import find_neighbor_pairs_vectorized


def compute_forces_vectorized(particles: ParticleArrays, grid: NeighborGrid,
                              kernels: FluidKernels, particle_mass: float,
                              viscosity: float, gravity_y: float):
    """Pressure, viscosity and gravity forces (vectorized).

    Args:
        particles: Particle arrays with density and pressure computed
        grid: Sorted neighbor grid for the current positions
        kernels: Kernel set for the smoothing radius
        particle_mass: Mass shared by every particle
        viscosity: Viscosity coefficient mu
        gravity_y: Downward gravitational acceleration
    """
    n = particles.n_particles
    pairs = find_neighbor_pairs_vectorized(particles, grid, kernels.h).without_self()

    rho_j = particles.density[pairs.j].astype(np.float64)
    usable = rho_j > 0.0
    i = pairs.i[usable]
    j = pairs.j[usable]
    rho_j = rho_j[usable]
    r = np.sqrt(pairs.r2[usable])

    pressure = particles.pressure.astype(np.float64)
    pressure_coeff = (-particle_mass * (pressure[i] + pressure[j]) / (2.0 * rho_j)
                      * kernels.spiky_gradient_vectorized(r) / r)
    viscosity_coeff = viscosity * particle_mass / rho_j * kernels.viscosity_laplacian_vectorized(r)

    force = []
    for delta, velocity in ((pairs.dx, particles.velocity_x),
                            (pairs.dy, particles.velocity_y),
                            (pairs.dz, particles.velocity_z)):
        contribution = (pressure_coeff * delta[usable]
                        + viscosity_coeff * (velocity[j].astype(np.float64) - velocity[i]))
        force.append(np.bincount(i, weights=contribution, minlength=n))

    particles.force_x[:] = force[0]
    particles.force_y[:] = force[1] - particle_mass * gravity_y
    particles.force_z[:] = force[2]
