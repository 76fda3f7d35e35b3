"""
Numba-optimized force computation for SPH.

Same 27-key neighborhood scan as the density stage; the self pair and any
coincident particle (r == 0) are skipped.
"""

import numpy as np
import numba as nb
from ..core.particles import ParticleArrays
from ..core.neighbor_grid import NeighborGrid, EMPTY_CELL
from ..core.spatial_hash_numba import gather_neighbor_keys
from ..core.backend import dispatch_size


@nb.njit(fastmath=True, cache=True)
def spiky_gradient(r: float, h: float, coeff: float) -> float:
    """Spiky kernel gradient magnitude (coeff = -45 / (pi h^6))."""
    diff = h - r
    return coeff * diff * diff


@nb.njit(fastmath=True, cache=True)
def viscosity_laplacian(r: float, h: float, coeff: float) -> float:
    """Viscosity kernel Laplacian (coeff = 45 / (pi h^6))."""
    return coeff * (h - r)


@nb.njit(parallel=True, fastmath=True, cache=True)
def compute_forces_numba(position_x: np.ndarray, position_y: np.ndarray, position_z: np.ndarray,
                         velocity_x: np.ndarray, velocity_y: np.ndarray, velocity_z: np.ndarray,
                         density: np.ndarray, pressure: np.ndarray,
                         particle_indices: np.ndarray, cell_keys: np.ndarray,
                         cell_offsets: np.ndarray, cell_size: float,
                         h: float, particle_mass: float, viscosity: float, gravity_y: float,
                         force_x: np.ndarray, force_y: np.ndarray, force_z: np.ndarray,
                         n_tasks: int):
    """Numba-optimized pressure, viscosity and gravity forces."""
    n = position_x.shape[0]
    h2 = h * h
    grad_coeff = -45.0 / (np.pi * h ** 6)
    lap_coeff = 45.0 / (np.pi * h ** 6)

    for i in nb.prange(n_tasks):
        if i >= n:
            continue

        px = position_x[i]
        py = position_y[i]
        pz = position_z[i]
        vx = velocity_x[i]
        vy = velocity_y[i]
        vz = velocity_z[i]
        p_i = pressure[i]

        fx = 0.0
        fy = 0.0
        fz = 0.0

        keys = np.empty(27, dtype=np.int64)
        n_keys = gather_neighbor_keys(px, py, pz, cell_size, n, keys)

        for k in range(n_keys):
            key = keys[k]
            slot = cell_offsets[key]
            if slot == EMPTY_CELL:
                continue
            while slot < n and cell_keys[slot] == key:
                j = particle_indices[slot]
                slot += 1

                dx = px - position_x[j]
                dy = py - position_y[j]
                dz = pz - position_z[j]
                r2 = dx * dx + dy * dy + dz * dz
                if r2 > h2 or r2 <= 0.0:
                    continue

                rho_j = density[j]
                if rho_j <= 0.0:
                    continue

                r = np.sqrt(np.float64(r2))

                # Pressure: along (x_i - x_j) / r
                pressure_coeff = (-particle_mass * (p_i + pressure[j]) / (2.0 * rho_j)
                                  * spiky_gradient(r, h, grad_coeff) / r)
                fx += pressure_coeff * dx
                fy += pressure_coeff * dy
                fz += pressure_coeff * dz

                # Viscosity: towards the neighbor's velocity
                visc_coeff = viscosity * particle_mass / rho_j * viscosity_laplacian(r, h, lap_coeff)
                fx += visc_coeff * (velocity_x[j] - vx)
                fy += visc_coeff * (velocity_y[j] - vy)
                fz += visc_coeff * (velocity_z[j] - vz)

        force_x[i] = fx
        force_y[i] = fy - particle_mass * gravity_y
        force_z[i] = fz


def compute_forces_numba_wrapper(particles: ParticleArrays, grid: NeighborGrid,
                                 h: float, particle_mass: float, viscosity: float,
                                 gravity_y: float, work_group_size: int = 256):
    """Wrapper for Numba force computation."""
    compute_forces_numba(
        particles.position_x, particles.position_y, particles.position_z,
        particles.velocity_x, particles.velocity_y, particles.velocity_z,
        particles.density, particles.pressure,
        grid.particle_indices, grid.cell_keys, grid.cell_offsets, grid.cell_size,
        float(h), float(particle_mass), float(viscosity), float(gravity_y),
        particles.force_x, particles.force_y, particles.force_z,
        dispatch_size(particles.n_particles, work_group_size)
    )
