"""
Numba-optimized density and pressure computation for SPH.
"""

import numpy as np
import numba as nb
from ..core.particles import ParticleArrays
from ..core.neighbor_grid import NeighborGrid, EMPTY_CELL
from ..core.spatial_hash_numba import gather_neighbor_keys
from ..core.backend import dispatch_size


@nb.njit(fastmath=True, cache=True)
def poly6_kernel(r2: float, h2: float, coeff: float) -> float:
    """Poly6 kernel on a squared distance."""
    if r2 > h2:
        return 0.0
    diff = h2 - r2
    return coeff * diff * diff * diff


@nb.njit(parallel=True, fastmath=True, cache=True)
def compute_density_pressure_numba(position_x: np.ndarray, position_y: np.ndarray,
                                   position_z: np.ndarray,
                                   particle_indices: np.ndarray, cell_keys: np.ndarray,
                                   cell_offsets: np.ndarray, cell_size: float,
                                   h: float, particle_mass: float,
                                   gas_constant: float, rest_density: float,
                                   density: np.ndarray, pressure: np.ndarray,
                                   n_tasks: int):
    """One task per particle: scan the runs of its 27 neighbor keys."""
    n = position_x.shape[0]
    h2 = h * h
    coeff = 315.0 / (64.0 * np.pi * h ** 9)

    for i in nb.prange(n_tasks):
        if i >= n:
            continue

        px = position_x[i]
        py = position_y[i]
        pz = position_z[i]

        keys = np.empty(27, dtype=np.int64)
        n_keys = gather_neighbor_keys(px, py, pz, cell_size, n, keys)

        rho = 0.0
        for k in range(n_keys):
            key = keys[k]
            slot = cell_offsets[key]
            if slot == EMPTY_CELL:
                continue
            while slot < n and cell_keys[slot] == key:
                j = particle_indices[slot]
                dx = px - position_x[j]
                dy = py - position_y[j]
                dz = pz - position_z[j]
                r2 = dx * dx + dy * dy + dz * dz
                if r2 <= h2:
                    rho += particle_mass * poly6_kernel(r2, h2, coeff)
                slot += 1

        density[i] = rho
        pressure[i] = gas_constant * (rho - rest_density)


def compute_density_pressure_numba_wrapper(particles: ParticleArrays, grid: NeighborGrid,
                                           h: float, particle_mass: float,
                                           gas_constant: float, rest_density: float = 0.0,
                                           work_group_size: int = 256):
    """Wrapper for Numba density computation that matches the standard interface."""
    compute_density_pressure_numba(
        particles.position_x, particles.position_y, particles.position_z,
        grid.particle_indices, grid.cell_keys, grid.cell_offsets, grid.cell_size,
        float(h), float(particle_mass), float(gas_constant), float(rest_density),
        particles.density, particles.pressure,
        dispatch_size(particles.n_particles, work_group_size)
    )
