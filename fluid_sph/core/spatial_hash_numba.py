"""
Numba-optimized spatial hashing stages.

Each ``*_numba`` kernel is a parallel-for over ``n_tasks`` task ids, where
``n_tasks`` is the rounded-up dispatch size; ids past the particle count
do nothing.
"""

import numpy as np
import numba as nb
from .particles import ParticleArrays
from .neighbor_grid import NeighborGrid, EMPTY_CELL
from .backend import dispatch_size

PRIME_X = 73856093
PRIME_Y = 19349663
PRIME_Z = 83492791


@nb.njit(cache=True)
def cell_coordinate(x: float, cell_size: float) -> int:
    """Integer cell coordinate along one axis (non-finite -> 0)."""
    scaled = np.float64(x) / cell_size
    if not np.isfinite(scaled):
        return 0
    return np.int64(np.floor(scaled))


@nb.njit(cache=True)
def hash_cell(cx: int, cy: int, cz: int, n_keys: int) -> int:
    return (cx * PRIME_X + cy * PRIME_Y + cz * PRIME_Z) % n_keys


@nb.njit(cache=True)
def gather_neighbor_keys(x: float, y: float, z: float, cell_size: float,
                         n_keys: int, out: np.ndarray) -> int:
    """Write the distinct keys of the 27 cells around (x, y, z) into ``out``.

    Returns:
        Number of keys written
    """
    cx = cell_coordinate(x, cell_size)
    cy = cell_coordinate(y, cell_size)
    cz = cell_coordinate(z, cell_size)

    n_found = 0
    for dcx in range(-1, 2):
        for dcy in range(-1, 2):
            for dcz in range(-1, 2):
                key = hash_cell(cx + dcx, cy + dcy, cz + dcz, n_keys)
                seen = False
                for k in range(n_found):
                    if out[k] == key:
                        seen = True
                        break
                if not seen:
                    out[n_found] = key
                    n_found += 1
    return n_found


@nb.njit(parallel=True, cache=True)
def hash_particles_numba(position_x: np.ndarray, position_y: np.ndarray,
                         position_z: np.ndarray, cell_size: float,
                         particle_indices: np.ndarray, cell_keys: np.ndarray,
                         n_tasks: int):
    """One task per particle: pair (i, key(i))."""
    n = position_x.shape[0]
    for i in nb.prange(n_tasks):
        if i >= n:
            continue
        cx = cell_coordinate(position_x[i], cell_size)
        cy = cell_coordinate(position_y[i], cell_size)
        cz = cell_coordinate(position_z[i], cell_size)
        particle_indices[i] = i
        cell_keys[i] = hash_cell(cx, cy, cz, n)


@nb.njit(parallel=True, cache=True)
def compute_cell_offsets_numba(cell_keys: np.ndarray, cell_offsets: np.ndarray,
                               n_tasks: int):
    """One task per sorted slot; a slot that starts a run records itself.

    ``cell_offsets`` must already hold EMPTY_CELL everywhere. Only the
    first slot of a run writes, so every offset has a single writer.
    """
    n = cell_keys.shape[0]
    for i in nb.prange(n_tasks):
        if i >= n:
            continue
        key = cell_keys[i]
        if i == 0 or key != cell_keys[i - 1]:
            cell_offsets[key] = i


def hash_particles_numba_wrapper(particles: ParticleArrays, grid: NeighborGrid,
                                 work_group_size: int = 256):
    hash_particles_numba(
        particles.position_x, particles.position_y, particles.position_z,
        grid.cell_size, grid.particle_indices, grid.cell_keys,
        dispatch_size(particles.n_particles, work_group_size)
    )


def compute_cell_offsets_numba_wrapper(grid: NeighborGrid, work_group_size: int = 256):
    grid.cell_offsets.fill(EMPTY_CELL)
    compute_cell_offsets_numba(
        grid.cell_keys, grid.cell_offsets,
        dispatch_size(len(grid.cell_keys), work_group_size)
    )
