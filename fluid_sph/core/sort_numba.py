"""
Numba-optimized bitonic sort of (particle index, cell key) pairs.

One jitted call per (dim, block) sub-stage; the return of each call is
the barrier the next sub-stage needs.
"""

import numpy as np
import numba as nb
from .backend import dispatch_size
from .neighbor_grid import NeighborGrid
from .sort_vectorized import bitonic_stages, pad_pairs


@nb.njit(parallel=True, cache=True)
def bitonic_stage_numba(keys: np.ndarray, values: np.ndarray,
                        dim: int, block: int, n_tasks: int):
    """Compare-exchange every (i, i ^ block) pair, driven by the lower slot."""
    length = keys.shape[0]
    for i in nb.prange(n_tasks):
        if i >= length:
            continue
        partner = i ^ block
        if partner <= i:
            continue

        k_i = keys[i]
        k_p = keys[partner]
        if (i & dim) == 0:
            swap = k_i > k_p
        else:
            swap = k_i < k_p

        if swap:
            keys[i] = k_p
            keys[partner] = k_i
            v = values[i]
            values[i] = values[partner]
            values[partner] = v


def bitonic_sort_numba(particle_indices: np.ndarray, cell_keys: np.ndarray,
                       work_group_size: int = 256):
    """Sort pairs ascending by key, in place."""
    n = len(cell_keys)
    if n < 2:
        return
    keys, values = pad_pairs(particle_indices, cell_keys)
    n_tasks = dispatch_size(len(keys), work_group_size)
    for dim, block in bitonic_stages(len(keys)):
        bitonic_stage_numba(keys, values, dim, block, n_tasks)
    cell_keys[:] = keys[:n]
    particle_indices[:] = values[:n]


def sort_grid_numba_wrapper(grid: NeighborGrid, work_group_size: int = 256):
    bitonic_sort_numba(grid.particle_indices, grid.cell_keys, work_group_size)
