"""
Bitonic sort of (particle index, cell key) pairs, vectorized with NumPy.

The network works on a power-of-two length P >= N. Pairs are copied into
a scratch buffer of length P whose tail holds SENTINEL_KEY, so padding
sorts to the end and never reaches the grid buffers.

Stage (dim, block): slot i is paired with i ^ block. Only the lower slot
of each pair acts, so every comparator owns two slots no other comparator
touches. Direction is ascending when i & dim == 0.
"""

import numpy as np
from typing import Iterator, Tuple
from .backend import next_power_of_two, is_power_of_two
from .neighbor_grid import NeighborGrid
from ..errors import ConfigurationError

SENTINEL_KEY = np.iinfo(np.int32).max


def bitonic_stages(length: int) -> Iterator[Tuple[int, int]]:
    """Yield (dim, block) for every sub-stage of a bitonic network.

    Raises:
        ConfigurationError: If length is not a power of two
    """
    if not is_power_of_two(length):
        raise ConfigurationError(
            f"Bitonic network length must be a power of two, got {length}; pad with SENTINEL_KEY"
        )
    dim = 2
    while dim <= length:
        block = dim >> 1
        while block > 0:
            yield dim, block
            block >>= 1
        dim <<= 1


def pad_pairs(particle_indices: np.ndarray, cell_keys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Copy pairs into power-of-two scratch buffers padded with sentinels."""
    n = len(cell_keys)
    length = next_power_of_two(n)
    keys = np.full(length, SENTINEL_KEY, dtype=np.int32)
    values = np.full(length, -1, dtype=np.int32)
    keys[:n] = cell_keys
    values[:n] = particle_indices
    return keys, values


def bitonic_compare_exchange_vectorized(keys: np.ndarray, values: np.ndarray,
                                        dim: int, block: int):
    """Run every comparator of one (dim, block) sub-stage."""
    slots = np.arange(len(keys))
    lower = slots[(slots ^ block) > slots]
    upper = lower ^ block

    ascending = (lower & dim) == 0
    k_lower = keys[lower]
    k_upper = keys[upper]
    swap = np.where(ascending, k_lower > k_upper, k_lower < k_upper)

    lo, hi = lower[swap], upper[swap]
    keys[lo], keys[hi] = keys[hi], keys[lo]
    values[lo], values[hi] = values[hi], values[lo]


def bitonic_sort_vectorized(particle_indices: np.ndarray, cell_keys: np.ndarray):
    """Sort pairs ascending by key, in place."""
    n = len(cell_keys)
    if n < 2:
        return
    keys, values = pad_pairs(particle_indices, cell_keys)
    for dim, block in bitonic_stages(len(keys)):
        bitonic_compare_exchange_vectorized(keys, values, dim, block)
    cell_keys[:] = keys[:n]
    particle_indices[:] = values[:n]


def sort_grid_vectorized(grid: NeighborGrid):
    bitonic_sort_vectorized(grid.particle_indices, grid.cell_keys)
