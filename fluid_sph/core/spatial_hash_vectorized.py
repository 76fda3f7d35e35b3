"""
Vectorized spatial hashing for O(N) neighbor searches.

Particles are bucketed by a hashed cell key in [0, N):
- hash stage: cell = floor(x / cell_size), key = hash(cell) mod N
- (sort stage lives in sort_vectorized)
- offsets stage: first sorted slot of every key's run

Neighbor candidates of a particle are the runs of the keys of its 27
surrounding cells. Distinct cells can share a key; callers always filter
candidates by distance.
"""

import numpy as np
from dataclasses import dataclass
from .particles import ParticleArrays
from .neighbor_grid import NeighborGrid, EMPTY_CELL

HASH_PRIMES = (73856093, 19349663, 83492791)

# (27, 3) cell offsets, self cell included
NEIGHBOR_OFFSETS = np.array(
    [(dx, dy, dz) for dx in (-1, 0, 1) for dy in (-1, 0, 1) for dz in (-1, 0, 1)],
    dtype=np.int64
)


def cell_coordinates_vectorized(position: np.ndarray, cell_size: float) -> np.ndarray:
    """Integer cell coordinate along one axis.

    Computed in float64 so all backends agree. Non-finite coordinates map
    to cell 0.
    """
    scaled = np.asarray(position, dtype=np.float64) / cell_size
    finite = np.isfinite(scaled)
    return np.where(finite, np.floor(np.where(finite, scaled, 0.0)), 0.0).astype(np.int64)


def hash_cells_vectorized(cx: np.ndarray, cy: np.ndarray, cz: np.ndarray,
                          n_keys: int) -> np.ndarray:
    """Combine integer cell coordinates into keys in [0, n_keys)."""
    p1, p2, p3 = HASH_PRIMES
    return (cx * p1 + cy * p2 + cz * p3) % n_keys


def hash_particles_vectorized(particles: ParticleArrays, grid: NeighborGrid):
    """Write one (particle index, cell key) pair per particle, in index order."""
    n = particles.n_particles
    cx = cell_coordinates_vectorized(particles.position_x, grid.cell_size)
    cy = cell_coordinates_vectorized(particles.position_y, grid.cell_size)
    cz = cell_coordinates_vectorized(particles.position_z, grid.cell_size)

    grid.particle_indices[:] = np.arange(n, dtype=np.int32)
    grid.cell_keys[:] = hash_cells_vectorized(cx, cy, cz, n)


def compute_cell_offsets_vectorized(grid: NeighborGrid):
    """Record the first sorted slot of every key run.

    Requires ``grid.cell_keys`` sorted ascending.
    """
    keys = grid.cell_keys
    grid.cell_offsets.fill(EMPTY_CELL)
    if len(keys) == 0:
        return

    is_start = np.empty(len(keys), dtype=bool)
    is_start[0] = True
    is_start[1:] = keys[1:] != keys[:-1]
    starts = np.flatnonzero(is_start)
    grid.cell_offsets[keys[starts]] = starts


def neighbor_keys_vectorized(particles: ParticleArrays, cell_size: float,
                             n_keys: int) -> np.ndarray:
    """Keys of the 27 cells around every particle.

    Returns:
        (N, 27) int64 array. A key that repeats within a row (hash
        collision between neighboring cells) is kept once; the repeats
        are replaced with EMPTY_CELL.
    """
    cells = np.column_stack((
        cell_coordinates_vectorized(particles.position_x, cell_size),
        cell_coordinates_vectorized(particles.position_y, cell_size),
        cell_coordinates_vectorized(particles.position_z, cell_size),
    ))
    neighbors = cells[:, np.newaxis, :] + NEIGHBOR_OFFSETS[np.newaxis, :, :]
    keys = hash_cells_vectorized(neighbors[..., 0], neighbors[..., 1], neighbors[..., 2], n_keys)

    keys = np.sort(keys, axis=1)
    duplicate = keys[:, 1:] == keys[:, :-1]
    keys[:, 1:][duplicate] = EMPTY_CELL
    return keys


@dataclass
class NeighborPairs:
    """Flat list of interacting particle pairs (i, j) with r^2 <= h^2.

    ``dx``/``dy``/``dz`` hold position[i] - position[j]. Each ordered pair
    appears once; (i, i) is included.
    """
    i: np.ndarray
    j: np.ndarray
    dx: np.ndarray
    dy: np.ndarray
    dz: np.ndarray
    r2: np.ndarray

    def __len__(self):
        return len(self.i)

    def without_self(self) -> 'NeighborPairs':
        """Drop pairs at zero distance (self pairs and coincident particles)."""
        keep = self.r2 > 0.0
        return NeighborPairs(self.i[keep], self.j[keep], self.dx[keep],
                             self.dy[keep], self.dz[keep], self.r2[keep])


def find_neighbor_pairs_vectorized(particles: ParticleArrays, grid: NeighborGrid,
                                   radius: float) -> NeighborPairs:
    """Enumerate all pairs within ``radius`` by scanning cell runs.

    Each (particle, neighbor key) looks up the run start in the offset
    table and takes every sorted slot up to the first different key.
    """
    n = particles.n_particles
    keys = neighbor_keys_vectorized(particles, grid.cell_size, n)

    owner = np.repeat(np.arange(n, dtype=np.int64), keys.shape[1])
    flat_keys = keys.ravel()
    valid = flat_keys != EMPTY_CELL
    owner, flat_keys = owner[valid], flat_keys[valid]

    starts = grid.cell_offsets[flat_keys].astype(np.int64)
    occupied = starts != EMPTY_CELL
    owner, flat_keys, starts = owner[occupied], flat_keys[occupied], starts[occupied]

    # Run end = first slot whose key differs (sorted keys are non-decreasing)
    ends = np.searchsorted(grid.cell_keys, flat_keys, side='right')
    lengths = ends - starts

    # Expand runs into one slot per candidate
    first = np.cumsum(lengths) - lengths
    total = int(lengths.sum())
    slots = np.arange(total, dtype=np.int64) - np.repeat(first, lengths) + np.repeat(starts, lengths)

    i = np.repeat(owner, lengths)
    j = grid.particle_indices[slots].astype(np.int64)

    dx = particles.position_x[i] - particles.position_x[j]
    dy = particles.position_y[i] - particles.position_y[j]
    dz = particles.position_z[i] - particles.position_z[j]
    r2 = (dx * dx + dy * dy + dz * dz).astype(np.float64)

    within = r2 <= np.float64(radius) ** 2
    return NeighborPairs(i[within], j[within], dx[within], dy[within], dz[within], r2[within])
