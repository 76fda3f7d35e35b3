"""
Per-step neighbor search buffers.

``particle_indices``/``cell_keys`` are the IndexKeyPair array split into two
parallel int32 columns; after the sort stage they are ordered by key.
``cell_offsets[key]`` is the first sorted slot holding ``key`` or
EMPTY_CELL.
"""

import numpy as np
from dataclasses import dataclass

EMPTY_CELL = -1


@dataclass
class NeighborGrid:
    particle_indices: np.ndarray   # shape: (N,) int32
    cell_keys: np.ndarray          # shape: (N,) int32
    cell_offsets: np.ndarray       # shape: (N,) int32
    cell_size: float

    @staticmethod
    def allocate(n_particles: int, cell_size: float) -> 'NeighborGrid':
        return NeighborGrid(
            particle_indices=np.arange(n_particles, dtype=np.int32),
            cell_keys=np.zeros(n_particles, dtype=np.int32),
            cell_offsets=np.full(n_particles, EMPTY_CELL, dtype=np.int32),
            cell_size=float(cell_size),
        )

    @property
    def n_keys(self) -> int:
        return len(self.cell_offsets)

    def run_of(self, key: int) -> np.ndarray:
        """Particle indices filed under ``key``.

        Starts at ``cell_offsets[key]`` and scans forward while the sorted
        key still matches.
        """
        start = int(self.cell_offsets[key])
        if start == EMPTY_CELL:
            return np.empty(0, dtype=np.int32)
        end = start
        n = len(self.cell_keys)
        while end < n and self.cell_keys[end] == key:
            end += 1
        return self.particle_indices[start:end]

    def occupied_keys(self) -> np.ndarray:
        return np.flatnonzero(self.cell_offsets != EMPTY_CELL)

    def is_sorted(self) -> bool:
        return bool(np.all(self.cell_keys[1:] >= self.cell_keys[:-1]))

    def get_statistics(self) -> dict:
        """Get hash table statistics for debugging."""
        counts = np.bincount(self.cell_keys, minlength=self.n_keys)
        occupied = counts > 0
        n_occupied = int(np.sum(occupied))
        return {
            'total_keys': self.n_keys,
            'occupied_keys': n_occupied,
            'occupancy_rate': n_occupied / max(1, self.n_keys),
            'max_particles_per_key': int(np.max(counts)) if len(counts) else 0,
            'mean_particles_per_occupied_key': float(np.mean(counts[occupied])) if n_occupied else 0.0,
        }
