"""
Particle data structure using Structure-of-Arrays (SoA) pattern.

Each scalar component lives in its own contiguous float32 array so that
the NumPy backend can operate on whole columns and the Numba kernels get
unit-stride loads. ``PARTICLE_DTYPE`` describes the equivalent packed
record layout for exchanging particle buffers with a renderer.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

# pressure, density, force[3], velocity[3], position[3] - 11 float32 = 44 bytes
PARTICLE_DTYPE = np.dtype([
    ('pressure', '<f4'),
    ('density', '<f4'),
    ('force', '<f4', (3,)),
    ('velocity', '<f4', (3,)),
    ('position', '<f4', (3,)),
])


def _aligned_zeros(n: int, dtype=np.float32) -> np.ndarray:
    """Zeroed array whose buffer is padded to a 32-byte boundary."""
    size = n * np.dtype(dtype).itemsize
    aligned_size = max(32, ((size + 31) // 32) * 32)
    buffer = np.zeros(aligned_size, dtype=np.uint8)
    return np.frombuffer(buffer, dtype=dtype)[:n]


@dataclass
class ParticleArrays:
    """Structure of Arrays for a fixed population of fluid particles.

    All arrays have shape (N,) and dtype float32. N never changes after
    allocation.
    """
    position_x: np.ndarray
    position_y: np.ndarray
    position_z: np.ndarray
    velocity_x: np.ndarray
    velocity_y: np.ndarray
    velocity_z: np.ndarray
    force_x: np.ndarray
    force_y: np.ndarray
    force_z: np.ndarray
    density: np.ndarray
    pressure: np.ndarray

    @staticmethod
    def allocate(n_particles: int) -> 'ParticleArrays':
        """Pre-allocate zeroed arrays for ``n_particles`` particles."""
        if n_particles <= 0:
            raise ValueError(f"n_particles must be positive, got {n_particles}")
        return ParticleArrays(
            position_x=_aligned_zeros(n_particles),
            position_y=_aligned_zeros(n_particles),
            position_z=_aligned_zeros(n_particles),
            velocity_x=_aligned_zeros(n_particles),
            velocity_y=_aligned_zeros(n_particles),
            velocity_z=_aligned_zeros(n_particles),
            force_x=_aligned_zeros(n_particles),
            force_y=_aligned_zeros(n_particles),
            force_z=_aligned_zeros(n_particles),
            density=_aligned_zeros(n_particles),
            pressure=_aligned_zeros(n_particles),
        )

    @staticmethod
    def spawn_lattice(num_to_spawn: Tuple[int, int, int],
                      spawn_center: Tuple[float, float, float],
                      particle_radius: float,
                      spawn_jitter: float,
                      rng: Optional[np.random.Generator] = None) -> 'ParticleArrays':
        """Place particles on a jittered 3D lattice.

        Lattice point (i, j, k) sits at spawn_center + (i, j, k) * 2r, moved
        by a random direction on the unit sphere scaled by r * spawn_jitter.
        Particles are numbered with z varying fastest.

        Args:
            num_to_spawn: Lattice extents (nx, ny, nz)
            spawn_center: Position of lattice point (0, 0, 0)
            particle_radius: Particle radius r
            spawn_jitter: Jitter as a fraction of r
            rng: Random generator (default: fresh ``np.random.default_rng()``)

        Returns:
            ParticleArrays with positions set and every other field zero
        """
        nx, ny, nz = (int(n) for n in num_to_spawn)
        particles = ParticleArrays.allocate(nx * ny * nz)

        ii, jj, kk = np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing='ij')
        lattice = np.stack((ii.ravel(), jj.ravel(), kk.ravel()), axis=1).astype(np.float64)
        positions = np.asarray(spawn_center, dtype=np.float64) + lattice * (2.0 * particle_radius)

        if spawn_jitter > 0.0:
            if rng is None:
                rng = np.random.default_rng()
            directions = rng.normal(size=positions.shape)
            directions /= np.linalg.norm(directions, axis=1, keepdims=True)
            positions += directions * (particle_radius * spawn_jitter)

        particles.set_positions(positions)
        return particles

    @property
    def n_particles(self) -> int:
        return len(self.position_x)

    def get_positions(self, indices: Optional[np.ndarray] = None) -> np.ndarray:
        """Get particle positions as (N, 3) array for convenience."""
        if indices is None:
            return np.column_stack((self.position_x, self.position_y, self.position_z))
        return np.column_stack((self.position_x[indices], self.position_y[indices],
                                self.position_z[indices]))

    def get_velocities(self, indices: Optional[np.ndarray] = None) -> np.ndarray:
        """Get particle velocities as (N, 3) array for convenience."""
        if indices is None:
            return np.column_stack((self.velocity_x, self.velocity_y, self.velocity_z))
        return np.column_stack((self.velocity_x[indices], self.velocity_y[indices],
                                self.velocity_z[indices]))

    def get_forces(self) -> np.ndarray:
        return np.column_stack((self.force_x, self.force_y, self.force_z))

    def set_positions(self, positions: np.ndarray):
        positions = np.asarray(positions)
        self.position_x[:] = positions[:, 0]
        self.position_y[:] = positions[:, 1]
        self.position_z[:] = positions[:, 2]

    def set_velocities(self, velocities: np.ndarray):
        velocities = np.asarray(velocities)
        self.velocity_x[:] = velocities[:, 0]
        self.velocity_y[:] = velocities[:, 1]
        self.velocity_z[:] = velocities[:, 2]

    def reset_forces(self):
        """Reset force accumulators to zero."""
        self.force_x[:] = 0.0
        self.force_y[:] = 0.0
        self.force_z[:] = 0.0

    def nonfinite_mask(self) -> np.ndarray:
        """Boolean mask of particles whose position or velocity is NaN/Inf."""
        mask = np.zeros(self.n_particles, dtype=bool)
        for arr in (self.position_x, self.position_y, self.position_z,
                    self.velocity_x, self.velocity_y, self.velocity_z):
            mask |= ~np.isfinite(arr)
        return mask

    def count_nonfinite(self) -> int:
        return int(np.count_nonzero(self.nonfinite_mask()))

    def to_records(self) -> np.ndarray:
        """Pack the particles into a PARTICLE_DTYPE record array."""
        records = np.zeros(self.n_particles, dtype=PARTICLE_DTYPE)
        records['pressure'] = self.pressure
        records['density'] = self.density
        records['force'] = self.get_forces()
        records['velocity'] = self.get_velocities()
        records['position'] = self.get_positions()
        return records

    @staticmethod
    def from_records(records: np.ndarray) -> 'ParticleArrays':
        """Unpack a PARTICLE_DTYPE record array (or raw 44-byte buffer)."""
        if records.dtype != PARTICLE_DTYPE:
            records = np.frombuffer(np.ascontiguousarray(records).tobytes(), dtype=PARTICLE_DTYPE)
        particles = ParticleArrays.allocate(len(records))
        particles.pressure[:] = records['pressure']
        particles.density[:] = records['density']
        particles.force_x[:] = records['force'][:, 0]
        particles.force_y[:] = records['force'][:, 1]
        particles.force_z[:] = records['force'][:, 2]
        particles.set_velocities(records['velocity'])
        particles.set_positions(records['position'])
        return particles
