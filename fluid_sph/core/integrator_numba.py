"""
Numba-optimized integration stage (same update rule as the vectorized one).
"""

import numpy as np
import numba as nb
from .particles import ParticleArrays
from .backend import dispatch_size


@nb.njit(cache=True)
def clamp_axis(position: float, velocity: float, half: float, bound_damping: float):
    if position < -half:
        return -half, velocity * -bound_damping
    if position > half:
        return half, velocity * -bound_damping
    return position, velocity


@nb.njit(parallel=True, cache=True)
def integrate_euler_numba(position_x: np.ndarray, position_y: np.ndarray, position_z: np.ndarray,
                          velocity_x: np.ndarray, velocity_y: np.ndarray, velocity_z: np.ndarray,
                          force_x: np.ndarray, force_y: np.ndarray, force_z: np.ndarray,
                          density: np.ndarray, dt: float,
                          half_x: float, half_y: float, half_z: float,
                          bound_damping: float,
                          sphere_x: float, sphere_y: float, sphere_z: float,
                          sphere_radius: float, n_tasks: int):
    n = position_x.shape[0]
    radius2 = sphere_radius * sphere_radius

    for i in nb.prange(n_tasks):
        if i >= n:
            continue

        rho = density[i]
        inv_rho = 1.0 / rho if rho > 0.0 else 0.0

        vx = velocity_x[i] + dt * force_x[i] * inv_rho
        vy = velocity_y[i] + dt * force_y[i] * inv_rho
        vz = velocity_z[i] + dt * force_z[i] * inv_rho

        px = position_x[i] + dt * vx
        py = position_y[i] + dt * vy
        pz = position_z[i] + dt * vz

        px, vx = clamp_axis(px, vx, half_x, bound_damping)
        py, vy = clamp_axis(py, vy, half_y, bound_damping)
        pz, vz = clamp_axis(pz, vz, half_z, bound_damping)

        if sphere_radius > 0.0:
            dx = px - sphere_x
            dy = py - sphere_y
            dz = pz - sphere_z
            dist2 = dx * dx + dy * dy + dz * dz
            if dist2 < radius2:
                dist = np.sqrt(dist2)
                if dist > 0.0:
                    nx = dx / dist
                    ny = dy / dist
                    nz = dz / dist
                else:
                    nx = 0.0
                    ny = 1.0
                    nz = 0.0
                px = sphere_x + nx * sphere_radius
                py = sphere_y + ny * sphere_radius
                pz = sphere_z + nz * sphere_radius

                factor = (1.0 + bound_damping) * (vx * nx + vy * ny + vz * nz)
                vx -= factor * nx
                vy -= factor * ny
                vz -= factor * nz

        velocity_x[i] = vx
        velocity_y[i] = vy
        velocity_z[i] = vz
        position_x[i] = px
        position_y[i] = py
        position_z[i] = pz


def integrate_euler_numba_wrapper(particles: ParticleArrays, dt: float,
                                  box_size, bound_damping: float,
                                  sphere_center=(0.0, 0.0, 0.0), sphere_radius: float = 0.0,
                                  work_group_size: int = 256):
    """Wrapper for Numba integration that matches the vectorized interface."""
    integrate_euler_numba(
        particles.position_x, particles.position_y, particles.position_z,
        particles.velocity_x, particles.velocity_y, particles.velocity_z,
        particles.force_x, particles.force_y, particles.force_z,
        particles.density, float(dt),
        0.5 * box_size[0], 0.5 * box_size[1], 0.5 * box_size[2],
        float(bound_damping),
        float(sphere_center[0]), float(sphere_center[1]), float(sphere_center[2]),
        float(sphere_radius),
        dispatch_size(particles.n_particles, work_group_size)
    )
