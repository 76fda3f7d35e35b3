"""
Vectorized time integration and boundary handling.

Semi-implicit Euler followed by collision resolution:
    v += dt * F / rho
    x += dt * v
    clamp to box, then push out of the collider sphere

Collisions are resolved after the position update, so a particle never
ends a step inside a boundary.
"""

import numpy as np
from typing import Tuple
from .particles import ParticleArrays


def integrate_euler_vectorized(particles: ParticleArrays, dt: float,
                               box_size: Tuple[float, float, float],
                               bound_damping: float,
                               sphere_center: Tuple[float, float, float] = (0.0, 0.0, 0.0),
                               sphere_radius: float = 0.0):
    """Advance every particle by one step (vectorized).

    Args:
        particles: Particle arrays with forces and densities computed
        dt: Time step
        box_size: Full box extents; faces sit at +-box_size/2
        bound_damping: Fraction of normal velocity kept on impact, in [0, 1]
        sphere_center: Collider center
        sphere_radius: Collider radius (0 disables the collider)
    """
    density = particles.density
    inv_density = np.zeros_like(density)
    np.divide(1.0, density, out=inv_density, where=density > 0.0)

    particles.velocity_x += dt * particles.force_x * inv_density
    particles.velocity_y += dt * particles.force_y * inv_density
    particles.velocity_z += dt * particles.force_z * inv_density

    particles.position_x += dt * particles.velocity_x
    particles.position_y += dt * particles.velocity_y
    particles.position_z += dt * particles.velocity_z

    apply_box_boundaries_vectorized(particles, box_size, bound_damping)
    apply_sphere_collider_vectorized(particles, sphere_center, sphere_radius, bound_damping)


def apply_box_boundaries_vectorized(particles: ParticleArrays,
                                    box_size: Tuple[float, float, float],
                                    bound_damping: float):
    """Clamp to the box faces and reflect the normal velocity component.

    Args:
        particles: Particle arrays
        box_size: Full box extents centered on the origin
        bound_damping: Velocity reduction factor on collision
    """
    axes = (
        (particles.position_x, particles.velocity_x, box_size[0]),
        (particles.position_y, particles.velocity_y, box_size[1]),
        (particles.position_z, particles.velocity_z, box_size[2]),
    )
    for position, velocity, size in axes:
        half = 0.5 * size

        mask_low = position < -half
        position[mask_low] = -half
        velocity[mask_low] *= -bound_damping

        mask_high = position > half
        position[mask_high] = half
        velocity[mask_high] *= -bound_damping


def apply_sphere_collider_vectorized(particles: ParticleArrays,
                                     center: Tuple[float, float, float],
                                     radius: float,
                                     bound_damping: float):
    """Project penetrating particles onto the sphere surface.

    The velocity component along the outward normal n is replaced by
    -bound_damping * (v . n). A particle exactly at the center uses +y.
    """
    if radius <= 0.0:
        return

    cx, cy, cz = center
    dx = particles.position_x.astype(np.float64) - cx
    dy = particles.position_y.astype(np.float64) - cy
    dz = particles.position_z.astype(np.float64) - cz
    dist2 = dx * dx + dy * dy + dz * dz

    inside = np.flatnonzero(dist2 < radius * radius)
    if len(inside) == 0:
        return

    dist = np.sqrt(dist2[inside])
    at_center = dist == 0.0
    safe_dist = np.where(at_center, 1.0, dist)
    nx = np.where(at_center, 0.0, dx[inside] / safe_dist)
    ny = np.where(at_center, 1.0, dy[inside] / safe_dist)
    nz = np.where(at_center, 0.0, dz[inside] / safe_dist)

    particles.position_x[inside] = cx + nx * radius
    particles.position_y[inside] = cy + ny * radius
    particles.position_z[inside] = cz + nz * radius

    vx = particles.velocity_x[inside].astype(np.float64)
    vy = particles.velocity_y[inside].astype(np.float64)
    vz = particles.velocity_z[inside].astype(np.float64)
    v_normal = vx * nx + vy * ny + vz * nz
    factor = (1.0 + bound_damping) * v_normal

    particles.velocity_x[inside] = vx - factor * nx
    particles.velocity_y[inside] = vy - factor * ny
    particles.velocity_z[inside] = vz - factor * nz
