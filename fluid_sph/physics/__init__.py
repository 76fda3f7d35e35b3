"""Physics stages for SPH: density/pressure and forces."""

from .density_vectorized import compute_density_pressure_vectorized, compute_pressure
from .forces_vectorized import compute_forces_vectorized

__all__ = [
    'compute_density_pressure_vectorized',
    'compute_pressure',
    'compute_forces_vectorized'
]
