"""
Vectorized SPH smoothing kernels (Mueller et al. 2003 set).

- Poly6 for density:            W(r, h)   = 315 / (64 pi h^9) (h^2 - r^2)^3
- Spiky gradient for pressure:  dW/dr     = -45 / (pi h^6) (h - r)^2
- Viscosity Laplacian:          lap W     =  45 / (pi h^6) (h - r)

All kernels vanish for r > h.
"""

import numpy as np


class FluidKernels:
    """Kernel set for a fixed smoothing radius h."""

    def __init__(self, h: float):
        if h <= 0:
            raise ValueError(f"Smoothing radius must be positive, got {h}")
        self.h = float(h)
        self.h2 = self.h * self.h
        self.poly6_coeff = 315.0 / (64.0 * np.pi * self.h ** 9)
        self.spiky_grad_coeff = -45.0 / (np.pi * self.h ** 6)
        self.visc_lap_coeff = 45.0 / (np.pi * self.h ** 6)

    def poly6_vectorized(self, r2: np.ndarray) -> np.ndarray:
        """Poly6 kernel evaluated on squared distances.

        Args:
            r2: Squared distances, any shape

        Returns:
            Kernel values (float64) with the same shape as r2
        """
        r2 = np.asarray(r2, dtype=np.float64)
        diff = np.where(r2 <= self.h2, self.h2 - r2, 0.0)
        return self.poly6_coeff * diff * diff * diff

    def spiky_gradient_vectorized(self, r: np.ndarray) -> np.ndarray:
        """Magnitude of the spiky kernel gradient (negative inside support)."""
        r = np.asarray(r, dtype=np.float64)
        diff = np.where(r <= self.h, self.h - r, 0.0)
        return self.spiky_grad_coeff * diff * diff

    def viscosity_laplacian_vectorized(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=np.float64)
        return self.visc_lap_coeff * np.where(r <= self.h, self.h - r, 0.0)

    def W_self(self) -> float:
        """Poly6 value at r=0 (self-contribution)."""
        return self.poly6_coeff * self.h2 ** 3

    def normalization_integral(self, n_samples: int = 4096) -> float:
        """Integral of Poly6 over its 3D support, should be close to 1."""
        r = np.linspace(0.0, self.h, n_samples)
        f = 4.0 * np.pi * r * r * self.poly6_vectorized(r * r)
        return float(np.sum(0.5 * (f[1:] + f[:-1]) * np.diff(r)))
