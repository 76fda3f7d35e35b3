"""Exception types raised by the fluid simulation."""


class SPHError(Exception):
    """Base class for all fluid_sph errors."""


class ConfigurationError(SPHError, ValueError):
    """Raised when simulation parameters cannot produce a valid pipeline."""


class SimulationDivergedError(SPHError, RuntimeError):
    """Raised in strict mode when positions or velocities become non-finite."""

    def __init__(self, step: int, n_nonfinite: int):
        self.step = step
        self.n_nonfinite = n_nonfinite
        super().__init__(
            f"Simulation diverged at step {step}: "
            f"{n_nonfinite} particle(s) with non-finite position or velocity"
        )
