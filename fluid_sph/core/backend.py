"""
Parallel-for backends and stage dispatch for the SPH pipeline.

Every pipeline stage is a parallel-for over particles (or sort slots)
followed by a barrier. Two backends provide that primitive:
1. cpu   - NumPy, each stage is one whole-array pass
2. numba - ``prange`` kernels over a rounded-up dispatch size

A stage call returns only after all of its tasks finished, so the
orchestrator gets its barriers by calling stages in order.
"""

import enum
import logging
import warnings
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Backend(enum.Enum):
    """Parallel-for implementations."""
    CPU = "cpu"      # NumPy, always present
    NUMBA = "numba"  # Numba JIT, parallel=True


@dataclass
class BackendInfo:
    """Availability and description of one backend."""
    backend: Backend
    available: bool
    device_name: str = "CPU"
    n_threads: int = 1


class StageRegistry:
    """Per-stage implementation table plus the active backend."""

    def __init__(self):
        self._active = Backend.CPU
        self._info: Dict[Backend, BackendInfo] = {}
        self._stages: Dict[str, Dict[Backend, Callable]] = {}
        self._probe_backends()

    def _probe_backends(self):
        self._info[Backend.CPU] = BackendInfo(Backend.CPU, True, "CPU (NumPy)")
        try:
            import numba
        except ImportError:
            self._info[Backend.NUMBA] = BackendInfo(Backend.NUMBA, False, "Numba (not installed)")
        else:
            self._info[Backend.NUMBA] = BackendInfo(
                Backend.NUMBA, True,
                device_name=f"CPU (Numba {numba.__version__})",
                n_threads=numba.config.NUMBA_NUM_THREADS,
            )

    @property
    def active(self) -> Backend:
        return self._active

    @property
    def info(self) -> Dict[Backend, BackendInfo]:
        return dict(self._info)

    def is_available(self, backend: Backend) -> bool:
        return self._info[backend].available

    def activate(self, backend: Backend) -> bool:
        """Make ``backend`` the default for stage calls.

        Returns:
            False (with a warning) if the backend is not available
        """
        if not self.is_available(backend):
            warnings.warn(f"Backend {backend.value} not available, staying on {self._active.value}")
            return False
        self._active = backend
        logger.info("Backend set to: %s", self._info[backend].device_name)
        return True

    def register(self, stage: str, backend: Backend, implementation: Callable):
        self._stages.setdefault(stage, {})[backend] = implementation

    def stages(self) -> List[str]:
        return sorted(self._stages)

    def resolve(self, stage: str, backend: Optional[Backend] = None) -> Callable:
        """Find the implementation of ``stage`` for ``backend``.

        Falls back to the cpu implementation, with a warning, when the
        requested backend has none.

        Raises:
            ValueError: If the stage is unknown or has no usable implementation
        """
        if backend is None:
            backend = self._active

        implementations = self._stages.get(stage)
        if not implementations:
            raise ValueError(f"Unknown pipeline stage: {stage}")
        if backend in implementations:
            return implementations[backend]
        if Backend.CPU in implementations:
            warnings.warn(f"No {backend.value} implementation of stage '{stage}', using cpu")
            return implementations[Backend.CPU]
        raise ValueError(f"Stage '{stage}' has no implementation for {backend.value} or cpu")

    def run(self, stage: str, *args, backend: Optional[Backend] = None, **kwargs):
        return self.resolve(stage, backend)(*args, **kwargs)

    def describe(self) -> str:
        """Human-readable summary of backend availability."""
        lines = ["SPH backends", "=" * 60]
        for backend, info in self._info.items():
            status = "+" if info.available else "-"
            line = f"{status} {backend.value:6s}: {info.device_name}"
            if info.available and info.n_threads > 1:
                line += f" ({info.n_threads} threads)"
            lines.append(line)
        lines.append(f"Active backend: {self._active.value}")
        lines.append(f"Stages: {', '.join(self.stages())}")
        lines.append("=" * 60)
        return "\n".join(lines)


_registry = StageRegistry()


def _parse_backend(name: str) -> Backend:
    try:
        return Backend(name.lower())
    except ValueError:
        raise ValueError(
            f"Invalid backend: {name}. Choose from: {', '.join(b.value for b in Backend)}"
        ) from None


def set_backend(backend: str) -> bool:
    """Select the default backend ('cpu' or 'numba').

    Returns:
        True if the backend is now active
    """
    try:
        backend_enum = _parse_backend(backend)
    except ValueError as e:
        warnings.warn(str(e))
        return False
    return _registry.activate(backend_enum)


def get_backend() -> str:
    return _registry.active.value


def is_backend_available(backend: str) -> bool:
    try:
        return _registry.is_available(_parse_backend(backend))
    except ValueError:
        return False


def list_backends() -> Dict[str, bool]:
    """Backend name -> availability."""
    return {b.value: info.available for b, info in _registry.info.items()}


def log_backend_info(level: int = logging.INFO):
    for line in _registry.describe().splitlines():
        logger.log(level, line)


def backend_function(stage: str):
    """Register the decorated function as an implementation of ``stage``.

    Usage:
        @backend_function("compute_density_pressure")
        @for_backend(Backend.NUMBA)
        def _compute_density_pressure_numba(particles, grid, config):
            ...
    """
    def decorator(func):
        if hasattr(func, '_backend'):
            _registry.register(stage, func._backend, func)
        return func
    return decorator


def for_backend(backend: Backend):
    """Tag a stage implementation with its backend."""
    def decorator(func):
        func._backend = backend
        return func
    return decorator


def dispatch(stage: str, *args, backend: Optional[str] = None, **kwargs):
    """Run one pipeline stage on ``backend`` (None for the active one).

    Returns once every task of the stage has finished.
    """
    backend_enum = _parse_backend(backend) if backend else None
    return _registry.run(stage, *args, backend=backend_enum, **kwargs)


def dispatch_size(n_items: int, work_group_size: int) -> int:
    """Number of parallel tasks to launch for ``n_items`` work items.

    Rounds up to a whole number of work groups; kernels must treat task ids
    ``>= n_items`` as no-ops.
    """
    if work_group_size <= 0:
        raise ValueError(f"work_group_size must be positive, got {work_group_size}")
    n_groups = (n_items + work_group_size - 1) // work_group_size
    return n_groups * work_group_size


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0
