"""
Immutable simulation configuration.

FluidConfig carries everything the pipeline needs that does not change
inside a step. Values that an external controller may change between
steps (box size, collider) are swapped in with ``with_box_size`` or passed
to ``FluidSimulation.step`` as a SphereCollider.
"""

import json
import math
from dataclasses import dataclass, fields, asdict, replace
from pathlib import Path
from typing import Optional, Tuple, Union

from .errors import ConfigurationError

Vector3 = Tuple[float, float, float]

SUPPORTED_BACKENDS = ("cpu", "numba")

# Field names used by serialized scene files
_CAMEL_CASE_ALIASES = {
    "numToSpawn": "num_to_spawn",
    "boxSize": "box_size",
    "spawnCenter": "spawn_center",
    "particleRadius": "particle_radius",
    "spawnJitter": "spawn_jitter",
    "boundDamping": "bound_damping",
    "particleMass": "particle_mass",
    "gasConstant": "gas_constant",
    "restDensity": "rest_density",
    "workGroupSize": "work_group_size",
}


@dataclass(frozen=True)
class SphereCollider:
    """Moving collision sphere supplied by the host every step."""
    center: Vector3 = (0.0, 0.0, 0.0)
    radius: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "center", tuple(float(c) for c in self.center))
        object.__setattr__(self, "radius", float(self.radius))
        if len(self.center) != 3:
            raise ConfigurationError(f"Collider center must have 3 components, got {self.center}")
        if not self.radius >= 0.0:
            raise ConfigurationError(f"Collider radius must be >= 0, got {self.radius}")

    @staticmethod
    def none() -> "SphereCollider":
        """A collider that never touches anything."""
        return SphereCollider((0.0, 0.0, 0.0), 0.0)


@dataclass(frozen=True)
class FluidConfig:
    """Parameters of a fluid simulation.

    ``particle_radius`` doubles as the smoothing radius h; the hash grid uses
    cells of ``2 * particle_radius``.
    """
    # Spawning
    num_to_spawn: Tuple[int, int, int] = (10, 10, 10)
    spawn_center: Vector3 = (0.0, 0.0, 0.0)
    particle_radius: float = 0.1
    spawn_jitter: float = 0.2
    seed: Optional[int] = None

    # Domain
    box_size: Vector3 = (4.0, 10.0, 3.0)
    bound_damping: float = 0.3

    # Fluid constants
    viscosity: float = 0.003
    particle_mass: float = 1.0
    gas_constant: float = 2.0
    rest_density: float = 0.0
    gravity_y: float = 9.8
    timestep: float = 0.007

    # Execution
    work_group_size: int = 256
    backend: str = "cpu"

    def __post_init__(self):
        object.__setattr__(self, "num_to_spawn", tuple(int(v) for v in self.num_to_spawn))
        object.__setattr__(self, "spawn_center", tuple(float(v) for v in self.spawn_center))
        object.__setattr__(self, "box_size", tuple(float(v) for v in self.box_size))
        object.__setattr__(self, "backend", str(self.backend).lower())
        self.validate()

    @property
    def total_particles(self) -> int:
        nx, ny, nz = self.num_to_spawn
        return nx * ny * nz

    @property
    def cell_size(self) -> float:
        return 2.0 * self.particle_radius

    @property
    def smoothing_radius(self) -> float:
        return self.particle_radius

    @property
    def box_half_extents(self) -> Vector3:
        return tuple(0.5 * s for s in self.box_size)

    def validate(self):
        """Check parameter ranges.

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        if len(self.num_to_spawn) != 3 or any(n <= 0 for n in self.num_to_spawn):
            raise ConfigurationError(f"num_to_spawn must be 3 positive integers, got {self.num_to_spawn}")
        if len(self.spawn_center) != 3:
            raise ConfigurationError(f"spawn_center must have 3 components, got {self.spawn_center}")
        if len(self.box_size) != 3 or any(not s > 0.0 for s in self.box_size):
            raise ConfigurationError(f"box_size must be 3 positive numbers, got {self.box_size}")
        if not (self.particle_radius > 0.0 and math.isfinite(self.particle_radius)):
            raise ConfigurationError(f"particle_radius must be positive, got {self.particle_radius}")
        if not self.spawn_jitter >= 0.0:
            raise ConfigurationError(f"spawn_jitter must be >= 0, got {self.spawn_jitter}")
        if not 0.0 <= self.bound_damping <= 1.0:
            raise ConfigurationError(f"bound_damping must lie in [0, 1], got {self.bound_damping}")
        if not self.particle_mass >= 0.0:
            raise ConfigurationError(f"particle_mass must be >= 0, got {self.particle_mass}")
        if not (self.timestep > 0.0 and math.isfinite(self.timestep)):
            raise ConfigurationError(f"timestep must be positive, got {self.timestep}")
        if self.work_group_size <= 0:
            raise ConfigurationError(f"work_group_size must be positive, got {self.work_group_size}")
        if self.backend not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unknown backend '{self.backend}'. Choose from: {', '.join(SUPPORTED_BACKENDS)}"
            )

    def with_box_size(self, box_size: Vector3) -> "FluidConfig":
        return replace(self, box_size=tuple(box_size))

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("num_to_spawn", "spawn_center", "box_size"):
            data[key] = list(data[key])
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FluidConfig":
        """Build a config from a mapping.

        Accepts snake_case field names as well as the camelCase names used
        by serialized scene files. Unknown keys are rejected.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _CAMEL_CASE_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown configuration key: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def load_json(cls, path: Union[str, Path]) -> "FluidConfig":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    def save_json(self, path: Union[str, Path]):
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
