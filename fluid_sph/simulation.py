"""FluidSimulation – per-step orchestrator for the SPH pipeline.

A step runs, strictly in order:

    hash -> sort -> cell offsets -> density/pressure -> forces -> integrate

Each stage consumes the complete output of the previous one. Every stage
call returns only after all of its tasks finished, which provides the
barrier between stages.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from . import api
from .config import FluidConfig, SphereCollider
from .core.backend import is_backend_available
from .core.neighbor_grid import NeighborGrid
from .core.particles import ParticleArrays
from .errors import ConfigurationError, SimulationDivergedError


@dataclass
class StepStats:
    """Outcome of one simulation step."""
    step: int
    sim_time: float
    elapsed: float
    n_particles: int
    n_nonfinite: int
    max_speed: float
    min_density: float

    @property
    def diverged(self) -> bool:
        return self.n_nonfinite > 0


@dataclass
class FrameSnapshot:
    """Copy of the particle state handed to a renderer."""
    step: int
    positions: np.ndarray   # (N, 3) float32
    density: np.ndarray     # (N,) float32
    pressure: np.ndarray    # (N,) float32


class FluidSimulation:
    """Owns the particles and neighbor buffers and issues the pipeline stages."""

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def __init__(
        self,
        config: FluidConfig,
        *,
        particles: Optional[ParticleArrays] = None,
        backend: Optional[str] = None,
        strict: bool = False,
        log_level: str | int = "INFO",
    ) -> None:
        self.config = config
        self.strict = strict

        # ---------- logger -------------------------------------------------
        self.logger = logging.getLogger(f"FluidSimulation_{id(self)}")
        self.logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO)
                             if isinstance(log_level, str) else log_level)
        if not self.logger.handlers and not logging.getLogger().handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

        # ---------- backend -----------------------------------------------
        self.backend = (backend or config.backend).lower()
        if self.backend not in ("cpu", "numba"):
            raise ConfigurationError(f"Unknown backend '{self.backend}'")
        if not is_backend_available(self.backend):
            self.logger.warning("Backend '%s' not available, using cpu", self.backend)
            self.backend = "cpu"

        # ---------- particles & neighbor buffers --------------------------
        if particles is None:
            rng = np.random.default_rng(config.seed)
            particles = ParticleArrays.spawn_lattice(
                config.num_to_spawn, config.spawn_center,
                config.particle_radius, config.spawn_jitter, rng=rng
            )
        self.particles = particles
        self.n_particles = particles.n_particles
        self.grid = NeighborGrid.allocate(self.n_particles, config.cell_size)

        # ---------- externally driven state -------------------------------
        self.collider = SphereCollider.none()
        self._pending_box_size: Optional[Tuple[float, float, float]] = None

        self.step_count = 0
        self.sim_time = 0.0

        self.logger.info(
            "FluidSimulation: %d particles, h=%.4g, cell size %.4g, backend %s",
            self.n_particles, config.smoothing_radius, config.cell_size, self.backend
        )

    # ------------------------------------------------------------------
    # Producer interface
    # ------------------------------------------------------------------
    def set_box_size(self, box_size: Tuple[float, float, float]):
        """Request a new box size; applied at the start of the next step."""
        # Validate now so a bad value fails at the call site
        self.config.with_box_size(box_size)
        self._pending_box_size = tuple(float(s) for s in box_size)

    def set_collider(self, center: Tuple[float, float, float], radius: float):
        """Move the collision sphere; applied at the start of the next step."""
        self.collider = SphereCollider(center, radius)

    def _update_parameters(self, collider: Optional[SphereCollider]) -> Tuple[FluidConfig, SphereCollider]:
        """Latch externally changed state before the stages are issued."""
        if self._pending_box_size is not None:
            self.config = self.config.with_box_size(self._pending_box_size)
            self.logger.debug("Box size set to %s", self.config.box_size)
            self._pending_box_size = None
        if collider is not None:
            self.collider = collider
        return self.config, self.collider

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------
    def step(self, collider: Optional[SphereCollider] = None) -> StepStats:
        """Advance the simulation by one fixed timestep.

        Args:
            collider: Collider state for this step (None keeps the last one)

        Returns:
            StepStats for the completed step

        Raises:
            SimulationDivergedError: In strict mode, if any position or
                velocity became non-finite
        """
        config, collider = self._update_parameters(collider)
        t0 = time.perf_counter()

        api.hash_particles(self.particles, self.grid, config, backend=self.backend)
        api.sort_pairs(self.grid, config, backend=self.backend)
        api.compute_cell_offsets(self.grid, config, backend=self.backend)
        api.compute_density_pressure(self.particles, self.grid, config, backend=self.backend)
        api.compute_forces(self.particles, self.grid, config, backend=self.backend)
        api.integrate(self.particles, config, collider, backend=self.backend)

        elapsed = time.perf_counter() - t0
        self.step_count += 1
        self.sim_time += config.timestep

        stats = self._collect_stats(elapsed)
        self.logger.debug("step %d: %.2f ms", stats.step, elapsed * 1000.0)

        if stats.diverged:
            self.logger.warning(
                "Simulation diverged at step %d: %d particle(s) non-finite",
                stats.step, stats.n_nonfinite
            )
            if self.strict:
                raise SimulationDivergedError(stats.step, stats.n_nonfinite)
        return stats

    def run(self, n_steps: int, collider: Optional[SphereCollider] = None) -> List[StepStats]:
        """Run ``n_steps`` steps, returning their stats."""
        history = []
        for _ in range(n_steps):
            history.append(self.step(collider))
        return history

    def _collect_stats(self, elapsed: float) -> StepStats:
        p = self.particles
        n_nonfinite = p.count_nonfinite()
        finite = ~p.nonfinite_mask()
        if np.any(finite):
            speed2 = (p.velocity_x[finite].astype(np.float64) ** 2
                      + p.velocity_y[finite].astype(np.float64) ** 2
                      + p.velocity_z[finite].astype(np.float64) ** 2)
            max_speed = float(np.sqrt(np.max(speed2)))
        else:
            max_speed = float('nan')
        return StepStats(
            step=self.step_count,
            sim_time=self.sim_time,
            elapsed=elapsed,
            n_particles=p.n_particles,
            n_nonfinite=n_nonfinite,
            max_speed=max_speed,
            min_density=float(np.min(p.density)),
        )

    # ------------------------------------------------------------------
    # Consumer interface
    # ------------------------------------------------------------------
    def snapshot(self) -> FrameSnapshot:
        """Copy positions, density and pressure for rendering."""
        return FrameSnapshot(
            step=self.step_count,
            positions=self.particles.get_positions().astype(np.float32),
            density=self.particles.density.copy(),
            pressure=self.particles.pressure.copy(),
        )

    def neighbors_of(self, index: int) -> np.ndarray:
        """Particles within the smoothing radius of ``index`` at the current positions."""
        api.build_neighbor_grid(self.particles, self.grid, self.config, backend=self.backend)
        return api.find_neighbors(self.particles, self.grid, index, self.config.smoothing_radius)

    def get_statistics(self) -> dict:
        stats = self.grid.get_statistics()
        stats.update({
            'n_particles': self.n_particles,
            'step': self.step_count,
            'sim_time': self.sim_time,
            'backend': self.backend,
        })
        return stats
