#!/usr/bin/env python3
"""
Headless runner: steps a fluid simulation without a display and reports
performance and final state.
"""

import argparse
import logging
import sys
import time
from typing import Optional, Sequence

import numpy as np

from .config import FluidConfig, SphereCollider
from .core.backend import log_backend_info
from .errors import SPHError
from .simulation import FluidSimulation


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SPH Fluid Simulation (Headless)")
    parser.add_argument("--config", default=None, help="JSON file with FluidConfig fields")
    parser.add_argument("--backend", choices=["cpu", "numba"], default=None)
    parser.add_argument("--steps", type=int, default=100, help="Number of steps to run")
    parser.add_argument("--spawn", type=int, nargs=3, metavar=("NX", "NY", "NZ"), default=None,
                        help="Spawn lattice extents")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--sphere", type=float, nargs=4, metavar=("X", "Y", "Z", "R"), default=None,
                        help="Static collider sphere")
    parser.add_argument("--strict", action="store_true", help="Abort when the simulation diverges")
    parser.add_argument("--log-level", default="INFO")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format="%(message)s")

    overrides = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.spawn:
        overrides["num_to_spawn"] = tuple(args.spawn)
    if args.seed is not None:
        overrides["seed"] = args.seed

    try:
        config = FluidConfig.load_json(args.config) if args.config else FluidConfig()
        if overrides:
            config = FluidConfig.from_dict({**config.to_dict(), **overrides})
        collider = SphereCollider(args.sphere[:3], args.sphere[3]) if args.sphere else None
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    log_backend_info()
    sim = FluidSimulation(config, strict=args.strict, log_level=args.log_level)

    print(f"Running {args.steps} steps...")
    t0 = time.perf_counter()
    step_times = []
    try:
        for _ in range(args.steps):
            stats = sim.step(collider)
            step_times.append(stats.elapsed)
    except SPHError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    total = time.perf_counter() - t0

    if step_times:
        mean_ms = 1000.0 * float(np.mean(step_times))
        print(f"Completed {len(step_times)} steps in {total:.2f} s "
              f"({mean_ms:.2f} ms/step, {1000.0 / max(mean_ms, 1e-9):.1f} steps/s)")
        print(f"Max speed: {stats.max_speed:.4g}, min density: {stats.min_density:.4g}, "
              f"non-finite particles: {stats.n_nonfinite}")

    grid_stats = sim.get_statistics()
    print(f"Occupied keys: {grid_stats['occupied_keys']}/{grid_stats['total_keys']}, "
          f"max particles per key: {grid_stats['max_particles_per_key']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
