#!/usr/bin/env python3
"""Particle-mesh deposit entrypoint

Deposits a random particle cloud onto a periodic voxel grid and reports the
result:
- NGP or CIC mass assignment
- Native 3D grid plus the packed Z-slice atlas
- Optional atlas heatmap and torch profiler trace

Usage:
    python run.py                          # 10k particles, 32³ NGP grid
    python run.py --assignment cic         # Cloud-in-cell weighting
    python run.py --grid 64 --frames 20    # Bigger grid, several frames
    python run.py --plot artifacts/atlas.png
    python run.py --profile
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import torch

from pmdeposit.config import DepositConfig
from pmdeposit.console import console
from pmdeposit.kernels.runtime import resolve_device
from pmdeposit.particles import ParticleBuffer
from pmdeposit.pipeline import DepositPass


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Particle-mesh mass deposition",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("--particles", type=int, default=10_000, help="Number of particles")
    parser.add_argument("--grid", type=int, default=32, help="Grid size (cubic)")
    parser.add_argument("--slices-per-row", type=int, default=None, help="Atlas tiling factor (default: ceil(sqrt(grid)))")
    parser.add_argument("--assignment", choices=["ngp", "cic"], default="ngp", help="Mass assignment scheme")
    parser.add_argument("--bounds", type=float, nargs=2, default=None, metavar=("MIN", "MAX"),
                        help="Cubic world bounds (default: tracked from the particles)")
    parser.add_argument("--chunk-size", type=int, default=None, help="Particles per accumulation partition")
    parser.add_argument("--frames", type=int, default=1, help="Number of deposit frames")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--device", type=str, default="auto", help="Device (auto, cpu, cuda, mps)")
    parser.add_argument("--plot", type=str, default=None, help="Write the mass atlas heatmap to this PNG")
    parser.add_argument("--profile", action="store_true", help="Enable torch profiling")
    parser.add_argument("--quiet", action="store_true", help="Only print errors")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    console.quiet = bool(args.quiet)

    try:
        device = resolve_device(args.device)
        gen = torch.Generator().manual_seed(int(args.seed))
        if args.particles < 0:
            raise ValueError(f"--particles must be >= 0, got {args.particles}")

        positions = torch.randn(args.particles, 3, generator=gen) * 1.5
        masses = torch.rand(args.particles, generator=gen) + 0.5
        buffer = ParticleBuffer.from_arrays(positions, masses=masses, device=device)

        bounds = buffer.bounds(padded=True)
        world_min = tuple(bounds.lo) if args.bounds is None else (args.bounds[0],) * 3
        world_max = tuple(bounds.hi) if args.bounds is None else (args.bounds[1],) * 3

        config = DepositConfig(
            assignment=args.assignment,
            grid_size=args.grid,
            slices_per_row=args.slices_per_row,
            world_min=world_min,
            world_max=world_max,
            chunk_size=args.chunk_size,
            device=device,
            profile_enabled=args.profile,
        )
    except (ValueError, RuntimeError) as err:
        console.error("Invalid configuration", detail=str(err))
        return 2

    layout = config.layout
    console.header(
        "pmdeposit",
        particles=str(buffer.count),
        assignment=config.assignment.value.upper(),
        grid=f"{config.grid_size}³",
        atlas=f"{layout.width}×{layout.height} ({layout.slices_per_row} slices/row)",
        bounds=str(config.bounds),
        device=device,
    )

    with DepositPass(config) as deposit:
        with console.spinner(f"Depositing {args.frames} frame(s)..."):
            for _ in range(max(1, args.frames)):
                result = deposit(buffer)

        console.table("Deposit summary", result.summary())
        drift = abs(result.total_mass() - buffer.total_mass())
        if drift > 1e-3 * max(1.0, buffer.total_mass()):
            console.warn("Deposited mass differs from input mass", detail=f"|Δm| = {drift:.3g}")
        else:
            console.success("Mass conserved", detail=f"|Δm| = {drift:.3g}")

        if args.plot:
            from pmdeposit.viz import plot_atlas

            path = plot_atlas(result, Path(args.plot))
            console.success("Atlas written", detail=str(path))

        console.info(deposit.describe())
    return 0


if __name__ == "__main__":
    sys.exit(main())
