"""Particle → grid mass deposition (periodic, NGP/CIC) as an explicit scatter-reduce.

Two stages per pass:
- transform: wrap each position into the domain, split it into base voxel and
  fractional offset, and pick the destination voxel of every corner
  (1 for NGP, 8 for CIC) together with its packed atlas texel.
- accumulate: weight each corner and add ``(m·w·x, m·w·y, m·w·z, m·w)`` into
  the voxel accumulator with ``index_add_``.

Summation is commutative, so the result does not depend on particle order or
on how the particles are partitioned (``chunk_size``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import torch

from ..config import DepositConfig
from .assignment import Assignment, DepositStencil, deposit_stencil
from .atlas import AtlasLayout, linear_index
from .domain import DomainBounds, GridCoordinates, grid_coordinates, wrap_positions, wrap_voxel_index

__all__ = [
    "DepositTransform",
    "DepositGrid",
    "deposit_transform",
    "deposit_accumulate",
    "deposit_mass",
]

CHANNELS = 4  # (m·x, m·y, m·z, m)


@dataclass(frozen=True)
class DepositTransform:
    """Per-particle, per-corner output of the transform stage."""

    wrapped: torch.Tensor      # (N,3) positions folded into the domain
    coords: GridCoordinates
    stencil: DepositStencil    # voxels (N,K,3), weights (N,K)
    texels: torch.Tensor       # (N,K,2) packed atlas address
    ndc: torch.Tensor          # (N,K,2) pixel-centre point placement
    live: torch.Tensor         # (N,) bool, False for mass == 0 padding rows


def _check_inputs(positions: torch.Tensor, masses: torch.Tensor) -> None:
    if positions.ndim != 2 or positions.shape[1] != 3:
        raise ValueError(f"positions must have shape (N,3), got {tuple(positions.shape)}")
    if masses.shape != (positions.shape[0],):
        raise ValueError(f"masses must have shape (N,), got {tuple(masses.shape)}")


def deposit_transform(
    positions: torch.Tensor,
    masses: torch.Tensor,
    config: DepositConfig,
) -> DepositTransform:
    _check_inputs(positions, masses)
    dev = torch.device(config.device)
    pos = positions.to(device=dev, dtype=config.dtype)
    m = masses.to(device=dev, dtype=config.dtype)

    bounds = config.bounds
    layout = config.layout
    wrapped = wrap_positions(pos, bounds)
    coords = grid_coordinates(wrapped, bounds, config.grid_size)
    stencil = deposit_stencil(coords, config.assignment, config.grid_size)
    texels = layout.voxel_to_texel(stencil.voxels)
    ndc = layout.texel_to_ndc(texels)

    # Zero mass marks padding; NaN mass is kept so it propagates.
    live = m != 0
    return DepositTransform(
        wrapped=wrapped,
        coords=coords,
        stencil=stencil,
        texels=texels,
        ndc=ndc,
        live=live,
    )


def deposit_accumulate(
    transform: DepositTransform,
    masses: torch.Tensor,
    out: torch.Tensor,
) -> int:
    """Scatter weighted contributions of live rows into ``out`` (n, n, n, 4).

    Returns the number of live particles that contributed.
    """
    n = int(out.shape[0]) if out.ndim == 4 else -1
    if n <= 0 or tuple(out.shape) != (n, n, n, CHANNELS) or not out.is_contiguous():
        raise ValueError(f"out must be a contiguous (n,n,n,{CHANNELS}) tensor, got {tuple(out.shape)}")
    flat = out.view(-1, CHANNELS)

    live = transform.live
    m = masses.to(device=out.device, dtype=out.dtype)[live]          # (L,)
    if m.numel() == 0:
        return 0
    w = transform.stencil.weights[live].to(out.dtype)                # (L,K)
    pos = transform.wrapped[live].to(out.dtype)                      # (L,3)
    voxels = transform.stencil.voxels[live]                          # (L,K,3)

    mw = m[:, None] * w                                              # (L,K)
    # (L,1,3) * (L,K,1) -> (L,K,3); mass channel appended last
    contrib = torch.cat([pos[:, None, :] * mw[..., None], mw[..., None]], dim=-1)

    idx = linear_index(voxels, n).reshape(-1)
    flat.index_add_(0, idx, contrib.reshape(-1, CHANNELS))
    return int(m.numel())


@dataclass
class DepositGrid:
    """Accumulated (m·x, m·y, m·z, m) per voxel, stored as (n_z, n_y, n_x, 4)."""

    grid: torch.Tensor
    layout: AtlasLayout
    bounds: DomainBounds
    assignment: Assignment
    particle_count: int = 0
    live_count: int = 0

    @property
    def grid_size(self) -> int:
        return self.layout.grid_size

    @property
    def mass(self) -> torch.Tensor:
        return self.grid[..., 3]

    @property
    def weighted_position(self) -> torch.Tensor:
        return self.grid[..., :3]

    @property
    def occupied(self) -> torch.Tensor:
        return self.mass > 0

    def atlas(self) -> torch.Tensor:
        """Packed (height, width, 4) atlas for texture-style consumers."""
        return self.layout.pack_grid(self.grid)

    def total_mass(self) -> float:
        return float(self.mass.to(torch.float64).sum().item())

    def voxel(self, vx: int, vy: int, vz: int) -> Tuple[float, float, float, float]:
        idx = wrap_voxel_index(torch.tensor([vx, vy, vz]), self.grid_size).tolist()
        cell = self.grid[idx[2], idx[1], idx[0]]
        return tuple(float(v) for v in cell.tolist())  # type: ignore[return-value]

    def center_of_mass(self) -> Tuple[torch.Tensor, torch.Tensor]:
        """Per-voxel centre of mass and the occupancy mask.

        Empty voxels are never divided; their centre is reported as zeros.
        """
        occ = self.occupied
        com = torch.zeros_like(self.weighted_position)
        com[occ] = self.weighted_position[occ] / self.mass[occ][:, None]
        return com, occ

    def density(self, cell_volume: Optional[float] = None) -> torch.Tensor:
        """Mass per voxel volume (defaults to the domain volume / n³)."""
        if cell_volume is None:
            ex, ey, ez = self.bounds.extent
            cell_volume = (ex * ey * ez) / float(self.grid_size ** 3)
        if not (cell_volume > 0.0):
            raise ValueError(f"cell_volume must be > 0, got {cell_volume}")
        return self.mass / float(cell_volume)

    def summary(self) -> Dict[str, Any]:
        n = self.grid_size
        return {
            "particles": self.particle_count,
            "live": self.live_count,
            "assignment": self.assignment.value,
            "grid": f"{n}×{n}×{n}",
            "atlas": f"{self.layout.width}×{self.layout.height}",
            "total_mass": self.total_mass(),
            "occupied_voxels": int(self.occupied.sum().item()),
            "bounds": str(self.bounds),
        }


def deposit_mass(
    positions: torch.Tensor,
    masses: torch.Tensor,
    config: DepositConfig,
    *,
    out: Optional[torch.Tensor] = None,
) -> DepositGrid:
    """Deposit every particle onto a freshly cleared grid.

    ``out`` may be a pre-allocated (n, n, n, 4) accumulator; it is overwritten.
    """
    _check_inputs(positions, masses)
    n = config.grid_size
    dev = torch.device(config.device)
    if out is None:
        out = torch.zeros(n, n, n, CHANNELS, device=dev, dtype=config.dtype)
    else:
        if tuple(out.shape) != (n, n, n, CHANNELS):
            raise ValueError(f"out must have shape ({n},{n},{n},{CHANNELS}), got {tuple(out.shape)}")
        if not out.is_contiguous():
            raise ValueError("out must be contiguous")
        out.zero_()

    count = int(positions.shape[0])
    chunk = int(config.chunk_size) if config.chunk_size is not None else max(count, 1)

    live = 0
    for start in range(0, count, chunk):
        stop = min(start + chunk, count)
        part_pos = positions[start:stop]
        part_mass = masses[start:stop]
        tr = deposit_transform(part_pos, part_mass, config)
        live += deposit_accumulate(tr, part_mass, out)

    return DepositGrid(
        grid=out,
        layout=config.layout,
        bounds=config.bounds,
        assignment=config.assignment,
        particle_count=count,
        live_count=live,
    )
