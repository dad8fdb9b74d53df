"""Toroidal domain arithmetic: position wrap, voxel wrap, fractional grid coordinates.

The simulation volume is periodic on every axis: a particle leaving one face
re-enters through the opposite one. Everything here is pure torch and works on
CPU/CUDA/MPS.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import torch

__all__ = [
    "EPSILON_EXTENT",
    "DomainBounds",
    "GridCoordinates",
    "wrap_positions",
    "wrap_voxel_index",
    "grid_coordinates",
    "bounds_from_positions",
]

# [CHOICE] minimum axis span
# [REASON] a zero-extent axis would divide by zero when normalising positions;
#          with the floor every position on that axis lands in one voxel plane.
EPSILON_EXTENT = 1e-6


def _triple(values: Sequence[float], name: str) -> Tuple[float, float, float]:
    vals = tuple(float(v) for v in values)
    if len(vals) != 3:
        raise ValueError(f"{name} must have 3 components, got {len(vals)}")
    if not all(math.isfinite(v) for v in vals):
        raise ValueError(f"{name} must be finite, got {vals}")
    return vals  # type: ignore[return-value]


@dataclass(frozen=True)
class DomainBounds:
    """Per-axis (lo, hi) extent of the periodic domain."""

    lo: Tuple[float, float, float]
    hi: Tuple[float, float, float]

    def __post_init__(self) -> None:
        object.__setattr__(self, "lo", _triple(self.lo, "lo"))
        object.__setattr__(self, "hi", _triple(self.hi, "hi"))

    @property
    def extent(self) -> Tuple[float, float, float]:
        """Axis spans, clamped to ``EPSILON_EXTENT`` when degenerate (hi <= lo)."""
        return tuple(max(h - l, EPSILON_EXTENT) for l, h in zip(self.lo, self.hi))  # type: ignore[return-value]

    @property
    def is_degenerate(self) -> bool:
        return any(h - l < EPSILON_EXTENT for l, h in zip(self.lo, self.hi))

    def as_tensors(
        self,
        device: torch.device | str = "cpu",
        dtype: torch.dtype = torch.float32,
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """Return ``(lo, extent)`` as (3,) tensors."""
        lo = torch.tensor(self.lo, device=device, dtype=dtype)
        ext = torch.tensor(self.extent, device=device, dtype=dtype)
        return lo, ext

    def __str__(self) -> str:
        lo = ",".join(f"{v:g}" for v in self.lo)
        hi = ",".join(f"{v:g}" for v in self.hi)
        return f"[{lo}]to[{hi}]"


@dataclass(frozen=True)
class GridCoordinates:
    """Continuous grid position split into base voxel + fractional offset."""

    grid_pos: torch.Tensor  # (N,3) float, in [0, n)
    base: torch.Tensor      # (N,3) int64, wrapped into [0, n)
    frac: torch.Tensor      # (N,3) float, in [0, 1)


def _check_positions(positions: torch.Tensor) -> None:
    if positions.ndim != 2 or positions.shape[1] != 3:
        raise ValueError(f"positions must have shape (N,3), got {tuple(positions.shape)}")


def wrap_positions(positions: torch.Tensor, bounds: DomainBounds) -> torch.Tensor:
    """Fold world positions into ``[lo, hi)`` on every axis.

    A single floor step handles positions any number of periods away.
    """
    _check_positions(positions)
    if not positions.is_floating_point():
        positions = positions.to(torch.float32)
    lo, ext = bounds.as_tensors(positions.device, positions.dtype)

    u = (positions - lo) / ext
    u = u - torch.floor(u)
    # u can round up to exactly 1.0 for tiny negative inputs
    u = torch.where(u >= 1.0, torch.zeros_like(u), u)
    out = u * ext + lo
    return torch.where(out >= lo + ext, lo.expand_as(out), out)


def wrap_voxel_index(coord: torch.Tensor, grid_size: int) -> torch.Tensor:
    """Periodic voxel index: ``((c mod n) + n) mod n`` per component."""
    n = int(grid_size)
    if n <= 0:
        raise ValueError(f"grid_size must be positive, got {grid_size}")
    if coord.is_floating_point():
        coord = torch.floor(coord)
    return torch.remainder(torch.remainder(coord, n) + n, n)


def grid_coordinates(wrapped: torch.Tensor, bounds: DomainBounds, grid_size: int) -> GridCoordinates:
    """Map wrapped positions to continuous grid space ``[0, n)``.

    ``frac`` is only consumed by CIC weighting; NGP ignores it.
    """
    _check_positions(wrapped)
    n = int(grid_size)
    if n <= 0:
        raise ValueError(f"grid_size must be positive, got {grid_size}")

    lo, ext = bounds.as_tensors(wrapped.device, wrapped.dtype)
    grid_pos = (wrapped - lo) / ext * float(n)
    base_f = torch.floor(grid_pos)
    frac = grid_pos - base_f
    # non-finite positions propagate through frac; the index must still be an integer
    base = torch.nan_to_num(base_f, nan=0.0, posinf=0.0, neginf=0.0).to(torch.int64)
    base = wrap_voxel_index(base, n)
    return GridCoordinates(grid_pos=grid_pos, base=base, frac=frac)


def bounds_from_positions(
    positions: torch.Tensor,
    masses: Optional[torch.Tensor] = None,
    *,
    padded: bool = False,
    padding_floor: float = 0.5,
) -> DomainBounds:
    """Per-axis min/max over finite coordinates (live rows only when masses given).

    Axes without a single finite sample fall back to ``(0, 0)``, which the
    domain then clamps to ``EPSILON_EXTENT``. With ``padded`` each side grows by
    ``max(padding_floor, 10% of the span)``.
    """
    _check_positions(positions)
    pos = positions.detach().to(torch.float64)
    keep = torch.isfinite(pos)
    if masses is not None:
        if masses.shape != (positions.shape[0],):
            raise ValueError(f"masses must have shape (N,), got {tuple(masses.shape)}")
        keep = keep & (masses.detach() > 0)[:, None].to(keep.device)

    lo: list[float] = []
    hi: list[float] = []
    for axis in range(3):
        vals = pos[keep[:, axis], axis]
        if vals.numel() == 0:
            lo.append(0.0)
            hi.append(0.0)
            continue
        a = float(vals.min().item())
        b = float(vals.max().item())
        if padded:
            pad = max(float(padding_floor), 0.1 * max(1e-6, b - a))
            a -= pad
            b += pad
        lo.append(a)
        hi.append(b)
    return DomainBounds(lo=tuple(lo), hi=tuple(hi))  # type: ignore[arg-type]
