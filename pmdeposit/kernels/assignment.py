"""Mass-assignment schemes: nearest-grid-point (NGP) and cloud-in-cell (CIC).

NGP puts the whole particle into its base voxel. CIC spreads it over the 8
voxels around the continuous grid position; each corner is addressed by an
offset in {0,1}³ and weighted by the trilinear product

    w = Π_axis (frac if bit == 1 else 1 - frac)

so the 8 weights always sum to 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import torch

from .domain import GridCoordinates, wrap_voxel_index

__all__ = [
    "Assignment",
    "CIC_OFFSETS",
    "DepositStencil",
    "corner_offsets",
    "corner_weight",
    "assignment_weights",
    "deposit_stencil",
]


class Assignment(str, Enum):
    NGP = "ngp"
    CIC = "cic"

    @classmethod
    def parse(cls, value: "Assignment | str") -> "Assignment":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"assignment must be one of {[a.value for a in cls]}, got {value!r}")

    @property
    def corners(self) -> int:
        return 8 if self is Assignment.CIC else 1


# 8 corners in (x,y,z) bit order: 000,100,010,110,001,101,011,111
CIC_OFFSETS: tuple[tuple[int, int, int], ...] = (
    (0, 0, 0),
    (1, 0, 0),
    (0, 1, 0),
    (1, 1, 0),
    (0, 0, 1),
    (1, 0, 1),
    (0, 1, 1),
    (1, 1, 1),
)


@dataclass(frozen=True)
class DepositStencil:
    """Destination voxels and weights, K corners per particle (K=1 NGP, K=8 CIC)."""

    voxels: torch.Tensor   # (N, K, 3) int64, each component in [0, n)
    weights: torch.Tensor  # (N, K) float, rows sum to 1

    @property
    def corners(self) -> int:
        return int(self.weights.shape[1])


def corner_offsets(assignment: Assignment | str, *, device: torch.device | str = "cpu") -> torch.Tensor:
    """(K,3) int64 offsets iterated by the deposit pass."""
    mode = Assignment.parse(assignment)
    offsets = CIC_OFFSETS if mode is Assignment.CIC else CIC_OFFSETS[:1]
    return torch.tensor(offsets, device=device, dtype=torch.int64)


def corner_weight(frac: torch.Tensor, offset: torch.Tensor | tuple[int, int, int]) -> torch.Tensor:
    """Trilinear weight of one corner.

    frac: (..., 3); offset: (3,) or broadcastable to frac with bits in {0,1}.
    returns: (...)
    """
    if frac.shape[-1] != 3:
        raise ValueError(f"frac must have a trailing axis of 3, got {tuple(frac.shape)}")
    off = torch.as_tensor(offset, device=frac.device).to(frac.dtype)
    w = torch.where(off > 0.5, frac, 1.0 - frac)
    return w[..., 0] * w[..., 1] * w[..., 2]


def assignment_weights(frac: torch.Tensor, assignment: Assignment | str) -> torch.Tensor:
    """Per-corner weights for every particle.

    frac: (N,3) -> (N,1) ones for NGP, (N,8) trilinear weights for CIC.
    """
    mode = Assignment.parse(assignment)
    if frac.ndim != 2 or frac.shape[1] != 3:
        raise ValueError(f"frac must have shape (N,3), got {tuple(frac.shape)}")
    if mode is Assignment.NGP:
        return torch.ones(frac.shape[0], 1, device=frac.device, dtype=frac.dtype)
    offsets = corner_offsets(mode, device=frac.device)  # (8,3)
    return corner_weight(frac[:, None, :], offsets[None, :, :])


def deposit_stencil(coords: GridCoordinates, assignment: Assignment | str, grid_size: int) -> DepositStencil:
    """Destination voxel (``base + offset``, wrapped) and weight per corner."""
    mode = Assignment.parse(assignment)
    offsets = corner_offsets(mode, device=coords.base.device)  # (K,3)
    voxels = wrap_voxel_index(coords.base[:, None, :] + offsets[None, :, :], grid_size)
    weights = assignment_weights(coords.frac, mode)
    return DepositStencil(voxels=voxels, weights=weights)
