"""Particle upload buffer: flat rows reshaped into a rectangular texture.

Each particle is one row ``(x, y, z, vx, vy, vz, mass)``; row index equals
particle index. The buffer is padded to ``width * height`` rows so it can be
viewed as a ``height × width`` texture, and padding rows carry mass 0 so the
deposit pass culls them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple

import numpy as np
import torch

from .kernels.domain import DomainBounds, bounds_from_positions

__all__ = ["ParticleBuffer", "ROW_FIELDS"]

ROW_FIELDS = ("x", "y", "z", "vx", "vy", "vz", "mass")


def _default_stride(count: int) -> int:
    return max(1, int(math.ceil(math.sqrt(max(count, 1)))))


@dataclass
class ParticleBuffer:
    rows: torch.Tensor   # (width * height, 7)
    count: int           # live particle rows (the rest is padding)
    width: int           # stride: rows per texture line

    def __post_init__(self) -> None:
        if self.rows.ndim != 2 or self.rows.shape[1] != len(ROW_FIELDS):
            raise ValueError(f"rows must have shape (R,{len(ROW_FIELDS)}), got {tuple(self.rows.shape)}")
        if self.width <= 0:
            raise ValueError(f"width must be positive, got {self.width}")
        if self.rows.shape[0] % self.width != 0:
            raise ValueError(f"row count {self.rows.shape[0]} is not a multiple of width {self.width}")
        if not (0 <= self.count <= self.rows.shape[0]):
            raise ValueError(f"count must be in [0, {self.rows.shape[0]}], got {self.count}")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_arrays(
        cls,
        positions: Any,
        velocities: Any = None,
        masses: Any = None,
        *,
        stride: Optional[int] = None,
        device: torch.device | str = "cpu",
        dtype: torch.dtype = torch.float32,
    ) -> "ParticleBuffer":
        """Pack (N,3) positions, optional (N,3) velocities and (N,) masses.

        Missing velocities default to zero, missing masses to one.
        """
        pos = torch.as_tensor(positions, dtype=dtype, device=device)
        if pos.ndim != 2 or pos.shape[1] != 3:
            raise ValueError(f"positions must have shape (N,3), got {tuple(pos.shape)}")
        n = int(pos.shape[0])
        if velocities is None:
            vel = torch.zeros_like(pos)
        else:
            vel = torch.as_tensor(velocities, dtype=dtype, device=device)
            if vel.shape != pos.shape:
                raise ValueError(f"velocities must have shape (N,3), got {tuple(vel.shape)}")
        if masses is None:
            m = torch.ones(n, dtype=dtype, device=device)
        else:
            m = torch.as_tensor(masses, dtype=dtype, device=device)
            if m.shape != (n,):
                raise ValueError(f"masses must have shape (N,), got {tuple(m.shape)}")

        width = _default_stride(n) if stride is None else int(stride)
        if width <= 0:
            raise ValueError(f"stride must be positive, got {stride}")
        height = max(1, -(-n // width))

        rows = torch.zeros(width * height, len(ROW_FIELDS), dtype=dtype, device=device)
        rows[:n, 0:3] = pos
        rows[:n, 3:6] = vel
        rows[:n, 6] = m
        return cls(rows=rows, count=n, width=width)

    @classmethod
    def from_records(
        cls,
        particles: Iterable[Mapping[str, float]],
        *,
        stride: Optional[int] = None,
        device: torch.device | str = "cpu",
        dtype: torch.dtype = torch.float32,
    ) -> "ParticleBuffer":
        """Pack dict-like records; absent keys (x, y, z, vx, vy, vz, mass) read as 0."""
        records = list(particles)
        data = np.zeros((len(records), len(ROW_FIELDS)), dtype=np.float64)
        for i, p in enumerate(records):
            data[i] = [float(p.get(k) or 0.0) for k in ROW_FIELDS]
        return cls.from_arrays(
            data[:, 0:3],
            data[:, 3:6],
            data[:, 6],
            stride=stride,
            device=device,
            dtype=dtype,
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def height(self) -> int:
        return self.rows.shape[0] // self.width

    @property
    def positions(self) -> torch.Tensor:
        return self.rows[:, 0:3]

    @property
    def velocities(self) -> torch.Tensor:
        return self.rows[:, 3:6]

    @property
    def masses(self) -> torch.Tensor:
        return self.rows[:, 6]

    def position_mass_texture(self) -> torch.Tensor:
        """(height, width, 4) texture of (x, y, z, mass)."""
        pm = torch.cat([self.positions, self.masses[:, None]], dim=1)
        return pm.reshape(self.height, self.width, 4)

    def texel_of(self, index: int) -> Tuple[int, int]:
        """Texture address ``(index mod width, index div width)`` of a row."""
        if not (0 <= index < self.rows.shape[0]):
            raise ValueError(f"row index {index} outside buffer of {self.rows.shape[0]} rows")
        return index % self.width, index // self.width

    def bounds(self, *, padded: bool = False) -> DomainBounds:
        """Domain bounds over finite coordinates of live rows."""
        return bounds_from_positions(
            self.positions[: self.count],
            self.masses[: self.count],
            padded=padded,
        )

    def total_mass(self) -> float:
        return float(self.masses.to(torch.float64).sum().item())
