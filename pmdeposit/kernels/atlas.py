"""3D grid <-> 2D atlas packing (row-major tiling of Z-slices).

Each Z-slice is an independent ``n × n`` tile placed at tile coordinates
``(z mod slices_per_row, z div slices_per_row)``:

    texel = (sliceCol * n + vx, sliceRow * n + vy)

The atlas is ``n * slices_per_row`` texels wide and ``n * ceil(n / slices_per_row)``
texels high. Grids are stored natively as ``(n_z, n_y, n_x, C)`` tensors; the
atlas is only an export/import layout for texture-style consumers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import torch

from .domain import wrap_voxel_index

__all__ = [
    "AtlasLayout",
    "default_slices_per_row",
    "linear_index",
]


def default_slices_per_row(grid_size: int) -> int:
    """``ceil(sqrt(n))``: the most square atlas for a cubic grid."""
    n = int(grid_size)
    if n <= 0:
        raise ValueError(f"grid_size must be positive, got {grid_size}")
    return int(math.ceil(math.sqrt(n)))


def linear_index(voxels: torch.Tensor, grid_size: int) -> torch.Tensor:
    """Flat index ``(vz * n + vy) * n + vx`` into a ``(n, n, n)`` grid.

    voxels: (..., 3) int64 in (x, y, z) order, already wrapped.
    """
    if voxels.shape[-1] != 3:
        raise ValueError(f"voxels must have a trailing axis of 3, got {tuple(voxels.shape)}")
    n = int(grid_size)
    v = voxels.to(torch.int64)
    return (v[..., 2] * n + v[..., 1]) * n + v[..., 0]


@dataclass(frozen=True)
class AtlasLayout:
    grid_size: int
    slices_per_row: int

    def __post_init__(self) -> None:
        n = int(self.grid_size)
        spr = int(self.slices_per_row)
        if n <= 0:
            raise ValueError(f"grid_size must be positive, got {self.grid_size}")
        if spr <= 0:
            raise ValueError(f"slices_per_row must be positive, got {self.slices_per_row}")
        object.__setattr__(self, "grid_size", n)
        object.__setattr__(self, "slices_per_row", spr)
        if spr * self.slice_rows < n:
            raise ValueError(f"atlas with slices_per_row={spr} cannot hold {n} slices")

    @classmethod
    def for_grid(cls, grid_size: int, slices_per_row: int | None = None) -> "AtlasLayout":
        spr = default_slices_per_row(grid_size) if slices_per_row is None else slices_per_row
        return cls(grid_size=grid_size, slices_per_row=spr)

    @property
    def slice_rows(self) -> int:
        return -(-self.grid_size // self.slices_per_row)

    @property
    def width(self) -> int:
        return self.grid_size * self.slices_per_row

    @property
    def height(self) -> int:
        return self.grid_size * self.slice_rows

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width), row-major like an image."""
        return self.height, self.width

    @property
    def is_square(self) -> bool:
        return self.width == self.height

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------

    def voxel_to_texel(self, voxels: torch.Tensor) -> torch.Tensor:
        """(..., 3) voxel (x,y,z) -> (..., 2) texel (tx, ty). Voxels are wrapped first."""
        if voxels.shape[-1] != 3:
            raise ValueError(f"voxels must have a trailing axis of 3, got {tuple(voxels.shape)}")
        n, spr = self.grid_size, self.slices_per_row
        v = wrap_voxel_index(voxels.to(torch.int64), n)
        slice_row = torch.div(v[..., 2], spr, rounding_mode="floor")
        slice_col = v[..., 2] - slice_row * spr
        tx = slice_col * n + v[..., 0]
        ty = slice_row * n + v[..., 1]
        return torch.stack([tx, ty], dim=-1)

    def texel_to_voxel(self, texels: torch.Tensor) -> torch.Tensor:
        """(..., 2) texel -> (..., 3) voxel. Rejects texels outside the used tiles."""
        if texels.shape[-1] != 2:
            raise ValueError(f"texels must have a trailing axis of 2, got {tuple(texels.shape)}")
        n, spr = self.grid_size, self.slices_per_row
        t = texels.to(torch.int64)
        tx, ty = t[..., 0], t[..., 1]
        if bool(((tx < 0) | (tx >= self.width) | (ty < 0) | (ty >= self.height)).any()):
            raise ValueError(f"texel outside {self.width}x{self.height} atlas")
        slice_col = torch.div(tx, n, rounding_mode="floor")
        slice_row = torch.div(ty, n, rounding_mode="floor")
        vz = slice_row * spr + slice_col
        if bool((vz >= n).any()):
            raise ValueError(f"texel lies in an unused tile (slice index >= {n})")
        return torch.stack([tx - slice_col * n, ty - slice_row * n, vz], dim=-1)

    def texel_to_ndc(self, texels: torch.Tensor, *, flip_y: bool = False) -> torch.Tensor:
        """Pixel-centre point placement: ``(texel + 0.5) / size * 2 - 1``.

        ``flip_y`` selects the top-down row convention; it must match whatever
        reads the atlas back or voxels shift by one row.
        """
        size = torch.tensor([self.width, self.height], device=texels.device, dtype=torch.float32)
        ndc = (texels.to(torch.float32) + 0.5) / size * 2.0 - 1.0
        if flip_y:
            ndc = ndc * torch.tensor([1.0, -1.0], device=texels.device)
        return ndc

    def ndc_to_texel(self, ndc: torch.Tensor, *, flip_y: bool = False) -> torch.Tensor:
        if flip_y:
            ndc = ndc * torch.tensor([1.0, -1.0], device=ndc.device, dtype=ndc.dtype)
        size = torch.tensor([self.width, self.height], device=ndc.device, dtype=ndc.dtype)
        return torch.floor((ndc + 1.0) * 0.5 * size).to(torch.int64)

    # ------------------------------------------------------------------
    # Whole-grid packing
    # ------------------------------------------------------------------

    def pack_grid(self, grid: torch.Tensor) -> torch.Tensor:
        """(n, n, n, C) grid in (z, y, x) order -> (height, width, C) atlas."""
        n, spr = self.grid_size, self.slices_per_row
        if grid.ndim != 4 or tuple(grid.shape[:3]) != (n, n, n):
            raise ValueError(f"grid must have shape ({n},{n},{n},C), got {tuple(grid.shape)}")
        c = grid.shape[3]
        tiles = grid.new_zeros(self.slice_rows * spr, n, n, c)
        tiles[:n] = grid
        # (rows, cols, y, x, C) -> (rows, y, cols, x, C)
        tiles = tiles.view(self.slice_rows, spr, n, n, c).permute(0, 2, 1, 3, 4)
        return tiles.reshape(self.height, self.width, c)

    def unpack_atlas(self, atlas: torch.Tensor) -> torch.Tensor:
        """(height, width, C) atlas -> (n, n, n, C) grid. Unused tiles are dropped."""
        n, spr = self.grid_size, self.slices_per_row
        if atlas.ndim != 3 or tuple(atlas.shape[:2]) != self.shape:
            raise ValueError(f"atlas must have shape ({self.height},{self.width},C), got {tuple(atlas.shape)}")
        c = atlas.shape[2]
        tiles = atlas.reshape(self.slice_rows, n, spr, n, c).permute(0, 2, 1, 3, 4)
        return tiles.reshape(self.slice_rows * spr, n, n, c)[:n].contiguous()
