"""Deposit kernels for pmdeposit.

Pure torch implementations of the particle → grid path: toroidal domain wrap,
NGP/CIC assignment weights, 3D grid ↔ 2D atlas packing, and the scatter-reduce
accumulation that replaces rasterization with additive blending.
"""
from __future__ import annotations

__all__: list[str] = []
