"""pmdeposit: particle-mesh mass deposition on a periodic voxel grid.

This package contains:
- **Kernels** (`pmdeposit.kernels`): domain wrap, NGP/CIC weights, atlas packing,
  and the scatter-reduce deposit pass, all pure torch.
- **Host side**: `DepositConfig`, `ParticleBuffer` and the per-frame `DepositPass`.
"""

from __future__ import annotations

__all__ = [
    "Assignment",
    "DepositConfig",
    "DepositGrid",
    "DepositPass",
    "DomainBounds",
    "ParticleBuffer",
    "deposit_mass",
]


def __getattr__(name: str):  # pragma: no cover
    # Keep imports lazy so `pmdeposit.kernels.*` can be used without the host layer.
    if name in ("Assignment", "DepositConfig"):
        from . import config as _config

        return getattr(_config, name)
    if name in ("DepositGrid", "deposit_mass"):
        from .kernels import deposit as _deposit

        return getattr(_deposit, name)
    if name == "DepositPass":
        from .pipeline import DepositPass as _DepositPass

        return _DepositPass
    if name == "DomainBounds":
        from .kernels.domain import DomainBounds as _DomainBounds

        return _DomainBounds
    if name == "ParticleBuffer":
        from .particles import ParticleBuffer as _ParticleBuffer

        return _ParticleBuffer
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
