"""Host-side orchestration of the per-frame deposit pass."""

from __future__ import annotations

from typing import Optional, Union

import torch
from torch.profiler import record_function

from .config import DepositConfig
from .console import console
from .kernels.deposit import CHANNELS, DepositGrid, deposit_mass
from .kernels.domain import DomainBounds
from .kernels.runtime import synchronize
from .particles import ParticleBuffer
from .profiler import create_profiler

__all__ = ["DepositPass"]


class DepositPass:
    """Reusable deposit pass with a pre-allocated accumulator.

    The accumulator is cleared at the start of every frame, so the grid
    returned by :meth:`run` is only valid until the next call.
    """

    def __init__(self, config: DepositConfig, *, verbose: bool = False) -> None:
        self.config = config
        self.verbose = verbose
        n = config.grid_size
        self._accumulator = torch.zeros(
            n, n, n, CHANNELS,
            device=torch.device(config.device),
            dtype=config.dtype,
        )
        self.render_count = 0
        self.particle_count = 0
        self._profiler = create_profiler(config)
        if self._profiler is not None:
            self._profiler.start()
        if verbose:
            layout = config.layout
            console.info(
                f"Deposit pass ready: {config.assignment.value.upper()} {n}³ grid",
                detail=f"atlas {layout.width}×{layout.height}, device {config.device}",
            )

    @property
    def bounds(self) -> DomainBounds:
        return self.config.bounds

    def update_bounds(self, bounds: DomainBounds) -> None:
        """Retarget the domain (e.g. from ``ParticleBuffer.bounds()``) for later frames."""
        self.config = self.config.with_bounds(bounds)
        if bounds.is_degenerate and self.verbose:
            console.warn("Degenerate domain axis clamped", detail=str(bounds))

    def run(
        self,
        particles: Union[ParticleBuffer, torch.Tensor],
        masses: Optional[torch.Tensor] = None,
    ) -> DepositGrid:
        """Deposit one frame. Accepts a :class:`ParticleBuffer` or (N,3) positions + (N,) masses."""
        if isinstance(particles, ParticleBuffer):
            if masses is not None:
                raise ValueError("masses must not be given together with a ParticleBuffer")
            positions, masses = particles.positions, particles.masses
        else:
            if masses is None:
                raise ValueError("masses are required when passing raw positions")
            positions = particles

        with record_function("deposit_pass"):
            result = deposit_mass(positions, masses, self.config, out=self._accumulator)
        # all contributions must land before any consumer reads the grid
        synchronize(self._accumulator.device)

        self.render_count += 1
        self.particle_count = result.particle_count
        if self._profiler is not None:
            self._profiler.step()
        if self.verbose:
            console.table(f"Deposit #{self.render_count}", result.summary())
        return result

    __call__ = run

    def close(self) -> None:
        if self._profiler is not None:
            self._profiler.stop()
            self._profiler = None

    def __enter__(self) -> "DepositPass":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def describe(self) -> str:
        cfg = self.config
        n = cfg.grid_size
        layout = cfg.layout
        return (
            f"DepositPass({self.particle_count} particles→{n}×{n}×{n} grid) "
            f"assignment={cfg.assignment.value} atlas={layout.width}×{layout.height} "
            f"#{self.render_count} bounds={cfg.bounds}"
        )

    def __str__(self) -> str:
        return self.describe()
