"""Backend availability detection (CUDA + Metal/MPS)

The deposit kernels are plain torch, so they run wherever torch runs.
These helpers only decide which device a pass should default to and how
to place the single barrier between the deposit pass and its consumer.
"""

from __future__ import annotations

import platform
from typing import TYPE_CHECKING

import torch

__all__ = [
    "metal_supported",
    "get_device",
    "resolve_device",
    "synchronize",
]


def metal_supported() -> bool:
    """Whether the current runtime *can* execute on Metal (MPS).

    This indicates platform + PyTorch MPS support only.
    """
    if TYPE_CHECKING:
        return False

    if platform.system() != "Darwin":
        return False

    try:
        return bool(torch.backends.mps.is_available())
    except AttributeError:
        return False

def get_device() -> str:
    """Pick the best available device for deposition."""
    if torch.cuda.is_available():
        return "cuda"
    if metal_supported():
        return "mps"

    return "cpu"

def resolve_device(name: str | None) -> str:
    """Map ``None``/``"auto"`` to :func:`get_device`, validate everything else."""
    if name is None or name == "auto":
        return get_device()
    dev = torch.device(name)
    if dev.type == "cuda" and not torch.cuda.is_available():
        raise RuntimeError(f"device {name!r} requested but CUDA is not available")
    if dev.type == "mps" and not metal_supported():
        raise RuntimeError(f"device {name!r} requested but MPS is not available")
    return str(dev)

def synchronize(device: torch.device | str) -> None:
    """Block until every queued kernel on ``device`` has completed."""
    dev = torch.device(device)
    if dev.type == "cuda":
        torch.cuda.synchronize(dev)
    elif dev.type == "mps":
        torch.mps.synchronize()
