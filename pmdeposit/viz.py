from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .kernels.deposit import DepositGrid

_CHANNELS = {"mx": 0, "my": 1, "mz": 2, "mass": 3}


def plot_atlas(result: DepositGrid, out_png: Path, *, channel: str = "mass") -> Path:
    """Render one channel of the packed atlas as a heatmap with tile outlines."""
    if channel not in _CHANNELS:
        raise ValueError(f"channel must be one of {sorted(_CHANNELS)}, got {channel!r}")

    layout = result.layout
    atlas = result.atlas()[..., _CHANNELS[channel]].detach().to("cpu").float().numpy()
    n = layout.grid_size

    fig, ax = plt.subplots(figsize=(8, 8 * layout.height / layout.width))
    im = ax.imshow(atlas, origin="lower", interpolation="nearest", cmap="magma")
    fig.colorbar(im, ax=ax, label=channel)

    for col in range(1, layout.slices_per_row):
        ax.axvline(col * n - 0.5, color="white", linewidth=0.5, alpha=0.5)
    for row in range(1, layout.slice_rows):
        ax.axhline(row * n - 0.5, color="white", linewidth=0.5, alpha=0.5)
    for z in range(n):
        ax.text(
            (z % layout.slices_per_row) * n,
            (z // layout.slices_per_row) * n,
            f"z={z}",
            color="white",
            fontsize=6,
            va="bottom",
        )

    ax.set_title(f"{result.assignment.value.upper()} deposit, {n}³ grid, total mass {result.total_mass():.4g}")
    ax.set_xlabel("texel x")
    ax.set_ylabel("texel y")

    out_png.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_png)
    plt.close(fig)
    return out_png
