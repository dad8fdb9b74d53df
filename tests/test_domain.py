"""Tests for toroidal domain wrap and voxel addressing.

Run with:
    pytest tests/test_domain.py -v
"""

from __future__ import annotations

import pytest
import torch

from pmdeposit.kernels.domain import (
    EPSILON_EXTENT,
    DomainBounds,
    bounds_from_positions,
    grid_coordinates,
    wrap_positions,
    wrap_voxel_index,
)


@pytest.fixture
def bounds():
    return DomainBounds(lo=(-2.0, -3.0, 0.5), hi=(3.0, 1.0, 7.5))


def _random_positions(n: int, scale: float, *, seed: int = 0, dtype=torch.float64) -> torch.Tensor:
    gen = torch.Generator().manual_seed(seed)
    return (torch.rand(n, 3, generator=gen, dtype=dtype) * 2.0 - 1.0) * scale


def test_wrap_stays_inside_domain(bounds):
    pos = _random_positions(5000, 1e4)
    out = wrap_positions(pos, bounds)
    lo = torch.tensor(bounds.lo, dtype=out.dtype)
    hi = torch.tensor(bounds.hi, dtype=out.dtype)
    assert (out >= lo).all()
    assert (out < hi).all()


def test_wrap_is_idempotent(bounds):
    pos = _random_positions(5000, 250.0, seed=1)
    once = wrap_positions(pos, bounds)
    twice = wrap_positions(once, bounds)
    torch.testing.assert_close(twice, once, rtol=0.0, atol=1e-9)


def test_wrap_leaves_inside_points_alone(bounds):
    pos = torch.tensor([[0.0, 0.0, 1.0], [-2.0, -3.0, 0.5], [2.5, 0.9, 7.0]], dtype=torch.float64)
    torch.testing.assert_close(wrap_positions(pos, bounds), pos)


def test_wrap_handles_many_periods_in_one_step():
    b = DomainBounds(lo=(0.0, 0.0, 0.0), hi=(10.0, 10.0, 10.0))
    pos = torch.tensor([[1003.0, -997.0, 10.0]], dtype=torch.float64)
    out = wrap_positions(pos, b)
    torch.testing.assert_close(out, torch.tensor([[3.0, 3.0, 0.0]], dtype=torch.float64))


def test_wrap_float32_never_reaches_upper_bound():
    b = DomainBounds(lo=(0.0, 0.0, 0.0), hi=(1.0, 1.0, 1.0))
    pos = torch.full((1, 3), -1e-9, dtype=torch.float32)
    out = wrap_positions(pos, b)
    assert (out >= 0.0).all() and (out < 1.0).all()


@pytest.mark.parametrize("n", [1, 4, 10, 17])
def test_wrap_voxel_index_range(n):
    coords = torch.arange(-3 * n - 2, 3 * n + 2, dtype=torch.int64)
    out = wrap_voxel_index(coords, n)
    assert int(out.min()) >= 0
    assert int(out.max()) < n
    assert torch.equal(out, torch.remainder(coords, n))


def test_wrap_voxel_index_minus_one_is_last():
    out = wrap_voxel_index(torch.tensor([-1, 0, 8, 9, 10]), 9)
    assert out.tolist() == [8, 0, 8, 0, 1]


def test_wrap_voxel_index_floors_real_coordinates():
    out = wrap_voxel_index(torch.tensor([-0.5, 3.7, 4.0]), 4)
    assert out.tolist() == [3.0, 3.0, 0.0]


def test_wrap_voxel_index_rejects_bad_grid():
    with pytest.raises(ValueError):
        wrap_voxel_index(torch.tensor([1]), 0)


def test_grid_coordinates_split(bounds):
    pos = _random_positions(2000, 1e3, seed=2)
    coords = grid_coordinates(wrap_positions(pos, bounds), bounds, 16)
    assert coords.base.dtype == torch.int64
    assert int(coords.base.min()) >= 0 and int(coords.base.max()) < 16
    assert (coords.frac >= 0.0).all() and (coords.frac < 1.0).all()


def test_voxel_address_in_range_for_far_positions_float32():
    b = DomainBounds(lo=(-1.0, -1.0, -1.0), hi=(1.0, 1.0, 1.0))
    pos = _random_positions(4000, 1e6, seed=3, dtype=torch.float32)
    coords = grid_coordinates(wrap_positions(pos, b), b, 32)
    assert int(coords.base.min()) >= 0
    assert int(coords.base.max()) < 32


def test_degenerate_extent_is_clamped():
    b = DomainBounds(lo=(0.0, 0.0, 5.0), hi=(1.0, 1.0, 5.0))
    assert b.extent[2] == pytest.approx(EPSILON_EXTENT)
    assert b.is_degenerate
    pos = torch.tensor([[0.5, 0.5, 5.0]], dtype=torch.float64)
    coords = grid_coordinates(wrap_positions(pos, b), b, 8)
    assert torch.isfinite(coords.grid_pos).all()
    assert coords.base.tolist() == [[4, 4, 0]]


def test_non_finite_positions_propagate():
    b = DomainBounds(lo=(0.0, 0.0, 0.0), hi=(1.0, 1.0, 1.0))
    pos = torch.tensor([[float("nan"), 0.5, 0.5]])
    coords = grid_coordinates(wrap_positions(pos, b), b, 4)
    assert torch.isnan(coords.frac[0, 0])
    assert int(coords.base.min()) >= 0 and int(coords.base.max()) < 4


def test_bounds_rejects_malformed():
    with pytest.raises(ValueError):
        DomainBounds(lo=(0.0, 0.0), hi=(1.0, 1.0, 1.0))
    with pytest.raises(ValueError):
        DomainBounds(lo=(0.0, 0.0, float("inf")), hi=(1.0, 1.0, 1.0))


def test_bounds_from_positions_skips_non_finite_and_padding():
    pos = torch.tensor(
        [
            [1.0, -2.0, 0.0],
            [3.0, float("nan"), 4.0],
            [float("inf"), 5.0, -1.0],
            [100.0, 100.0, 100.0],  # padding row
        ]
    )
    masses = torch.tensor([1.0, 1.0, 1.0, 0.0])
    b = bounds_from_positions(pos, masses)
    assert b.lo == (1.0, -2.0, -1.0)
    assert b.hi == (3.0, 5.0, 4.0)


def test_bounds_from_positions_padding():
    pos = torch.tensor([[0.0, 0.0, 0.0], [10.0, 1.0, 0.0]])
    b = bounds_from_positions(pos, padded=True)
    assert b.lo[0] == pytest.approx(-1.0) and b.hi[0] == pytest.approx(11.0)
    assert b.lo[1] == pytest.approx(-0.5) and b.hi[1] == pytest.approx(1.5)
    assert b.lo[2] == pytest.approx(-0.5) and b.hi[2] == pytest.approx(0.5)


def test_bounds_from_positions_without_samples():
    pos = torch.full((2, 3), float("nan"))
    b = bounds_from_positions(pos)
    assert b.lo == (0.0, 0.0, 0.0) and b.hi == (0.0, 0.0, 0.0)
    assert b.is_degenerate
