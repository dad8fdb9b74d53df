"""NGP / CIC weight tests (partition of unity, corner layout, grid-line degeneracy)."""

from __future__ import annotations

import pytest
import torch

from pmdeposit.kernels.assignment import (
    CIC_OFFSETS,
    Assignment,
    assignment_weights,
    corner_offsets,
    corner_weight,
    deposit_stencil,
)
from pmdeposit.kernels.domain import GridCoordinates


def _coords(base, frac) -> GridCoordinates:
    base_t = torch.tensor(base, dtype=torch.int64)
    frac_t = torch.tensor(frac, dtype=torch.float64)
    return GridCoordinates(grid_pos=base_t.to(torch.float64) + frac_t, base=base_t, frac=frac_t)


@pytest.mark.parametrize("value,expected", [
    ("ngp", Assignment.NGP),
    ("NGP", Assignment.NGP),
    (" cic ", Assignment.CIC),
    (Assignment.CIC, Assignment.CIC),
])
def test_parse_assignment(value, expected):
    assert Assignment.parse(value) is expected


@pytest.mark.parametrize("value", ["tsc", "", 1, None])
def test_parse_assignment_rejects_unknown(value):
    with pytest.raises(ValueError):
        Assignment.parse(value)


def test_corner_offsets_order():
    offs = corner_offsets("cic")
    assert offs.shape == (8, 3)
    assert [tuple(o) for o in offs.tolist()] == list(CIC_OFFSETS)
    # x is the fastest-varying bit
    assert offs[:, 0].tolist() == [0, 1, 0, 1, 0, 1, 0, 1]
    assert corner_offsets("ngp").tolist() == [[0, 0, 0]]


def test_cic_weights_sum_to_one():
    gen = torch.Generator().manual_seed(7)
    frac = torch.rand(10_000, 3, generator=gen, dtype=torch.float64)
    w = assignment_weights(frac, Assignment.CIC)
    assert w.shape == (10_000, 8)
    assert (w >= 0.0).all() and (w <= 1.0).all()
    assert torch.allclose(w.sum(dim=1), torch.ones(10_000, dtype=torch.float64), atol=1e-6, rtol=0.0)


def test_cic_weights_sum_to_one_float32():
    gen = torch.Generator().manual_seed(8)
    frac = torch.rand(10_000, 3, generator=gen)
    w = assignment_weights(frac, "cic")
    assert torch.allclose(w.sum(dim=1), torch.ones(10_000), atol=1e-6, rtol=0.0)


def test_ngp_weight_is_one():
    frac = torch.rand(50, 3)
    w = assignment_weights(frac, Assignment.NGP)
    assert w.shape == (50, 1)
    assert torch.equal(w, torch.ones(50, 1))


def test_corner_weight_matches_product():
    frac = torch.tensor([[0.25, 0.5, 0.75]], dtype=torch.float64)
    assert float(corner_weight(frac, (0, 0, 0))) == pytest.approx(0.75 * 0.5 * 0.25)
    assert float(corner_weight(frac, (1, 0, 1))) == pytest.approx(0.25 * 0.5 * 0.75)
    assert float(corner_weight(frac, (1, 1, 1))) == pytest.approx(0.25 * 0.5 * 0.75)


def test_grid_line_degenerates_to_ngp_on_that_axis():
    frac = torch.tensor([[0.0, 0.3, 0.6]], dtype=torch.float64)
    w = assignment_weights(frac, Assignment.CIC)[0]
    offs = corner_offsets("cic")
    assert torch.all(w[offs[:, 0] == 1] == 0.0)
    assert float(w[offs[:, 0] == 0].sum()) == pytest.approx(1.0)


def test_stencil_wraps_upper_corners():
    st = deposit_stencil(_coords([[3, 0, 3]], [[0.5, 0.5, 0.5]]), Assignment.CIC, 4)
    voxels = {tuple(v) for v in st.voxels[0].tolist()}
    assert voxels == {(x, y, z) for x in (3, 0) for y in (0, 1) for z in (3, 0)}
    assert st.corners == 8
    assert torch.allclose(st.weights, torch.full((1, 8), 0.125, dtype=torch.float64))


def test_stencil_ngp_uses_base_voxel():
    st = deposit_stencil(_coords([[1, 2, 3], [0, 0, 0]], [[0.9, 0.1, 0.5], [0.0, 0.0, 0.0]]), "ngp", 4)
    assert st.voxels.shape == (2, 1, 3)
    assert st.voxels[:, 0].tolist() == [[1, 2, 3], [0, 0, 0]]
    assert st.corners == 1


def test_assignment_weights_shape_check():
    with pytest.raises(ValueError):
        assignment_weights(torch.zeros(4, 2), "cic")
