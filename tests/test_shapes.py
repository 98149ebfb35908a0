"""Tests for inference output normalization."""

from array import array
from types import SimpleNamespace

import numpy as np
import pytest
import torch

from app.encoders.errors import UnexpectedOutputShape
from app.encoders.shapes import (
    DenseTensor,
    FlatVector,
    VectorList,
    decode_raw_output,
    to_matrix,
)

EXPECTED = [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]


def normalize(output):
    return to_matrix(decode_raw_output(output))


def test_equivalent_layouts_yield_same_matrix():
    """Tensor descriptor, per-item buffers and single-vector calls agree."""
    tensor_rows = normalize({"dims": [2, 3], "data": [1, 2, 3, 4, 5, 6]})
    list_rows = normalize([[1, 2, 3], [4, 5, 6]])
    single_rows = normalize([1, 2, 3]) + normalize([4, 5, 6])

    assert tensor_rows == list_rows == single_rows == EXPECTED


@pytest.mark.parametrize(
    "output,variant",
    [
        (np.zeros((2, 3), dtype=np.float32), DenseTensor),
        (torch.zeros(2, 3), DenseTensor),
        (SimpleNamespace(dims=[2, 3], data=array("f", range(6))), DenseTensor),
        (array("f", [1.0, 2.0]), FlatVector),
        ((0.1, 0.2), FlatVector),
        ([np.zeros(3), np.ones(3)], VectorList),
        ([{"data": [1, 2]}], VectorList),
    ],
)
def test_decode_classifies_variants(output, variant):
    assert isinstance(decode_raw_output(output), variant)


def test_numpy_matrix_rows():
    rows = normalize(np.arange(6, dtype=np.float32).reshape(2, 3))
    assert rows == [[0.0, 1.0, 2.0], [3.0, 4.0, 5.0]]


def test_torch_tensor_rows():
    rows = normalize(torch.tensor([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]))
    assert rows == EXPECTED


@pytest.mark.parametrize("dtype", [torch.bfloat16, torch.float16])
def test_half_precision_tensor_rows(dtype):
    """Half-precision model output is upcast instead of crashing numpy."""
    rows = normalize(torch.tensor([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]], dtype=dtype))
    assert rows == EXPECTED


def test_unconvertible_tensor_raises_shape_error():
    class BrokenTensor:
        def detach(self):
            raise RuntimeError("tensor lives on a lost device")

    with pytest.raises(UnexpectedOutputShape):
        normalize(BrokenTensor())
    with pytest.raises(UnexpectedOutputShape):
        normalize([BrokenTensor()])


def test_rank_one_tensor_is_single_row():
    assert normalize(np.array([1.0, 2.0, 3.0])) == [[1.0, 2.0, 3.0]]
    assert normalize({"dims": [3], "data": [1, 2, 3]}) == [[1.0, 2.0, 3.0]]


def test_wrapped_items():
    items = [SimpleNamespace(data=array("f", [1, 2, 3])), {"data": np.array([4, 5, 6])}]
    assert normalize(items) == EXPECTED


def test_float32_values_survive_exactly():
    values = np.array([[0.1, -2.5, 1e-7]], dtype=np.float32)
    rows = normalize(values)
    assert np.array_equal(np.asarray(rows, dtype=np.float32), values)


def test_empty_list_has_no_rows():
    assert normalize([]) == []


@pytest.mark.parametrize(
    "output",
    [
        "not a vector",
        b"\x00\x00",
        42,
        None,
        {"data": [1, 2, 3]},
        {"dims": [], "data": [1]},
        {"dims": [2, 3], "data": [1, 2, 3, 4, 5]},
        {"dims": [2, 0], "data": []},
        {"dims": ["a"], "data": [1]},
        [[1, 2, 3], [4, 5]],
        [[1, 2], "xy"],
        [["a", "b"]],
        [[]],
        [1, [2, 3]],
        np.zeros((2, 4, 3)),
    ],
)
def test_invalid_outputs_raise(output):
    with pytest.raises(UnexpectedOutputShape):
        normalize(output)


def test_to_matrix_rejects_unknown_variant():
    with pytest.raises(UnexpectedOutputShape):
        to_matrix(object())
