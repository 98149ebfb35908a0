"""Normalization of raw inference output into a row matrix.

Inference backends hand back embeddings in different layouts depending on
the library version and the call (numpy arrays, torch tensors, a single flat
vector, or a list of per-item vectors). ``decode_raw_output`` classifies a
result into one of three explicit variants and ``to_matrix`` turns a variant
into ``List[List[float]]`` with one equal-width row per input text.

Variants
- ``DenseTensor``: flat buffer plus a shape descriptor; rows = ``dims[0]``
  (1 for rank 1), width = ``dims[-1]``, sliced row-major
- ``FlatVector``: one flat buffer without shape, exactly one row
- ``VectorList``: one buffer per item (or an object/mapping wrapping the
  buffer in ``data``), one row per item
"""

import numbers
from array import array
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple, Union

import numpy as np

from .errors import UnexpectedOutputShape


@dataclass(frozen=True)
class DenseTensor:
    dims: Tuple[int, ...]
    data: Any


@dataclass(frozen=True)
class FlatVector:
    data: Any


@dataclass(frozen=True)
class VectorList:
    items: Sequence[Any]


RawOutput = Union[DenseTensor, FlatVector, VectorList]


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def _to_numpy(value: Any) -> Any:
    # torch tensors, possibly on an accelerator or in a half-precision dtype
    # numpy cannot represent (bfloat16)
    if hasattr(value, "detach"):
        try:
            return value.detach().float().cpu().numpy()
        except (TypeError, RuntimeError) as e:
            raise UnexpectedOutputShape(f"Cannot convert tensor output: {e}") from e
    return value


def decode_raw_output(output: Any) -> RawOutput:
    """Classify an inference result into a ``RawOutput`` variant.

    Raises ``UnexpectedOutputShape`` when the value matches no variant.
    """
    if isinstance(output, (DenseTensor, FlatVector, VectorList)):
        return output

    output = _to_numpy(output)
    if isinstance(output, np.ndarray):
        return DenseTensor(dims=tuple(output.shape), data=output.reshape(-1))

    if isinstance(output, Mapping):
        if "dims" in output and "data" in output:
            return DenseTensor(dims=_dims(output["dims"]), data=output["data"])
        raise UnexpectedOutputShape("Mapping output must carry 'dims' and 'data'")

    if isinstance(output, (str, bytes, bytearray)):
        raise UnexpectedOutputShape(f"Unsupported embedding output type: {type(output).__name__}")

    if isinstance(output, array):
        return FlatVector(data=output)

    if isinstance(output, (list, tuple)):
        if output and all(_is_number(value) for value in output):
            return FlatVector(data=output)
        return VectorList(items=list(output))

    dims = getattr(output, "dims", None)
    data = getattr(output, "data", None)
    if dims is not None and data is not None:
        return DenseTensor(dims=_dims(dims), data=data)

    raise UnexpectedOutputShape(f"Unsupported embedding output type: {type(output).__name__}")


def _dims(dims: Any) -> Tuple[int, ...]:
    try:
        return tuple(int(d) for d in dims)
    except (TypeError, ValueError) as e:
        raise UnexpectedOutputShape(f"Invalid shape descriptor: {dims!r}") from e


def _flat(buffer: Any) -> np.ndarray:
    try:
        return np.asarray(_to_numpy(buffer), dtype=np.float64)
    except (TypeError, ValueError, RuntimeError) as e:
        raise UnexpectedOutputShape(f"Non-numeric embedding buffer: {e}") from e


def _as_row(buffer: Any) -> List[float]:
    values = _flat(buffer)
    if values.ndim != 1:
        raise UnexpectedOutputShape(f"Expected a flat vector, got shape {values.shape}")
    if values.size == 0:
        raise UnexpectedOutputShape("Empty embedding vector")
    return values.tolist()


def _item_buffer(item: Any) -> Any:
    if isinstance(item, (np.ndarray, list, tuple, array)) or hasattr(item, "detach"):
        return item
    if isinstance(item, Mapping):
        if "data" not in item:
            raise UnexpectedOutputShape("Mapping item must carry 'data'")
        return item["data"]
    data = getattr(item, "data", None)
    if data is None:
        raise UnexpectedOutputShape(f"Unsupported embedding item type: {type(item).__name__}")
    return data


def _dense_rows(tensor: DenseTensor) -> List[List[float]]:
    dims = _dims(tensor.dims)
    if not dims:
        raise UnexpectedOutputShape("Scalar output has no embedding dimension")
    rows = dims[0] if len(dims) > 1 else 1
    width = dims[-1]
    if width <= 0:
        raise UnexpectedOutputShape(f"Invalid embedding width {width}")

    values = _flat(tensor.data).reshape(-1)
    if values.size != rows * width:
        raise UnexpectedOutputShape(
            f"Buffer of {values.size} values does not match shape {list(dims)}"
        )
    return values.reshape(rows, width).tolist()


def to_matrix(raw: RawOutput) -> List[List[float]]:
    """Flatten a ``RawOutput`` into equal-width rows, preserving order."""
    if isinstance(raw, DenseTensor):
        return _dense_rows(raw)

    if isinstance(raw, FlatVector):
        return [_as_row(raw.data)]

    if isinstance(raw, VectorList):
        rows = [_as_row(_item_buffer(item)) for item in raw.items]
        if rows:
            width = len(rows[0])
            for index, row in enumerate(rows):
                if len(row) != width:
                    raise UnexpectedOutputShape(
                        f"Row {index} has width {len(row)}, expected {width}"
                    )
        return rows

    raise UnexpectedOutputShape(f"Unsupported raw output variant: {type(raw).__name__}")
