"""Compact string encoding for embedding vectors.

Used for ``encoding_format="base64"`` responses: the vector is cast to
float32 and its little-endian IEEE-754 bytes are base64 encoded. Any client
can decode with ``numpy.frombuffer(base64.b64decode(s), dtype="<f4")``.
"""

import base64
from typing import Sequence

import numpy as np


def float32_to_base64(vector: Sequence[float]) -> str:
    """Encode a vector as base64 of its little-endian float32 bytes."""
    return base64.b64encode(np.asarray(vector, dtype="<f4").tobytes()).decode("ascii")
