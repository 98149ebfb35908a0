"""Tests for the base64 float32 vector encoding."""

import base64
import struct

import numpy as np

from app.encoders.codec import float32_to_base64


def test_round_trip_with_standard_reader():
    encoded = float32_to_base64([1.0, -2.5, 0.0])
    decoded = np.frombuffer(base64.b64decode(encoded), dtype="<f4")
    assert decoded.tolist() == [1.0, -2.5, 0.0]


def test_byte_layout_is_little_endian_float32():
    encoded = float32_to_base64([1.0, -2.5])
    assert base64.b64decode(encoded) == struct.pack("<2f", 1.0, -2.5)
    assert encoded == "AACAPwAAIMA="


def test_values_are_cast_to_float32():
    vector = [0.1, 1e-8, 123456.789]
    decoded = struct.unpack("<3f", base64.b64decode(float32_to_base64(vector)))
    assert list(decoded) == np.asarray(vector, dtype=np.float32).tolist()


def test_empty_vector():
    assert float32_to_base64([]) == ""
