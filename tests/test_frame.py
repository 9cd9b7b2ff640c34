from __future__ import annotations

import numpy as np
import pytest

from temporalmix import Frame, ShapeMismatch
from temporalmix.frame import check_same_layout, dtype_for_bit_depth


def test_frame_promotes_grayscale_and_is_read_only():
    src = np.arange(12, dtype=np.uint8).reshape(3, 4)
    frame = Frame(src)
    assert frame.data.shape == (3, 4, 1)
    assert frame.layout == (3, 4, 1, 8)
    with pytest.raises(ValueError):
        frame.data[0, 0, 0] = 1
    # the caller's array stays writable
    src[0, 0] = 7
    assert frame.data[0, 0, 0] == 7


def test_frame_rejects_signed_or_oversized_depth():
    with pytest.raises(ValueError):
        Frame(np.zeros((2, 2), dtype=np.int16))
    with pytest.raises(ValueError):
        Frame(np.zeros((2, 2), dtype=np.uint8), bit_depth=10)
    with pytest.raises(ValueError):
        Frame(np.zeros((2,), dtype=np.uint8))


def test_samples_must_fit_bit_depth():
    with pytest.raises(ValueError):
        Frame(np.full((2, 2), 4000, dtype=np.uint16), bit_depth=10)
    frame = Frame(np.full((2, 2), 1023, dtype=np.uint16), bit_depth=10)
    assert frame.max_value == 1023


def test_from_array_takes_depth_from_dtype():
    frame = Frame.from_array(np.zeros((2, 2, 3), dtype=np.uint16))
    assert frame.bit_depth == 16
    assert frame.max_value == 65535


def test_filled_uses_smallest_dtype():
    frame = Frame.filled(2, 3, 1000, channels=3, bit_depth=10)
    assert frame.dtype == np.uint16
    assert frame.max_value == 1023
    assert int(frame.data.max()) == 1000
    with pytest.raises(ValueError):
        Frame.filled(2, 2, 1024, bit_depth=10)
    assert dtype_for_bit_depth(12) == np.uint16
    assert dtype_for_bit_depth(24) == np.uint32


def test_with_index_shares_samples():
    frame = Frame.filled(4, 4, 9)
    moved = frame.with_index(5)
    assert moved.index == 5
    assert frame.index == 0
    assert np.shares_memory(frame.data, moved.data)
    assert frame.with_index(0) is frame


def test_check_same_layout_reports_both_layouts():
    a = Frame.filled(2, 2, 0)
    b = Frame.filled(2, 3, 0)
    with pytest.raises(ShapeMismatch) as info:
        check_same_layout(a, b, "test")
    assert info.value.expected == (2, 2, 1, 8)
    assert info.value.actual == (2, 3, 1, 8)


def test_as_uint8_rescales_deep_frames():
    frame = Frame.filled(1, 1, 1023, bit_depth=10)
    assert frame.as_uint8()[0, 0, 0] == 255
    low = Frame.filled(1, 1, 1, bit_depth=1)
    assert low.as_uint8()[0, 0, 0] == 128
