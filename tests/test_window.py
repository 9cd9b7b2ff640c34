from __future__ import annotations

import numpy as np
import pytest

from temporalmix import ConfigurationError, Frame, IncompleteWindow, SlidingWindow


def _pixel(value: int, index: int = 0) -> Frame:
    return Frame(np.full((1, 1), value % 256, dtype=np.uint8), index=index)


def test_offsets_count_back_from_newest():
    window = SlidingWindow(3)
    for i in range(5):
        window.push(_pixel(i, index=i))
    assert window.is_full
    assert [window.at(k).index for k in range(3)] == [4, 3, 2]
    assert window.newest().index == 4
    assert [f.index for f in window.frames()] == [2, 3, 4]


def test_push_returns_evicted_frame():
    window = SlidingWindow(2)
    first = _pixel(1, index=0)
    assert window.push(first) is None
    assert window.push(_pixel(2, index=1)) is None
    assert window.push(_pixel(3, index=2)) is first


def test_incomplete_and_out_of_range_offsets():
    window = SlidingWindow(4)
    window.push(_pixel(1))
    window.push(_pixel(2))
    with pytest.raises(IncompleteWindow) as info:
        window.at(2)
    assert info.value.offset == 2
    assert info.value.occupancy == 2
    with pytest.raises(IndexError):
        window.at(4)
    with pytest.raises(IndexError):
        window.at(-1)


def test_memory_stays_bounded_on_long_streams():
    window = SlidingWindow(6)
    for i in range(100_000):
        window.push(_pixel(i, index=i))
    assert window.pushed == 100_000
    assert len(window) == 6
    assert window.resident == 6
    assert window.at(5).index == 100_000 - 6


def test_clear_releases_frames():
    window = SlidingWindow(3)
    for i in range(3):
        window.push(_pixel(i))
    window.clear()
    assert len(window) == 0
    assert window.resident == 0
    assert window.pushed == 0
    with pytest.raises(IncompleteWindow):
        window.at(0)


def test_capacity_must_be_positive():
    with pytest.raises(ConfigurationError):
        SlidingWindow(0)
