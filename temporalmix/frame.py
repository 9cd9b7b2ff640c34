"""Immutable frame container for fixed-width unsigned sample grids."""
from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from .constants import DEFAULT_BIT_DEPTH, MAX_BIT_DEPTH
from .errors import ShapeMismatch


def dtype_for_bit_depth(bit_depth: int) -> np.dtype:
    """Smallest unsigned numpy dtype holding ``bit_depth`` bits."""
    if not 1 <= bit_depth <= MAX_BIT_DEPTH:
        raise ValueError(f"bit_depth must be in 1..{MAX_BIT_DEPTH}, got {bit_depth}")
    if bit_depth <= 8:
        return np.dtype(np.uint8)
    if bit_depth <= 16:
        return np.dtype(np.uint16)
    return np.dtype(np.uint32)


@dataclass(frozen=True, eq=False)
class Frame:
    """One video frame as an (H, W, C) unsigned sample array.

    The array is made read-only on construction so the same frame can be
    shared by a window, a split and any number of readers. ``index`` is the
    arrival position of the source frame this frame derives from.
    """

    data: np.ndarray
    bit_depth: int = DEFAULT_BIT_DEPTH
    index: int = 0

    def __post_init__(self) -> None:
        arr = np.asarray(self.data)
        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        if arr.ndim != 3:
            raise ValueError(f"Unsupported frame shape: {arr.shape}")
        if arr.dtype.kind != "u":
            raise ValueError(f"Frame samples must be unsigned integers, got {arr.dtype}")
        if not 1 <= self.bit_depth <= arr.dtype.itemsize * 8:
            raise ValueError(f"bit_depth {self.bit_depth} does not fit dtype {arr.dtype}")
        max_value = (1 << self.bit_depth) - 1
        if self.bit_depth < arr.dtype.itemsize * 8 and arr.size and int(arr.max()) > max_value:
            raise ValueError(f"samples exceed {max_value}, the maximum for {self.bit_depth}-bit frames")
        if arr.flags.writeable:
            arr = arr.view()
            arr.flags.writeable = False
        object.__setattr__(self, "data", arr)

    @classmethod
    def from_array(cls, data, bit_depth: int | None = None, index: int = 0) -> "Frame":
        """Wrap an array, taking the bit depth from its dtype unless given."""
        arr = np.asarray(data)
        if bit_depth is None:
            bit_depth = arr.dtype.itemsize * 8
        return cls(data=arr, bit_depth=bit_depth, index=index)

    @classmethod
    def filled(
        cls,
        height: int,
        width: int,
        value: int,
        channels: int = 1,
        bit_depth: int = DEFAULT_BIT_DEPTH,
        index: int = 0,
    ) -> "Frame":
        """Constant-valued frame, mostly for synthetic streams."""
        max_value = (1 << bit_depth) - 1
        if not 0 <= value <= max_value:
            raise ValueError(f"value {value} outside 0..{max_value}")
        arr = np.full((height, width, channels), value, dtype=dtype_for_bit_depth(bit_depth))
        return cls(data=arr, bit_depth=bit_depth, index=index)

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def channels(self) -> int:
        return int(self.data.shape[2])

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def max_value(self) -> int:
        return (1 << self.bit_depth) - 1

    @property
    def layout(self) -> tuple[int, int, int, int]:
        """(height, width, channels, bit_depth); equal layouts may be combined."""
        return (self.height, self.width, self.channels, self.bit_depth)

    def with_index(self, index: int) -> "Frame":
        """Same samples (not copied) under a new arrival index."""
        if index == self.index:
            return self
        return replace(self, index=index)

    def with_data(self, data: np.ndarray) -> "Frame":
        """New frame with this frame's bit depth and index."""
        return Frame(data=data, bit_depth=self.bit_depth, index=self.index)

    def as_uint8(self) -> np.ndarray:
        """8-bit view of the samples for writers that only take uint8."""
        if self.bit_depth == 8 and self.dtype == np.uint8:
            return self.data
        if self.bit_depth <= 8:
            return (self.data.astype(np.uint32) << (8 - self.bit_depth)).astype(np.uint8)
        return (self.data >> (self.bit_depth - 8)).astype(np.uint8)

    def __repr__(self) -> str:
        return (
            f"Frame(index={self.index}, {self.width}x{self.height}x{self.channels}, "
            f"bit_depth={self.bit_depth})"
        )


def check_same_layout(reference: Frame, other: Frame, where: str = "frame") -> None:
    """Raise ShapeMismatch unless both frames share size, channels and bit depth."""
    if reference.layout != other.layout:
        raise ShapeMismatch(
            f"{where}: expected layout {reference.layout} (HxWxC, bits), got {other.layout}",
            expected=reference.layout,
            actual=other.layout,
        )
