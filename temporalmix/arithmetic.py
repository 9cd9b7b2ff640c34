"""Saturating per-sample arithmetic over frames.

Every operation widens samples into a signed accumulator, combines, and clamps
back into ``0..max`` for the frame's bit depth. Nothing here relies on the
wrap-around of unsigned numpy dtypes, and no input frame is modified.
"""
from __future__ import annotations

import math
import numbers
from fractions import Fraction
from functools import reduce
from typing import Iterable, Sequence

import numpy as np

from .constants import (
    BLEND_ADD,
    BLEND_AVERAGE,
    BLEND_DIFFERENCE,
    BLEND_MULTIPLY,
    BLEND_SCREEN,
    BLEND_SUBTRACT,
)
from .errors import ConfigurationError
from .frame import Frame, check_same_layout


def accumulator_dtype(bit_depth: int) -> np.dtype:
    """Signed accumulator at least twice as wide as the samples."""
    return np.dtype(np.int32) if bit_depth <= 8 else np.dtype(np.int64)


def is_integral(weight) -> bool:
    if isinstance(weight, numbers.Integral):
        return True
    if isinstance(weight, Fraction):
        return weight.denominator == 1
    if isinstance(weight, numbers.Real):
        return float(weight).is_integer()
    raise TypeError(f"weight must be a real number, got {weight!r}")


def integer_headroom_ok(weights: Sequence, bit_depth: int, bias: int = 0) -> bool:
    """True when sum(|w|) * max sample + |bias| fits the integer accumulator."""
    total = sum(abs(int(w)) for w in weights)
    limit = np.iinfo(accumulator_dtype(bit_depth)).max
    return total * ((1 << bit_depth) - 1) + abs(int(bias)) <= limit


def auto_scale(weights: Iterable) -> Fraction:
    """1 / 2**ceil(log2(sum |w|)), or 1 when the weights sum to at most 1."""
    total = sum((abs(Fraction(w)) for w in weights), Fraction(0))
    if total <= 1:
        return Fraction(1)
    return Fraction(1, 2 ** math.ceil(math.log2(total)))


def _finish(values: np.ndarray, like: Frame, index: int) -> Frame:
    np.clip(values, 0, like.max_value, out=values)
    return Frame(data=values.astype(like.dtype), bit_depth=like.bit_depth, index=index)


def subtract(a: Frame, b: Frame) -> Frame:
    """clamp(a - b, 0, max); negative differences become 0."""
    check_same_layout(a, b, "subtract")
    diff = a.data.astype(accumulator_dtype(a.bit_depth))
    diff -= b.data
    return _finish(diff, a, max(a.index, b.index))


def invert(a: Frame) -> Frame:
    """max - a for every sample."""
    values = a.max_value - a.data.astype(accumulator_dtype(a.bit_depth))
    return _finish(values, a, a.index)


def weighted_sum(
    frames: Sequence[Frame],
    weights: Sequence,
    scale=1,
    bias: int = 0,
) -> Frame:
    """
    Sum ``frames[i] * weights[i]`` in a wide accumulator, then
    clamp(rint(acc * scale) + bias, 0, max).

    Integer weights accumulate exactly in a signed integer array; any
    fractional weight switches accumulation to float64.
    """
    frames = list(frames)
    weights = list(weights)
    if not frames:
        raise ValueError("weighted_sum needs at least one frame")
    if len(frames) != len(weights):
        raise ConfigurationError(
            f"{len(weights)} weight(s) given for {len(frames)} frame(s)"
        )
    ref = frames[0]
    for frame in frames[1:]:
        check_same_layout(ref, frame, "weighted_sum")

    if all(is_integral(w) for w in weights):
        weights = [int(w) for w in weights]
        if not integer_headroom_ok(weights, ref.bit_depth, bias):
            raise ConfigurationError("weights and bias overflow the integer accumulator")
        acc = np.zeros(ref.data.shape, dtype=accumulator_dtype(ref.bit_depth))
    else:
        weights = [float(w) for w in weights]
        acc = np.zeros(ref.data.shape, dtype=np.float64)

    for frame, weight in zip(frames, weights):
        if weight == 0:
            continue
        if weight == 1:
            acc += frame.data
        elif weight == -1:
            acc -= frame.data
        else:
            acc += frame.data.astype(acc.dtype) * weight

    scale = float(scale)
    if scale != 1.0 or acc.dtype.kind == "f":
        values = np.rint(acc * scale)
    else:
        values = acc
    if bias:
        values += bias
    return _finish(values, ref, max(f.index for f in frames))


def _add(x, y, m):
    return x + y


def _multiply(p, q, m):
    # round(p * q / m) in uint64; p, q <= 2**32 - 1 so the product cannot wrap
    prod = p.astype(np.uint64) * q.astype(np.uint64)
    return ((prod + np.uint64(m // 2)) // np.uint64(m)).astype(np.int64)


def _screen(x, y, m):
    return m - _multiply(m - x, m - y, m)


def _difference(x, y, m):
    return np.abs(x - y)


def _subtract(x, y, m):
    return x - y


def _average(x, y, m):
    return (x + y + 1) // 2


_BLEND_FUNCS = {
    BLEND_ADD: _add,
    BLEND_MULTIPLY: _multiply,
    BLEND_SCREEN: _screen,
    BLEND_DIFFERENCE: _difference,
    BLEND_SUBTRACT: _subtract,
    BLEND_AVERAGE: _average,
}


def check_blend_mode(mode: str) -> str:
    if mode not in _BLEND_FUNCS:
        raise ValueError(f"Unsupported blend mode: {mode}")
    return mode


def blend(a: Frame, b: Frame, mode: str = BLEND_ADD) -> Frame:
    """Composite two processed streams sample by sample.

    ``add`` and ``subtract`` saturate, ``multiply`` is a*b/max and ``screen``
    is its inverse; ``difference`` is |a-b| and ``average`` the rounded mean.
    """
    func = _BLEND_FUNCS[check_blend_mode(mode)]
    check_same_layout(a, b, f"blend({mode})")
    x = a.data.astype(np.int64)
    y = b.data.astype(np.int64)
    return _finish(func(x, y, a.max_value), a, max(a.index, b.index))


def blend_many(frames: Sequence[Frame], mode: str = BLEND_ADD) -> Frame:
    """Left fold of ``blend`` over two or more frames."""
    if len(frames) < 2:
        raise ValueError("blend_many needs at least two frames")
    return reduce(lambda acc, frame: blend(acc, frame, mode), frames)
