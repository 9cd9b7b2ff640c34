"""Temporal mixer: weighted combination of the last K frames of a stream."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, Dict, Optional

from .arithmetic import auto_scale, integer_headroom_ok, is_integral, weighted_sum
from .constants import DEFAULT_BIT_DEPTH, MAX_BIT_DEPTH
from .errors import ConfigurationError, ShapeMismatch
from .frame import Frame
from .window import SlidingWindow

logger = logging.getLogger(__name__)


def _parse_scale(scale, weights):
    if isinstance(scale, str):
        text = scale.strip().lower()
        if text == "auto":
            return auto_scale(weights)
        try:
            return Fraction(text)
        except ValueError as exc:
            raise ConfigurationError(f"Unparseable scale {scale!r}") from exc
    if isinstance(scale, bool) or not isinstance(scale, (int, float, Fraction)):
        raise ConfigurationError(f"scale must be a number, a fraction string or 'auto', got {scale!r}")
    return scale


@dataclass(frozen=True)
class MixerConfig:
    """
    Configuration of one TemporalMixer.

    ``weights`` is listed oldest slot first: with K frames in the window,
    ``weights[-1]`` multiplies the newest frame and ``weights[0]`` the frame
    K-1 arrivals older. This is the reverse of offset indexing, where offset 0
    is the newest frame; use :meth:`weight_at` for that view. ``[-1, 1]`` thus
    reads as "newest minus previous". ``frame_count`` defaults to
    ``len(weights)`` and must agree with it when given. ``bias`` is bounded so
    that integer accumulation can never wrap.
    """

    weights: tuple = ()
    frame_count: Optional[int] = None
    scale: object = 1
    bias: int = 0
    bit_depth: int = DEFAULT_BIT_DEPTH
    name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        try:
            weights = tuple(self.weights)
            for w in weights:
                is_integral(w)
        except TypeError as exc:
            raise ConfigurationError(f"invalid weight vector {self.weights!r}") from exc
        k = len(weights) if self.frame_count is None else int(self.frame_count)
        if k < 2:
            raise ConfigurationError(f"frame_count must be >= 2, got {k}")
        if len(weights) != k:
            raise ConfigurationError(
                f"weight vector has {len(weights)} entries but frame_count is {k}"
            )
        if not any(w != 0 for w in weights):
            raise ConfigurationError("weight vector must have at least one nonzero entry")
        if not 1 <= int(self.bit_depth) <= MAX_BIT_DEPTH:
            raise ConfigurationError(f"bit_depth must be in 1..{MAX_BIT_DEPTH}, got {self.bit_depth}")
        scale = _parse_scale(self.scale, weights)
        if not math.isfinite(float(scale)) or scale <= 0:
            raise ConfigurationError(f"scale must be a positive finite number, got {scale}")
        if isinstance(self.bias, bool) or not isinstance(self.bias, int):
            raise ConfigurationError(f"bias must be an integer, got {self.bias!r}")
        if all(is_integral(w) for w in weights) and not integer_headroom_ok(
            weights, int(self.bit_depth), self.bias
        ):
            raise ConfigurationError(
                f"sum of |weights| plus bias {self.bias} overflows the accumulator for {self.bit_depth}-bit samples"
            )
        object.__setattr__(self, "weights", weights)
        object.__setattr__(self, "frame_count", k)
        object.__setattr__(self, "scale", scale)
        object.__setattr__(self, "bit_depth", int(self.bit_depth))

    @property
    def max_value(self) -> int:
        return (1 << self.bit_depth) - 1

    def weight_at(self, offset: int):
        """Weight applied to the frame ``offset`` arrivals before the newest."""
        if not 0 <= offset < self.frame_count:
            raise IndexError(f"offset {offset} outside window of {self.frame_count}")
        return self.weights[self.frame_count - 1 - offset]

    @property
    def warmup(self) -> int:
        """Inputs consumed before the first output."""
        return self.frame_count - 1


class TemporalMixer:
    """Streams frames through a ring buffer and emits one weighted mix per input
    once the window is full. The first ``K - 1`` calls to :meth:`feed` return None.
    """

    def __init__(self, config: MixerConfig):
        if not isinstance(config, MixerConfig):
            raise ConfigurationError(f"expected MixerConfig, got {type(config).__name__}")
        self.config = config
        self.name = config.name or f"mixer[{config.frame_count}]"
        self._window = SlidingWindow(config.frame_count)
        # offsets with nonzero weight, oldest first to keep operand order stable
        self._taps = [
            offset
            for offset in range(config.frame_count - 1, -1, -1)
            if config.weight_at(offset) != 0
        ]
        self._tap_weights = [config.weight_at(offset) for offset in self._taps]
        self._layout: Optional[tuple] = None
        self.frames_in = 0
        self.frames_out = 0

    @property
    def window(self) -> SlidingWindow:
        return self._window

    def feed(self, frame: Frame) -> Optional[Frame]:
        if frame.bit_depth != self.config.bit_depth:
            raise ShapeMismatch(
                f"{self.name}: expected {self.config.bit_depth}-bit samples, got {frame.bit_depth}-bit",
                expected=self.config.bit_depth,
                actual=frame.bit_depth,
            )
        if self._layout is None:
            self._layout = frame.layout
        elif frame.layout != self._layout:
            raise ShapeMismatch(
                f"{self.name}: expected layout {self._layout}, got {frame.layout}",
                expected=self._layout,
                actual=frame.layout,
            )

        self._window.push(frame)
        self.frames_in += 1
        if not self._window.is_full:
            logger.debug(
                "%s warming up (%d/%d frames)", self.name, len(self._window), self.config.frame_count
            )
            return None

        taps = [self._window.at(offset) for offset in self._taps]
        out = weighted_sum(taps, self._tap_weights, scale=self.config.scale, bias=self.config.bias)
        self.frames_out += 1
        return out.with_index(frame.index)

    def reset(self) -> None:
        """Release the window and forget the stream layout."""
        self._window.clear()
        self._layout = None
        self.frames_in = 0
        self.frames_out = 0

    def __repr__(self) -> str:
        return f"TemporalMixer({self.name!r}, K={self.config.frame_count}, weights={self.config.weights})"


def _neutral_bias(bit_depth: int) -> int:
    return 1 << (bit_depth - 1)


def difference(sign: int = 1, bias: int = 0, bit_depth: int = DEFAULT_BIT_DEPTH, name: str = "difference") -> MixerConfig:
    """Adjacent-frame difference: newest minus previous (``sign=-1`` flips it)."""
    return MixerConfig(weights=(-sign, sign), scale=1, bias=bias, bit_depth=bit_depth, name=name)


def neutral_difference(sign: int = 1, bit_depth: int = DEFAULT_BIT_DEPTH, name: str = "neutral") -> MixerConfig:
    """Half the adjacent difference centred on mid-gray, so both signs stay visible."""
    return MixerConfig(
        weights=(-sign, sign),
        scale=Fraction(1, 2),
        bias=_neutral_bias(bit_depth),
        bit_depth=bit_depth,
        name=name,
    )


def delay_difference(
    delay: int,
    sign: int = 1,
    neutral: bool = False,
    bit_depth: int = DEFAULT_BIT_DEPTH,
    name: str = "",
) -> MixerConfig:
    """Newest frame minus the frame ``delay`` arrivals earlier."""
    if delay < 1:
        raise ConfigurationError(f"delay must be >= 1, got {delay}")
    weights = [0] * (delay + 1)
    weights[0] = -sign
    weights[-1] = sign
    return MixerConfig(
        weights=tuple(weights),
        scale=Fraction(1, 2) if neutral else 1,
        bias=_neutral_bias(bit_depth) if neutral else 0,
        bit_depth=bit_depth,
        name=name or f"delay{delay}",
    )


def temporal_average(frame_count: int, bit_depth: int = DEFAULT_BIT_DEPTH, name: str = "") -> MixerConfig:
    """Mean of the last ``frame_count`` frames."""
    if frame_count < 2:
        raise ConfigurationError(f"frame_count must be >= 2, got {frame_count}")
    return MixerConfig(
        weights=(1,) * frame_count,
        scale=Fraction(1, frame_count),
        bit_depth=bit_depth,
        name=name or f"average{frame_count}",
    )


PRESETS: Dict[str, Callable[..., MixerConfig]] = {
    "difference": difference,
    "neutral": neutral_difference,
    "delay": delay_difference,
    "average": temporal_average,
}
