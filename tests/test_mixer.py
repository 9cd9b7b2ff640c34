from __future__ import annotations

from fractions import Fraction

import numpy as np
import pytest

from temporalmix import (
    ConfigurationError,
    Frame,
    MixerConfig,
    ShapeMismatch,
    TemporalMixer,
    delay_difference,
    difference,
    neutral_difference,
    temporal_average,
)


def _const(value: int, index: int = 0, shape=(2, 2)) -> Frame:
    return Frame(np.full(shape, value, dtype=np.uint8), index=index)


def test_first_output_after_warmup():
    rng = np.random.default_rng(11)
    for k in range(2, 7):
        weights = tuple(int(w) for w in rng.integers(-3, 4, size=k))
        if not any(weights):
            weights = (1,) + weights[1:]
        mixer = TemporalMixer(MixerConfig(weights=weights, scale="auto"))
        outputs = [mixer.feed(_const(int(v), index=i)) for i, v in enumerate(rng.integers(0, 256, size=3 * k))]
        assert all(out is None for out in outputs[: k - 1])
        assert all(out is not None for out in outputs[k - 1 :])
        assert mixer.frames_out == 2 * k + 1


def test_neutral_difference_scenario():
    mixer = TemporalMixer(neutral_difference())
    assert mixer.feed(_const(100)) is None
    out = mixer.feed(_const(150, index=1))
    assert np.all(out.data == 153)
    out = mixer.feed(_const(100, index=2))
    assert np.all(out.data == 103)


def test_difference_with_mid_gray_bias():
    mixer = TemporalMixer(MixerConfig(weights=(-1, 1), scale=1, bias=128))
    assert mixer.feed(_const(100)) is None
    out = mixer.feed(_const(150, index=1))
    assert out.index == 1
    assert np.all(out.data == 178)


def test_default_weights_newest_minus_older():
    config = MixerConfig(weights=(-1, 1), scale=Fraction(1, 2), bias=128)
    assert config.weight_at(0) == 1
    assert config.weight_at(1) == -1
    with pytest.raises(IndexError):
        config.weight_at(2)
    mixer = TemporalMixer(config)
    mixer.feed(_const(100))
    assert np.all(mixer.feed(_const(150, index=1)).data == 153)


def test_reversed_difference():
    mixer = TemporalMixer(difference(sign=-1))
    mixer.feed(_const(100))
    assert np.all(mixer.feed(_const(150, index=1)).data == 0)
    assert np.all(mixer.feed(_const(90, index=2)).data == 60)


def test_delay_difference_looks_back_n_frames():
    mixer = TemporalMixer(delay_difference(3))
    assert mixer.config.frame_count == 4
    outputs = [mixer.feed(_const(10 * i, index=i)) for i in range(10)]
    assert outputs[:3] == [None, None, None]
    for i, out in enumerate(outputs[3:], start=3):
        assert out.index == i
        assert np.all(out.data == 30)


def test_temporal_average_of_constant_stream():
    mixer = TemporalMixer(temporal_average(4))
    outputs = [mixer.feed(_const(77, index=i)) for i in range(8)]
    assert all(np.all(out.data == 77) for out in outputs[3:])


def test_mixer_does_not_modify_inputs():
    frames = [_const(v, index=i) for i, v in enumerate((10, 200, 40, 90))]
    copies = [f.data.copy() for f in frames]
    mixer = TemporalMixer(MixerConfig(weights=(1, -2, 3)))
    for frame in frames:
        mixer.feed(frame)
    for frame, copy in zip(frames, copies):
        assert np.array_equal(frame.data, copy)


def test_shape_change_mid_stream():
    mixer = TemporalMixer(difference())
    mixer.feed(_const(1))
    with pytest.raises(ShapeMismatch):
        mixer.feed(_const(1, shape=(3, 3)))


def test_bit_depth_must_match_config():
    mixer = TemporalMixer(difference(bit_depth=10))
    with pytest.raises(ShapeMismatch):
        mixer.feed(_const(1))


def test_reset_empties_window():
    mixer = TemporalMixer(temporal_average(3))
    for i in range(5):
        mixer.feed(_const(5, index=i))
    mixer.reset()
    assert mixer.window.resident == 0
    assert mixer.feed(_const(5)) is None
    # a new layout is accepted after reset
    mixer.reset()
    mixer.feed(_const(5, shape=(4, 4)))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"weights": (1,)},
        {"weights": (1, 1), "frame_count": 3},
        {"weights": (0, 0)},
        {"weights": (-1, 1), "scale": 0},
        {"weights": (-1, 1), "scale": "nope"},
        {"weights": (-1, 1), "bias": 0.5},
        {"weights": (-1, 1), "bit_depth": 0},
        {"weights": (2**30, -1)},
        {"weights": ("a", 1)},
        {"weights": (-1, 1), "bias": 2**40},
        {"weights": (-1, 1), "bias": -(2**31 - 1)},
        {"weights": (-1, 1), "bit_depth": 33},
    ],
)
def test_invalid_configs_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        MixerConfig(**kwargs)


def test_config_normalises_scale():
    assert MixerConfig(weights=(-1, 1), scale="auto").scale == Fraction(1, 2)
    assert MixerConfig(weights=(1, 1, 1), scale="1/3").scale == Fraction(1, 3)
    config = MixerConfig(weights=[1, 2, 1])
    assert config.weights == (1, 2, 1)
    assert config.frame_count == 3
    assert config.warmup == 2


def test_preset_parameters_validated():
    with pytest.raises(ConfigurationError):
        delay_difference(0)
    with pytest.raises(ConfigurationError):
        temporal_average(1)


def test_wide_samples_take_large_bias():
    mixer = TemporalMixer(MixerConfig(weights=(-1, 1), bias=2**40, bit_depth=16))
    mixer.feed(Frame.filled(2, 2, 5, bit_depth=16))
    out = mixer.feed(Frame.filled(2, 2, 9, bit_depth=16, index=1))
    assert np.all(out.data == 65535)
