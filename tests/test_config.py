from __future__ import annotations

import json
from fractions import Fraction

import numpy as np
import pytest

from temporalmix import ConfigurationError, Frame
from temporalmix.config import graph_from_config, load_graph, mixer_config_from_dict, preset_graph
from temporalmix.stream import CollectingSink, IterableSource

GLOW = {
    "bit_depth": 8,
    "nodes": [
        {"name": "in", "kind": "source"},
        {"name": "fork", "kind": "split"},
        {"name": "motion", "kind": "mixer", "weights": [-1, 1], "scale": "1/2", "bias": "neutral"},
        {"name": "trail", "kind": "mixer", "preset": "delay", "delay": 4},
        {"name": "mix", "kind": "combine", "mode": "screen"},
        {"name": "out", "kind": "sink"},
    ],
    "edges": [["in", "fork"], ["fork", "motion"], ["fork", "trail"], ["motion", "mix"], ["trail", "mix"], ["mix", "out"]],
}


def _const(value: int):
    return Frame(np.full((3, 3, 3), value, dtype=np.uint8))


def test_graph_from_config_runs():
    graph = graph_from_config(GLOW)
    assert graph.mixers["motion"].config.bias == 128
    assert graph.mixers["motion"].config.scale == Fraction(1, 2)
    assert graph.mixers["trail"].config.frame_count == 5
    assert graph.warmup("mix") == 4
    sink = CollectingSink()
    stats = graph.run(IterableSource([_const(60) for _ in range(8)]), sink)
    assert stats.frames_out == 4
    # screen(128, 0) leaves mid-gray unchanged
    assert all(np.all(f.data == 128) for f in sink.frames)


def test_load_graph_from_json(tmp_path):
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(GLOW), encoding="utf-8")
    graph = load_graph(path)
    assert graph.order[0] == "in"
    assert graph.sinks == ["out"]


def test_invalid_json_is_a_configuration_error(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{nodes: ", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_graph(path)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda c: c["nodes"].append({"name": "x", "kind": "blur"}),
        lambda c: c["nodes"][2].update(colour="red"),
        lambda c: c["nodes"][2].pop("weights"),
        lambda c: c["nodes"][3].update(preset="sharpen"),
        lambda c: c["nodes"][3].update(window=9),
        lambda c: c["nodes"][4].update(mode="overlay"),
        lambda c: c["edges"].append(["out", "in", "fork"]),
        lambda c: c.update(bit_depth="8"),
        lambda c: c.update(nodes=[]),
    ],
)
def test_bad_configs_rejected(mutate):
    config = json.loads(json.dumps(GLOW))
    mutate(config)
    with pytest.raises(ConfigurationError):
        graph_from_config(config)


def test_mixer_entry_parses_fraction_strings():
    config = mixer_config_from_dict({"name": "avg", "weights": ["1/3", "1/3", "1/3"]})
    assert config.weights == (Fraction(1, 3),) * 3
    assert config.name == "avg"
    deep = mixer_config_from_dict({"weights": [-1, 1], "bias": "neutral"}, bit_depth=10)
    assert deep.bias == 512


def test_preset_graph_with_overlay():
    graph = preset_graph("neutral", overlay="screen")
    assert graph.combiners["overlay"].mode == "screen"
    sink = CollectingSink()
    graph.run(IterableSource([Frame(np.full((2, 2), 100, dtype=np.uint8)) for _ in range(4)]), sink)
    assert len(sink.frames) == 3
    assert all(np.all(f.data == 178) for f in sink.frames)


def test_preset_graph_rejects_unknown_names_and_params():
    with pytest.raises(ConfigurationError):
        preset_graph("sharpen")
    with pytest.raises(ConfigurationError):
        preset_graph("difference", window=3)
