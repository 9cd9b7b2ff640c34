"""Graph configuration surface: plain dicts / JSON files to validated graphs.

A graph file looks like::

    {
      "bit_depth": 8,
      "nodes": [
        {"name": "in", "kind": "source"},
        {"name": "fork", "kind": "split"},
        {"name": "motion", "kind": "mixer", "weights": [-1, 1], "scale": "1/2", "bias": "neutral"},
        {"name": "trail", "kind": "mixer", "preset": "delay", "delay": 4},
        {"name": "mix", "kind": "combine", "mode": "screen"},
        {"name": "out", "kind": "sink"}
      ],
      "edges": [["in", "fork"], ["fork", "motion"], ["fork", "trail"],
                ["motion", "mix"], ["trail", "mix"], ["mix", "out"]]
    }
"""
from __future__ import annotations

import json
import logging
from fractions import Fraction
from pathlib import Path
from typing import Any, Mapping, Optional

from .constants import BLEND_ADD, DEFAULT_BIT_DEPTH, DEFAULT_MAX_LAG
from .errors import ConfigurationError
from .graph import FilterGraph, GraphBuilder, NodeKind
from .mixer import PRESETS, MixerConfig

logger = logging.getLogger(__name__)

_MIXER_KEYS = {"name", "kind", "weights", "frame_count", "scale", "bias"}
_COMBINE_KEYS = {"name", "kind", "mode", "max_lag"}
_PLAIN_KEYS = {"name", "kind"}


def _parse_weight(value):
    if isinstance(value, str):
        try:
            return Fraction(value)
        except ValueError as exc:
            raise ConfigurationError(f"Unparseable weight {value!r}") from exc
    return value


def _parse_bias(value, bit_depth: int) -> int:
    if value == "neutral":
        return 1 << (bit_depth - 1)
    return value


def _check_keys(entry: Mapping, allowed: set, name: str) -> None:
    unknown = sorted(set(entry) - allowed)
    if unknown:
        raise ConfigurationError(f"node {name!r}: unknown key(s) {unknown}")


def mixer_config_from_dict(entry: Mapping[str, Any], bit_depth: int = DEFAULT_BIT_DEPTH) -> MixerConfig:
    name = str(entry.get("name", ""))
    preset = entry.get("preset")
    if preset is not None:
        factory = PRESETS.get(preset)
        if factory is None:
            raise ConfigurationError(f"node {name!r}: unknown preset {preset!r} (choose from {sorted(PRESETS)})")
        params = {k: v for k, v in entry.items() if k not in ("name", "kind", "preset")}
        params.setdefault("bit_depth", bit_depth)
        if name:
            params["name"] = name
        try:
            return factory(**params)
        except TypeError as exc:
            raise ConfigurationError(f"node {name!r}: bad parameters for preset {preset!r}: {exc}") from exc

    _check_keys(entry, _MIXER_KEYS, name)
    if "weights" not in entry:
        raise ConfigurationError(f"mixer {name!r} needs 'weights' or a 'preset'")
    weights = entry["weights"]
    if not isinstance(weights, (list, tuple)):
        raise ConfigurationError(f"mixer {name!r}: weights must be a list")
    return MixerConfig(
        weights=tuple(_parse_weight(w) for w in weights),
        frame_count=entry.get("frame_count"),
        scale=entry.get("scale", 1),
        bias=_parse_bias(entry.get("bias", 0), bit_depth),
        bit_depth=bit_depth,
        name=name,
    )


def graph_from_config(config: Mapping[str, Any]) -> FilterGraph:
    """Build and validate a FilterGraph from a configuration mapping."""
    if not isinstance(config, Mapping):
        raise ConfigurationError("graph configuration must be a mapping")
    bit_depth = config.get("bit_depth", DEFAULT_BIT_DEPTH)
    if isinstance(bit_depth, bool) or not isinstance(bit_depth, int):
        raise ConfigurationError(f"bit_depth must be an integer, got {bit_depth!r}")
    nodes = config.get("nodes")
    edges = config.get("edges", [])
    if not isinstance(nodes, list) or not nodes:
        raise ConfigurationError("graph configuration needs a non-empty 'nodes' list")
    if not isinstance(edges, list):
        raise ConfigurationError("'edges' must be a list of [from, to] pairs")

    builder = GraphBuilder()
    for entry in nodes:
        if not isinstance(entry, Mapping) or "name" not in entry or "kind" not in entry:
            raise ConfigurationError(f"every node needs a 'name' and a 'kind': {entry!r}")
        name = str(entry["name"])
        try:
            kind = NodeKind(entry["kind"])
        except ValueError as exc:
            raise ConfigurationError(f"node {name!r}: unknown kind {entry['kind']!r}") from exc

        if kind is NodeKind.MIXER:
            builder.mixer(name, mixer_config_from_dict(entry, bit_depth))
        elif kind is NodeKind.COMBINE:
            _check_keys(entry, _COMBINE_KEYS, name)
            builder.combine(name, mode=entry.get("mode", BLEND_ADD), max_lag=entry.get("max_lag", DEFAULT_MAX_LAG))
        else:
            _check_keys(entry, _PLAIN_KEYS, name)
            if kind is NodeKind.SOURCE:
                builder.source(name)
            elif kind is NodeKind.SPLIT:
                builder.split(name)
            else:
                builder.sink(name)

    for edge in edges:
        if not isinstance(edge, (list, tuple)) or len(edge) != 2:
            raise ConfigurationError(f"edge must be a [from, to] pair, got {edge!r}")
        builder.connect(str(edge[0]), str(edge[1]))
    return builder.build()


def load_graph(path) -> FilterGraph:
    """Read a JSON graph description from ``path``."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path}: invalid JSON ({exc})") from exc
    logger.debug("Loaded graph configuration from %s", path)
    return graph_from_config(config)


def preset_graph(preset: str, overlay: Optional[str] = None, **params) -> FilterGraph:
    """
    Single-mixer graph for one preset. With ``overlay`` set to a blend mode
    the mixer output is composited back onto the original stream.
    """
    factory = PRESETS.get(preset)
    if factory is None:
        raise ConfigurationError(f"unknown preset {preset!r} (choose from {sorted(PRESETS)})")
    try:
        config = factory(**params)
    except TypeError as exc:
        raise ConfigurationError(f"bad parameters for preset {preset!r}: {exc}") from exc
    return mixer_graph(config, overlay=overlay)


def mixer_graph(config: MixerConfig, overlay: Optional[str] = None) -> FilterGraph:
    builder = GraphBuilder().source("source").mixer("mixer", config).sink("sink")
    if overlay is None:
        return builder.connect("source", "mixer", "sink").build()
    builder.split("split").combine("overlay", mode=overlay)
    builder.connect("source", "split", "overlay")
    builder.connect("split", "mixer", "overlay", "sink")
    return builder.build()
