"""Filter graph: Source -> Split / Mixer / Combine stages -> Sink."""
from __future__ import annotations

import logging
import time
import warnings
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from threading import Event
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .arithmetic import blend_many, check_blend_mode
from .constants import BLEND_ADD, DEFAULT_BACKPRESSURE_WAIT, DEFAULT_MAX_LAG
from .errors import ConfigurationError, ShapeMismatch, SynchronizationStall
from .frame import Frame
from .mixer import MixerConfig, TemporalMixer
from .stream import END_OF_STREAM, FrameSink, FrameSource, SinkStatus

logger = logging.getLogger(__name__)


class NodeKind(Enum):
    """The closed set of stage kinds a graph can contain."""

    SOURCE = "source"
    MIXER = "mixer"
    SPLIT = "split"
    COMBINE = "combine"
    SINK = "sink"


@dataclass(frozen=True)
class CombineConfig:
    mode: str = BLEND_ADD
    max_lag: int = DEFAULT_MAX_LAG

    def __post_init__(self) -> None:
        try:
            check_blend_mode(self.mode)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if isinstance(self.max_lag, bool) or not isinstance(self.max_lag, int) or self.max_lag < 0:
            raise ConfigurationError(f"max_lag must be a non-negative integer, got {self.max_lag!r}")


@dataclass(frozen=True)
class NodeSpec:
    """One graph node: its kind plus the payload that kind needs."""

    name: str
    kind: NodeKind
    mixer: Optional[MixerConfig] = None
    combine: Optional[CombineConfig] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("node name must be non-empty")
        if self.kind is NodeKind.MIXER and self.mixer is None:
            raise ConfigurationError(f"mixer node {self.name!r} has no MixerConfig")
        if self.kind is NodeKind.COMBINE and self.combine is None:
            object.__setattr__(self, "combine", CombineConfig())


class Combiner:
    """
    Joins two or more frame streams into one by blending frames that share
    an arrival index.

    Frames older than ``warmup`` are consumed without output: they come from a
    branch that finished warming up before the others and have no partner.
    A port more than ``max_lag`` frames ahead of an empty port, or port heads
    carrying different indices, raise :class:`SynchronizationStall`.
    """

    def __init__(
        self,
        ports: int,
        mode: str = BLEND_ADD,
        max_lag: int = DEFAULT_MAX_LAG,
        warmup: int = 0,
        name: str = "combine",
    ):
        if ports < 2:
            raise ConfigurationError(f"{name}: a combine needs at least two inputs, got {ports}")
        self.mode = check_blend_mode(mode)
        self.max_lag = max_lag
        self.warmup = warmup
        self.name = name
        self._queues: List[deque] = [deque() for _ in range(ports)]
        self.warmup_consumed = 0

    @property
    def pending(self) -> Tuple[int, ...]:
        return tuple(len(q) for q in self._queues)

    def offer(self, port: int, frame: Frame) -> None:
        if frame.index < self.warmup:
            self.warmup_consumed += 1
            logger.debug("%s: port %d frame %d consumed during warm-up", self.name, port, frame.index)
            return
        queue = self._queues[port]
        if queue and frame.index <= queue[-1].index:
            raise SynchronizationStall(
                f"{self.name}: port {port} delivered frame {frame.index} after {queue[-1].index}",
                self.pending,
            )
        queue.append(frame)

    def pull(self) -> Optional[Frame]:
        """Blend one frame from every port, or None while some port is empty."""
        if all(self._queues):
            heads = [q[0] for q in self._queues]
            if len({f.index for f in heads}) != 1:
                raise SynchronizationStall(
                    f"{self.name}: inputs out of step at indices {[f.index for f in heads]}",
                    self.pending,
                )
            return blend_many([q.popleft() for q in self._queues], self.mode)
        pending = self.pending
        if max(pending) > self.max_lag:
            raise SynchronizationStall(
                f"{self.name}: pending frames per input {pending} exceed max_lag={self.max_lag}",
                pending,
            )
        return None

    def drain(self) -> List[Frame]:
        out = []
        while True:
            frame = self.pull()
            if frame is None:
                return out
            out.append(frame)

    def reset(self) -> None:
        for queue in self._queues:
            queue.clear()
        self.warmup_consumed = 0


@dataclass
class RunStats:
    frames_in: int = 0
    delivered: Dict[str, int] = field(default_factory=dict)
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def frames_out(self) -> int:
        return sum(self.delivered.values())


class FilterGraph:
    """
    Validated, runnable graph of stream stages.

    Construction checks the whole topology; nothing about the graph shape can
    fail once frames start flowing. Each call to :meth:`push` is one tick: the
    frame is stamped with the tick number and every node runs once in
    topological order.
    """

    def __init__(self, nodes: Sequence[NodeSpec], edges: Sequence[Tuple[str, str]]):
        self._specs: Dict[str, NodeSpec] = {}
        for spec in nodes:
            if spec.name in self._specs:
                raise ConfigurationError(f"duplicate node name {spec.name!r}")
            self._specs[spec.name] = spec

        self._inbound: Dict[str, List[str]] = {name: [] for name in self._specs}
        self._outbound: Dict[str, List[str]] = {name: [] for name in self._specs}
        seen = set()
        for src, dst in edges:
            for end in (src, dst):
                if end not in self._specs:
                    raise ConfigurationError(f"edge {src!r} -> {dst!r} references unknown node {end!r}")
            if (src, dst) in seen:
                raise ConfigurationError(f"duplicate edge {src!r} -> {dst!r}")
            seen.add((src, dst))
            self._outbound[src].append(dst)
            self._inbound[dst].append(src)

        self._validate_degrees()
        self._order = self._topological_order()
        self._source = self._order[0]
        self._sinks = [n for n in self._order if self._specs[n].kind is NodeKind.SINK]
        self._first_index = self._warmup_offsets()
        self._downstream_sinks = self._sink_reachability()

        self._mixers: Dict[str, TemporalMixer] = {}
        self._combiners: Dict[str, Combiner] = {}
        for name, spec in self._specs.items():
            if spec.kind is NodeKind.MIXER:
                config = spec.mixer if spec.mixer.name else replace(spec.mixer, name=name)
                self._mixers[name] = TemporalMixer(config)
            elif spec.kind is NodeKind.COMBINE:
                self._combiners[name] = Combiner(
                    ports=len(self._inbound[name]),
                    mode=spec.combine.mode,
                    max_lag=spec.combine.max_lag,
                    warmup=self._first_index[name],
                    name=name,
                )
        self._tick = 0
        logger.debug(
            "Built graph: %d nodes, %d edges, order=%s", len(self._specs), len(seen), " -> ".join(self._order)
        )

    def _validate_degrees(self) -> None:
        sources = [n for n, s in self._specs.items() if s.kind is NodeKind.SOURCE]
        if len(sources) != 1:
            raise ConfigurationError(f"graph needs exactly one source, found {len(sources)}")
        for name, spec in self._specs.items():
            n_in = len(self._inbound[name])
            n_out = len(self._outbound[name])
            if spec.kind is NodeKind.SOURCE and n_in:
                raise ConfigurationError(f"source {name!r} cannot have inbound edges")
            if spec.kind is not NodeKind.SOURCE and n_in == 0:
                raise ConfigurationError(f"node {name!r} is disconnected: no inbound edge")
            if spec.kind is NodeKind.SINK and n_out:
                raise ConfigurationError(f"sink {name!r} cannot have outbound edges")
            if spec.kind is not NodeKind.SINK and n_out == 0:
                raise ConfigurationError(f"node {name!r} is disconnected: no outbound edge")
            if spec.kind in (NodeKind.MIXER, NodeKind.SPLIT, NodeKind.SINK) and n_in != 1:
                raise ConfigurationError(f"{spec.kind.value} {name!r} needs exactly one input, has {n_in}")
            if spec.kind is NodeKind.COMBINE and n_in < 2:
                raise ConfigurationError(f"combine {name!r} needs at least two inputs, has {n_in}")

    def _topological_order(self) -> List[str]:
        remaining = {name: len(self._inbound[name]) for name in self._specs}
        ready = deque(name for name, count in remaining.items() if count == 0)
        order = []
        while ready:
            name = ready.popleft()
            order.append(name)
            for child in self._outbound[name]:
                remaining[child] -= 1
                if remaining[child] == 0:
                    ready.append(child)
        if len(order) != len(self._specs):
            cyclic = sorted(n for n in self._specs if n not in order)
            raise ConfigurationError(f"graph contains a cycle through {cyclic}")
        return order

    def _warmup_offsets(self) -> Dict[str, int]:
        # index of the first frame each node can emit
        first: Dict[str, int] = {}
        for name in self._order:
            spec = self._specs[name]
            if spec.kind is NodeKind.SOURCE:
                first[name] = 0
            elif spec.kind is NodeKind.MIXER:
                first[name] = first[self._inbound[name][0]] + spec.mixer.warmup
            else:
                first[name] = max(first[parent] for parent in self._inbound[name])
        return first

    def _sink_reachability(self) -> Dict[str, frozenset]:
        reach: Dict[str, frozenset] = {}
        for name in reversed(self._order):
            if self._specs[name].kind is NodeKind.SINK:
                reach[name] = frozenset([name])
            else:
                reach[name] = frozenset().union(*(reach[child] for child in self._outbound[name]))
        return reach

    @property
    def order(self) -> List[str]:
        return list(self._order)

    @property
    def sinks(self) -> List[str]:
        return list(self._sinks)

    @property
    def mixers(self) -> Dict[str, TemporalMixer]:
        return dict(self._mixers)

    @property
    def combiners(self) -> Dict[str, Combiner]:
        return dict(self._combiners)

    def warmup(self, name: str) -> int:
        """Index of the first frame node ``name`` emits."""
        return self._first_index[name]

    @property
    def frame_capacity(self) -> int:
        """Most frames the graph can hold at once in steady state."""
        held = sum(m.config.frame_count for m in self._mixers.values())
        return held + sum((c.max_lag + 1) * len(c.pending) for c in self._combiners.values())

    @property
    def resident_frames(self) -> int:
        """Frames currently held by all mixer windows and combine queues."""
        held = sum(m.window.resident for m in self._mixers.values())
        return held + sum(sum(c.pending) for c in self._combiners.values())

    def _dispatch(self, name: str, inputs: List[Tuple[int, Frame]]) -> List[Frame]:
        kind = self._specs[name].kind
        if kind is NodeKind.MIXER:
            mixer = self._mixers[name]
            out = []
            for _, frame in inputs:
                result = mixer.feed(frame)
                if result is not None:
                    out.append(result)
            return out
        if kind is NodeKind.COMBINE:
            combiner = self._combiners[name]
            for port, frame in inputs:
                combiner.offer(port, frame)
            return combiner.drain()
        # split and sink pass the same frame objects on
        return [frame for _, frame in inputs]

    def push(self, frame: Frame) -> Dict[str, List[Frame]]:
        """Run one tick and return the frames that reached each sink."""
        produced: Dict[str, List[Frame]] = {self._source: [frame.with_index(self._tick)]}
        self._tick += 1
        for name in self._order[1:]:
            inputs = [
                (port, item)
                for port, parent in enumerate(self._inbound[name])
                for item in produced[parent]
            ]
            try:
                produced[name] = self._dispatch(name, inputs) if inputs else []
            except ShapeMismatch as exc:
                exc.node = name
                raise
        return {name: produced[name] for name in self._sinks}

    def reset(self) -> None:
        """Release all window and queue storage and restart tick numbering."""
        for mixer in self._mixers.values():
            mixer.reset()
        for combiner in self._combiners.values():
            combiner.reset()
        self._tick = 0

    def _sink_map(self, sinks) -> Dict[str, FrameSink]:
        if isinstance(sinks, Mapping):
            sink_map = dict(sinks)
        elif len(self._sinks) == 1:
            sink_map = {self._sinks[0]: sinks}
        else:
            raise ConfigurationError(f"graph has sinks {self._sinks}; pass a mapping of name -> sink")
        missing = [name for name in self._sinks if name not in sink_map]
        if missing:
            raise ConfigurationError(f"no sink collaborator bound for {missing}")
        return sink_map

    def _deliver(self, sink: FrameSink, frame: Frame, stop: Optional[Event], wait: float) -> bool:
        while sink.accept(frame) is SinkStatus.BACKPRESSURE:
            logger.debug("sink backpressure on frame %d", frame.index)
            if stop is not None and stop.is_set():
                return False
            wait_ready = getattr(sink, "wait_ready", None)
            if wait_ready is not None:
                wait_ready(wait)
            elif stop is not None:
                stop.wait(wait)
            else:
                time.sleep(wait)
        return True

    def _check_memory(self, frame: Frame, max_ram_mb: float) -> None:
        est_mem = self.frame_capacity * frame.data.nbytes
        if est_mem / (1024 * 1024) > max_ram_mb:
            warnings.warn(
                f"Estimated window storage {est_mem/1e6:.2f} MB exceeds max_ram_mb={max_ram_mb}."
            )

    def _report(self, exc: Exception, sink_map: Dict[str, FrameSink]) -> None:
        node = getattr(exc, "node", None)
        targets = self._downstream_sinks.get(node, frozenset(self._sinks))
        for name in sorted(targets):
            handler = getattr(sink_map[name], "error", None)
            if handler is not None:
                handler(exc)

    def run(
        self,
        source: FrameSource,
        sinks: Union[FrameSink, Mapping[str, FrameSink]],
        stop: Optional[Event] = None,
        max_frames: Optional[int] = None,
        backpressure_wait: float = DEFAULT_BACKPRESSURE_WAIT,
        max_ram_mb: Optional[float] = None,
    ) -> RunStats:
        """
        Pull frames from ``source`` until end of stream, cancellation or
        ``max_frames``, delivering every output to its sink before the next
        frame is pulled. Window storage is released when the run ends.
        """
        sink_map = self._sink_map(sinks)
        stats = RunStats(delivered={name: 0 for name in self._sinks})
        start = time.perf_counter()
        try:
            while not stats.cancelled:
                if stop is not None and stop.is_set():
                    stats.cancelled = True
                    break
                if max_frames is not None and stats.frames_in >= max_frames:
                    break
                item = source.next()
                if item is END_OF_STREAM:
                    break
                stats.frames_in += 1
                if stats.frames_in == 1 and max_ram_mb is not None:
                    self._check_memory(item, max_ram_mb)
                try:
                    results = self.push(item)
                except ShapeMismatch as exc:
                    self._report(exc, sink_map)
                    raise
                for name, frames in results.items():
                    for out in frames:
                        if not self._deliver(sink_map[name], out, stop, backpressure_wait):
                            stats.cancelled = True
                            break
                        stats.delivered[name] += 1
                    if stats.cancelled:
                        break
        finally:
            self.reset()
            stats.elapsed = time.perf_counter() - start
        logger.info(
            "Processed %d frame(s), delivered %d%s",
            stats.frames_in,
            stats.frames_out,
            " (cancelled)" if stats.cancelled else "",
        )
        return stats


class GraphBuilder:
    """Collects nodes and edges, then validates them all at once in :meth:`build`."""

    def __init__(self):
        self._nodes: List[NodeSpec] = []
        self._edges: List[Tuple[str, str]] = []

    def add(self, spec: NodeSpec) -> "GraphBuilder":
        self._nodes.append(spec)
        return self

    def source(self, name: str = "source") -> "GraphBuilder":
        return self.add(NodeSpec(name, NodeKind.SOURCE))

    def mixer(self, name: str, config: MixerConfig) -> "GraphBuilder":
        return self.add(NodeSpec(name, NodeKind.MIXER, mixer=config))

    def split(self, name: str) -> "GraphBuilder":
        return self.add(NodeSpec(name, NodeKind.SPLIT))

    def combine(self, name: str, mode: str = BLEND_ADD, max_lag: int = DEFAULT_MAX_LAG) -> "GraphBuilder":
        return self.add(NodeSpec(name, NodeKind.COMBINE, combine=CombineConfig(mode, max_lag)))

    def sink(self, name: str = "sink") -> "GraphBuilder":
        return self.add(NodeSpec(name, NodeKind.SINK))

    def connect(self, *names: str) -> "GraphBuilder":
        """Connect consecutive names: ``connect("a", "b", "c")`` adds a->b and b->c."""
        if len(names) < 2:
            raise ConfigurationError("connect needs at least two node names")
        for src, dst in zip(names, names[1:]):
            self._edges.append((src, dst))
        return self

    def build(self) -> FilterGraph:
        return FilterGraph(self._nodes, self._edges)


def chain(*configs: MixerConfig) -> FilterGraph:
    """Source -> mixer -> ... -> mixer -> Sink."""
    builder = GraphBuilder().source("source")
    names = ["source"]
    for i, config in enumerate(configs):
        name = config.name or f"mixer{i}"
        if name in names:
            name = f"{name}{i}"
        builder.mixer(name, config)
        names.append(name)
    builder.sink("sink")
    names.append("sink")
    return builder.connect(*names).build()
