"""temporalmix: streaming temporal compositing of video frame streams."""
from .arithmetic import auto_scale, blend, invert, subtract, weighted_sum
from .constants import (
    BLEND_ADD,
    BLEND_AVERAGE,
    BLEND_DIFFERENCE,
    BLEND_MODES,
    BLEND_MULTIPLY,
    BLEND_SCREEN,
    BLEND_SUBTRACT,
    DEFAULT_BIT_DEPTH,
)
from .errors import (
    ConfigurationError,
    IncompleteWindow,
    ShapeMismatch,
    SynchronizationStall,
    TemporalMixError,
)
from .frame import Frame
from .graph import Combiner, FilterGraph, GraphBuilder, NodeKind, RunStats, chain
from .mixer import (
    MixerConfig,
    TemporalMixer,
    delay_difference,
    difference,
    neutral_difference,
    temporal_average,
)
from .stream import END_OF_STREAM, SinkStatus
from .version import __version__, get_build_meta, get_version_string
from .window import SlidingWindow

__all__ = [
    "BLEND_ADD",
    "BLEND_AVERAGE",
    "BLEND_DIFFERENCE",
    "BLEND_MODES",
    "BLEND_MULTIPLY",
    "BLEND_SCREEN",
    "BLEND_SUBTRACT",
    "DEFAULT_BIT_DEPTH",
    "END_OF_STREAM",
    "Combiner",
    "ConfigurationError",
    "FilterGraph",
    "Frame",
    "GraphBuilder",
    "IncompleteWindow",
    "MixerConfig",
    "NodeKind",
    "RunStats",
    "ShapeMismatch",
    "SinkStatus",
    "SlidingWindow",
    "SynchronizationStall",
    "TemporalMixError",
    "TemporalMixer",
    "auto_scale",
    "blend",
    "chain",
    "delay_difference",
    "difference",
    "invert",
    "neutral_difference",
    "subtract",
    "temporal_average",
    "weighted_sum",
    "get_build_meta",
    "get_version_string",
    "__version__",
]
