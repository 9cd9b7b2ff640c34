"""Command-line entrypoints for temporalmix."""
from __future__ import annotations

import argparse
import logging
import threading
from fractions import Fraction

from .constants import BLEND_MODES, DEFAULT_FPS
from .config import load_graph, mixer_graph, preset_graph
from .errors import ConfigurationError, TemporalMixError
from .graph import FilterGraph
from .mixer import PRESETS, MixerConfig
from .stream import VideoReaderSource, VideoWriterSink
from .version import get_version_string

logger = logging.getLogger(__name__)


def _parse_weights(text: str) -> tuple:
    try:
        return tuple(Fraction(part.strip()) for part in text.split(",") if part.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid weight list {text!r}") from exc


def _parse_bias(text: str):
    if text == "neutral":
        return text
    try:
        return int(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("bias must be an integer or 'neutral'") from exc


def build_graph(args: argparse.Namespace) -> FilterGraph:
    if args.config:
        return load_graph(args.config)
    if args.weights:
        bias = args.bias
        if bias == "neutral":
            bias = 1 << (args.bit_depth - 1)
        config = MixerConfig(
            weights=args.weights, scale=args.scale, bias=bias, bit_depth=args.bit_depth, name="custom"
        )
        return mixer_graph(config, overlay=args.overlay)

    sign = -1 if args.reverse else 1
    params: dict = {}
    if args.preset == "difference":
        params = {"sign": sign, "bias": 0 if args.bias == "neutral" else args.bias}
    elif args.preset == "neutral":
        params = {"sign": sign}
    elif args.preset == "delay":
        params = {"delay": args.delay, "sign": sign, "neutral": args.bias == "neutral"}
    elif args.preset == "average":
        params = {"frame_count": args.frames}
    return preset_graph(args.preset, overlay=args.overlay, **params)


def _add_run_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("input", help="Input video path")
    p.add_argument("output", help="Output video path")
    p.add_argument("--preset", choices=sorted(PRESETS), default="neutral", help="Mixer preset")
    p.add_argument("--delay", type=int, default=1, help="Frame distance for the delay preset")
    p.add_argument("--frames", type=int, default=3, help="Window size for the average preset")
    p.add_argument("--reverse", action="store_true", help="Subtract newer from older instead")
    p.add_argument(
        "--weights",
        type=_parse_weights,
        default=None,
        help="Custom weights, oldest first, e.g. --weights=-1,0,1 (overrides --preset)",
    )
    p.add_argument("--scale", type=str, default="1", help="Scale for --weights: number, a/b or 'auto'")
    p.add_argument("--bias", type=_parse_bias, default=0, help="Bias after scaling, or 'neutral' for mid-gray")
    p.add_argument("--bit-depth", type=int, default=8, help="Sample bit depth of custom mixers")
    p.add_argument("--overlay", choices=BLEND_MODES, default=None, help="Blend the result back onto the input")
    p.add_argument("--config", type=str, default=None, help="JSON graph description (overrides preset options)")
    p.add_argument("--fps", type=int, default=DEFAULT_FPS, help="Output frames per second")
    p.add_argument("--max-frames", type=int, default=None, help="Limit number of frames processed")
    p.add_argument("--max-ram-mb", type=float, default=None, help="Warn when window storage would exceed this")


def run_main(args: argparse.Namespace) -> None:
    graph = build_graph(args)
    stop = threading.Event()
    with VideoReaderSource(args.input, max_frames=args.max_frames) as source, VideoWriterSink(
        args.output, fps=args.fps
    ) as sink:
        try:
            stats = graph.run(source, sink, stop=stop, max_ram_mb=args.max_ram_mb)
        except KeyboardInterrupt:
            stop.set()
            raise SystemExit(f"Interrupted after {sink.frames_written} frame(s)")
    print(
        f"Processed {args.input} -> {args.output}. Frames in={stats.frames_in}, "
        f"out={stats.frames_out}, time={stats.elapsed:.2f}s"
    )


def presets_main() -> None:
    for name in sorted(PRESETS):
        factory = PRESETS[name]
        example = factory(3) if name in ("delay", "average") else factory()
        weights = ", ".join(str(w) for w in example.weights)
        print(f"{name:<11} K={example.frame_count} weights=[{weights}] scale={example.scale} bias={example.bias}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="temporalmix: streaming temporal compositing for video")
    parser.add_argument("--version", action="version", version=get_version_string())
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run a video through a mixer preset or graph")
    _add_run_arguments(p_run)
    sub.add_parser("presets", help="List mixer presets")

    args = parser.parse_args(argv)
    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.cmd == "run":
        try:
            run_main(args)
        except ConfigurationError as exc:
            parser.error(str(exc))
        except TemporalMixError as exc:
            raise SystemExit(f"temporalmix: {exc}") from exc
    elif args.cmd == "presets":
        presets_main()
    else:
        parser.error("Unknown command")


if __name__ == "__main__":
    main()
