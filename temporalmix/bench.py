from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import matplotlib.pyplot as plt
import numpy as np

from .frame import Frame
from .graph import FilterGraph, chain
from .mixer import PRESETS, MixerConfig
from .stream import CallbackSink, IterableSource, VideoReaderSource
from .version import get_build_meta


@dataclass
class BenchResult:
    preset: str
    frame_count: int
    clip: str
    width: int
    height: int
    frames: int
    elapsed: float
    fps: float
    mpix_per_sec: float


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def synthetic_frames(count: int, height: int, width: int, channels: int = 3, seed: int = 0) -> Iterator[Frame]:
    """A textured plate sliding one pixel per frame; generated lazily."""
    rng = np.random.default_rng(seed)
    plate = rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)
    for i in range(count):
        yield Frame(np.roll(plate, i, axis=1))


def make_config(preset: str, k: int) -> MixerConfig:
    factory = PRESETS[preset]
    if preset == "delay":
        return factory(k - 1)
    if preset == "average":
        return factory(k)
    return factory()


def _bench(graph: FilterGraph, source, label: str, config: MixerConfig, clip: str) -> BenchResult:
    shape = {}

    def note(frame: Frame) -> None:
        shape["hw"] = (frame.height, frame.width)

    stats = graph.run(source, CallbackSink(note))
    height, width = shape.get("hw", (0, 0))
    fps = stats.frames_in / stats.elapsed if stats.elapsed > 0 else 0.0
    return BenchResult(
        preset=label,
        frame_count=config.frame_count,
        clip=clip,
        width=width,
        height=height,
        frames=stats.frames_in,
        elapsed=stats.elapsed,
        fps=fps,
        mpix_per_sec=fps * width * height / 1e6,
    )


def bench_synthetic(preset: str, k: int, height: int, width: int, frames: int) -> BenchResult:
    config = make_config(preset, k)
    source = IterableSource(synthetic_frames(frames, height, width))
    return _bench(chain(config), source, preset, config, f"synthetic-{width}x{height}")


def bench_clip(clip: Path, preset: str, k: int, max_frames: Optional[int]) -> BenchResult:
    config = make_config(preset, k)
    with VideoReaderSource(str(clip), max_frames=max_frames) as source:
        return _bench(chain(config), source, preset, config, clip.name)


def collect_env() -> dict:
    data = {
        "python": sys.version,
        "platform": sys.platform,
        "numpy": np.__version__,
    }
    data["git_commit"] = get_build_meta()["git_hash"]
    return data


def write_results(out_dir: Path, results: list[BenchResult], env: dict) -> None:
    ensure_dir(out_dir)
    with open(out_dir / "results.json", "w", encoding="utf-8") as f:
        json.dump({"env": env, "results": [asdict(r) for r in results]}, f, indent=2)

    lines = []
    lines.append("# temporalmix Benchmark Report\n")
    lines.append(f"Env: {env}\n")
    lines.append("| preset | K | clip | size | frames | time (s) | fps | Mpix/s |")
    lines.append("|---|---|---|---|---|---|---|---|")
    for r in results:
        lines.append(
            f"| {r.preset} | {r.frame_count} | {r.clip} | {r.width}x{r.height} | {r.frames} | "
            f"{r.elapsed:.2f} | {r.fps:.1f} | {r.mpix_per_sec:.1f} |"
        )
    (out_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")

    ensure_dir(out_dir / "plots")
    if results:
        # throughput against window size, one line per preset and clip
        plt.figure()
        for key in sorted(set((r.preset, r.clip) for r in results)):
            rows = sorted((r for r in results if (r.preset, r.clip) == key), key=lambda r: r.frame_count)
            plt.plot([r.frame_count for r in rows], [r.fps for r in rows], marker="o", label=f"{key[0]} {key[1]}")
        plt.xlabel("Window size K")
        plt.ylabel("Frames per second")
        plt.legend()
        plt.tight_layout()
        plt.savefig(out_dir / "plots" / "throughput.png")
        plt.close()


def _parse_size(text: str) -> tuple[int, int]:
    width, height = text.lower().split("x")
    return int(width), int(height)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Benchmark temporalmix mixer throughput")
    parser.add_argument("--out", type=Path, required=True, help="Output directory for results")
    parser.add_argument("--presets", type=str, default="difference,delay,average", help="Comma separated presets")
    parser.add_argument("--windows", type=str, default="2,4,8,16", help="Comma separated window sizes")
    parser.add_argument("--sizes", type=str, default="320x240,640x480", help="Synthetic frame sizes WxH")
    parser.add_argument("--frames", type=int, default=120, help="Synthetic frames per run")
    parser.add_argument("--clips", type=Path, default=None, help="Optional directory of .mp4 clips")
    parser.add_argument("--max-frames", type=int, default=None, help="Frame limit per clip")
    args = parser.parse_args(argv)

    presets = [p.strip() for p in args.presets.split(",") if p.strip()]
    windows = [int(k) for k in args.windows.split(",") if k.strip()]
    sizes = [_parse_size(s) for s in args.sizes.split(",") if s.strip()]
    clips = sorted(p for p in args.clips.glob("*.mp4") if p.is_file()) if args.clips else []
    for preset in presets:
        if preset not in PRESETS:
            raise SystemExit(f"Unknown preset {preset!r}; choose from {sorted(PRESETS)}")

    results: list[BenchResult] = []
    for preset in presets:
        # fixed-window presets only run once
        ks = windows if preset in ("delay", "average") else [2]
        for k in ks:
            for width, height in sizes:
                results.append(bench_synthetic(preset, k, height, width, args.frames))
            for clip in clips:
                results.append(bench_clip(clip, preset, k, args.max_frames))

    write_results(args.out, results, collect_env())
    print(f"Wrote results to {args.out}")


if __name__ == "__main__":
    main()
