from __future__ import annotations

import argparse
import json
import sys
import time
import tracemalloc
from pathlib import Path
from typing import Optional

import psutil

from .bench import synthetic_frames
from .graph import chain
from .mixer import temporal_average
from .stream import CallbackSink, IterableSource
from .version import get_build_meta


def current_rss_mb() -> float:
    proc = psutil.Process()
    return proc.memory_info().rss / (1024 * 1024)


def run_profile(
    out_dir: Path,
    frames: int = 2000,
    width: int = 320,
    height: int = 240,
    window: int = 6,
) -> dict:
    """Stream ``frames`` synthetic frames through a K=``window`` mixer and record memory."""
    out_dir.mkdir(parents=True, exist_ok=True)
    graph = chain(temporal_average(window))
    peak_resident = 0

    def observe(_frame) -> None:
        nonlocal peak_resident
        peak_resident = max(peak_resident, graph.resident_frames)

    tracemalloc.start()
    rss_start = current_rss_mb()
    t0 = time.perf_counter()
    stats = graph.run(IterableSource(synthetic_frames(frames, height, width)), CallbackSink(observe))
    elapsed = time.perf_counter() - t0
    rss_end = current_rss_mb()
    _, peak_bytes = tracemalloc.get_traced_memory()
    tracemalloc.stop()

    frame_bytes = width * height * 3
    result = {
        "frames": stats.frames_in,
        "frames_out": stats.frames_out,
        "window": window,
        "elapsed_sec": elapsed,
        "fps": stats.frames_in / elapsed if elapsed > 0 else 0.0,
        "peak_resident_frames": peak_resident,
        "window_bound_bytes": window * frame_bytes,
        "tracemalloc_peak_bytes": peak_bytes,
        "rss_start_mb": rss_start,
        "rss_end_mb": rss_end,
    }
    result["env"] = {
        "python": sys.version,
        "platform": sys.platform,
        "git": get_build_meta()["git_hash"],
    }

    with open(out_dir / "profile.json", "w", encoding="utf-8") as f:
        json.dump(result, f, indent=2)
    return result


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Profile temporalmix memory over a long synthetic stream")
    parser.add_argument("--out", type=Path, required=True, help="Output directory for profile")
    parser.add_argument("--frames", type=int, default=2000, help="Number of synthetic frames")
    parser.add_argument("--size", type=str, default="320x240", help="Frame size WxH")
    parser.add_argument("--window", type=int, default=6, help="Mixer window size K")
    args = parser.parse_args(argv)

    width, height = (int(v) for v in args.size.lower().split("x"))
    res = run_profile(args.out, frames=args.frames, width=width, height=height, window=args.window)
    print(json.dumps(res, indent=2))


if __name__ == "__main__":
    main()
