"""CLI wrapper: adjacent-frame motion extraction on a video file."""
from __future__ import annotations

import argparse

from temporalmix.config import preset_graph
from temporalmix.stream import VideoReaderSource, VideoWriterSink


def main():
    parser = argparse.ArgumentParser(description="Motion extraction (frame N minus frame N-delay, mid-gray centred)")
    parser.add_argument("input", help="Input video path")
    parser.add_argument("output", help="Output video path")
    parser.add_argument("--delay", type=int, default=1, help="Frame distance to difference against")
    parser.add_argument("--fps", type=int, default=30, help="Output frames per second")
    args = parser.parse_args()

    graph = preset_graph("delay", delay=args.delay, neutral=True)
    with VideoReaderSource(args.input) as source, VideoWriterSink(args.output, fps=args.fps) as sink:
        stats = graph.run(source, sink)
    print(f"Wrote {stats.frames_out} frame(s) to {args.output}")


if __name__ == "__main__":
    main()
