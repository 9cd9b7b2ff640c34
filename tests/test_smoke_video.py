from __future__ import annotations

import shutil
import subprocess

import imageio.v2 as imageio
import pytest

from temporalmix.config import preset_graph
from temporalmix.stream import VideoReaderSource, VideoWriterSink


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg required")
def test_smoke_video_roundtrip(tmp_path):
    clip = tmp_path / "clip.mp4"
    out = tmp_path / "motion.mp4"

    subprocess.run([
        "ffmpeg",
        "-y",
        "-f",
        "lavfi",
        "-i",
        "testsrc=size=160x128:rate=10",
        "-t",
        "1",
        "-pix_fmt",
        "yuv420p",
        str(clip),
    ], check=True, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)

    graph = preset_graph("neutral", overlay="screen")
    with VideoReaderSource(str(clip), max_frames=8) as source, VideoWriterSink(str(out), fps=10) as sink:
        stats = graph.run(source, sink)

    assert stats.frames_in == 8
    assert stats.frames_out == 7
    assert out.exists()
    with imageio.get_reader(str(out)) as reader:
        assert reader.get_meta_data()["size"] == (160, 128)
