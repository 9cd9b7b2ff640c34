from __future__ import annotations

import json

import matplotlib

matplotlib.use("Agg")

from temporalmix.bench import bench_synthetic, collect_env, synthetic_frames, write_results  # noqa: E402
from temporalmix.profile import run_profile  # noqa: E402


def test_synthetic_frames_are_lazy_and_shaped():
    frames = synthetic_frames(3, 8, 10)
    first = next(frames)
    assert first.layout == (8, 10, 3, 8)
    assert len(list(frames)) == 2


def test_bench_writes_report(tmp_path):
    results = [bench_synthetic("delay", k, 16, 16, 12) for k in (2, 4)]
    assert [r.frame_count for r in results] == [2, 4]
    assert all(r.frames == 12 and r.width == 16 for r in results)
    write_results(tmp_path, results, collect_env())
    data = json.loads((tmp_path / "results.json").read_text(encoding="utf-8"))
    assert len(data["results"]) == 2
    assert "| delay | 4 |" in (tmp_path / "report.md").read_text(encoding="utf-8")
    assert (tmp_path / "plots" / "throughput.png").exists()


def test_profile_resident_frames_bounded(tmp_path):
    result = run_profile(tmp_path, frames=200, width=16, height=12, window=5)
    assert result["frames"] == 200
    assert result["frames_out"] == 196
    assert result["peak_resident_frames"] == 5
    assert (tmp_path / "profile.json").exists()
