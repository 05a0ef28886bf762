"""End-to-end runs through the Pipeline and the click CLI on synthetic descriptors."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from click.testing import CliRunner

from conftest import make_sequence
from main import cli
from adspot.detection.catalog import AdCatalog
from adspot.errors import AdSpotError
from adspot.pipeline import Pipeline
from adspot.utils.descriptor_io import read_ad_directory, read_descriptor, write_ad_directory, write_descriptor

ALPHA = list(range(10, 121, 10))    # 12 sampled frames
BRAVO = list(range(140, 251, 10))   # 12 sampled frames
FILLER = 255

EXPECTED_RESULTS = "broadcast\t6.333\t4.000\talpha\nbroadcast\t1.000\t4.000\tbravo\n"


@pytest.fixture
def workspace(tmp_path: Path) -> dict:
    ads_dir = tmp_path / "ads"
    ads = [make_sequence("bravo", BRAVO, duration_ms=4000), make_sequence("alpha", ALPHA, duration_ms=4000)]
    for seq in ads:
        write_descriptor(ads_dir / f"{seq.name}.txt", seq)
    write_ad_directory(ads_dir / "ads.txt", [(s.name, s.total_frames, s.duration_ms) for s in ads])

    # 33 sampled frames of a 330-frame, 11 s broadcast (30 fps)
    values = [FILLER] * 3 + BRAVO + [FILLER] * 4 + ALPHA + [FILLER] * 2
    broadcast = make_sequence("broadcast", values, duration_ms=11000)
    broadcast_path = tmp_path / "broadcast.txt"
    write_descriptor(broadcast_path, broadcast)
    return {"root": tmp_path, "ads_dir": ads_dir, "broadcast": broadcast_path}


def test_pipeline_run_finds_both_ads(workspace: dict, config) -> None:
    out = workspace["root"] / "out"
    emitter = Pipeline(config, out, progress=False).run(workspace["broadcast"], workspace["ads_dir"])

    assert [d.ad_name for d in emitter] == ["alpha", "bravo"]
    assert [d.start_frame for d in emitter] == [19, 3]
    assert (out / "results.txt").read_text(encoding="utf8") == EXPECTED_RESULTS
    assert (out / "nearest.txt").is_file()


def test_cli_run(workspace: dict) -> None:
    out = workspace["root"] / "cli_out"
    result = CliRunner().invoke(
        cli, ["--no-progress", "run", str(workspace["broadcast"]), str(workspace["ads_dir"]), "-o", str(out)]
    )
    assert result.exit_code == 0, result.output
    assert "Detections in broadcast: 2" in result.output
    assert (out / "results.txt").read_text(encoding="utf8") == EXPECTED_RESULTS


def test_cli_match_then_detect_gives_same_results(workspace: dict) -> None:
    out = workspace["root"] / "staged"
    runner = CliRunner()
    result = runner.invoke(
        cli, ["--no-progress", "match", str(workspace["broadcast"]), str(workspace["ads_dir"]), "-o", str(out)]
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        cli, ["--no-progress", "detect", str(out / "nearest.txt"), str(workspace["ads_dir"] / "ads.txt")]
    )
    assert result.exit_code == 0, result.output
    assert (out / "results.txt").read_text(encoding="utf8") == EXPECTED_RESULTS


def test_cli_run_json(workspace: dict) -> None:
    out = workspace["root"] / "json_out"
    result = CliRunner().invoke(
        cli,
        ["--no-progress", "run", str(workspace["broadcast"]), str(workspace["ads_dir"]), "-o", str(out), "--format", "json"],
    )
    assert result.exit_code == 0, result.output
    assert '"ad_name": "alpha"' in (out / "results.json").read_text(encoding="utf8")


def test_cli_zero_duration_broadcast_exits_with_degenerate_code(workspace: dict) -> None:
    broadcast = workspace["root"] / "silent.txt"
    write_descriptor(broadcast, make_sequence("silent", [FILLER] * 3, duration_ms=0))
    result = CliRunner().invoke(
        cli, ["--no-progress", "run", str(broadcast), str(workspace["ads_dir"]), "-o", str(workspace["root"] / "x")]
    )
    assert result.exit_code == 5
    assert not (workspace["root"] / "x" / "nearest.txt").exists()


def test_cli_describe_empty_directory(tmp_path: Path) -> None:
    empty = tmp_path / "videos"
    empty.mkdir()
    result = CliRunner().invoke(cli, ["--no-progress", "describe", str(empty)])
    assert result.exit_code == 5
    assert "[describe:error]" in result.output


def test_cli_rejects_bad_config(tmp_path: Path, workspace: dict) -> None:
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("sampling:\n  sample_rate: -1\n", encoding="utf8")
    result = CliRunner().invoke(cli, ["--config", str(cfg), "run", str(workspace["broadcast"]), str(workspace["ads_dir"])])
    assert result.exit_code == 2
    assert "[config:error]" in result.output


class _FakeReader:
    def __init__(self, video_path):
        self.video_path = Path(video_path)
        self.total_frames = 25
        self.duration_ms = 1000
        self._value = 40 if self.video_path.stem == "a" else 200

    def frames(self, step: int = 1):
        for idx in range(0, self.total_frames, step):
            yield idx, np.full((24, 32, 3), self._value, dtype=np.uint8)


def test_describe_videos_writes_descriptors_and_ad_directory(tmp_path: Path, config, monkeypatch) -> None:
    monkeypatch.setattr("adspot.pipeline.VideoReader", _FakeReader)
    videos = tmp_path / "videos"
    videos.mkdir()
    for name in ("b.mpg", "a.mpg", "skip.avi"):
        (videos / name).write_bytes(b"")
    out = tmp_path / "descriptors"

    sequences = Pipeline(config, out, progress=False).describe_videos(videos)

    assert [s.name for s in sequences] == ["a", "b"]
    assert read_ad_directory(out / "ads.txt") == [("a", 25, 1000), ("b", 25, 1000)]
    a = read_descriptor(out / "a.txt")
    assert a.sampled_frames == 3
    assert a.fingerprint_length == 256
    assert np.all(a.frames == 40)
    assert not (out / "skip.txt").exists()

    catalog = AdCatalog.from_descriptor_dir(out, config.sampling, config.io)
    assert catalog.names == ["a", "b"]


def test_cli_run_into_unwritable_output_reports_error(workspace: dict) -> None:
    blocker = workspace["root"] / "blocker"
    blocker.write_text("keep\n", encoding="utf8")
    result = CliRunner().invoke(
        cli,
        ["--no-progress", "run", str(workspace["broadcast"]), str(workspace["ads_dir"]), "-o", str(blocker / "out")],
    )
    assert result.exit_code == 2
    assert "[run:error]" in result.output
    assert blocker.read_text(encoding="utf8") == "keep\n"


def test_describe_into_unwritable_output_reports_error(tmp_path: Path, config, monkeypatch) -> None:
    monkeypatch.setattr("adspot.pipeline.VideoReader", _FakeReader)
    videos = tmp_path / "videos"
    videos.mkdir()
    (videos / "a.mpg").write_bytes(b"")
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf8")

    with pytest.raises(AdSpotError) as e:
        Pipeline(config, blocker / "descriptors", progress=False).describe_videos(videos)
    assert e.value.exit_code == 2
