import json
import sys

import numpy as np
import pytest
from PIL import Image

from codec_bench.benchmark import main, parse_args
from codec_bench.config import BenchmarkArgs


@pytest.fixture
def images(tmp_path):
    rng = np.random.default_rng(0)
    folder = tmp_path / "images"
    folder.mkdir()
    for i in range(3):
        arr = rng.integers(0, 256, size=(20, 30, 3), dtype=np.uint8)
        Image.fromarray(arr).save(folder / f"img{i}.png")
    return str(folder / "*.png")


def test_parse_args_builds_benchmark_args():
    ns = parse_args(["-i", "*.png", "-c", "png", "-c", "jpeg:q80", "--custom_codec_quiet"])
    args = BenchmarkArgs.from_args(ns)
    assert args.codecs == ("png", "jpeg:q80")
    assert args.custom_codec.quiet
    assert args.custom_codec.extension == "png"


def test_builtin_codecs(images, tmp_path, capsys):
    output = tmp_path / "results.json"
    rc = main(["-i", images, "-c", "png", "-c", "jpeg:q90", "--num_threads", "2",
               "--output", str(output)])
    assert rc == 0

    report = json.loads(output.read_text())
    png, jpeg = report["summaries"]
    assert png["codec"] == "png"
    assert png["num_images"] == 3
    assert png["num_failed"] == 0
    assert png["mean_psnr"] is None  # lossless
    assert jpeg["mean_psnr"] > 20
    assert len(report["results"]) == 6
    assert "Geomean of 3" in png["encode_speed"]
    assert "Geomean of 3" in jpeg["decode_speed"]

    out = capsys.readouterr().out
    assert "jpeg:q90" in out
    assert "png encode: " in out
    assert "MP/s" in out


@pytest.mark.skipif(sys.platform == "win32", reason="custom codecs need POSIX processes")
def test_custom_codec(images, make_codec, tmp_path):
    script = make_codec()
    saved = tmp_path / "saved"
    output = tmp_path / "results.json"
    rc = main(["-i", images, "-c", f"custom:bin:{script}:{script}",
               "--custom_codec_quiet", "--custom_codec_temp_dir", str(tmp_path),
               "--save_decompressed", str(saved), "--output", str(output)])
    assert rc == 0
    summary = json.loads(output.read_text())["summaries"][0]
    assert summary["num_failed"] == 0
    assert summary["bpp"] > 0
    assert len(list(saved.iterdir())) == 3


@pytest.mark.skipif(sys.platform == "win32", reason="custom codecs need POSIX processes")
def test_failures_are_reported(images, make_codec, tmp_path):
    script = make_codec("sys.exit(1)")
    output = tmp_path / "results.json"
    rc = main(["-i", images, "-c", f"custom:bin:{script}:{script}",
               "--custom_codec_quiet", "--output", str(output)])
    assert rc == 1
    report = json.loads(output.read_text())
    assert report["summaries"][0]["num_failed"] == 3
    assert all(not r["success"] for r in report["results"])


def test_no_images(tmp_path):
    assert main(["-i", str(tmp_path / "*.png"), "-c", "png"]) == 1


def test_bad_codec(images):
    assert main(["-i", images, "-c", "png:zzz"]) == 2
