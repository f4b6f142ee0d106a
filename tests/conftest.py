import os
import sys

import numpy as np
import pytest

from codec_bench import BenchmarkArgs, ColorEncoding, CustomCodecArgs, ImageBundle

# Stand-in for an external codec: copies its second to last argument to its
# last one. Behaviour is tweaked through environment variables so that one
# script serves as compressor and decompressor.
FAKE_CODEC = """#!{python}
import os, shutil, sys, time

args = sys.argv[1:]
src, dst = args[-2], args[-1]
log = os.environ.get("FAKE_CODEC_LOG")
if log:
    with open(log, "a") as f:
        f.write("\\t".join(args) + "\\n")
keep = os.environ.get("FAKE_CODEC_KEEP_INPUT")
if keep and not os.path.exists(keep):
    shutil.copyfile(src, keep)
print("fake codec running")
{body}
"""

COPY = "shutil.copyfile(src, dst)"


@pytest.fixture
def make_codec(tmp_path):
    """Write an executable fake codec whose last lines are `body`."""
    counter = [0]

    def _make(body=COPY):
        counter[0] += 1
        path = tmp_path / f"fake_codec_{counter[0]}.py"
        path.write_text(FAKE_CODEC.format(python=sys.executable, body=body))
        os.chmod(path, 0o755)
        return str(path)

    return _make


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def bench_args(work_dir):
    def _args(**kwargs):
        return BenchmarkArgs(
            custom_codec=CustomCodecArgs(temp_dir=str(work_dir), **kwargs)
        )

    return _args


@pytest.fixture
def rgb_image():
    rng = np.random.default_rng(0)
    pixels = rng.integers(0, 256, size=(16, 24, 3)).astype(np.float32) / 255.0
    return ImageBundle(pixels)


@pytest.fixture
def gray_image():
    pixels = np.linspace(0.0, 1.0, 8 * 8, dtype=np.float32).reshape(8, 8, 1)
    return ImageBundle(pixels, ColorEncoding.srgb(is_gray=True))
