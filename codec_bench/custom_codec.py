"""
Benchmark an external codec given as a compress/decompress executable pair.

    custom:<ext>:<compress command>:<decompress command>[:<extra arg>...]

The compressor is called as ``<compress command> <extra args...> <in> <out>``
and the decompressor as ``<decompress command> <in> <out>``, where the
intermediate images use the format of --custom_codec_extension. A codec that
wants to report its own running time (e.g. without process startup) writes it
in seconds to ``<out without extension>.time``.

Extra arguments of the form ``-d<value>`` are also parsed as the shared
``d<value>`` benchmark parameter, so ``-d1.5`` both reaches the external tool
and sets the butteraugli target.
"""

import argparse
import contextlib
import math
import os
import sys
import warnings
from concurrent.futures import Executor

from typing_extensions import Callable, List, Optional

from .codec import ImageCodec
from .codec_io import ColorHints, encode_to_file, set_from_file
from .config import BenchmarkArgs
from .errors import CodecConfigError, CodecIOError
from .image import ImageBundle, parse_description
from .register import register_codec
from .speed_stats import ElapsedTime, SpeedStats, Timer
from .utils import TemporaryFile, run_command

# Relies on POSIX process and path handling.
SUPPORTED = sys.platform != "win32"


def add_command_line_options(parser: argparse.ArgumentParser) -> None:
    if not SUPPORTED:
        return
    parser.add_argument(
        "--custom_codec_extension",
        type=str,
        default="png",
        help="Converts input and output of codec to this file type (default: %(default)s).",
    )
    parser.add_argument(
        "--custom_codec_colorspace",
        type=str,
        default="",
        help="If not empty, converts input and output of codec to this colorspace.",
    )
    parser.add_argument(
        "--custom_codec_quiet",
        action="store_true",
        help="Hide stdout and stderr of the custom codec.",
    )
    parser.add_argument(
        "--custom_codec_timeout",
        type=float,
        default=None,
        help="Fail a custom codec run that takes longer than this many seconds.",
    )
    parser.add_argument(
        "--custom_codec_temp_dir",
        type=str,
        default=None,
        help="Directory for the files exchanged with the custom codec.",
    )


def get_base_name(filename: str) -> str:
    """File name without directory and without the last extension."""
    return os.path.splitext(os.path.basename(filename))[0]


def get_time_filename(output_filename: str) -> str:
    return os.path.splitext(output_filename)[0] + ".time"


def _parse_reported_time(text: str) -> Optional[float]:
    tokens = text.split()
    if not tokens:
        return None
    try:
        seconds = float(tokens[0])
    except ValueError:
        return None
    return seconds if math.isfinite(seconds) else None


def report_codec_running_time(
    function: Callable[[], None], output_filename: str, speed_stats: SpeedStats
) -> ElapsedTime:
    """
    Run `function` and report its running time to `speed_stats`.

    If the codec left a `.time` file next to `output_filename`, the time it
    contains takes precedence over our own measurement. The file is removed
    afterwards, also when `function` fails.
    """
    time_filename = get_time_filename(output_filename)
    try:
        with Timer() as timer:
            function()
        elapsed = ElapsedTime(timer.elapsed, self_reported=False)

        try:
            with open(time_filename) as f:
                reported = _parse_reported_time(f.read())
        except FileNotFoundError:
            pass
        else:
            if reported is None:
                warnings.warn(f"Ignoring unreadable codec timing in {time_filename}")
            else:
                elapsed = ElapsedTime(reported, self_reported=True)
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.remove(time_filename)

    speed_stats.notify_elapsed(elapsed.seconds)
    return elapsed


def routes_to_quality_parser(param: str) -> bool:
    """Whether an extra argument also configures the benchmark (``-d*``)."""
    return len(param) > 2 and param.startswith("-d")


def _describe_param(param: str) -> str:
    if len(param) > 2 and param.startswith("--"):
        return param[2:]
    if len(param) >= 2 and param[0] == "-" and param[1] != "-":
        return param[1:]
    return param


def _read_file(filename: str) -> bytes:
    try:
        with open(filename, "rb") as f:
            return f.read()
    except OSError as err:
        raise CodecIOError(f"Failed to read {filename}: {err}") from err


def _write_file(data: bytes, filename: str) -> None:
    try:
        with open(filename, "wb") as f:
            f.write(data)
    except OSError as err:
        raise CodecIOError(f"Failed to write {filename}: {err}") from err


class CustomCodec(ImageCodec):
    def __init__(self, args: Optional[BenchmarkArgs] = None) -> None:
        super().__init__(args)
        self.extension = ""
        self.compress_command = ""
        self.decompress_command = ""
        self.compress_args: List[str] = []
        self.param_index = 0
        # Compress and decompress of the same image always come in pairs;
        # the external round trip is not trusted to keep this field.
        self.saved_intensity_target = 255.0

    @property
    def custom_args(self):
        return self.args.custom_codec

    def parse_param(self, param: str) -> None:
        if self.param_index == 0:
            self._description = ""

        if self.param_index == 0:
            self.extension = param
            self._description += param
        elif self.param_index == 1:
            self.compress_command = param
            self._description += ":" + os.path.basename(param)
        elif self.param_index == 2:
            self.decompress_command = param
        else:
            self.compress_args.append(param)
            if routes_to_quality_parser(param):
                super().parse_param(param[1:])
            self._description += ":" + _describe_param(param)
        self.param_index += 1

    def _run(self, command: str, arguments: List[str]) -> None:
        run_command(
            command,
            arguments,
            quiet=self.custom_args.quiet,
            timeout=self.custom_args.timeout,
        )

    def compress(
        self,
        filename: str,
        io: ImageBundle,
        pool: Optional[Executor],
        speed_stats: SpeedStats,
    ) -> bytes:
        if self.param_index <= 2:
            raise CodecConfigError(
                "custom codec requires an extension, a compress command and a "
                "decompress command"
            )
        custom_args = self.custom_args
        basename = get_base_name(filename)

        with TemporaryFile(
            basename, custom_args.extension, custom_args.temp_dir
        ) as in_file, TemporaryFile(
            basename, self.extension, custom_args.temp_dir
        ) as encoded_file:
            self.saved_intensity_target = io.metadata.intensity_target

            bits = io.metadata.bits_per_sample
            c_enc = io.color_encoding
            if custom_args.colorspace:
                c_enc = parse_description(custom_args.colorspace)
            encode_to_file(io, c_enc, bits, in_file.name, pool)

            arguments = self.compress_args + [in_file.name, encoded_file.name]
            report_codec_running_time(
                lambda: self._run(self.compress_command, arguments),
                encoded_file.name,
                speed_stats,
            )
            compressed = _read_file(encoded_file.name)

        if not compressed:
            raise CodecIOError(f"{self.compress_command} produced no output")
        return compressed

    def decompress(
        self,
        filename: str,
        compressed: bytes,
        pool: Optional[Executor],
        speed_stats: SpeedStats,
    ) -> ImageBundle:
        custom_args = self.custom_args
        basename = get_base_name(filename)

        with TemporaryFile(
            basename, self.extension, custom_args.temp_dir
        ) as encoded_file, TemporaryFile(
            basename, custom_args.extension, custom_args.temp_dir
        ) as out_file:
            _write_file(compressed, encoded_file.name)
            report_codec_running_time(
                lambda: self._run(
                    self.decompress_command, [encoded_file.name, out_file.name]
                ),
                out_file.name,
                speed_stats,
            )

            # File decoding is serial. `pool` only serves pixel conversion, which
            # the decoded image does not need as it keeps the tool's encoding.
            hints: ColorHints = {}
            if custom_args.colorspace:
                hints["color_space"] = custom_args.colorspace
            io = set_from_file(out_file.name, hints)

        io.metadata.intensity_target = self.saved_intensity_target
        return io


@register_codec("custom")
def create_custom_codec(args: BenchmarkArgs) -> Optional[CustomCodec]:
    if not SUPPORTED:
        return None
    return CustomCodec(args)
