"""
Run one or more codecs over a set of images and report size, quality and
speed per codec.

    codec-bench -i "images/*.png" -c png -c "webp:q80" \
        -c "custom:jxl:/usr/bin/cjxl:/usr/bin/djxl:-d:1.0"
"""

import argparse
import dataclasses
import glob
import json
import os
import sys
import threading
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed

import tqdm
from pyinstrument import Profiler
from typing_extensions import Dict, List, Optional, Tuple

from .codec import ImageCodec
from .codec_io import convert_to, encode_to_file, set_from_file
from .config import BenchmarkArgs
from .custom_codec import add_command_line_options
from .errors import CodecError
from .metrics import compute_metrics
from .register import CODECS, create_image_codec
from .speed_stats import SpeedStats


@dataclasses.dataclass
class ImageResult:
    codec: str
    filename: str
    success: bool
    xsize: int = 0
    ysize: int = 0
    compressed_bytes: int = 0
    bpp: Optional[float] = None
    psnr: Optional[float] = None
    encode_seconds: float = 0.0
    decode_seconds: float = 0.0
    error_message: Optional[str] = None


@dataclasses.dataclass
class CodecSummary:
    codec: str
    num_images: int
    num_failed: int
    total_pixels: int
    total_bytes: int
    bpp: Optional[float]
    mean_psnr: Optional[float]
    encode_mps: Optional[float]
    decode_mps: Optional[float]
    encode_speed: Optional[str] = None
    decode_speed: Optional[str] = None


class _ThreadCodecs(threading.local):
    def __init__(self) -> None:
        self.codecs: Dict[Tuple[str, BenchmarkArgs], ImageCodec] = {}


# One codec instance per worker thread and configuration. An instance keeps
# state between compress and decompress of an image, so it must never serve
# two images at the same time.
_thread_codecs = _ThreadCodecs()


def get_thread_codec(description: str, args: BenchmarkArgs) -> ImageCodec:
    codecs = _thread_codecs.codecs
    key = (description, args)
    if key not in codecs:
        codecs[key] = create_image_codec(description, args)
    return codecs[key]


def _saved_filename(args: BenchmarkArgs, codec: ImageCodec, filename: str) -> str:
    name = f"{os.path.splitext(os.path.basename(filename))[0]}.{codec.description}"
    name = name.replace("/", "_").replace(":", "_")
    return os.path.join(args.save_decompressed, name + ".png")


def benchmark_image(
    description: str,
    filename: str,
    args: BenchmarkArgs,
    pool: Optional[Executor] = None,
) -> ImageResult:
    codec = get_thread_codec(description, args)
    encode_stats = SpeedStats()
    decode_stats = SpeedStats()
    try:
        io = set_from_file(filename)
        compressed = codec.compress(filename, io, pool, encode_stats)
        decoded = codec.decompress(filename, compressed, pool, decode_stats)
        decoded = convert_to(decoded, io.color_encoding, pool)
        metrics = compute_metrics(io, decoded, len(compressed))
        if args.save_decompressed:
            encode_to_file(
                decoded, decoded.color_encoding, 8,
                _saved_filename(args, codec, filename), pool,
            )
    except (CodecError, ValueError) as err:
        return ImageResult(description, filename, False, error_message=str(err))

    return ImageResult(
        description,
        filename,
        True,
        xsize=io.xsize,
        ysize=io.ysize,
        compressed_bytes=len(compressed),
        bpp=metrics["bpp"],
        psnr=metrics["psnr"],
        encode_seconds=encode_stats.total,
        decode_seconds=decode_stats.total,
    )


def _speed_summary(seconds: List[float], pixels: int) -> Optional[str]:
    stats = SpeedStats()
    for s in seconds:
        stats.notify_elapsed(s)
    if not len(stats):
        return None
    return stats.summary_string(pixels)


def summarize(description: str, results: List[ImageResult]) -> CodecSummary:
    ok = [r for r in results if r.success]
    total_pixels = sum(r.xsize * r.ysize for r in ok)
    total_bytes = sum(r.compressed_bytes for r in ok)
    encode_seconds = sum(r.encode_seconds for r in ok)
    decode_seconds = sum(r.decode_seconds for r in ok)
    finite_psnr = [r.psnr for r in ok if r.psnr != float("inf")]
    pixels_per_image = total_pixels // len(ok) if ok else 0
    return CodecSummary(
        codec=description,
        num_images=len(results),
        num_failed=len(results) - len(ok),
        total_pixels=total_pixels,
        total_bytes=total_bytes,
        bpp=total_bytes * 8.0 / total_pixels if total_pixels else None,
        mean_psnr=sum(finite_psnr) / len(finite_psnr) if finite_psnr else None,
        encode_mps=total_pixels * 1e-6 / encode_seconds if encode_seconds else None,
        decode_mps=total_pixels * 1e-6 / decode_seconds if decode_seconds else None,
        encode_speed=_speed_summary([r.encode_seconds for r in ok], pixels_per_image),
        decode_speed=_speed_summary([r.decode_seconds for r in ok], pixels_per_image),
    )


def _fmt(value: Optional[float], fmt: str) -> str:
    return "-" if value is None else format(value, fmt)


def print_table(summaries: List[CodecSummary]) -> None:
    header = f"{'Codec':<40} {'Images':>7} {'Failed':>7} {'Bytes':>12} {'BPP':>8} {'PSNR':>8} {'Enc MP/s':>9} {'Dec MP/s':>9}"
    print(header)
    print("-" * len(header))
    for s in summaries:
        print(
            f"{s.codec:<40} {s.num_images:>7} {s.num_failed:>7} {s.total_bytes:>12} "
            f"{_fmt(s.bpp, '.4f'):>8} {_fmt(s.mean_psnr, '.2f'):>8} "
            f"{_fmt(s.encode_mps, '.2f'):>9} {_fmt(s.decode_mps, '.2f'):>9}"
        )
    for s in summaries:
        if s.encode_speed:
            print(f"{s.codec} encode: {s.encode_speed}")
        if s.decode_speed:
            print(f"{s.codec} decode: {s.decode_speed}")


def run_benchmark(
    args: BenchmarkArgs, filenames: List[str]
) -> Tuple[List[CodecSummary], List[ImageResult]]:
    descriptions = []
    for description in args.codecs:
        # Fails early on bad parameters.
        if create_image_codec(description, args) is None:
            print(f"Codec {description} is not supported on this platform, skipping")
            continue
        descriptions.append(description)

    inner_pool = ThreadPoolExecutor(args.inner_threads) if args.inner_threads > 0 else None
    results: Dict[str, List[ImageResult]] = {d: [] for d in descriptions}
    try:
        with ThreadPoolExecutor(max(1, args.num_threads)) as executor:
            futures = [
                executor.submit(benchmark_image, d, f, args, inner_pool)
                for d in descriptions
                for f in filenames
            ]
            for future in tqdm.tqdm(as_completed(futures), total=len(futures)):
                result = future.result()
                results[result.codec].append(result)
                if not result.success:
                    tqdm.tqdm.write(
                        f"{result.codec} failed on {result.filename}: {result.error_message}"
                    )
    finally:
        if inner_pool is not None:
            inner_pool.shutdown()

    summaries = [summarize(d, results[d]) for d in descriptions]
    all_results = [r for d in descriptions for r in sorted(results[d], key=lambda r: r.filename)]
    return summaries, all_results


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Image codec benchmark.")
    parser.add_argument("-i", "--input", type=str, required=True, help="input glob")
    parser.add_argument(
        "-c",
        "--codec",
        dest="codecs",
        action="append",
        required=True,
        help=f"codec description, name one of {sorted(CODECS.keys())}; may be repeated",
    )
    parser.add_argument("--num_threads", type=int, default=1, help="images processed in parallel")
    parser.add_argument(
        "--inner_threads", type=int, default=0, help="threads for pixel conversion (0: none)"
    )
    parser.add_argument("--save_decompressed", type=str, default=None)
    parser.add_argument("--output", type=str, default=None, help="write results as json")
    parser.add_argument("--profile", action="store_true")
    add_command_line_options(parser)
    return parser.parse_args(argv)


def main(argv=None) -> int:
    ns = parse_args(argv)
    args = BenchmarkArgs.from_args(ns)

    if ns.profile:
        profiler = Profiler()
        profiler.start()
    else:
        profiler = None

    filenames = sorted(glob.glob(args.input))
    if not filenames:
        print(f"No images match {args.input}")
        return 1
    if args.save_decompressed:
        os.makedirs(args.save_decompressed, exist_ok=True)

    print(f"Benchmarking {len(args.codecs)} codec(s) on {len(filenames)} image(s)")
    try:
        summaries, results = run_benchmark(args, filenames)
    except CodecError as err:
        print(f"Invalid codec configuration: {err}")
        return 2
    print_table(summaries)

    if args.output:
        with open(args.output, "w") as f:
            json.dump(
                {
                    "summaries": [dataclasses.asdict(s) for s in summaries],
                    "results": [dataclasses.asdict(r) for r in results],
                },
                f,
                indent=2,
            )

    if profiler is not None:
        profiler.stop()
        profiler.print()

    return 0 if all(s.num_failed == 0 for s in summaries) else 1


if __name__ == "__main__":
    sys.exit(main())
