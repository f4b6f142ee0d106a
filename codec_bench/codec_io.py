"""
Conversion between in-memory images and image files.

Pillow handles PNG and the other common 8-bit containers, OpenCV the 16-bit
color PNG that Pillow cannot write. Binary PNM (ppm/pgm/pnm) is read and
written here directly since it is the simplest way to hand 9 to 16 bit
samples to external tools.
"""

import functools
import math
import os
import warnings
from concurrent.futures import Executor

import cv2
import numpy as np
from PIL import Image
from typing_extensions import Dict, Optional, Tuple, TypeAlias

from .errors import CodecIOError, UnsupportedConversionError
from .image import ColorEncoding, ImageBundle, ImageMetadata, parse_description

Image.MAX_IMAGE_PIXELS = None  # Don't detect decompression bombs

ColorHints: TypeAlias = Dict[str, str]

PNM_EXTENSIONS = ("ppm", "pgm", "pnm")
PIL_EXTENSIONS = ("png", "bmp", "tif", "tiff", "webp")

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
# IHDR color types for RGB and RGBA
PNG_COLOR_TYPES = (2, 6)

# (K_r, K_g, K_b), K_g = 1 - K_r - K_b
LUMA_WEIGHTS = {"ITU-R_BT.709": (0.2126, 0.7152, 0.0722)}

ROWS_PER_CHUNK = 256


def _extension(filename: str) -> str:
    return os.path.splitext(filename)[1][1:].lower()


def to_linear(x: np.ndarray, transfer_function: str) -> np.ndarray:
    if transfer_function == "Lin":
        return x
    if transfer_function == "SRG":
        return np.where(x <= 0.04045, x / 12.92, ((x + 0.055) / 1.055) ** 2.4)
    if transfer_function == "709":
        return np.where(x < 0.081, x / 4.5, ((x + 0.099) / 1.099) ** (1 / 0.45))
    if transfer_function == "DCI":
        return x**2.6
    if transfer_function.startswith("g"):
        return x ** (1 / float(transfer_function[1:]))
    raise UnsupportedConversionError(
        f"Conversion from transfer function {transfer_function} is not supported"
    )


def from_linear(x: np.ndarray, transfer_function: str) -> np.ndarray:
    if transfer_function == "Lin":
        return x
    if transfer_function == "SRG":
        return np.where(x <= 0.0031308, x * 12.92, 1.055 * x ** (1 / 2.4) - 0.055)
    if transfer_function == "709":
        return np.where(x < 0.018, x * 4.5, 1.099 * x**0.45 - 0.099)
    if transfer_function == "DCI":
        return x ** (1 / 2.6)
    if transfer_function.startswith("g"):
        return x ** float(transfer_function[1:])
    raise UnsupportedConversionError(
        f"Conversion to transfer function {transfer_function} is not supported"
    )


def _check_convertible(src: ColorEncoding, dst: ColorEncoding) -> None:
    if src.white_point != dst.white_point:
        raise UnsupportedConversionError(
            f"Cannot convert white point {src.white_point} to {dst.white_point}"
        )
    if not src.is_gray and not dst.is_gray and src.primaries != dst.primaries:
        raise UnsupportedConversionError(
            f"Cannot convert primaries {src.primaries} to {dst.primaries}"
        )
    if not src.is_gray and dst.is_gray and src.primaries != "SRG":
        raise UnsupportedConversionError(
            f"Cannot compute luminance for primaries {src.primaries}"
        )


def _convert_pixels(
    pixels: np.ndarray, src: ColorEncoding, dst: ColorEncoding
) -> np.ndarray:
    num_color = 1 if src.is_gray else 3
    color = np.clip(pixels[..., :num_color], 0.0, 1.0).astype(np.float64)
    alpha = pixels[..., num_color:]

    linear = to_linear(color, src.transfer_function)
    if src.is_gray and not dst.is_gray:
        linear = np.repeat(linear, 3, axis=-1)
    elif not src.is_gray and dst.is_gray:
        weights = np.asarray(LUMA_WEIGHTS["ITU-R_BT.709"])
        linear = linear @ weights[:, None]
    color = from_linear(linear, dst.transfer_function)

    return np.concatenate([color, alpha], axis=-1).astype(np.float32)


def convert_to(
    io: ImageBundle, c_enc: ColorEncoding, pool: Optional[Executor] = None
) -> ImageBundle:
    """
    Return a copy of `io` whose pixels are expressed in `c_enc`.
    Rows are converted in chunks on `pool` when one is given.
    """
    src = io.color_encoding
    if src == c_enc:
        return io.copy()
    _check_convertible(src, c_enc)

    convert = functools.partial(_convert_pixels, src=src, dst=c_enc)
    if pool is None or io.ysize <= ROWS_PER_CHUNK:
        pixels = convert(io.pixels)
    else:
        chunks = np.array_split(io.pixels, math.ceil(io.ysize / ROWS_PER_CHUNK))
        pixels = np.concatenate(list(pool.map(convert, chunks)), axis=0)

    metadata = ImageMetadata(io.metadata.bits_per_sample, io.metadata.intensity_target)
    return ImageBundle(pixels, c_enc, metadata)


def quantize(pixels: np.ndarray, bits: int) -> np.ndarray:
    if not 1 <= bits <= 16:
        raise CodecIOError(f"Unsupported bit depth {bits}")
    maxval = (1 << bits) - 1
    dtype = np.uint8 if bits <= 8 else np.uint16
    return np.round(np.clip(pixels, 0.0, 1.0) * maxval).astype(dtype)


def _write_pnm(pixels: np.ndarray, bits: int, filename: str) -> None:
    if pixels.shape[2] in (2, 4):
        raise CodecIOError("PNM files cannot store an alpha channel")
    h, w, c = pixels.shape
    magic = "P5" if c == 1 else "P6"
    data = quantize(pixels, bits)
    if data.dtype == np.uint16:
        data = data.astype(">u2")
    with open(filename, "wb") as f:
        f.write(f"{magic}\n{w} {h}\n{(1 << bits) - 1}\n".encode("ascii"))
        f.write(data.tobytes())


def _read_pnm(filename: str) -> Tuple[np.ndarray, int]:
    with open(filename, "rb") as f:
        data = f.read()

    # Magic, width, height, maxval separated by whitespace, with '#' comments.
    fields = []
    pos = 0
    while len(fields) < 4:
        while pos < len(data) and data[pos : pos + 1].isspace():
            pos += 1
        if data[pos : pos + 1] == b"#":
            pos = data.index(b"\n", pos)
            continue
        end = pos
        while end < len(data) and not data[end : end + 1].isspace():
            end += 1
        if end == pos:
            raise CodecIOError(f"Truncated PNM header in {filename}")
        fields.append(data[pos:end].decode("ascii"))
        pos = end
    pos += 1  # single whitespace byte before the raster

    magic, w, h, maxval = fields[0], int(fields[1]), int(fields[2]), int(fields[3])
    if magic not in ("P5", "P6"):
        raise CodecIOError(f"Unsupported PNM type {magic} in {filename}")
    if not 0 < maxval < 65536:
        raise CodecIOError(f"Invalid PNM maxval {maxval} in {filename}")
    c = 1 if magic == "P5" else 3
    dtype = np.uint8 if maxval < 256 else np.dtype(">u2")
    count = h * w * c
    raster = np.frombuffer(data, dtype=dtype, count=count, offset=pos)
    pixels = raster.reshape(h, w, c).astype(np.float32) / maxval
    return pixels, maxval.bit_length()


def pixels_to_pil(pixels: np.ndarray) -> Image.Image:
    """8-bit Pillow image (L, LA, RGB or RGBA) from float samples."""
    data = quantize(pixels, 8)
    return Image.fromarray(data[..., 0] if data.shape[2] == 1 else data)


def pil_to_pixels(img: Image.Image) -> Tuple[np.ndarray, int]:
    """Float samples and bits per sample of a Pillow image."""
    if img.mode in ("I;16", "I;16B", "I;16L", "I"):
        arr = np.asarray(img, dtype=np.float32) / 65535.0
        return arr[..., None], 16
    if img.mode not in ("L", "LA", "RGB", "RGBA"):
        has_alpha = img.mode in ("PA", "La") or "transparency" in img.info
        img = img.convert("RGBA" if has_alpha else "RGB")
    arr = np.asarray(img, dtype=np.float32) / 255.0
    if arr.ndim == 2:
        arr = arr[..., None]
    return arr, 8


def _png_header(filename: str) -> Tuple[int, int]:
    """Bit depth and color type from the IHDR chunk, (0, 0) if not a PNG."""
    with open(filename, "rb") as f:
        header = f.read(26)
    if len(header) < 26 or header[:8] != PNG_SIGNATURE:
        return 0, 0
    return header[24], header[25]


def _write_cv2(pixels: np.ndarray, filename: str) -> None:
    data = quantize(pixels, 16)
    code = cv2.COLOR_RGB2BGR if data.shape[2] == 3 else cv2.COLOR_RGBA2BGRA
    if not cv2.imwrite(filename, cv2.cvtColor(data, code)):
        raise CodecIOError(f"Failed to write {filename}")


def _read_cv2(filename: str) -> Tuple[np.ndarray, int]:
    data = cv2.imread(filename, cv2.IMREAD_UNCHANGED)
    if data is None:
        raise CodecIOError(f"Failed to read {filename}")
    code = cv2.COLOR_BGR2RGB if data.shape[2] == 3 else cv2.COLOR_BGRA2RGBA
    return cv2.cvtColor(data, code).astype(np.float32) / 65535.0, 16


def _write_pil(pixels: np.ndarray, bits: int, filename: str) -> None:
    ext = _extension(filename)
    channels = pixels.shape[2]
    if bits > 8 and ext == "png" and channels == 1:
        img = Image.fromarray(quantize(pixels[..., 0], 16))
    elif bits > 8 and ext == "png" and channels in (3, 4):
        # Pillow only writes 8-bit color PNG.
        _write_cv2(pixels, filename)
        return
    else:
        if bits > 8:
            warnings.warn(
                f"Storing {bits}-bit {channels}-channel image as 8-bit {ext}, "
                f"use ppm to keep the bit depth"
            )
        img = pixels_to_pil(pixels)
    # WebP is lossy unless told otherwise.
    options = {"lossless": True, "exact": True} if ext == "webp" else {}
    img.save(filename, **options)


def _read_pil(filename: str) -> Tuple[np.ndarray, int]:
    if _extension(filename) == "png":
        depth, color_type = _png_header(filename)
        if depth == 16 and color_type in PNG_COLOR_TYPES:
            return _read_cv2(filename)
    with Image.open(filename) as img:
        img.load()
        return pil_to_pixels(img)


def encode_to_file(
    io: ImageBundle,
    c_enc: ColorEncoding,
    bits: int,
    filename: str,
    pool: Optional[Executor] = None,
) -> None:
    """Write `io`, converted to `c_enc` with `bits` per sample, to `filename`."""
    ext = _extension(filename)
    converted = convert_to(io, c_enc, pool)
    try:
        if ext in PNM_EXTENSIONS:
            _write_pnm(converted.pixels, bits, filename)
        elif ext in PIL_EXTENSIONS:
            _write_pil(converted.pixels, bits, filename)
        else:
            raise CodecIOError(f"Unsupported image file extension '{ext}'")
    except OSError as err:
        raise CodecIOError(f"Failed to write {filename}: {err}") from err


def set_from_file(
    filename: str,
    hints: Optional[ColorHints] = None,
) -> ImageBundle:
    """
    Decode an image file. The color encoding of the samples is taken from the
    "color_space" hint if given, otherwise sRGB is assumed.
    """
    ext = _extension(filename)
    try:
        if ext in PNM_EXTENSIONS:
            pixels, bits = _read_pnm(filename)
        elif ext in PIL_EXTENSIONS:
            pixels, bits = _read_pil(filename)
        else:
            raise CodecIOError(f"Unsupported image file extension '{ext}'")
    except (OSError, ValueError) as err:
        raise CodecIOError(f"Failed to read {filename}: {err}") from err

    hints = hints or {}
    is_gray = pixels.shape[2] < 3
    c_enc = ColorEncoding.srgb(is_gray)
    for key, value in hints.items():
        if key == "color_space":
            c_enc = parse_description(value)
        else:
            warnings.warn(f"Ignoring unknown color hint '{key}'")
    if c_enc.is_gray != is_gray:
        raise CodecIOError(
            f"color_space hint {c_enc} does not match {pixels.shape[2]}-channel "
            f"image {filename}"
        )

    return ImageBundle(pixels, c_enc, ImageMetadata(bits_per_sample=bits))
