import numpy as np
from typing_extensions import Dict

from .image import ImageBundle


def compute_psnr(a: np.ndarray, b: np.ndarray, max_val: float = 1.0) -> float:
    mse = np.mean((a.astype(np.float64) - b.astype(np.float64)) ** 2).item()
    if mse == 0.0:
        return float("inf")
    return 20 * np.log10(max_val) - 10 * np.log10(mse)


def bits_per_pixel(num_bytes: int, xsize: int, ysize: int) -> float:
    return num_bytes * 8.0 / (xsize * ysize)


def compute_metrics(
    original: ImageBundle, decoded: ImageBundle, num_bytes: int
) -> Dict[str, float]:
    """
    Compare `decoded` with `original`; both must be in the same color
    encoding. Alpha is ignored when only one of them has it.
    """
    if (original.xsize, original.ysize) != (decoded.xsize, decoded.ysize):
        raise ValueError(
            f"Decoded size {decoded.xsize}x{decoded.ysize} does not match "
            f"original {original.xsize}x{original.ysize}"
        )
    channels = min(original.pixels.shape[2], decoded.pixels.shape[2])
    out = {}
    out["bpp"] = bits_per_pixel(num_bytes, original.xsize, original.ysize)
    out["psnr"] = compute_psnr(
        original.pixels[..., :channels], decoded.pixels[..., :channels]
    )
    return out
