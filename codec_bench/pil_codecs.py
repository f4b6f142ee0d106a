from concurrent.futures import Executor
from io import BytesIO

from PIL import Image
from typing_extensions import Optional

from .codec import ImageCodec
from .codec_io import convert_to, pil_to_pixels, pixels_to_pil
from .errors import CodecIOError
from .image import ColorEncoding, ImageBundle, ImageMetadata
from .register import register_codec
from .speed_stats import SpeedStats, Timer

# In-process codecs through Pillow, all working on 8-bit sRGB.


class PILCodec(ImageCodec):
    fmt = None
    supports_alpha = True

    def _save_kwargs(self):
        return {}

    def compress(
        self,
        filename: str,
        io: ImageBundle,
        pool: Optional[Executor],
        speed_stats: SpeedStats,
    ) -> bytes:
        srgb = convert_to(io, ColorEncoding.srgb(io.color_encoding.is_gray), pool)
        pixels = srgb.pixels
        if io.has_alpha and not self.supports_alpha:
            pixels = pixels[..., :-1]

        img = pixels_to_pil(pixels)
        tmp = BytesIO()
        try:
            with Timer(speed_stats):
                img.save(tmp, format=self.fmt, **self._save_kwargs())
        except (OSError, ValueError) as err:
            raise CodecIOError(f"{self.fmt} encoding of {filename} failed: {err}") from err
        return tmp.getvalue()

    def decompress(
        self,
        filename: str,
        compressed: bytes,
        pool: Optional[Executor],
        speed_stats: SpeedStats,
    ) -> ImageBundle:
        try:
            with Timer(speed_stats):
                rec_img = Image.open(BytesIO(compressed), formats=(self.fmt,))
                rec_img.load()
        except (OSError, ValueError) as err:
            raise CodecIOError(f"{self.fmt} decoding of {filename} failed: {err}") from err

        pixels, bits = pil_to_pixels(rec_img)
        return ImageBundle(
            pixels,
            ColorEncoding.srgb(pixels.shape[2] < 3),
            ImageMetadata(bits_per_sample=bits),
        )


@register_codec("png")
class PNGCodec(PILCodec):
    fmt = "png"


class LossyPILCodec(PILCodec):
    def _save_kwargs(self):
        quality = int(round(min(max(self.q_target, 0.0), 100.0)))
        return {"quality": quality}


@register_codec("webp")
class WebPCodec(LossyPILCodec):
    fmt = "webp"


@register_codec("jpeg")
class JPEGCodec(LossyPILCodec):
    fmt = "jpeg"
    supports_alpha = False
